#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - package.json Validator

Validates the plugin manifest against the packageJson rules:
- The manifest exists and parses as a JSON object (FAIL otherwise)
- Required fields and required scripts are present (FAIL otherwise)
- Entry point (main/exports), the "metalsmith-" name prefix, recommended
  fields, ES module configuration, recommended scripts and release-it are
  recommendations (WARN)
"""

from __future__ import annotations

from typing import Any

from mpv_validation_common import AnalysisContext, CheckResult, load_manifest, manifest_scripts

# Example bodies shown for missing recommended scripts
SCRIPT_EXAMPLES = {
    "test": "mocha test/**/*.test.js",
    "lint": "eslint src test",
    "format": "prettier --write src test",
    "test:coverage": "c8 npm test",
}


def _present(value: Any) -> bool:
    """Non-empty manifest value (empty strings, lists and objects do not count)."""
    if value is None or value is False:
        return False
    if isinstance(value, (str, list, dict)):
        return bool(value)
    return True


def script_hint(script: str) -> str:
    if script in SCRIPT_EXAMPLES:
        return f'Example: "{script}": "{SCRIPT_EXAMPLES[script]}"'
    if script.startswith("release:"):
        return f'Example: "{script}": "release-it {script.split(":", 1)[1]}"'
    return ""


def check_package_json(ctx: AnalysisContext, result: CheckResult) -> None:
    """Validate package.json fields, scripts and conventions.

    Args:
        ctx: Analysis context for the plugin
        result: CheckResult to add findings to
    """
    try:
        manifest = load_manifest(ctx.plugin_path)
    except FileNotFoundError:
        result.fail("Missing package.json")
        return
    except ValueError as e:
        result.fail(f"Invalid package.json: {e}")
        return

    rules = ctx.config.section("package-json")

    for name in rules.get("requiredFields", ()):
        if _present(manifest.get(name)):
            result.ok(f"package.json has {name}")
        else:
            result.fail(f"package.json missing {name}")

    for name in rules.get("recommendedFields", ()):
        if _present(manifest.get(name)):
            result.ok(f"package.json has {name}")
        else:
            result.warn(f"Consider adding {name} to package.json")

    if _present(manifest.get("exports")):
        result.ok("package.json has exports field (modern ES modules)")
    elif _present(manifest.get("main")):
        result.ok("package.json has main field")
    else:
        result.warn("package.json has no entry point (main or exports)")

    prefix = rules.get("namePrefix", "metalsmith-")
    name = manifest.get("name")
    if prefix and isinstance(name, str):
        # scoped packages: @scope/metalsmith-foo, or anything under @metalsmith/
        bare = name.split("/", 1)[1] if name.startswith("@") and "/" in name else name
        if bare.startswith(prefix) or name.startswith("@metalsmith/"):
            result.ok("Plugin name follows convention")
        else:
            result.warn(f'Consider using "{prefix}" prefix for better discoverability in the Metalsmith ecosystem')

    if manifest.get("type") == "module" or _present(manifest.get("exports")):
        result.ok("Modern module system configured")
    else:
        result.warn('Consider using ES modules (add "type": "module" or use exports field)')

    scripts = manifest_scripts(manifest)
    for script in rules.get("requiredScripts", ()):
        if script in scripts:
            result.ok(f'Required script "{script}" defined')
        else:
            result.fail(f"Missing required script: {script}")

    for script in rules.get("recommendedScripts", ()):
        if script in scripts:
            result.ok(f'Script "{script}" defined')
        else:
            result.warn(f"Consider adding script: {script}", script_hint(script) or None)

    dev_deps = manifest.get("devDependencies") if isinstance(manifest.get("devDependencies"), dict) else {}
    deps = manifest.get("dependencies") if isinstance(manifest.get("dependencies"), dict) else {}
    if "release-it" in dev_deps or "release-it" in deps:
        result.ok("release-it dependency found")
    else:
        result.warn("Consider adding release-it for automated releases", "npm install --save-dev release-it")
