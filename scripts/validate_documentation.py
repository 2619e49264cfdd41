#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Documentation Validator

Validates the plugin README and license:
1. README.md must exist (FAIL otherwise)
2. Required sections (rules.documentation.requiredSections) - FAIL when missing
3. Recommended sections - WARN when missing
4. Badges, fenced code examples and a LICENSE file - WARN when missing

A section counts as present when a level-1 or level-2 heading starts with its
name, case-insensitively ("## Installation" satisfies "Install").
"""

from __future__ import annotations

import re

from mpv_validation_common import AnalysisContext, CheckResult, read_text

README_TEMPLATE = "templates/plugin/README.md.template"
LICENSE_FILES = ("LICENSE", "LICENSE.md", "LICENSE.txt")


def section_pattern(name: str) -> re.Pattern[str]:
    return re.compile(r"##?\s+" + re.escape(name), re.IGNORECASE)


def has_section(readme: str, name: str) -> bool:
    return section_pattern(name).search(readme) is not None


def check_documentation(ctx: AnalysisContext, result: CheckResult) -> None:
    """Validate README.md sections, badges, examples and the LICENSE file.

    Args:
        ctx: Analysis context for the plugin
        result: CheckResult to add findings to
    """
    readme_path = ctx.plugin_path / "README.md"
    if not readme_path.is_file():
        result.fail("Missing README.md")
        return

    readme = read_text(readme_path)
    rules = ctx.config.section("docs")
    suggest = ctx.config.template_suggestions

    for name in rules.get("requiredSections", ()):
        if has_section(readme, name):
            result.ok(f"README includes required {name} section")
        else:
            result.fail(f"README missing required {name} section")

    for name in rules.get("recommendedSections", ()):
        if has_section(readme, name):
            result.ok(f"README includes {name} section")
        elif suggest:
            result.warn(f"Consider adding {name} section to README", f"See template: {README_TEMPLATE}")
        else:
            result.warn(f"Consider adding {name} section to README")

    if "![" in readme:
        result.ok("README includes badges")
    else:
        result.warn("Consider adding badges to README (npm version, build status, coverage)")

    if "```" in readme:
        result.ok("README includes code examples")
    else:
        result.warn("Consider adding code examples to README")

    license_file = next((name for name in LICENSE_FILES if (ctx.plugin_path / name).is_file()), None)
    if license_file:
        result.ok(f"{license_file} file exists")
    elif suggest:
        result.warn(
            "Consider adding a LICENSE file",
            f"Generate one with: npx metalsmith-plugin-mcp-server scaffold {ctx.plugin_path} LICENSE <license-type>",
        )
    else:
        result.warn("Consider adding a LICENSE file")
