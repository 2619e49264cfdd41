#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Structure Validator

Checks the plugin file tree against the RuleConfig manifest of required and
recommended files/directories, and runs a lightweight complexity heuristic
on the main entry point.

Rules:
1. Every required directory/file must exist (FAIL otherwise)
2. Recommended directories/files are suggested, never required (WARN)
3. Main entry point nesting depth and function count stay under the
   configured thresholds (WARN above the low threshold, stronger WARN above
   the high threshold, INFO when the source cannot be read)
4. Functional mode: test fixtures exist when test files exist

Also hosts the ESLint configuration check.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from mpv_validation_common import AnalysisContext, CheckResult

SCAFFOLD_HINT = "npx metalsmith-plugin-mcp-server scaffold"

TEST_SOURCE_GLOBS = ("test/**/*.js", "test/**/*.cjs", "test/**/*.mjs")

ESLINT_FLAT_CONFIGS = ("eslint.config.js", "eslint.config.mjs", "eslint.config.cjs")
ESLINT_LEGACY_CONFIGS = (".eslintrc.js", ".eslintrc.cjs", ".eslintrc.json", ".eslintrc.yml", ".eslintrc.yaml", ".eslintrc")

# =============================================================================
# Complexity Heuristic
# =============================================================================

_FUNCTION_RE = re.compile(r"\bfunction\b\s*\*?\s*\w*\s*\(|=>")
_CLASS_RE = re.compile(r"^\s*(?:export\s+)?(?:default\s+)?class\s+\w+", re.MULTILINE)
_IMPORT_RE = re.compile(r"^\s*import\s+|\brequire\s*\(", re.MULTILINE)
_PROCESSING_RE = re.compile(r"process|transform|parse")
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_STRING_RE = re.compile(r"'(?:\\.|[^'\\\n])*'|\"(?:\\.|[^\"\\\n])*\"|`(?:\\.|[^`\\])*`", re.DOTALL)


@dataclass(frozen=True)
class ComplexityAnalysis:
    lines: int
    functions: int
    classes: int
    imports: int
    max_depth: int
    has_processing: bool


def _strip_noise(source: str) -> str:
    """Drop comments and string literals so braces inside them are not counted."""
    source = _BLOCK_COMMENT_RE.sub("", source)
    source = _STRING_RE.sub('""', source)
    return _LINE_COMMENT_RE.sub("", source)


def max_brace_depth(source: str) -> int:
    depth = 0
    deepest = 0
    for ch in _strip_noise(source):
        if ch == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif ch == "}":
            depth = max(0, depth - 1)
    return deepest


def analyze_complexity(source: str) -> ComplexityAnalysis:
    """Count code lines, functions, classes, imports and max brace nesting depth."""
    code = _strip_noise(source)
    lines = sum(1 for line in code.splitlines() if line.strip())
    return ComplexityAnalysis(
        lines=lines,
        functions=len(_FUNCTION_RE.findall(code)),
        classes=len(_CLASS_RE.findall(code)),
        imports=len(_IMPORT_RE.findall(code)),
        max_depth=max_brace_depth(source),
        has_processing=bool(_PROCESSING_RE.search(code)),
    )


def _check_threshold(
    result: CheckResult, label: str, value: int, low: int, high: int, advice: str
) -> None:
    if value > high:
        result.warn(f"Main file {label} is very high ({value} > {high}) - {advice}")
    elif value > low:
        result.warn(f"Main file {label} is above recommended ({value} > {low}) - {advice}")
    else:
        result.ok(f"Main file {label} is appropriate ({value})")


def check_complexity(ctx: AnalysisContext, result: CheckResult) -> None:
    """Complexity heuristic on the main entry point. Never fails the category."""
    try:
        source, used = ctx.entry_source()
    except (OSError, UnicodeDecodeError) as e:
        result.info(f"Could not analyze main file complexity: {e}")
        return

    limits = ctx.config.rule("structure", "complexity", {})
    analysis = analyze_complexity(source)
    detail = ", ".join(used)

    _check_threshold(
        result,
        "nesting depth",
        analysis.max_depth,
        int(limits.get("maxNestingDepth", 4)),
        int(limits.get("highNestingDepth", 6)),
        "flatten control flow or extract helpers",
    )
    _check_threshold(
        result,
        "function count",
        analysis.functions,
        int(limits.get("maxFunctions", 8)),
        int(limits.get("highFunctions", 15)),
        "consider splitting utilities into src/utils/",
    )
    result.info(
        f"Main file: {analysis.lines} code lines, {analysis.functions} functions, "
        f"{analysis.imports} imports, max depth {analysis.max_depth}",
        detail,
    )

    if analysis.has_processing and analysis.functions > 5:
        result.warn("Multiple processing functions detected - consider organizing into src/processors/")


# =============================================================================
# Structure Check
# =============================================================================


def _hint(ctx: AnalysisContext, message: str, suggestion: str) -> str:
    if ctx.config.template_suggestions:
        return f"{message}. Run: {SCAFFOLD_HINT} {ctx.plugin_path} {suggestion}"
    return message


def check_structure(ctx: AnalysisContext, result: CheckResult) -> None:
    """Validate required and recommended directories/files.

    Args:
        ctx: Analysis context for the plugin
        result: CheckResult to add findings to
    """
    root = ctx.plugin_path
    rules = ctx.config.section("structure")

    for d in rules.get("requiredDirs", ()):
        if (root / d).is_dir():
            result.ok(f"Directory {d} exists")
        else:
            result.fail(f"Missing required directory: {d}")

    for f in rules.get("requiredFiles", ()):
        if (root / f).exists():
            result.ok(f"File {f} exists")
        else:
            result.fail(f"Missing required file: {f}")

    for f in rules.get("recommendedFiles", ()):
        if (root / f).exists():
            result.ok(f"Recommended file {f} exists")
        elif f == ".release-it.json":
            result.warn(_hint(ctx, f"Consider adding {f} for automated releases", f"{f} release-config"))
        else:
            result.warn(f"Consider adding recommended file: {f}")

    for d in rules.get("recommendedDirs", ()):
        if (root / d).is_dir():
            result.ok(f"Recommended directory {d} exists")
        elif d == "test/fixtures":
            result.warn(_hint(ctx, f"Consider adding {d}", "test/fixtures/basic/sample.md basic"))
        else:
            result.warn(f"Consider adding directory: {d}")

    if ctx.functional:
        _check_fixtures_for_tests(ctx, result)

    check_complexity(ctx, result)


def _check_fixtures_for_tests(ctx: AnalysisContext, result: CheckResult) -> None:
    if (ctx.plugin_path / "test" / "fixtures").is_dir():
        result.ok("Test fixtures directory exists")
        return
    if ctx.files.glob(TEST_SOURCE_GLOBS):
        result.warn(_hint(ctx, "Test files exist without test/fixtures", "test/fixtures/basic/sample.md basic"))


# =============================================================================
# ESLint Check
# =============================================================================


def check_eslint(ctx: AnalysisContext, result: CheckResult) -> None:
    """Look for an ESLint configuration, preferring the flat config format."""
    root = ctx.plugin_path
    flat = next((name for name in ESLINT_FLAT_CONFIGS if (root / name).is_file()), None)
    legacy = next((name for name in ESLINT_LEGACY_CONFIGS if (root / name).is_file()), None)

    if flat:
        result.ok(f"ESLint configuration found: {flat}")
        result.ok("Using modern ESLint flat config")
    elif legacy:
        result.ok(f"ESLint configuration found: {legacy}")
        result.warn("Legacy .eslintrc configuration - consider migrating to eslint.config.js (flat config)")
    else:
        result.warn(_hint(ctx, "No ESLint configuration found", "eslint.config.js eslint"))
