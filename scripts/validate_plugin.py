#!/usr/bin/env python3
"""
Metalsmith Plugin Validator

Quality validation for Metalsmith plugin packages. Dispatches each requested
check category to its analyzer, collects one CheckResult per category and
scores the run.

Usage:
    uv run python scripts/validate_plugin.py /path/to/plugin
    uv run python scripts/validate_plugin.py /path/to/plugin --checks structure,docs,package-json
    uv run python scripts/validate_plugin.py /path/to/plugin --functional --verbose
    uv run python scripts/validate_plugin.py /path/to/plugin --output markdown
    uv run python scripts/validate_plugin.py --list-checks

Flags:
    --checks:     Comma-separated check names (default: structure, tests, docs,
                  package-json, jsdoc, performance, security, metalsmith-patterns)
    --functional: Also run the plugin's test and coverage scripts
    --output:     console (alias: text), json or markdown

Exit codes:
    0 - Every requested category passed
    1 - At least one category has a FAIL finding
    2 - Invalid request (unknown check, missing directory, bad override file)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, Iterable

import yaml

from gitignore_filter import GitignoreFilter
from mpv_report import render_validation, resolve_output_format
from mpv_rule_config import load_rule_config
from mpv_validation_common import (
    CHECK_NAMES,
    DEFAULT_CHECKS,
    AnalysisContext,
    CheckRequest,
    CheckResult,
    RequestError,
    ValidationReport,
    stdout_supports_color,
)
from validate_documentation import check_documentation
from validate_package_json import check_package_json
from validate_patterns import check_integration, check_jsdoc, check_metalsmith_patterns, check_performance
from validate_security import check_security
from validate_structure import check_eslint, check_structure
from validate_tests import check_coverage, check_tests

Analyzer = Callable[[AnalysisContext, CheckResult], None]

# =============================================================================
# Check Catalog
# =============================================================================

# Check name -> analyzers run in order against the same CheckResult
CHECK_CATALOG: dict[str, tuple[Analyzer, ...]] = {
    "structure": (check_structure,),
    "tests": (check_tests,),
    "docs": (check_documentation,),
    "package-json": (check_package_json,),
    "eslint": (check_eslint,),
    "coverage": (check_coverage,),
    "jsdoc": (check_jsdoc,),
    "performance": (check_performance,),
    "security": (check_security,),
    "integration": (check_integration,),
    "metalsmith-patterns": (check_metalsmith_patterns,),
}

CHECK_DESCRIPTIONS = {
    "structure": "Required/recommended files and directories, main file complexity",
    "tests": "Test files, fixtures and test script (runs them with --functional)",
    "docs": "README sections, badges, examples and LICENSE",
    "package-json": "Manifest fields, naming convention and scripts",
    "eslint": "ESLint configuration (flat config preferred)",
    "coverage": "Prior coverage report against the coverage threshold",
    "jsdoc": "JSDoc typedefs, @param/@returns and utility documentation",
    "performance": "files iteration, RegExp placement and Buffer handling",
    "security": "Dynamic code execution, hardcoded secrets, blocking calls",
    "integration": "Compatibility with other plugins and pipeline documentation",
    "metalsmith-patterns": "Factory pattern, plugin signature and metadata handling",
}


# =============================================================================
# Request Handling
# =============================================================================


def parse_checks(checks: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize requested check names into canonical order.

    Args:
        checks: None for the defaults, a comma-separated string, or names

    Raises:
        RequestError: an unknown or empty check name
    """
    if checks is None:
        return DEFAULT_CHECKS
    names = checks.split(",") if isinstance(checks, str) else list(checks)
    requested = {name.strip() for name in names if name and name.strip()}
    if not requested:
        return DEFAULT_CHECKS

    unknown = sorted(requested - set(CHECK_CATALOG))
    if unknown:
        raise RequestError(f"Unknown check(s): {', '.join(unknown)} (available: {', '.join(CHECK_NAMES)})")
    return tuple(name for name in CHECK_NAMES if name in requested)


def build_request(
    path: str | Path,
    checks: str | Iterable[str] | None = None,
    functional: bool = False,
    output: str = "console",
) -> CheckRequest:
    """Build a validated CheckRequest.

    Raises:
        RequestError: unknown check or output format, or path is not a directory
    """
    target = Path(path).expanduser()
    if not target.is_dir():
        raise RequestError(f"Plugin path is not a directory: {target}")
    return CheckRequest(
        target_path=target.resolve(),
        checks=parse_checks(checks),
        functional=bool(functional),
        output=resolve_output_format(output),
    )


# =============================================================================
# Dispatcher
# =============================================================================


def run_check(name: str, ctx: AnalysisContext) -> CheckResult:
    """Run one category. Any analyzer exception becomes one FAIL finding."""
    result = CheckResult(name)
    if not ctx.config.is_enabled(name):
        result.skipped = True
        result.info(f"Check disabled in {ctx.config.source or 'configuration'}")
        return result.seal()

    for analyzer in CHECK_CATALOG[name]:
        try:
            analyzer(ctx, result)
        except (OSError, ValueError, yaml.YAMLError) as e:
            result.fail(f"Could not complete {name} check: {e}")
        except Exception as e:
            # An analyzer bug fails its own category, never the whole run
            result.fail(f"Could not complete {name} check: {type(e).__name__}: {e}")
    return result.seal()


def validate(request: CheckRequest) -> ValidationReport:
    """Run every requested check against the plugin and assemble the report.

    Raises:
        RequestError: the request is malformed or the rule override file
            cannot be parsed; raised before any analyzer runs
    """
    target = Path(request.target_path)
    if not target.is_dir():
        raise RequestError(f"Plugin path is not a directory: {target}")
    checks = parse_checks(request.checks)
    resolve_output_format(request.output)

    config = load_rule_config(target)
    ctx = AnalysisContext(
        plugin_path=target,
        config=config,
        files=GitignoreFilter(target),
        functional=request.functional,
    )

    report = ValidationReport(plugin_path=str(target))
    for name in checks:
        report.checks[name] = run_check(name, ctx)
    return report


# =============================================================================
# CLI
# =============================================================================


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Validate a Metalsmith plugin")
    parser.add_argument("path", nargs="?", default=".", help="Plugin root path (default: current directory)")
    parser.add_argument("--checks", help="Comma-separated check names")
    parser.add_argument("--functional", action="store_true", help="Run the plugin's test and coverage scripts")
    parser.add_argument("--output", "-o", default="console", help="console (text), json or markdown")
    parser.add_argument("--json", action="store_true", help="Output as JSON (same as --output json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show all results including passed checks")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("--list-checks", action="store_true", help="List available checks and exit")
    args = parser.parse_args()

    if args.list_checks:
        for name in CHECK_NAMES:
            default = " (default)" if name in DEFAULT_CHECKS else ""
            print(f"{name:<20} {CHECK_DESCRIPTIONS[name]}{default}")
        return 0

    try:
        request = build_request(args.path, args.checks, args.functional, "json" if args.json else args.output)
        report = validate(request)
    except RequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    color = not args.no_color and request.output == "console" and stdout_supports_color()
    print(render_validation(report, request.output, color=color, verbose=args.verbose))
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
