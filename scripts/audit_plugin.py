#!/usr/bin/env python3
"""
Metalsmith Plugin Audit

Runs validation, linting, format checking, tests and coverage against one
plugin and folds the results into a single health tier.

Steps, always in this order and always all attempted:
    1. validation   default checks through the validator (non-functional)
    2. linting      "lint" script
    3. formatting   "format:check" script
    4. tests        "test" script, pass/fail counts parsed from its output
    5. coverage     "test:coverage" or "coverage" script, falling back to a
                    prior coverage/coverage-summary.json
    6. fixes        with --fix only: "lint:fix" and "format"

A missing script marks its step as skipped, a failing or unparsable one as
failed; neither stops the audit. The health tier combines the validation
score, the test pass rate and the coverage percentage of the steps that
produced usable numbers (see mpv_scoring.overall_health).

Usage:
    uv run python scripts/audit_plugin.py /path/to/plugin
    uv run python scripts/audit_plugin.py /path/to/plugin --fix
    uv run python scripts/audit_plugin.py /path/to/plugin --output markdown

Exit codes:
    0 - Overall health EXCELLENT, GOOD or FAIR
    1 - Overall health NEEDS IMPROVEMENT or POOR
    2 - Invalid request (missing directory, bad override file)
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal

from mpv_exec import CommandResult, has_script, run_command, script_command
from mpv_output_parsers import TestStats, parse_coverage_percentage, parse_test_stats
from mpv_report import render_audit, resolve_output_format
from mpv_rule_config import RuleConfig, load_rule_config
from mpv_scoring import DEFAULT_COVERAGE_THRESHOLD, VALIDATION_PASS_THRESHOLD, overall_health, pass_rate
from mpv_validation_common import (
    DEFAULT_CHECKS,
    SEVERITY_MARKS,
    ExecutionError,
    RequestError,
    ValidationReport,
    load_manifest,
    stdout_supports_color,
)
from validate_plugin import build_request, validate
from validate_tests import read_coverage_summary

StepStatus = Literal["passed", "failed", "skipped", "error"]

# Tiers that count as a healthy audit for the exit code
HEALTHY_TIERS = ("EXCELLENT", "GOOD", "FAIR")

COVERAGE_SCRIPTS = ("test:coverage", "coverage")
FIX_SCRIPTS = ("lint:fix", "format")

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class AuditStep:
    """Outcome of one audit step.

    Attributes:
        name: Step name (validation, linting, formatting, tests, coverage,
            or the fix script name)
        status: passed, failed, skipped (no such script) or error (the
            command could not be launched)
        summary: Short result text for reports ("85%", "12/12 passing")
        note: Why the step was skipped or what went wrong
        command: Command line that ran, if any
        details: Step-specific values merged into the JSON output
    """

    name: str
    status: StepStatus = "skipped"
    summary: str = ""
    note: str = ""
    command: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"passed": self.passed, "status": self.status}
        result.update(self.details)
        if self.summary:
            result["summary"] = self.summary
        if self.note:
            result["note"] = self.note
        if self.command:
            result["command"] = self.command
        return result


@dataclass
class AuditReport:
    """Audit result for one plugin. Composes, does not own, the ValidationReport."""

    plugin_name: str
    plugin_path: str
    steps: dict[str, AuditStep]
    fixes: list[AuditStep] = field(default_factory=list)
    validation: ValidationReport | None = None
    validation_score: int | None = None
    test_rate: float | None = None
    coverage_percentage: float | None = None

    @property
    def overall_health(self) -> str:
        return overall_health(self.validation_score, self.test_rate, self.coverage_percentage)

    @property
    def healthy(self) -> bool:
        return self.overall_health in HEALTHY_TIERS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        results: dict[str, Any] = {name: step.to_dict() for name, step in self.steps.items()}
        if self.fixes:
            results["fixes"] = [step.to_dict() for step in self.fixes]
        return {
            "pluginName": self.plugin_name,
            "pluginPath": self.plugin_path,
            "results": results,
            "overallHealth": self.overall_health,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


StepCallback = Callable[[str, "AuditStep | None"], None]

# =============================================================================
# Steps
# =============================================================================


def _timeout(config: RuleConfig) -> float | None:
    value = config.rule("tests", "timeout", 120)
    return float(value) if isinstance(value, (int, float)) and value > 0 else None


def run_script_step(
    plugin_path: Path, name: str, script: str, timeout: float | None
) -> tuple[AuditStep, CommandResult | None]:
    """Run a manifest script as an audit step.

    Returns:
        (step, command result); the result is None when nothing ran
    """
    if not has_script(plugin_path, script):
        return AuditStep(name, "skipped", note=f'skipped: no "{script}" script in package.json'), None

    command = script_command(plugin_path, script)
    try:
        run = run_command(command, plugin_path, timeout)
    except ExecutionError as e:
        return AuditStep(name, "error", summary="Could not run", note=str(e), command=" ".join(command)), None

    if run.timed_out:
        step = AuditStep(name, "failed", summary="Timed out", note=f"no result within {timeout:g}s", command=run.command)
    elif run.success:
        step = AuditStep(name, "passed", summary="Clean", command=run.command)
    else:
        step = AuditStep(name, "failed", summary="Issues found", note=run.error_excerpt(), command=run.command)
    return step, run


def validation_step(plugin_path: Path) -> tuple[AuditStep, ValidationReport]:
    report = validate(build_request(plugin_path, DEFAULT_CHECKS))
    score = report.overall_score
    step = AuditStep(
        "validation",
        "passed" if score >= VALIDATION_PASS_THRESHOLD else "failed",
        summary=f"{score}%",
        details={
            "score": score,
            "totalChecks": report.total_checks,
            "passedChecks": report.passed_checks,
        },
    )
    if not step.passed:
        step.note = f"score below {VALIDATION_PASS_THRESHOLD}%"
    return step, report


def tests_step(plugin_path: Path, timeout: float | None) -> tuple[AuditStep, float | None]:
    """Run the test script. Returns the step and the pass rate (None when unknown)."""
    step, run = run_script_step(plugin_path, "tests", "test", timeout)
    stats = parse_test_stats(run.output) if run is not None else TestStats()
    step.details["stats"] = stats.to_dict()

    if run is None:
        return step, None
    if stats.known:
        step.summary = f"{stats.passed}/{stats.total} passing"
        if stats.failed:
            step.summary += f", {stats.failed} failing"
        return step, pass_rate(stats.passed, stats.total)
    if step.status == "passed":
        step.summary = "Passed"
        step.note = "no test summary recognized"
        return step, None
    return step, 0.0


def coverage_step(plugin_path: Path, timeout: float | None, threshold: float) -> AuditStep:
    script = next((s for s in COVERAGE_SCRIPTS if has_script(plugin_path, s)), None)
    percentage: float | None = None

    if script is None:
        step = AuditStep("coverage", note="skipped: no coverage script in package.json")
    else:
        step, run = run_script_step(plugin_path, "coverage", script, timeout)
        if run is not None:
            percentage = parse_coverage_percentage(run.output)

    if percentage is None and step.status != "error":
        try:
            percentage = read_coverage_summary(plugin_path)
        except (OSError, ValueError) as e:
            step.note = f"unreadable coverage summary: {e}"
        if percentage is not None:
            step.details["source"] = "coverage/coverage-summary.json"

    step.details["percentage"] = percentage
    if percentage is None:
        if step.status == "passed":
            step.status = "failed"
            step.summary = "No data"
            step.note = step.note or "no coverage percentage recognized"
        return step

    step.status = "passed" if percentage >= threshold else "failed"
    step.summary = f"{percentage:g}%"
    step.note = "" if step.passed else f"below threshold ({threshold:g}%)"
    return step


# =============================================================================
# Orchestrator
# =============================================================================


def plugin_display_name(plugin_path: Path) -> str:
    try:
        name = load_manifest(plugin_path).get("name")
    except (OSError, ValueError):
        name = None
    return name if isinstance(name, str) and name else plugin_path.name


def audit(
    path: str | Path,
    fix: bool = False,
    output: str = "console",
    on_step: StepCallback | None = None,
) -> AuditReport:
    """Audit one plugin.

    Args:
        path: Plugin root directory
        fix: Also run the "lint:fix" and "format" scripts
        output: Output format the caller intends to render (validated only)
        on_step: Called with (step name, None) before and (step name, step)
            after each step

    Raises:
        RequestError: path is not a directory, unknown output format, or a
            malformed rule override file
    """
    target = Path(path).expanduser()
    if not target.is_dir():
        raise RequestError(f"Plugin path is not a directory: {target}")
    target = target.resolve()
    resolve_output_format(output)
    config = load_rule_config(target)

    timeout = _timeout(config)
    threshold_value = config.rule("tests", "coverageThreshold", DEFAULT_COVERAGE_THRESHOLD)
    threshold = float(threshold_value) if isinstance(threshold_value, (int, float)) else DEFAULT_COVERAGE_THRESHOLD

    def notify(name: str, step: AuditStep | None) -> None:
        if on_step is not None:
            on_step(name, step)

    report = AuditReport(plugin_name=plugin_display_name(target), plugin_path=str(target), steps={})

    notify("validation", None)
    step, report.validation = validation_step(target)
    report.validation_score = report.validation.overall_score
    report.steps["validation"] = step
    notify("validation", step)

    for name, script in (("linting", "lint"), ("formatting", "format:check")):
        notify(name, None)
        step, _ = run_script_step(target, name, script, timeout)
        report.steps[name] = step
        notify(name, step)

    notify("tests", None)
    step, report.test_rate = tests_step(target, timeout)
    report.steps["tests"] = step
    notify("tests", step)

    notify("coverage", None)
    step = coverage_step(target, timeout, threshold)
    report.coverage_percentage = step.details.get("percentage")
    report.steps["coverage"] = step
    notify("coverage", step)

    if fix:
        for script in FIX_SCRIPTS:
            notify(script, None)
            step, _ = run_script_step(target, script, script, timeout)
            if step.passed:
                step.summary = "Fixed"
            report.fixes.append(step)
            notify(script, step)

    return report


# =============================================================================
# CLI
# =============================================================================


def print_progress(name: str, step: AuditStep | None) -> None:
    """on_step callback writing progress lines to stderr."""
    if step is None:
        print(f"Running {name}...", file=sys.stderr)
        return
    level = {"passed": "PASS", "failed": "FAIL", "error": "FAIL", "skipped": "INFO"}[step.status]
    detail = step.summary or step.note or step.status
    print(f"  {SEVERITY_MARKS[level]} {name}: {detail}", file=sys.stderr)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Audit a Metalsmith plugin (validation, lint, format, tests, coverage)")
    parser.add_argument("path", nargs="?", default=".", help="Plugin root path (default: current directory)")
    parser.add_argument("--fix", action="store_true", help="Run lint:fix and format scripts after the audit")
    parser.add_argument("--output", "-o", default="console", help="console (text), json or markdown")
    parser.add_argument("--json", action="store_true", help="Output as JSON (same as --output json)")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument("--quiet", "-q", action="store_true", help="No progress lines on stderr")
    args = parser.parse_args()

    output = "json" if args.json else args.output
    try:
        fmt = resolve_output_format(output)
        report = audit(args.path, fix=args.fix, output=fmt, on_step=None if args.quiet else print_progress)
    except RequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    color = not args.no_color and fmt == "console" and stdout_supports_color()
    print(render_audit(report, fmt, color=color))
    return 0 if report.healthy else 1


if __name__ == "__main__":
    sys.exit(main())
