#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Report Renderer

Serializes a ValidationReport or an AuditReport into one of the output
formats:

- console   human-readable sectioned listing, grouped by severity, ending with
            "Quality score: NN%" (validation) or "Overall Health: TIER" (audit)
- json      the full report structure, serialized verbatim
- markdown  a "| Check | Status | Details |" table for pull-request comments

Renderers return strings and never print; the CLI mains decide where the text
goes. Output contains no timestamps so identical inputs render identically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mpv_validation_common import (
    OUTPUT_FORMAT_ALIASES,
    OUTPUT_FORMATS,
    SEVERITY_MARKS,
    CheckResult,
    RequestError,
    ValidationReport,
    colorize,
)

if TYPE_CHECKING:
    from audit_plugin import AuditReport, AuditStep

RULE = "=" * 60

# Markdown status cells
STATUS_ICONS = {
    "passed": "✅",
    "failed": "❌",
    "error": "❌",
    "skipped": "⏭️",
    "warn": "⚠️",
}

# Tier -> color level used for the health line
TIER_COLORS = {
    "EXCELLENT": "PASS",
    "GOOD": "PASS",
    "FAIR": "WARN",
    "NEEDS IMPROVEMENT": "FAIL",
    "POOR": "FAIL",
}


def resolve_output_format(name: str) -> str:
    """Canonical output format name ("text" -> "console").

    Raises:
        RequestError: unknown format
    """
    fmt = OUTPUT_FORMAT_ALIASES.get(name, name)
    if fmt not in OUTPUT_FORMATS:
        raise RequestError(f"Unknown output format '{name}' (expected one of: {', '.join(OUTPUT_FORMATS)})")
    return fmt


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


# =============================================================================
# Validation Reports
# =============================================================================


def _category_details(result: CheckResult) -> str:
    if result.skipped:
        return "disabled in configuration"
    counts = result.count_by_severity()
    if counts["FAIL"]:
        return "<br>".join(_md_cell(f.message) for f in result.findings if f.severity == "FAIL")
    parts = [f"{counts['PASS']} passed"]
    if counts["WARN"]:
        parts.append(f"{counts['WARN']} recommendation{'s' if counts['WARN'] != 1 else ''}")
    return ", ".join(parts)


def _category_status(result: CheckResult) -> str:
    if result.skipped:
        return "skipped"
    return "passed" if result.passed else "failed"


def render_validation_console(report: ValidationReport, color: bool = False, verbose: bool = False) -> str:
    """Sectioned listing of every category.

    FAIL and WARN findings are always listed; INFO and PASS only when verbose.
    """
    shown = ("FAIL", "WARN", "INFO", "PASS") if verbose else ("FAIL", "WARN")
    lines = [RULE, colorize(f"Validation Report: {report.plugin_path}", "BOLD", color), RULE]

    for name, result in report.checks.items():
        status = _category_status(result)
        level = {"passed": "PASS", "failed": "FAIL", "skipped": "INFO"}[status]
        lines.append("")
        lines.append(colorize(f"{name} [{status.upper()}]", level, color))
        for severity in shown:
            for finding in result.findings:
                if finding.severity != severity:
                    continue
                text = f"  {SEVERITY_MARKS[severity]} {finding.message}"
                if finding.detail:
                    text += f" ({finding.detail})"
                lines.append(colorize(text, severity, color))

    score = report.overall_score
    score_level = "PASS" if report.passed else "WARN" if score >= 50 else "FAIL"
    lines.extend(
        [
            "",
            RULE,
            f"Total checks: {report.total_checks}",
            f"Passed checks: {report.passed_checks}",
            colorize(f"Quality score: {score}%", score_level, color),
        ]
    )
    return "\n".join(lines)


def render_validation_markdown(report: ValidationReport) -> str:
    lines = [
        f"# Validation Report: {report.plugin_path}",
        "",
        f"**Quality score**: {report.overall_score}%",
        f"**Checks passed**: {report.passed_checks}/{report.total_checks}",
        "",
        "| Check | Status | Details |",
        "|-------|--------|---------|",
    ]
    for name, result in report.checks.items():
        icon = STATUS_ICONS[_category_status(result)]
        lines.append(f"| {name} | {icon} | {_category_details(result)} |")

    warnings = report.findings("WARN")
    if warnings:
        lines.extend(["", "## Recommendations", ""])
        lines.extend(f"- **{f.category}**: {f.message}" for f in warnings)
    return "\n".join(lines) + "\n"


def render_validation(report: ValidationReport, output: str = "console", color: bool = False, verbose: bool = False) -> str:
    fmt = resolve_output_format(output)
    if fmt == "json":
        return report.to_json()
    if fmt == "markdown":
        return render_validation_markdown(report)
    return render_validation_console(report, color=color, verbose=verbose)


# =============================================================================
# Audit Reports
# =============================================================================

STEP_TITLES = {
    "validation": "Validation",
    "linting": "Linting",
    "formatting": "Formatting",
    "tests": "Tests",
    "coverage": "Coverage",
}


def _step_title(step: AuditStep) -> str:
    return STEP_TITLES.get(step.name, step.name)


def _step_icon(step: AuditStep) -> str:
    # Coverage below threshold is a warning, not a broken step
    if step.name == "coverage" and step.status == "failed":
        return STATUS_ICONS["warn"]
    return STATUS_ICONS[step.status]


def audit_issues(report: AuditReport) -> list[str]:
    """One line per step that ran and did not pass."""
    issues: list[str] = []
    for step in report.steps.values():
        if step.status in ("failed", "error"):
            issues.append(f"{_step_title(step)}: {step.summary or step.note}")
    return issues


def render_audit_console(report: AuditReport, color: bool = False) -> str:
    lines = [RULE, colorize(f"Audit Report: {report.plugin_name}", "BOLD", color), RULE, ""]

    for step in [*report.steps.values(), *report.fixes]:
        level = {"passed": "PASS", "failed": "FAIL", "error": "FAIL", "skipped": "INFO"}[step.status]
        mark = SEVERITY_MARKS[level]
        text = f"  {mark} {_step_title(step):<12} {step.summary or step.status}"
        if step.note and step.status != "passed":
            text += f" ({step.note})"
        lines.append(colorize(text, level, color))

    if report.overall_health in ("POOR", "NEEDS IMPROVEMENT"):
        issues = audit_issues(report)
        if issues:
            lines.extend(["", colorize("Issues found:", "WARN", color)])
            lines.extend(f"  • {issue}" for issue in issues)
        if not report.fixes:
            lines.extend(["", "Run with --fix to automatically fix some issues"])

    lines.extend(
        [
            "",
            RULE,
            colorize(f"Overall Health: {report.overall_health}", TIER_COLORS.get(report.overall_health, "INFO"), color),
        ]
    )
    return "\n".join(lines)


def render_audit_markdown(report: AuditReport) -> str:
    lines = [
        f"# Audit Report: {report.plugin_name}",
        "",
        f"**Overall Health**: {report.overall_health}",
        "",
        "## Results",
        "",
        "| Check | Status | Details |",
        "|-------|--------|---------|",
    ]
    for step in [*report.steps.values(), *report.fixes]:
        details = step.summary if step.status != "skipped" else step.note
        lines.append(f"| {_md_cell(_step_title(step))} | {_step_icon(step)} | {_md_cell(details or step.status)} |")
    return "\n".join(lines) + "\n"


def render_audit(report: AuditReport, output: str = "console", color: bool = False) -> str:
    fmt = resolve_output_format(output)
    if fmt == "json":
        return report.to_json()
    if fmt == "markdown":
        return render_audit_markdown(report)
    return render_audit_console(report, color=color)
