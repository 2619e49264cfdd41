#!/usr/bin/env python3
"""
Metalsmith Plugin Batch Audit

Audits every direct subdirectory of a folder that looks like a Metalsmith
plugin and summarizes the results per health tier.

A directory is a plugin when its package.json has a "metalsmith" or
"metalsmith-plugin" keyword, or its name starts with "metalsmith-" or
"@metalsmith/". A plugin whose audit raises (e.g. a malformed rule override
file) is counted as failed and the batch continues.

Usage:
    uv run python scripts/batch_audit.py ~/projects/metalsmith-plugins
    uv run python scripts/batch_audit.py . --output markdown

Exit codes:
    0 - Every plugin is EXCELLENT, GOOD or FAIR
    1 - At least one plugin needs attention or failed to audit
    2 - The search path is not a directory
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from audit_plugin import HEALTHY_TIERS, AuditReport, audit
from mpv_report import resolve_output_format
from mpv_scoring import TIER_ORDER
from mpv_validation_common import RequestError, colorize, load_manifest, stdout_supports_color

PLUGIN_KEYWORDS = ("metalsmith", "metalsmith-plugin")
PLUGIN_NAME_PREFIXES = ("metalsmith-", "@metalsmith/")

FAILED = "FAILED"

HEALTH_ICONS = {
    "EXCELLENT": "✅",
    "GOOD": "✅",
    "FAIR": "⚠️",
    "NEEDS IMPROVEMENT": "⚠️",
    "POOR": "❌",
    FAILED: "💥",
}

# =============================================================================
# Discovery
# =============================================================================


def is_plugin_directory(path: Path) -> bool:
    """True when path holds a package.json that identifies a Metalsmith plugin."""
    try:
        manifest = load_manifest(path)
    except (OSError, ValueError):
        return False
    keywords = manifest.get("keywords")
    if isinstance(keywords, list) and any(k in PLUGIN_KEYWORDS for k in keywords):
        return True
    name = manifest.get("name")
    return isinstance(name, str) and name.startswith(PLUGIN_NAME_PREFIXES)


def find_plugin_directories(search_path: Path) -> list[Path]:
    """Direct subdirectories of search_path that are plugins, sorted by name."""
    return sorted(p for p in search_path.iterdir() if p.is_dir() and is_plugin_directory(p))


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class BatchEntry:
    plugin_name: str
    path: str
    report: AuditReport | None = None
    error: str | None = None

    @property
    def health(self) -> str:
        return self.report.overall_health if self.report is not None else FAILED

    def to_dict(self) -> dict[str, Any]:
        if self.report is None:
            return {"pluginName": self.plugin_name, "path": self.path, "overallHealth": FAILED, "error": self.error}
        steps = self.report.steps
        return {
            "pluginName": self.plugin_name,
            "path": self.path,
            "overallHealth": self.health,
            "validationScore": self.report.validation_score,
            "testsPassed": steps["tests"].passed,
            "coverage": self.report.coverage_percentage,
            "linting": steps["linting"].status,
            "formatting": steps["formatting"].status,
        }


@dataclass
class BatchReport:
    search_path: str
    entries: list[BatchEntry] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Plugins per health tier (plus FAILED), in tier order."""
        counts = {tier: 0 for tier in (*TIER_ORDER, FAILED)}
        for entry in self.entries:
            counts[entry.health] += 1
        return counts

    @property
    def healthy(self) -> int:
        return sum(1 for e in self.entries if e.health in HEALTHY_TIERS)

    @property
    def needs_attention(self) -> list[BatchEntry]:
        return [e for e in self.entries if e.health not in HEALTHY_TIERS]

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchPath": self.search_path,
            "summary": {"total": len(self.entries), **self.counts()},
            "results": [e.to_dict() for e in self.entries],
        }


# =============================================================================
# Batch Audit
# =============================================================================


def batch_audit(
    path: str | Path,
    fix: bool = False,
    on_plugin: Callable[[BatchEntry], None] | None = None,
) -> BatchReport:
    """Audit every plugin directory under path.

    Raises:
        RequestError: path is not a directory
    """
    search_path = Path(path).expanduser()
    if not search_path.is_dir():
        raise RequestError(f"Search path is not a directory: {search_path}")
    search_path = search_path.resolve()

    report = BatchReport(str(search_path))
    for plugin_dir in find_plugin_directories(search_path):
        try:
            result = audit(plugin_dir, fix=fix)
            entry = BatchEntry(result.plugin_name, str(plugin_dir), report=result)
        except (OSError, ValueError) as e:
            entry = BatchEntry(plugin_dir.name, str(plugin_dir), error=str(e))
        report.entries.append(entry)
        if on_plugin is not None:
            on_plugin(entry)
    return report


# =============================================================================
# Rendering
# =============================================================================


def _issues(entry: BatchEntry) -> str:
    if entry.report is None:
        return f"Failed - {entry.error}"
    steps = entry.report.steps
    issues = []
    if not steps["validation"].passed:
        issues.append(f"low validation ({entry.report.validation_score}%)")
    if steps["tests"].status != "passed":
        issues.append("failing tests" if steps["tests"].status == "failed" else "no test run")
    if steps["coverage"].status == "failed" and entry.report.coverage_percentage is not None:
        issues.append(f"low coverage ({entry.report.coverage_percentage:g}%)")
    if steps["linting"].status == "failed":
        issues.append("linting issues")
    if steps["formatting"].status == "failed":
        issues.append("formatting issues")
    return ", ".join(issues) or entry.health


def render_batch_console(report: BatchReport, color: bool = False) -> str:
    lines = [colorize(f"Batch Audit: {report.search_path}", "BOLD", color), ""]
    if not report.entries:
        lines.append("No plugin directories found")
        return "\n".join(lines)

    for entry in report.entries:
        level = "PASS" if entry.health in HEALTHY_TIERS else "FAIL"
        lines.append(colorize(f"  {HEALTH_ICONS[entry.health]} {entry.plugin_name}: {entry.health}", level, color))

    lines.extend(["", f"Total plugins audited: {len(report.entries)}"])
    for tier, count in report.counts().items():
        if count:
            lines.append(f"  {HEALTH_ICONS[tier]} {tier.title()}: {count}")

    attention = report.needs_attention
    if attention:
        lines.extend(["", colorize("Plugins needing attention:", "WARN", color)])
        lines.extend(f"  {HEALTH_ICONS[e.health]} {e.plugin_name}: {_issues(e)}" for e in attention)
    lines.extend(["", f"Summary: {report.healthy} plugins passed, {len(attention)} need attention"])
    return "\n".join(lines)


def render_batch_markdown(report: BatchReport) -> str:
    lines = [
        "# Batch Audit Report",
        "",
        f"**Total Plugins**: {len(report.entries)}",
        "",
        "## Summary",
        "",
        "| Status | Count |",
        "|--------|-------|",
    ]
    for tier, count in report.counts().items():
        if count:
            lines.append(f"| {HEALTH_ICONS[tier]} {tier.title()} | {count} |")

    lines.extend(
        [
            "",
            "## Plugin Details",
            "",
            "| Plugin | Health | Validation | Tests | Coverage |",
            "|--------|--------|------------|-------|----------|",
        ]
    )
    for entry in report.entries:
        if entry.report is None:
            lines.append(f"| {entry.plugin_name} | {HEALTH_ICONS[FAILED]} Failed | - | - | - |")
            continue
        coverage = entry.report.coverage_percentage
        tests = "✅" if entry.report.steps["tests"].passed else "❌"
        lines.append(
            f"| {entry.plugin_name} | {HEALTH_ICONS[entry.health]} {entry.health} | "
            f"{entry.report.validation_score}% | {tests} | {'N/A' if coverage is None else f'{coverage:g}%'} |"
        )
    return "\n".join(lines) + "\n"


def render_batch(report: BatchReport, output: str = "console", color: bool = False) -> str:
    fmt = resolve_output_format(output)
    if fmt == "json":
        return json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if fmt == "markdown":
        return render_batch_markdown(report)
    return render_batch_console(report, color=color)


# =============================================================================
# CLI
# =============================================================================


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Audit every Metalsmith plugin in a directory")
    parser.add_argument("path", nargs="?", default=".", help="Directory containing plugin folders")
    parser.add_argument("--fix", action="store_true", help="Run lint:fix and format scripts in each plugin")
    parser.add_argument("--output", "-o", default="console", help="console (text), json or markdown")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    args = parser.parse_args()

    def progress(entry: BatchEntry) -> None:
        print(f"  {HEALTH_ICONS[entry.health]} {entry.plugin_name}: {entry.health}", file=sys.stderr)

    try:
        fmt = resolve_output_format(args.output)
        report = batch_audit(args.path, fix=args.fix, on_plugin=progress)
    except RequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    color = not args.no_color and fmt == "console" and stdout_supports_color()
    print(render_batch(report, fmt, color=color))
    return 0 if not report.needs_attention else 1


if __name__ == "__main__":
    sys.exit(main())
