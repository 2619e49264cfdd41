#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Common Module

Shared validation infrastructure for all Metalsmith plugin validators.
This module contains:
- Type definitions (Severity, Finding, CheckResult, CheckRequest, ValidationReport)
- The error taxonomy (RequestError, ConfigError, ExecutionError)
- Check catalog constants (check names, default checks, output formats)
- Utility functions (manifest/source readers, color formatting)

All individual validators should import from this module to ensure consistency.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Literal

from mpv_scoring import compute_overall_score

if TYPE_CHECKING:
    from gitignore_filter import GitignoreFilter
    from mpv_rule_config import RuleConfig

# =============================================================================
# Type Definitions
# =============================================================================

# Finding severity levels (uppercase for consistency)
# - FAIL: the category did not pass (any FAIL seals the category as failed)
# - WARN: warnings and "consider adding ..." recommendations, never blocks
# - INFO: informational only, neutral for scoring
# - PASS: check passed
Severity = Literal["PASS", "WARN", "FAIL", "INFO"]

SEVERITIES: tuple[Severity, ...] = ("FAIL", "WARN", "INFO", "PASS")

OutputFormat = Literal["console", "json", "markdown"]

# =============================================================================
# Check Catalog Constants
# =============================================================================

# Canonical check order; reports always list categories in this order
CHECK_NAMES: tuple[str, ...] = (
    "structure",
    "tests",
    "docs",
    "package-json",
    "eslint",
    "coverage",
    "jsdoc",
    "performance",
    "security",
    "integration",
    "metalsmith-patterns",
)

# Checks run when the caller does not name any
DEFAULT_CHECKS: tuple[str, ...] = (
    "structure",
    "tests",
    "docs",
    "package-json",
    "jsdoc",
    "performance",
    "security",
    "metalsmith-patterns",
)

OUTPUT_FORMATS: tuple[str, ...] = ("console", "json", "markdown")

# "text" is accepted as an alias of "console"
OUTPUT_FORMAT_ALIASES = {"text": "console", "md": "markdown"}

# Directories never scanned inside a plugin
SKIP_DIRS = {
    ".git",
    "node_modules",
    "coverage",
    ".nyc_output",
    "dist",
    "build",
    ".cache",
}

# =============================================================================
# Error Taxonomy
# =============================================================================


class RequestError(ValueError):
    """Malformed request: unknown check name, missing path, unknown output format.

    The only error type that crosses the engine boundary.
    """


class ConfigError(RequestError):
    """A project-local rule override file exists but cannot be parsed."""


class ExecutionError(RuntimeError):
    """An external command could not be launched at all."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Could not run '{command}': {reason}")
        self.command = command
        self.reason = reason


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Finding:
    """Atomic result of one rule evaluation.

    Attributes:
        category: Check name the finding belongs to
        severity: PASS, WARN, FAIL or INFO
        message: Human-readable description of the result
        detail: Optional extra context (file, command output excerpt, hint)
    """

    category: str
    severity: Severity
    message: str
    detail: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        result = {"category": self.category, "severity": self.severity, "message": self.message}
        if self.detail is not None:
            result["detail"] = self.detail
        return result


@dataclass
class CheckResult:
    """Per-category aggregate of findings.

    Created once per requested check, filled by the category's analyzer and
    sealed when the analysis completes. Findings are append-only.
    """

    category: str
    findings: list[Finding] = field(default_factory=list)
    skipped: bool = False
    _sealed: bool = field(default=False, repr=False, compare=False)

    def add(self, severity: Severity, message: str, detail: str | None = None) -> None:
        """Append a finding."""
        if self._sealed:
            raise RuntimeError(f"CheckResult '{self.category}' is sealed")
        self.findings.append(Finding(self.category, severity, message, detail))

    def ok(self, message: str, detail: str | None = None) -> None:
        """Add a passed check."""
        self.add("PASS", message, detail)

    def warn(self, message: str, detail: str | None = None) -> None:
        """Add a warning or recommendation. Never fails the category."""
        self.add("WARN", message, detail)

    def fail(self, message: str, detail: str | None = None) -> None:
        """Add a failure."""
        self.add("FAIL", message, detail)

    def info(self, message: str, detail: str | None = None) -> None:
        """Add an info message."""
        self.add("INFO", message, detail)

    def seal(self) -> CheckResult:
        self._sealed = True
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def passed(self) -> bool:
        """True when no FAIL finding exists."""
        return not any(f.severity == "FAIL" for f in self.findings)

    @property
    def score(self) -> int | None:
        """Share of PASS among PASS/WARN/FAIL findings (0-100), None when nothing was judged."""
        judged = [f for f in self.findings if f.severity != "INFO"]
        if not judged:
            return None
        return 100 * sum(1 for f in judged if f.severity == "PASS") // len(judged)

    def count_by_severity(self) -> dict[str, int]:
        counts = {s: 0 for s in SEVERITIES}
        for f in self.findings:
            counts[f.severity] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category,
            "passed": self.passed,
            "skipped": self.skipped,
            "score": self.score,
            "counts": self.count_by_severity(),
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class CheckRequest:
    """One validation request. Immutable per invocation.

    Build it with ``validate_plugin.build_request`` to get name/format checks.
    """

    target_path: Path
    checks: tuple[str, ...] = DEFAULT_CHECKS
    functional: bool = False
    output: str = "console"


@dataclass(frozen=True)
class AnalysisContext:
    """Everything an analyzer may read. Shared read-only across categories.

    Attributes:
        plugin_path: Resolved plugin root
        config: Merged RuleConfig for this run
        files: Gitignore-aware file lookup rooted at plugin_path
        functional: Whether analyzers may execute the plugin's scripts
    """

    plugin_path: Path
    config: RuleConfig
    files: GitignoreFilter
    functional: bool = False

    def entry_source(self) -> tuple[str, list[str]]:
        """Entry point source text, see read_entry_source."""
        main: str | None = None
        try:
            candidate = load_manifest(self.plugin_path).get("main")
            if isinstance(candidate, str):
                main = candidate
        except (OSError, ValueError):
            pass
        return read_entry_source(self.plugin_path, self.config.entry_points, main)


@dataclass
class ValidationReport:
    """Complete validation report for one run.

    Owned by a single validation run and never shared. Contains no
    wall-clock dependent fields so repeated runs serialize identically.
    """

    plugin_path: str
    checks: dict[str, CheckResult] = field(default_factory=dict)

    @property
    def ran(self) -> list[CheckResult]:
        """Categories that actually ran (disabled categories are skipped)."""
        return [r for r in self.checks.values() if not r.skipped]

    @property
    def total_checks(self) -> int:
        return len(self.ran)

    @property
    def passed_checks(self) -> int:
        return sum(1 for r in self.ran if r.passed)

    @property
    def overall_score(self) -> int:
        return compute_overall_score(self.passed_checks, self.total_checks)

    @property
    def passed(self) -> bool:
        return self.passed_checks == self.total_checks

    def findings(self, severity: Severity | None = None) -> list[Finding]:
        """All findings across categories, optionally filtered by severity."""
        return [f for r in self.checks.values() for f in r.findings if severity is None or f.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pluginPath": self.plugin_path,
            "overallScore": self.overall_score,
            "totalChecks": self.total_checks,
            "passedChecks": self.passed_checks,
            "checks": {name: result.to_dict() for name, result in self.checks.items()},
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert report to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# =============================================================================
# Plugin File Helpers
# =============================================================================


def read_text(path: Path) -> str:
    """Read a UTF-8 text file. Raises OSError / UnicodeDecodeError."""
    return path.read_text(encoding="utf-8")


def load_manifest(plugin_path: Path) -> dict[str, Any]:
    """Load and parse package.json.

    Raises:
        FileNotFoundError: package.json is absent
        ValueError: invalid JSON or a non-object top level
    """
    manifest_path = plugin_path / "package.json"
    data = json.loads(read_text(manifest_path))
    if not isinstance(data, dict):
        raise ValueError("package.json must contain a JSON object")
    return data


def manifest_scripts(manifest: dict[str, Any]) -> dict[str, str]:
    """Return the manifest's scripts table, ignoring malformed entries."""
    scripts = manifest.get("scripts")
    if not isinstance(scripts, dict):
        return {}
    return {k: v for k, v in scripts.items() if isinstance(v, str) and v.strip()}


def read_entry_source(
    plugin_path: Path, entry_points: Iterable[str], manifest_main: str | None = None
) -> tuple[str, list[str]]:
    """Concatenate the source text of every existing entry point.

    Args:
        plugin_path: Plugin root
        entry_points: Candidate relative paths, read in order
        manifest_main: The manifest's ``main`` field, read last when it names
            another existing file

    Returns:
        (source text, list of relative paths that were read)

    Raises:
        FileNotFoundError: none of the candidates exists
    """
    candidates = list(entry_points)
    if manifest_main:
        main = manifest_main[2:] if manifest_main.startswith("./") else manifest_main
        if main not in candidates:
            candidates.append(main)

    parts: list[str] = []
    used: list[str] = []
    for rel in candidates:
        path = plugin_path / rel
        if path.is_file():
            parts.append(read_text(path))
            used.append(rel)

    if not used:
        raise FileNotFoundError(f"No entry point source found (looked for {', '.join(candidates)})")
    return "\n".join(parts), used


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "FAIL": "\033[91m",  # Red
    "WARN": "\033[93m",  # Yellow
    "INFO": "\033[90m",  # Gray
    "PASS": "\033[92m",  # Green
    "HEADER": "\033[94m",  # Blue
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
}

SEVERITY_MARKS = {"PASS": "✓", "WARN": "⚠", "FAIL": "✗", "INFO": "ℹ"}


def colorize(text: str, level: str, enabled: bool = True) -> str:
    """Apply color to text based on level."""
    if not enabled:
        return text
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"


def stdout_supports_color() -> bool:
    return sys.stdout.isatty()
