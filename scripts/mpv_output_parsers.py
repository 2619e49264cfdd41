#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Output Parsers

Pure functions that scrape numeric facts out of free-form command output.
Parsers are tolerant: text with no recognizable pattern yields zeros or None,
never an exception. Supporting a new test runner or coverage reporter means
adding a pattern here, nothing else changes.

Recognized formats:
    mocha         "12 passing", "12 passing (40ms)\n  2 failing"
    jest/vitest   "Tests:       1 failed, 11 passed, 12 total"
    node:test     "# pass 12" / "# fail 1"
    pytest-style  "11 passed, 1 failed in 0.12s"
    istanbul/c8   "All files |   85.71 |    75 |   66.67 |   85.71 |"
    summaries     "Lines        : 95% ( 19/20 )", "Lines: 95% (19/20)"
    validator     "Quality score: 85%"
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# =============================================================================
# Patterns
# =============================================================================

# ANSI escape sequences emitted by colored runners
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

_MOCHA_PASSING_RE = re.compile(r"(\d+)\s+passing\b", re.IGNORECASE)
_MOCHA_FAILING_RE = re.compile(r"(\d+)\s+failing\b", re.IGNORECASE)

_JEST_TESTS_LINE_RE = re.compile(r"^\s*Tests:\s*(.+)$", re.MULTILINE)
_JEST_COUNT_RE = re.compile(r"(\d+)\s+(passed|failed|skipped|todo|total)", re.IGNORECASE)

_TAP_PASS_RE = re.compile(r"^#\s*pass\s+(\d+)", re.MULTILINE | re.IGNORECASE)
_TAP_FAIL_RE = re.compile(r"^#\s*fail\s+(\d+)", re.MULTILINE | re.IGNORECASE)
_TAP_TESTS_RE = re.compile(r"^#\s*tests\s+(\d+)", re.MULTILINE | re.IGNORECASE)

_GENERIC_PASSED_RE = re.compile(r"(\d+)\s+(?:tests?\s+)?passed\b", re.IGNORECASE)
_GENERIC_FAILED_RE = re.compile(r"(\d+)\s+(?:tests?\s+)?failed\b", re.IGNORECASE)

_NUMBER = r"(\d+(?:\.\d+)?)"

# Istanbul text table: "All files | stmts | branch | funcs | lines | ..."
_ALL_FILES_RE = re.compile(r"^\s*All files\s*\|(.*)$", re.MULTILINE | re.IGNORECASE)
_CELL_NUMBER_RE = re.compile(r"^\s*" + _NUMBER + r"\s*%?\s*$")

# Summary-style lines, most specific first
_COVERAGE_SUMMARY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Lines\s*:\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
    re.compile(r"Lines\s*\|\s*" + _NUMBER + r"\s*\|", re.IGNORECASE),
    re.compile(_NUMBER + r"\s*%\s+lines", re.IGNORECASE),
    re.compile(r"Statements\s*:\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
    re.compile(r"Total\s+Coverage\s*:\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
    re.compile(r"Coverage\s*[:=]\s*" + _NUMBER + r"\s*%", re.IGNORECASE),
)

# Index of the "% Lines" column in the istanbul table
_LINES_COLUMN = 3

_QUALITY_SCORE_RE = re.compile(r"Quality score:\s*" + _NUMBER + r"\s*%", re.IGNORECASE)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class TestStats:
    """Pass/fail counts scraped from test output. All zeros means unknown."""

    __test__ = False  # not a pytest test class

    passed: int = 0
    failed: int = 0
    total: int = 0

    @property
    def known(self) -> bool:
        return self.total > 0

    def to_dict(self) -> dict[str, int]:
        return {"passed": self.passed, "failed": self.failed, "total": self.total}


# =============================================================================
# Parsers
# =============================================================================


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def _last_int(pattern: re.Pattern[str], text: str) -> int | None:
    matches = pattern.findall(text)
    if not matches:
        return None
    return int(matches[-1])


def _finish(passed: int, failed: int, total: int = 0) -> TestStats:
    total = max(total, passed + failed)
    return TestStats(passed, failed, total)


def parse_test_stats(text: str | None) -> TestStats:
    """Extract passed/failed/total test counts.

    Runner formats are tried from most to least specific; the last summary
    in the text wins (watch-mode and multi-suite runs print several).
    Returns TestStats(0, 0, 0) when nothing is recognized.
    """
    if not text:
        return TestStats()
    text = strip_ansi(text)

    # jest / vitest summary line
    jest_lines = _JEST_TESTS_LINE_RE.findall(text)
    if jest_lines:
        counts = {kind.lower(): int(n) for n, kind in _JEST_COUNT_RE.findall(jest_lines[-1])}
        if counts:
            return _finish(counts.get("passed", 0), counts.get("failed", 0), counts.get("total", 0))

    # mocha
    passing = _last_int(_MOCHA_PASSING_RE, text)
    failing = _last_int(_MOCHA_FAILING_RE, text)
    if passing is not None or failing is not None:
        return _finish(passing or 0, failing or 0)

    # node:test / TAP
    tap_pass = _last_int(_TAP_PASS_RE, text)
    tap_fail = _last_int(_TAP_FAIL_RE, text)
    if tap_pass is not None or tap_fail is not None:
        return _finish(tap_pass or 0, tap_fail or 0, _last_int(_TAP_TESTS_RE, text) or 0)

    # pytest-style "N passed, M failed"
    generic_pass = _last_int(_GENERIC_PASSED_RE, text)
    generic_fail = _last_int(_GENERIC_FAILED_RE, text)
    if generic_pass is not None or generic_fail is not None:
        return _finish(generic_pass or 0, generic_fail or 0)

    return TestStats()


def _all_files_percentage(text: str) -> float | None:
    rows = _ALL_FILES_RE.findall(text)
    if not rows:
        return None
    numbers: list[float] = []
    for cell in rows[-1].split("|"):
        m = _CELL_NUMBER_RE.match(cell)
        if m:
            numbers.append(float(m.group(1)))
        elif cell.strip():
            break
    if not numbers:
        return None
    if len(numbers) > _LINES_COLUMN:
        return numbers[_LINES_COLUMN]
    return numbers[0]


def parse_coverage_percentage(text: str | None) -> float | None:
    """Extract a line-coverage percentage, or None when none is recognized.

    The istanbul "All files" row is preferred: its "% Lines" column when the
    full table is present, otherwise its first numeric cell. Out-of-range
    values are treated as unrecognized.
    """
    if not text:
        return None
    text = strip_ansi(text)

    value = _all_files_percentage(text)
    if value is None:
        for pattern in _COVERAGE_SUMMARY_PATTERNS:
            m = pattern.search(text)
            if m:
                value = float(m.group(1))
                break

    if value is None or not 0.0 <= value <= 100.0:
        return None
    return value


def parse_quality_score(text: str | None) -> float | None:
    """Extract "Quality score: NN%" from a validation console report."""
    if not text:
        return None
    m = _QUALITY_SCORE_RE.search(strip_ansi(text))
    if not m:
        return None
    value = float(m.group(1))
    return value if 0.0 <= value <= 100.0 else None
