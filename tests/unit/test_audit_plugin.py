#!/usr/bin/env python3
"""Tests for audit_plugin.py - step orchestration and health.

Script execution is replaced with a fake run_command so the suite needs no
Node.js toolchain; each test scripts the outputs it wants per manifest script.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest
from conftest import REFERENCE_MANIFEST, reference_files

import audit_plugin
from audit_plugin import AuditReport, AuditStep, audit
from mpv_exec import CommandResult
from mpv_report import render_audit
from mpv_validation_common import ConfigError, ExecutionError, RequestError

ALL_SCRIPTS = {
    "test": "mocha",
    "lint": "eslint .",
    "format:check": "prettier --check .",
    "test:coverage": "c8 mocha",
    "lint:fix": "eslint --fix .",
    "format": "prettier --write .",
}


def manifest(**scripts: str) -> dict[str, object]:
    data = dict(REFERENCE_MANIFEST)
    data["scripts"] = scripts
    return data


class FakeRunner:
    """Stand-in for run_command keyed by the script name (last argv item)."""

    def __init__(self, outputs: dict[str, tuple[int, str]], raise_for: tuple[str, ...] = ()) -> None:
        self.outputs = outputs
        self.raise_for = raise_for
        self.calls: list[str] = []

    def __call__(self, command: list[str], cwd: Path, timeout: float | None = None) -> CommandResult:
        script = command[-1]
        self.calls.append(script)
        if script in self.raise_for:
            raise ExecutionError(" ".join(command), "executable not found: npm")
        exit_code, stdout = self.outputs.get(script, (0, ""))
        return CommandResult(" ".join(command), exit_code, stdout, "")


@pytest.fixture
def fake_runner(monkeypatch: pytest.MonkeyPatch) -> Callable[..., FakeRunner]:
    def _install(outputs: dict[str, tuple[int, str]], raise_for: tuple[str, ...] = ()) -> FakeRunner:
        runner = FakeRunner(outputs, raise_for)
        monkeypatch.setattr(audit_plugin, "run_command", runner)
        return runner

    return _install


HEALTHY_OUTPUTS = {
    "test": (0, "\n  12 passing (40ms)\n"),
    "test:coverage": (0, "All files |   95.5 |   90 |   100 |   96.2 |\n"),
}


class TestAuditSteps:
    def test_healthy_plugin(self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(**ALL_SCRIPTS)}))
        runner = fake_runner(HEALTHY_OUTPUTS)
        report = audit(root)

        assert list(report.steps) == ["validation", "linting", "formatting", "tests", "coverage"]
        assert all(step.passed for step in report.steps.values())
        assert report.steps["tests"].summary == "12/12 passing"
        assert report.test_rate == 100.0
        assert report.coverage_percentage == 96.2
        assert report.overall_health in ("EXCELLENT", "GOOD")
        assert report.healthy
        assert "lint:fix" not in runner.calls

    def test_missing_test_script_is_skipped(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest()}))
        runner = fake_runner({})
        report = audit(root)

        tests = report.steps["tests"]
        assert tests.status == "skipped"
        assert not tests.passed
        assert "skipped" in tests.note
        assert report.steps["linting"].note == 'skipped: no "lint" script in package.json'
        assert report.steps["coverage"].status == "skipped"
        assert runner.calls == []

    def test_failing_tests_lower_the_rate(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(test="mocha")}))
        fake_runner({"test": (1, "  6 passing\n  4 failing\n")})
        report = audit(root)

        assert report.steps["tests"].status == "failed"
        assert report.steps["tests"].summary == "6/10 passing, 4 failing"
        assert report.test_rate == 60.0
        assert report.steps["tests"].details["stats"] == {"passed": 6, "failed": 4, "total": 10}

    def test_unparsable_failing_tests_count_as_zero(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(test="mocha")}))
        fake_runner({"test": (1, "Error: Cannot find module 'metalsmith'")})
        report = audit(root)
        assert report.test_rate == 0.0
        assert "Cannot find module" in report.steps["tests"].note

    def test_unparsable_passing_tests_are_neutral(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(test="mocha")}))
        fake_runner({"test": (0, "ok")})
        report = audit(root)
        assert report.steps["tests"].passed
        assert report.test_rate is None

    def test_launch_failure_is_an_error_step(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(lint="eslint .", test="mocha")}))
        fake_runner(HEALTHY_OUTPUTS, raise_for=("lint",))
        report = audit(root)

        assert report.steps["linting"].status == "error"
        assert "executable not found" in report.steps["linting"].note
        assert report.steps["tests"].passed

    def test_coverage_below_threshold_fails_the_step(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(coverage="c8 mocha")}))
        fake_runner({"coverage": (0, "Lines        : 55% ( 11/20 )\n")})
        report = audit(root)

        coverage = report.steps["coverage"]
        assert coverage.status == "failed"
        assert coverage.note == "below threshold (80%)"
        assert report.coverage_percentage == 55.0

    def test_coverage_falls_back_to_summary_file(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        summary = {"total": {"lines": {"pct": 91.3}}}
        root = make_plugin(reference_files(**{"coverage/coverage-summary.json": summary}))
        fake_runner(HEALTHY_OUTPUTS)
        report = audit(root)

        coverage = report.steps["coverage"]
        assert coverage.passed
        assert coverage.details["source"] == "coverage/coverage-summary.json"
        assert report.coverage_percentage == 91.3

    def test_unreadable_coverage_summary_does_not_abort(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def unreadable(plugin_path: Path) -> float | None:
            raise PermissionError(13, "Permission denied", "coverage/coverage-summary.json")

        monkeypatch.setattr(audit_plugin, "read_coverage_summary", unreadable)
        root = make_plugin(reference_files())
        fake_runner(HEALTHY_OUTPUTS)
        report = audit(root)

        coverage = report.steps["coverage"]
        assert coverage.status == "skipped"
        assert "Permission denied" in coverage.note
        assert report.coverage_percentage is None
        assert report.steps["tests"].passed

    def test_unreadable_summary_after_silent_coverage_run_fails_the_step(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def unreadable(plugin_path: Path) -> float | None:
            raise PermissionError(13, "Permission denied", "coverage/coverage-summary.json")

        monkeypatch.setattr(audit_plugin, "read_coverage_summary", unreadable)
        root = make_plugin(reference_files(**{"package.json": manifest(coverage="c8 mocha")}))
        fake_runner({"coverage": (0, "done")})
        coverage = audit(root).steps["coverage"]

        assert coverage.status == "failed"
        assert coverage.note.startswith("unreadable coverage summary")

    def test_wrongly_typed_override_is_rejected_before_any_step(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        override = {"rules": {"structure": {"complexity": {"maxNestingDepth": None}}}}
        root = make_plugin(reference_files(**{".validation.json": override}))
        runner = fake_runner(HEALTHY_OUTPUTS)
        with pytest.raises(ConfigError, match="maxNestingDepth"):
            audit(root)
        assert runner.calls == []

    def test_fix_runs_fix_scripts(self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]) -> None:
        root = make_plugin(reference_files(**{"package.json": manifest(**ALL_SCRIPTS)}))
        runner = fake_runner(HEALTHY_OUTPUTS)
        report = audit(root, fix=True)

        assert [step.name for step in report.fixes] == ["lint:fix", "format"]
        assert all(step.summary == "Fixed" for step in report.fixes)
        assert runner.calls[-2:] == ["lint:fix", "format"]

    def test_progress_callback_sees_every_step(
        self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]
    ) -> None:
        root = make_plugin(reference_files())
        fake_runner(HEALTHY_OUTPUTS)
        seen: list[tuple[str, bool]] = []
        audit(root, on_step=lambda name, step: seen.append((name, step is not None)))
        assert seen[:2] == [("validation", False), ("validation", True)]
        assert len(seen) == 10


class TestAuditRequests:
    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(RequestError):
            audit(tmp_path / "missing")

    def test_unknown_output_format(self, reference_plugin: Path) -> None:
        with pytest.raises(RequestError):
            audit(reference_plugin, output="xml")

    def test_plugin_name_from_manifest(self, make_plugin: Callable[..., Path], fake_runner: Callable[..., FakeRunner]) -> None:
        fake_runner({})
        assert audit(make_plugin(reference_files())).plugin_name == "metalsmith-example"
        broken = make_plugin({"package.json": "{oops"}, name="broken-plugin")
        assert audit(broken).plugin_name == "broken-plugin"


class TestAuditOutput:
    @pytest.fixture
    def report(self) -> AuditReport:
        return AuditReport(
            plugin_name="metalsmith-example",
            plugin_path="/plugins/metalsmith-example",
            steps={
                "validation": AuditStep("validation", "passed", summary="87%", details={"score": 87}),
                "linting": AuditStep("linting", "failed", summary="Issues found", note="2 errors"),
                "tests": AuditStep("tests", "skipped", note='skipped: no "test" script in package.json'),
                "coverage": AuditStep("coverage", "failed", summary="55%", details={"percentage": 55.0}),
            },
            validation_score=87,
            coverage_percentage=55.0,
        )

    def test_console_ends_with_health(self, report: AuditReport) -> None:
        text = render_audit(report, "console")
        assert text.splitlines()[-1] == f"Overall Health: {report.overall_health}"
        assert "\x1b[" not in text

    def test_markdown_table(self, report: AuditReport) -> None:
        text = render_audit(report, "markdown")
        assert text.startswith("# Audit Report: metalsmith-example")
        assert f"**Overall Health**: {report.overall_health}" in text
        assert "| Check | Status | Details |" in text
        assert "| Coverage | ⚠️ | 55% |" in text
        assert "| Tests | ⏭️ |" in text

    def test_json_is_idempotent(self, report: AuditReport) -> None:
        data = json.loads(render_audit(report, "json"))
        assert set(data) == {"pluginName", "pluginPath", "results", "overallHealth"}
        assert data["pluginName"] == "metalsmith-example"
        assert data["results"]["validation"] == {"passed": True, "status": "passed", "score": 87, "summary": "87%"}
        assert data["results"]["tests"]["passed"] is False
        assert data["overallHealth"] == report.overall_health
        assert json.dumps(data, indent=2, ensure_ascii=False) == report.to_json()

    def test_health_combines_available_signals(self, report: AuditReport) -> None:
        # (87*40 + 55*20) / 60 = 76.33
        assert report.overall_health == "GOOD"
        assert report.healthy
