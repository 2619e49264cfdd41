#!/usr/bin/env python3
"""Tests for mpv_exec.py - bounded command execution.

Child processes are Python interpreters (sys.executable) so the suite does
not depend on Node.js being installed.
"""

from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path

import pytest

from mpv_exec import detect_package_manager, has_script, resolve_executable, run_command, script_command
from mpv_validation_common import ExecutionError


def py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def process_alive(pid: int) -> bool:
    """True while pid exists and is not a zombie waiting to be reaped."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat = Path(f"/proc/{pid}/stat")
    if stat.is_file():
        return stat.read_text().rsplit(")", 1)[-1].split()[0] != "Z"
    return True


class TestRunCommand:
    def test_success(self, tmp_path: Path) -> None:
        result = run_command(py("print('hello')"), tmp_path, timeout=30)
        assert result.success
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"

    def test_nonzero_exit_is_returned_not_raised(self, tmp_path: Path) -> None:
        result = run_command(py("import sys; sys.exit(3)"), tmp_path, timeout=30)
        assert not result.success
        assert result.exit_code == 3

    def test_stderr_is_captured_separately(self, tmp_path: Path) -> None:
        result = run_command(py("import sys; print('out'); sys.stderr.write('boom')"), tmp_path, timeout=30)
        assert result.stdout.strip() == "out"
        assert result.stderr == "boom"
        assert "out" in result.output and "boom" in result.output

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        result = run_command(py("import os; print(os.getcwd())"), tmp_path, timeout=30)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    def test_timeout_is_a_failed_result(self, tmp_path: Path) -> None:
        result = run_command(py("import time; time.sleep(10)"), tmp_path, timeout=0.5)
        assert result.timed_out
        assert not result.success
        assert result.error_excerpt() == "command timed out"

    def test_missing_binary_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ExecutionError, match="executable not found"):
            run_command(["definitely-not-a-real-binary-mpv"], tmp_path, timeout=30)

    def test_missing_cwd_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ExecutionError, match="working directory"):
            run_command(py("pass"), tmp_path / "missing", timeout=30)

    @pytest.mark.skipif(os.name != "posix", reason="shebang scripts need a POSIX shell")
    def test_relative_executable_resolves_against_cwd(self, tmp_path: Path) -> None:
        """node_modules/.bin style paths are found relative to the child's cwd."""
        script = tmp_path / "bin" / "hello"
        script.parent.mkdir()
        script.write_text(f"#!{sys.executable}\nprint('hi')\n")
        script.chmod(0o755)

        result = run_command("bin/hello", tmp_path, timeout=30)
        assert result.success
        assert result.stdout.strip() == "hi"
        assert result.command == "bin/hello"

    def test_relative_executable_missing_under_cwd_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ExecutionError, match="executable not found: node_modules/.bin/mocha"):
            run_command("node_modules/.bin/mocha", tmp_path, timeout=30)

    @pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX only")
    def test_timeout_kills_grandchildren(self, tmp_path: Path) -> None:
        """A child that spawned its own long-running child leaves no survivor."""
        pid_file = tmp_path / "grandchild.pid"
        code = (
            "import subprocess, sys, time\n"
            "p = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
            f"open({str(pid_file)!r}, 'w').write(str(p.pid))\n"
            "time.sleep(30)\n"
        )
        result = run_command(py(code), tmp_path, timeout=2)
        assert result.timed_out

        grandchild = int(pid_file.read_text())
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if not process_alive(grandchild):
                break
            time.sleep(0.1)
        else:
            pytest.fail("grandchild process survived the timeout")

    def test_resolve_executable(self, tmp_path: Path) -> None:
        assert resolve_executable(sys.executable, tmp_path) == sys.executable
        assert resolve_executable("bin/missing", tmp_path) is None
        (tmp_path / "tool").write_text("")
        assert resolve_executable("./tool", tmp_path) == str(tmp_path / "tool")

    def test_empty_command_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ExecutionError):
            run_command("", tmp_path)

    def test_error_excerpt_prefers_stderr(self, tmp_path: Path) -> None:
        result = run_command(py("import sys; print('noise'); sys.exit('fatal: broken')"), tmp_path, timeout=30)
        assert "fatal: broken" in result.error_excerpt()


class TestScripts:
    @pytest.mark.parametrize(
        ("lockfile", "manager"),
        [("pnpm-lock.yaml", "pnpm"), ("yarn.lock", "yarn"), ("bun.lockb", "bun"), ("package-lock.json", "npm")],
    )
    def test_detect_package_manager(self, tmp_path: Path, lockfile: str, manager: str) -> None:
        (tmp_path / lockfile).write_text("")
        assert detect_package_manager(tmp_path) == manager

    def test_npm_is_the_default(self, tmp_path: Path) -> None:
        assert detect_package_manager(tmp_path) == "npm"

    def test_script_command(self, tmp_path: Path) -> None:
        assert script_command(tmp_path, "test") == ["npm", "test"]
        assert script_command(tmp_path, "lint") == ["npm", "run", "lint"]
        (tmp_path / "yarn.lock").write_text("")
        assert script_command(tmp_path, "test") == ["yarn", "run", "test"]

    def test_has_script(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"test": "mocha", "lint": ""}}))
        assert has_script(tmp_path, "test")
        assert not has_script(tmp_path, "lint")
        assert not has_script(tmp_path, "coverage")

    def test_has_script_with_broken_manifest(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{oops")
        assert not has_script(tmp_path, "test")
