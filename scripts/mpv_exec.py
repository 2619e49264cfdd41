#!/usr/bin/env python3
"""
mpv_exec.py

Bounded command runner for functional validation and audits:
- Detects the plugin's package manager from its lockfile (pnpm, yarn, bun, npm)
- Builds `<pm> run <script>` commands for manifest scripts
- Runs commands with fully captured stdout/stderr and a timeout

Contract:
- Never raises on a non-zero exit or on output written to stderr
- Raises ExecutionError only when the command cannot be launched at all
  (binary not found, cwd missing, permission denied)
- A timeout kills the whole process group (npm and the node it spawned) and
  is returned as a failed result (timed_out=True), not raised
- A program with a path separator is resolved against the child's cwd
  (node_modules/.bin/mocha), a bare name against PATH
- stdin is closed and stdout/stderr are piped, so a parent protocol stream
  on our own stdio is never touched by the child

Examples:
  ./mpv_exec.py ../my-plugin test
  ./mpv_exec.py ../my-plugin lint --timeout 30
"""

from __future__ import annotations

import argparse
import json
import os
import shlex
import shutil
import signal
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from mpv_validation_common import ExecutionError, load_manifest, manifest_scripts

# Default lifetime of a single command, in seconds
DEFAULT_TIMEOUT = 120.0

# Seconds to collect remaining output after a timed-out command was killed
KILL_GRACE = 5.0

# Lockfile -> package manager, checked in order
LOCKFILES: tuple[tuple[str, str], ...] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
)

# ----------------------------
# Data model
# ----------------------------


@dataclass(frozen=True)
class CommandResult:
    command: str
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr joined; runners print summaries to either."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def error_excerpt(self, limit: int = 300) -> str:
        if self.timed_out:
            return "command timed out"
        text = (self.stderr or self.stdout).strip()
        if not text:
            return f"exited with code {self.exit_code}"
        return text if len(text) <= limit else text[-limit:]

    def to_dict(self) -> dict[str, object]:
        return {
            "command": self.command,
            "exitCode": self.exit_code,
            "timedOut": self.timed_out,
        }


# ----------------------------
# Detection helpers
# ----------------------------


def which(cmd: str) -> str | None:
    return shutil.which(cmd)


def detect_package_manager(plugin_path: Path) -> str:
    for lockfile, manager in LOCKFILES:
        if (plugin_path / lockfile).exists():
            return manager
    return "npm"


def has_script(plugin_path: Path, script: str) -> bool:
    """True when package.json defines a non-empty script of that name.

    An unreadable or malformed manifest counts as "no such script".
    """
    try:
        return script in manifest_scripts(load_manifest(plugin_path))
    except (OSError, ValueError):
        return False


def script_command(plugin_path: Path, script: str) -> list[str]:
    """argv for running a manifest script with the plugin's package manager."""
    manager = detect_package_manager(plugin_path)
    if manager == "npm" and script == "test":
        return ["npm", "test"]
    return [manager, "run", script]


# ----------------------------
# Runner
# ----------------------------


def resolve_executable(program: str, cwd: Path) -> str | None:
    """Absolute path of the program to launch, None when it does not exist.

    A program containing a path separator is taken relative to cwd (as the
    child sees it); a bare name is looked up on PATH so Windows .cmd shims
    (npm.cmd) are found.
    """
    separators = {"/", os.sep} | ({os.altsep} if os.altsep else set())
    if any(sep in program for sep in separators):
        candidate = Path(program)
        if not candidate.is_absolute():
            candidate = Path(cwd) / candidate
        return str(candidate) if candidate.is_file() else None
    return which(program)


def _kill_tree(proc: subprocess.Popen[str]) -> None:
    """Kill the child and, on POSIX, every process in its session (npm -> node)."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            pass
    proc.kill()


def run_command(
    command: str | list[str],
    cwd: Path,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> CommandResult:
    """Run a command to completion with captured output.

    Args:
        command: A command line (split with shlex, no shell) or an argv list
        cwd: Working directory for the child
        timeout: Seconds before the child and its descendants are killed;
            None waits forever

    Returns:
        CommandResult; inspect .success / .exit_code, nothing is raised for
        a non-zero exit or a timeout

    Raises:
        ExecutionError: the command could not be launched
    """
    argv = shlex.split(command) if isinstance(command, str) else list(command)
    display = command if isinstance(command, str) else shlex.join(argv)
    if not argv:
        raise ExecutionError(display, "empty command")

    if not Path(cwd).is_dir():
        raise ExecutionError(display, f"working directory does not exist: {cwd}")

    resolved = resolve_executable(argv[0], Path(cwd))
    if resolved is None:
        raise ExecutionError(display, f"executable not found: {argv[0]}")
    argv[0] = resolved

    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            # own process group, so a timeout can reach grandchildren too
            start_new_session=os.name == "posix",
        )
    except OSError as e:
        raise ExecutionError(display, str(e)) from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_tree(proc)
        try:
            stdout, stderr = proc.communicate(timeout=KILL_GRACE)
        except subprocess.TimeoutExpired:
            # a descendant outside the session still holds the pipes
            stdout, stderr = "", ""
        return CommandResult(display, -1, stdout or "", stderr or "", timed_out=True)

    return CommandResult(display, proc.returncode, stdout or "", stderr or "")


def run_script(plugin_path: Path, script: str, timeout: float | None = DEFAULT_TIMEOUT) -> CommandResult:
    """Run a manifest script through the detected package manager."""
    return run_command(script_command(plugin_path, script), plugin_path, timeout)


# ----------------------------
# CLI
# ----------------------------


def main() -> int:
    ap = argparse.ArgumentParser(description="Run a plugin's package script with a bounded lifetime.")
    ap.add_argument("plugin_path", type=Path)
    ap.add_argument("script", help="package.json script name, e.g. test")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    ap.add_argument("--json", action="store_true")
    args = ap.parse_args()

    if not has_script(args.plugin_path, args.script):
        print(f"No '{args.script}' script in {args.plugin_path / 'package.json'}", file=sys.stderr)
        return 2

    try:
        result = run_script(args.plugin_path, args.script, args.timeout)
    except ExecutionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        out = result.to_dict()
        out["stdout"] = result.stdout
        out["stderr"] = result.stderr
        print(json.dumps(out, indent=2))
    else:
        sys.stdout.write(result.stdout)
        sys.stderr.write(result.stderr)
        if result.timed_out:
            print(f"\nTimed out after {args.timeout}s", file=sys.stderr)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
