#!/usr/bin/env python3
"""Gitignore-aware file lookup for plugin validation.

Provides a GitignoreFilter class that loads .gitignore patterns once
and exposes glob helpers that skip ignored paths and the build/dependency
directories in SKIP_DIRS (node_modules, coverage, ...).

Usage:
    gi = GitignoreFilter(plugin_root)
    test_files = gi.glob(["test/**/*.test.js", "test/**/*.spec.js"])
    # -> sorted, de-duplicated POSIX paths relative to plugin_root
"""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterable, Iterator

from mpv_validation_common import SKIP_DIRS


def parse_gitignore(gitignore_path: Path) -> list[str]:
    """Parse a .gitignore file and return list of patterns.

    Comments and empty lines are stripped; an unreadable file yields no patterns.
    """
    patterns: list[str] = []
    try:
        with open(gitignore_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                patterns.append(line)
    except (OSError, UnicodeDecodeError):
        pass
    return patterns


def is_path_gitignored(rel_path: str, patterns: list[str]) -> bool:
    """Check if a relative POSIX path matches any gitignore pattern.

    Simplified matcher: negations are ignored and ``**`` is treated like ``*``.
    """
    path_parts = rel_path.split("/")

    for pattern in patterns:
        if pattern.startswith("!"):
            continue

        pattern = pattern.rstrip("/")
        anchored = pattern.startswith("/")
        if anchored:
            pattern = pattern[1:]
        if "**" in pattern:
            pattern = pattern.replace("**/", "*/").replace("/**", "/*")

        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if anchored:
            # "/build" also hides everything below build/
            if any(fnmatch.fnmatch("/".join(path_parts[: i + 1]), pattern) for i in range(len(path_parts))):
                return True
            continue
        if any(fnmatch.fnmatch(part, pattern) for part in path_parts):
            return True

    return False


class GitignoreFilter:
    """Gitignore-aware file filter: loads patterns once, reuses for all lookups."""

    def __init__(self, plugin_root: Path) -> None:
        self.root = plugin_root.resolve()
        gitignore_path = self.root / ".gitignore"
        self.patterns = parse_gitignore(gitignore_path) if gitignore_path.is_file() else []

    def relative(self, path: Path) -> str | None:
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def is_ignored(self, path: Path) -> bool:
        """True for paths below a SKIP_DIRS directory or matched by .gitignore."""
        rel = self.relative(path)
        if rel is None:
            return True
        if any(part in SKIP_DIRS for part in rel.split("/")[:-1]):
            return True
        if not self.patterns:
            return False
        return is_path_gitignored(rel, self.patterns)

    def iter_glob(self, pattern: str) -> Iterator[Path]:
        """Gitignore-aware glob relative to the plugin root (files only)."""
        for path in self.root.glob(pattern):
            if path.is_file() and not self.is_ignored(path):
                yield path

    def glob(self, patterns: Iterable[str]) -> list[str]:
        """Union of several glob patterns as sorted relative POSIX paths."""
        found: set[str] = set()
        for pattern in patterns:
            for path in self.iter_glob(pattern):
                rel = self.relative(path)
                if rel is not None:
                    found.add(rel)
        return sorted(found)

    def exists(self, rel_path: str) -> bool:
        return (self.root / rel_path).exists()
