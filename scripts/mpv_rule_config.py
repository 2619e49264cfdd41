#!/usr/bin/env python3
"""
Metalsmith Plugin Validation - Rule Configuration

Built-in validation rules plus an optional project-local override file,
deep-merged key-wise over the defaults. The merged result is frozen so it
stays read-only for the rest of the run.

Override files (first match wins, searched in the plugin root):
    .metalsmith-plugin-validation.json
    .validation.json
    .validationrc.json
    .validation.yaml
    .validation.yml

Example override:
    {
      "rules": {
        "structure": {"requiredDirs": ["src", "test", "lib"]},
        "tests": {"coverageThreshold": 90},
        "packageJson": {"namePrefix": ""}
      }
    }
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from mpv_validation_common import ConfigError

# =============================================================================
# Defaults
# =============================================================================

OVERRIDE_FILENAMES: tuple[str, ...] = (
    ".metalsmith-plugin-validation.json",
    ".validation.json",
    ".validationrc.json",
    ".validation.yaml",
    ".validation.yml",
)

DEFAULT_RULES: dict[str, Any] = {
    "rules": {
        "structure": {
            "enabled": True,
            "requiredDirs": ["src", "test"],
            "requiredFiles": ["src/index.js", "README.md", "package.json"],
            "recommendedDirs": ["src/utils", "src/processors", "test/fixtures"],
            "recommendedFiles": [".release-it.json"],
            "complexity": {
                "maxNestingDepth": 4,
                "highNestingDepth": 6,
                "maxFunctions": 8,
                "highFunctions": 15,
            },
        },
        "tests": {
            "enabled": True,
            "coverageThreshold": 80,
            "requireFixtures": False,
            "requireTestScript": True,
            "timeout": 120,
        },
        "documentation": {
            "enabled": True,
            "requiredSections": [],
            "recommendedSections": ["Installation", "Usage", "Options", "Examples"],
        },
        "packageJson": {
            "enabled": True,
            "namePrefix": "metalsmith-",
            "requiredFields": ["name", "version"],
            "recommendedFields": ["description", "license", "repository", "keywords", "engines", "files"],
            "requiredScripts": [],
            "recommendedScripts": [
                "test",
                "lint",
                "format",
                "test:coverage",
                "release:patch",
                "release:minor",
                "release:major",
            ],
        },
        "eslint": {"enabled": True},
        "coverage": {"enabled": True},
        "jsdoc": {"enabled": True},
        "performance": {"enabled": True},
        "security": {"enabled": True},
        "integration": {"enabled": True},
        "metalsmith-patterns": {"enabled": True},
    },
    "source": {
        "entryPoints": ["src/index.js", "src/index.mjs", "src/index.cjs", "src/index.ts"],
    },
    "recommendations": {
        "showCommands": True,
        "templateSuggestions": True,
    },
}

# Check name -> section under "rules"
RULE_SECTIONS = {
    "structure": "structure",
    "tests": "tests",
    "docs": "documentation",
    "package-json": "packageJson",
    "eslint": "eslint",
    "coverage": "coverage",
    "jsdoc": "jsdoc",
    "performance": "performance",
    "security": "security",
    "integration": "integration",
    "metalsmith-patterns": "metalsmith-patterns",
}


# =============================================================================
# Merge and Freeze
# =============================================================================


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Key-wise union of two mappings, override wins.

    Nested mappings merge recursively; any other value (lists included)
    is replaced wholesale. Keys of ``base`` never disappear. Neither input
    is modified.
    """
    result: dict[str, Any] = {k: copy.deepcopy(v) for k, v in base.items()}
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


# =============================================================================
# RuleConfig
# =============================================================================


@dataclass(frozen=True)
class RuleConfig:
    """Merged, read-only validation rules for one run.

    Attributes:
        data: Frozen merged configuration
        source: Override file that was merged in, None when defaults only
    """

    data: Mapping[str, Any]
    source: str | None = None

    @classmethod
    def from_mapping(cls, override: Mapping[str, Any] | None = None, source: str | None = None) -> RuleConfig:
        merged = deep_merge(DEFAULT_RULES, override or {})
        return cls(freeze(merged), source)

    def section(self, check_name: str) -> Mapping[str, Any]:
        """Rules for a check name (e.g. "docs" -> rules.documentation)."""
        rules = self.data.get("rules")
        section = rules.get(RULE_SECTIONS.get(check_name, check_name)) if isinstance(rules, Mapping) else None
        return section if isinstance(section, Mapping) else MappingProxyType({})

    def rule(self, check_name: str, key: str, default: Any = None) -> Any:
        return self.section(check_name).get(key, default)

    def is_enabled(self, check_name: str) -> bool:
        return self.rule(check_name, "enabled", True) is not False

    def _top(self, key: str) -> Mapping[str, Any]:
        value = self.data.get(key)
        return value if isinstance(value, Mapping) else MappingProxyType({})

    @property
    def entry_points(self) -> tuple[str, ...]:
        points = self._top("source").get("entryPoints", ())
        return tuple(p for p in points if isinstance(p, str)) if isinstance(points, tuple) else ()

    @property
    def template_suggestions(self) -> bool:
        return self._top("recommendations").get("templateSuggestions", True) is not False

    def to_dict(self) -> dict[str, Any]:
        """Plain (mutable) copy for JSON serialization."""
        return _thaw(self.data)


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "a boolean"
    if isinstance(value, (int, float)):
        return "a non-negative number"
    if isinstance(value, str):
        return "a string"
    if isinstance(value, Mapping):
        return "a mapping"
    if isinstance(value, list):
        return "a list of strings"
    return type(value).__name__


def check_override_types(
    override: Mapping[str, Any], defaults: Mapping[str, Any] = DEFAULT_RULES, prefix: str = ""
) -> None:
    """Check override values against the types of the matching defaults.

    Keys unknown to the defaults are left alone. A known key must keep the
    default's kind: mapping, list of strings, boolean, number or string.

    Raises:
        ConfigError: a known key holds a value of the wrong type
    """
    for key, value in override.items():
        if key not in defaults:
            continue
        expected = defaults[key]
        where = f"{prefix}{key}"
        if isinstance(expected, Mapping):
            if not isinstance(value, Mapping):
                raise ConfigError(f"Rule '{where}' must be {_type_name(expected)}, got {value!r}")
            check_override_types(value, expected, f"{where}.")
            continue
        if isinstance(expected, list):
            ok = isinstance(value, list) and all(isinstance(item, str) for item in value)
        elif isinstance(expected, bool):
            ok = isinstance(value, bool)
        elif isinstance(expected, (int, float)):
            ok = isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0
        else:
            ok = isinstance(value, str)
        if not ok:
            raise ConfigError(f"Rule '{where}' must be {_type_name(expected)}, got {value!r}")


def _parse_override(path: Path) -> Mapping[str, Any]:
    """Parse one override file. Raises ConfigError on malformed content."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read rule override file {path.name}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid rule override file {path.name}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Rule override file {path.name} must contain a mapping at the top level")
    try:
        check_override_types(data)
    except ConfigError as e:
        raise ConfigError(f"Invalid rule override file {path.name}: {e}") from e
    return data


def find_override_file(plugin_path: Path) -> Path | None:
    for name in OVERRIDE_FILENAMES:
        candidate = plugin_path / name
        if candidate.is_file():
            return candidate
    return None


def load_rule_config(plugin_path: Path) -> RuleConfig:
    """Load defaults merged with the first override file found in plugin_path.

    Raises:
        ConfigError: the override file exists but is malformed or holds a
            wrongly typed value for a known rule
    """
    override_path = find_override_file(plugin_path)
    if override_path is None:
        return RuleConfig.from_mapping()
    return RuleConfig.from_mapping(_parse_override(override_path), source=override_path.name)
