#!/usr/bin/env python3
"""Tests for mpv_rule_config.py - defaults, deep merge and override files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mpv_rule_config import (
    DEFAULT_RULES,
    RuleConfig,
    check_override_types,
    deep_merge,
    find_override_file,
    load_rule_config,
)
from mpv_validation_common import ConfigError


class TestDeepMerge:
    def test_override_wins_and_base_keys_survive(self) -> None:
        merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 3}, {"a": {"x": 10}})
        assert merged == {"a": {"x": 10, "y": 2}, "b": 3}

    def test_lists_are_replaced_not_concatenated(self) -> None:
        merged = deep_merge({"dirs": ["src", "test"]}, {"dirs": ["lib"]})
        assert merged == {"dirs": ["lib"]}

    def test_inputs_are_not_modified(self) -> None:
        base = {"a": {"x": 1}}
        deep_merge(base, {"a": {"x": 2}})
        assert base == {"a": {"x": 1}}


class TestRuleConfig:
    def test_defaults(self) -> None:
        config = RuleConfig.from_mapping()
        assert config.rule("tests", "coverageThreshold") == 80
        assert config.rule("docs", "recommendedSections") == ("Installation", "Usage", "Options", "Examples")
        assert config.rule("package-json", "requiredFields") == ("name", "version")
        assert config.entry_points[0] == "src/index.js"
        assert config.template_suggestions

    def test_every_default_key_survives_an_override(self) -> None:
        config = RuleConfig.from_mapping({"rules": {"tests": {"coverageThreshold": 95}}})
        assert set(config.section("tests")) == set(DEFAULT_RULES["rules"]["tests"])
        assert config.rule("tests", "coverageThreshold") == 95

    def test_config_is_read_only(self) -> None:
        config = RuleConfig.from_mapping()
        with pytest.raises(TypeError):
            config.section("tests")["coverageThreshold"] = 10  # type: ignore[index]

    def test_is_enabled(self) -> None:
        config = RuleConfig.from_mapping({"rules": {"eslint": {"enabled": False}}})
        assert not config.is_enabled("eslint")
        assert config.is_enabled("structure")

    def test_non_mapping_section_falls_back_to_empty(self) -> None:
        config = RuleConfig.from_mapping({"rules": {"tests": "off"}})
        assert config.rule("tests", "coverageThreshold", 80) == 80


class TestOverrideFiles:
    def test_no_override_uses_defaults(self, tmp_path: Path) -> None:
        config = load_rule_config(tmp_path)
        assert config.source is None
        assert config.rule("tests", "coverageThreshold") == 80

    def test_json_override(self, tmp_path: Path) -> None:
        (tmp_path / ".metalsmith-plugin-validation.json").write_text('{"rules": {"tests": {"coverageThreshold": 90}}}')
        config = load_rule_config(tmp_path)
        assert config.source == ".metalsmith-plugin-validation.json"
        assert config.rule("tests", "coverageThreshold") == 90

    def test_yaml_override(self, tmp_path: Path) -> None:
        (tmp_path / ".validation.yml").write_text(
            "rules:\n  structure:\n    requiredDirs: [src, lib]\n  packageJson:\n    namePrefix: ''\n"
        )
        config = load_rule_config(tmp_path)
        assert config.rule("structure", "requiredDirs") == ("src", "lib")
        assert config.rule("package-json", "namePrefix") == ""

    def test_first_override_file_wins(self, tmp_path: Path) -> None:
        (tmp_path / ".validation.json").write_text("{}")
        (tmp_path / ".validation.yaml").write_text("rules: {}\n")
        assert find_override_file(tmp_path) == tmp_path / ".validation.json"

    def test_empty_yaml_is_defaults(self, tmp_path: Path) -> None:
        (tmp_path / ".validation.yaml").write_text("")
        assert load_rule_config(tmp_path).rule("tests", "timeout") == 120

    @pytest.mark.parametrize(
        ("name", "content"),
        [
            (".validation.json", "{broken"),
            (".validation.json", "[1, 2, 3]"),
            (".validation.yaml", "rules: [unclosed"),
            (".validation.yml", "- just\n- a list\n"),
        ],
    )
    def test_malformed_override_raises(self, tmp_path: Path, name: str, content: str) -> None:
        (tmp_path / name).write_text(content)
        with pytest.raises(ConfigError):
            load_rule_config(tmp_path)


class TestOverrideTypes:
    """Known rules keep the type of their default; unknown keys pass through."""

    @pytest.mark.parametrize(
        "override",
        [
            {"rules": {"structure": {"requiredDirs": True}}},
            {"rules": {"structure": {"complexity": {"maxNestingDepth": None}}}},
            {"rules": {"documentation": {"requiredSections": [1]}}},
            {"rules": {"tests": {"coverageThreshold": "90"}}},
            {"rules": {"tests": {"timeout": -5}}},
            {"rules": {"tests": {"requireFixtures": "yes"}}},
            {"rules": {"packageJson": {"namePrefix": None}}},
            {"rules": {"tests": "off"}},
            {"rules": []},
            {"source": {"entryPoints": "src/index.js"}},
        ],
    )
    def test_wrong_type_raises_config_error(self, tmp_path: Path, override: dict[str, object]) -> None:
        (tmp_path / ".validation.json").write_text(json.dumps(override))
        with pytest.raises(ConfigError, match=r"\.validation\.json"):
            load_rule_config(tmp_path)

    def test_wrong_type_names_the_rule(self) -> None:
        with pytest.raises(ConfigError, match=r"rules\.structure\.complexity\.maxNestingDepth"):
            check_override_types({"rules": {"structure": {"complexity": {"maxNestingDepth": None}}}})

    def test_valid_types_and_unknown_keys_pass(self, tmp_path: Path) -> None:
        override = {
            "rules": {
                "structure": {"requiredDirs": [], "complexity": {"maxNestingDepth": 5.5}},
                "tests": {"coverageThreshold": 0, "requireFixtures": True},
                "custom": {"anything": [1, 2]},
            },
            "extra": None,
        }
        (tmp_path / ".validation.json").write_text(json.dumps(override))
        config = load_rule_config(tmp_path)
        assert config.rule("structure", "requiredDirs") == ()
        assert config.rule("tests", "coverageThreshold") == 0
