"""
Tests for Configuration Loading
"""

import pytest
from pydantic import ValidationError

from team_health.utils.config import Config, _deep_merge, _resolve_env_vars, load_config


class TestResolveEnvVars:

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("TEAM_HEALTH_TEST_VAR", raising=False)
        assert _resolve_env_vars("${TEAM_HEALTH_TEST_VAR:-fallback}") == "fallback"

    def test_value_from_environment(self, monkeypatch):
        monkeypatch.setenv("TEAM_HEALTH_TEST_VAR", "ja")
        assert _resolve_env_vars({"locale": "${TEAM_HEALTH_TEST_VAR:-en}"}) == {"locale": "ja"}

    def test_unset_without_default_left_as_is(self, monkeypatch):
        monkeypatch.delenv("TEAM_HEALTH_TEST_VAR", raising=False)
        assert _resolve_env_vars(["${TEAM_HEALTH_TEST_VAR}"]) == ["${TEAM_HEALTH_TEST_VAR}"]


class TestDeepMerge:

    def test_nested_override(self):
        base = {"cache": {"enabled": True, "ttl_days": 30}, "output": {"directory": "./outputs"}}
        override = {"cache": {"ttl_days": 7}}
        assert _deep_merge(base, override) == {
            "cache": {"enabled": True, "ttl_days": 7},
            "output": {"directory": "./outputs"},
        }


class TestLoadConfig:

    def test_defaults_when_files_missing(self, tmp_path):
        config = load_config(tmp_path / "config.yaml", tmp_path / "config.local.yaml")
        assert config == Config()
        assert config.scoring.base_score == 50
        assert config.insights.locale == "en"

    def test_local_overrides_main(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEAM_HEALTH_TEST_DIR", str(tmp_path / "store"))
        main = tmp_path / "config.yaml"
        main.write_text(
            "scoring:\n"
            "  base_score: 40\n"
            "  recency_steps:\n"
            "    - [14, 15]\n"
            "cache:\n"
            "  path: ${TEAM_HEALTH_TEST_DIR:-.cache}\n"
            "  ttl_days: 30\n"
        )
        local = tmp_path / "config.local.yaml"
        local.write_text("cache:\n  ttl_days: 3\ninsights:\n  locale: ja\n")

        config = load_config(main, local)

        assert config.scoring.base_score == 40
        assert config.scoring.recency_steps == [(14, 15)]
        assert config.cache.path == str(tmp_path / "store")
        assert config.cache.ttl_days == 3
        assert config.insights.locale == "ja"

    def test_invalid_value_raises(self, tmp_path):
        main = tmp_path / "config.yaml"
        main.write_text("fetch:\n  timeout_seconds: soon\n")
        with pytest.raises(ValidationError):
            load_config(main, tmp_path / "config.local.yaml")
