"""
tests/unit/test_config.py — Settings Tests

Covers:
  - defaults and YAML loading
  - field validators on the agent / llm / logging sections
  - validate_all() cross-field checks with a numbered ConfigError
  - credential aliases from the environment
  - WORKSPACE_AGENT_CONFIG and explicit config_path resolution
  - the get_settings() singleton
"""

from __future__ import annotations

import textwrap

import pytest
from pydantic import ValidationError

from workspace_agent.config.settings import (
    AgentConfig,
    ConfigError,
    LLMConfig,
    LoggingConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)


def _write_yaml(path, body: str):
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Defaults / sections
# ─────────────────────────────────────────────────────────────────────────────


class TestDefaultsSections:
    def test_defaults(self):
        settings = Settings()
        assert settings.agent.max_steps == 20
        assert settings.agent.step_timeout_seconds == 60.0
        assert settings.agent.compaction_threshold == 40
        assert settings.agent.keep_recent == 10
        assert settings.agent.event_buffer == 32
        assert settings.llm.model == "gpt-4o"
        assert settings.persistence.sqlite_path == ""
        assert settings.has_llm_credentials is False
        settings.validate_all()

    def test_agent_validators(self):
        assert AgentConfig(max_steps=0).max_steps == 0
        with pytest.raises(ValidationError):
            AgentConfig(max_steps=-1)
        with pytest.raises(ValidationError):
            AgentConfig(step_timeout_seconds=0)
        with pytest.raises(ValidationError):
            AgentConfig(keep_recent=0)
        with pytest.raises(ValidationError):
            AgentConfig(event_buffer=0)

    def test_llm_validators(self):
        with pytest.raises(ValidationError):
            LLMConfig(temperature=3.0)
        with pytest.raises(ValidationError):
            LLMConfig(max_tokens=0)

    def test_log_level_is_normalised(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


# ─────────────────────────────────────────────────────────────────────────────
# validate_all
# ─────────────────────────────────────────────────────────────────────────────


class TestValidateAll:
    def test_validate_all_lists_every_problem(self, monkeypatch):
        monkeypatch.setenv("OPENAI_BASE_URL", "localhost:8000")
        settings = Settings(
            agent={"compaction_threshold": 10, "keep_recent": 10},
            llm={"retry": {"max_attempts": 0, "base_delay": 1, "max_delay": 5}},
        )
        with pytest.raises(ConfigError) as exc_info:
            settings.validate_all()
        message = str(exc_info.value)
        assert "3 configuration problem(s)" in message
        assert "1. agent.keep_recent (10)" in message
        assert "llm.retry.max_attempts" in message
        assert "must start with http:// or https://" in message


# ─────────────────────────────────────────────────────────────────────────────
# Environment credentials
# ─────────────────────────────────────────────────────────────────────────────


class TestEnvironmentCredentials:
    def test_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("AI_OPENAI_API_KEY", "sk-alias")
        monkeypatch.setenv("LLM_BASE_URL", "http://localhost:11434/v1")
        monkeypatch.setenv("OPENAI_MODEL", "qwen2.5")
        settings = Settings()
        assert settings.openai_api_key == "sk-alias"
        assert settings.llm_base_url == "http://localhost:11434/v1"
        assert settings.effective_llm_model == "qwen2.5"
        assert settings.has_llm_credentials

    def test_blank_credentials_are_none(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "   ")
        assert Settings().openai_api_key is None


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


class TestLoading:
    def test_load_settings_from_yaml(self, tmp_path):
        path = _write_yaml(tmp_path / "config.yaml", """
            agent:
              max_steps: 7
              step_timeout_seconds: 5
            llm:
              model: gpt-4o-mini
            persistence:
              sqlite_path: ./data/sessions.db
            unknown_section:
              ignored: true
        """)
        settings = load_settings(path)
        assert settings.agent.max_steps == 7
        assert settings.agent.step_timeout_seconds == 5.0
        assert settings.agent.keep_recent == 10
        assert settings.effective_llm_model == "gpt-4o-mini"
        assert settings.persistence.sqlite_path == "./data/sessions.db"
        assert get_settings() is settings

    def test_missing_yaml_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.agent.max_steps == 20

    def test_env_var_selects_config(self, tmp_path, monkeypatch):
        path = _write_yaml(tmp_path / "env.yaml", "agent:\n  max_steps: 3\n")
        monkeypatch.setenv("WORKSPACE_AGENT_CONFIG", str(path))
        assert load_settings().agent.max_steps == 3

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        env_path = _write_yaml(tmp_path / "env.yaml", "agent:\n  max_steps: 3\n")
        explicit = _write_yaml(tmp_path / "explicit.yaml", "agent:\n  max_steps: 9\n")
        monkeypatch.setenv("WORKSPACE_AGENT_CONFIG", str(env_path))
        assert load_settings(explicit).agent.max_steps == 9

    def test_get_settings_is_cached(self, tmp_path, monkeypatch):
        path = _write_yaml(tmp_path / "c.yaml", "agent:\n  max_steps: 4\n")
        monkeypatch.setenv("WORKSPACE_AGENT_CONFIG", str(path))
        first = get_settings()
        assert first.agent.max_steps == 4
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
