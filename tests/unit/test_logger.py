"""
tests/unit/test_logger.py — Structured Logging Setup Tests
"""

from __future__ import annotations

import json
import logging

import structlog

from workspace_agent.config.settings import LoggingConfig, Settings
from workspace_agent.observability.logger import (
    bind_session,
    clear_session,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)


def _reset_logging():
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)


# ─────────────────────────────────────────────────────────────────────────────
# Logging setup
# ─────────────────────────────────────────────────────────────────────────────


class TestLoggingSetup:
    def test_file_log_is_json_with_session_context(self, tmp_path):
        try:
            setup_logging(level="DEBUG", log_dir=tmp_path, json_format=True, console_output=False)
            bind_session("s1", "u1", "ws1")
            get_logger("workspace_agent.test").info("engine.run.start", phase="planning")
            clear_session()
            get_logger("workspace_agent.test").info("engine.idle")
            for handler in logging.getLogger().handlers:
                handler.flush()

            lines = (tmp_path / "workspace_agent.log").read_text(encoding="utf-8").splitlines()
            first, second = (json.loads(line) for line in lines[-2:])
            assert first["event"] == "engine.run.start"
            assert first["session_id"] == "s1"
            assert first["workspace_id"] == "ws1"
            assert first["phase"] == "planning"
            assert first["level"] == "info"
            assert "session_id" not in second
        finally:
            _reset_logging()

    def test_file_stays_json_with_console_rendering(self, tmp_path):
        try:
            setup_logging(level="INFO", log_dir=tmp_path, json_format=False, console_output=True)
            get_logger("workspace_agent.test").info("engine.run.completed", steps=2)
            for handler in logging.getLogger().handlers:
                handler.flush()

            line = (tmp_path / "workspace_agent.log").read_text(encoding="utf-8").splitlines()[-1]
            assert json.loads(line)["steps"] == 2
        finally:
            _reset_logging()

    def test_setup_from_settings_respects_level(self, tmp_path):
        try:
            settings = Settings(logging=LoggingConfig(level="WARNING", log_dir=str(tmp_path), console_output=False))
            setup_logging_from_settings(settings)
            get_logger("workspace_agent.test").info("dropped")
            get_logger("workspace_agent.test").warning("kept")
            for handler in logging.getLogger().handlers:
                handler.flush()
            events = [json.loads(line)["event"] for line in (tmp_path / "workspace_agent.log").read_text().splitlines()]
            assert events == ["kept"]
        finally:
            _reset_logging()

    def test_bind_session_omits_empty_workspace(self):
        try:
            bind_session("s1", "u1")
            assert structlog.contextvars.get_contextvars() == {"session_id": "s1", "user_id": "u1"}
        finally:
            clear_session()
