"""
observability/logger.py — Workspace Agent Structured Logger

structlog routed through stdlib logging. The rotating file under log_dir
always receives JSON lines; the optional stderr console gets JSON or a
coloured dev rendering. Session identity travels as contextvars, so every
line written inside a Run carries session_id / user_id / workspace_id.

Usage:
    from workspace_agent.observability.logger import get_logger, setup_logging_from_settings

    setup_logging_from_settings(get_settings())
    log = get_logger(__name__)
    log.info("engine.run.start", phase="planning")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from workspace_agent.config.settings import Settings

LOG_FILE_NAME = "workspace_agent.log"

# Applied to structlog events and to records from plain stdlib loggers alike
_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Install the handlers and configure structlog. Safe to call again: the
    previous root handlers are replaced.

    json_format only affects the console; the file is JSON either way.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_dir / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(_formatter(
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        ))
        handlers.append(console)

    for handler in handlers:
        handler.setLevel(numeric_level)
    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings: "Settings") -> None:
    cfg = settings.logging
    setup_logging(
        level=cfg.level,
        log_dir=cfg.log_dir,
        json_format=cfg.json_format,
        console_output=cfg.console_output,
        max_bytes=cfg.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.backup_count,
    )


def get_logger(name: str = "workspace_agent", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Module logger, optionally pre-bound (e.g. get_logger(__name__, component="adapter"))."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def bind_session(session_id: str, user_id: str, workspace_id: str = "") -> None:
    """
    Tag every later log line in this context with the session identity.

    Each Run is its own asyncio.Task and copies contextvars when created,
    so bindings never leak between concurrent Runs.
    """
    values: dict[str, Any] = {"session_id": session_id, "user_id": user_id}
    if workspace_id:
        values["workspace_id"] = workspace_id
    structlog.contextvars.bind_contextvars(**values)


def clear_session() -> None:
    structlog.contextvars.clear_contextvars()
