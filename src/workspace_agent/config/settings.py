"""
config/settings.py — Workspace Agent Runtime Settings

Merges config.yaml (defaults/structure) with environment variables and .env
(secrets). Pydantic-powered — all fields are validated and typed.

  - AgentConfig bounds the ReAct loop (max_steps, step timeout, compaction,
    event buffer)
  - LLMConfig carries request defaults; credentials come from the environment
  - validate_all() performs cross-field validation and raises ConfigError
    with a human-readable message listing every problem found
  - load_settings() respects WORKSPACE_AGENT_CONFIG as a fallback when no
    explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading as _threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    max_steps: int = 20
    step_timeout_seconds: float = 60.0
    compaction_threshold: int = 40
    keep_recent: int = 10
    event_buffer: int = 32

    @field_validator("max_steps")
    @classmethod
    def _non_negative_steps(cls, v: int) -> int:
        if v < 0:
            raise ValueError("agent.max_steps must be >= 0")
        return v

    @field_validator("step_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("agent.step_timeout_seconds must be > 0")
        return v

    @field_validator("compaction_threshold", "keep_recent")
    @classmethod
    def _positive_compaction(cls, v: int) -> int:
        if v < 1:
            raise ValueError("compaction parameters must be >= 1")
        return v

    @field_validator("event_buffer")
    @classmethod
    def _positive_buffer(cls, v: int) -> int:
        if v < 1:
            raise ValueError("agent.event_buffer must be >= 1")
        return v


class LLMRetryConfig(BaseModel):
    """Exponential backoff config for transient LLM errors."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


class LLMConfig(BaseModel):
    model: str = "gpt-4o"
    temperature: float = 0.2
    max_tokens: int = 8192
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)

    @field_validator("temperature")
    @classmethod
    def _valid_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("llm.temperature must be between 0.0 and 2.0")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _positive_tokens(cls, v: int) -> int:
        if v < 1:
            raise ValueError("llm.max_tokens must be >= 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


class PersistenceConfig(BaseModel):
    # Empty path = in-memory sessions only
    sqlite_path: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Workspace agent runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # -- Secrets / endpoints from the environment ----------------------------
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "AI_OPENAI_API_KEY", "openai_api_key"),
    )
    llm_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_BASE_URL", "LLM_BASE_URL", "llm_base_url"),
    )
    llm_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AGENT_LLM_MODEL", "OPENAI_MODEL", "llm_model"),
    )

    # -- Structured config (from config.yaml) --------------------------------
    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)

    @field_validator("openai_api_key", "llm_base_url", "llm_model", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v in (None, "", "null"):
            return None
        return str(v).strip() or None

    @field_validator("agent", mode="before")
    @classmethod
    def _coerce_agent(cls, v: Any) -> Any:
        return AgentConfig(**v) if isinstance(v, dict) else v

    @field_validator("llm", mode="before")
    @classmethod
    def _coerce_llm(cls, v: Any) -> Any:
        return LLMConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    @field_validator("persistence", mode="before")
    @classmethod
    def _coerce_persistence(cls, v: Any) -> Any:
        return PersistenceConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def effective_llm_model(self) -> str:
        """AGENT_LLM_MODEL / OPENAI_MODEL override the YAML llm.model."""
        return self.llm_model or self.llm.model

    @property
    def has_llm_credentials(self) -> bool:
        return bool(self.openai_api_key or self.llm_base_url)

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems they can't see.
        """
        errors: list[str] = []

        # ── Compactor window must leave something to summarise ───────────────
        if self.agent.keep_recent >= self.agent.compaction_threshold:
            errors.append(
                f"agent.keep_recent ({self.agent.keep_recent}) must be smaller "
                f"than agent.compaction_threshold ({self.agent.compaction_threshold})."
            )

        # ── Retry bounds ─────────────────────────────────────────────────────
        retry = self.llm.retry
        if retry.max_attempts < 1:
            errors.append("llm.retry.max_attempts must be >= 1.")
        if retry.base_delay < 0 or retry.max_delay < retry.base_delay:
            errors.append(
                "llm.retry delays must satisfy 0 <= base_delay <= max_delay."
            )

        # ── Base URL shape ───────────────────────────────────────────────────
        if self.llm_base_url and not self.llm_base_url.startswith(("http://", "https://")):
            errors.append(
                f"OPENAI_BASE_URL '{self.llm_base_url}' must start with http:// or https://."
            )

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nWorkspace agent startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your environment "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()

_KNOWN_SECTIONS = {"agent", "llm", "logging", "persistence"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument
      2. WORKSPACE_AGENT_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("WORKSPACE_AGENT_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    resolved_path = _resolve_config_path(config_path)
    yaml_data = _load_yaml(resolved_path)

    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading it from the default config
    path on first use. Guarded by _singleton_lock against double init.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            resolved_path = _resolve_config_path(None)
            yaml_data = _load_yaml(resolved_path)
            init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
            _singleton = Settings(**init_kwargs)
    return _singleton


def reset_settings() -> None:
    """Drop the cached singleton (tests only)."""
    global _singleton
    with _singleton_lock:
        _singleton = None
