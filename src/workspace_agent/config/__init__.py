"""
config/__init__.py — Runtime settings
"""

from workspace_agent.config.settings import (
    AgentConfig,
    ConfigError,
    LLMConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)

__all__ = [
    "AgentConfig",
    "ConfigError",
    "LLMConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
]
