"""
Test conftest — isolate credential environment variables so Settings()
behaves as if no LLM is configured unless a test explicitly provides one.
"""
import pytest

_CREDENTIAL_ENV_VARS = [
    "OPENAI_API_KEY",
    "AI_OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "LLM_BASE_URL",
    "AGENT_LLM_MODEL",
    "OPENAI_MODEL",
    "WORKSPACE_AGENT_CONFIG",
]


@pytest.fixture(autouse=True)
def _clear_credentials_from_env(monkeypatch):
    """Remove credential env vars for every test and disable .env loading
    so a developer's local .env never leaks real keys into tests."""
    for var in _CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import workspace_agent.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()
