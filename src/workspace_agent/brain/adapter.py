"""
brain/adapter.py — LLM Adapter

One call per ReAct step: turns (messages, tool definitions) into a Thought,
i.e. assistant prose plus at most one tool action.

Credential resolution, first match wins:
  1. RunConfig.llm passed to this Run (api_key or base_url set)
  2. the engine's configured client / credentials
  3. heuristic fallback: a deterministic acknowledgement with no action

Network and decode errors from the client propagate to the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional

from workspace_agent.brain.llm_client import BaseLLMClient, call_with_retry
from workspace_agent.brain.openai_client import OpenAIClient
from workspace_agent.brain.types import (
    GenerationConfig,
    LLMCredentials,
    Message,
    Role,
    RunConfig,
    Thought,
    ToolCall,
    ToolDefinition,
)
from workspace_agent.config.settings import LLMConfig
from workspace_agent.observability.logger import get_logger

if TYPE_CHECKING:
    from workspace_agent.config.settings import Settings

log = get_logger(__name__)

ClientFactory = Callable[[LLMCredentials], BaseLLMClient]

_HEURISTIC_PREVIEW_CHARS = 80


def _default_client_factory(creds: LLMCredentials) -> BaseLLMClient:
    return OpenAIClient(api_key=creds.api_key or None, base_url=creds.base_url or None)


class LLMAdapter:
    """
    Thin decision layer over a BaseLLMClient.

    Clients built from credentials are cached per (api_key, base_url) so a
    workspace that passes its own key on every Run reuses one connection pool.
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        credentials: Optional[LLMCredentials] = None,
        client: Optional[BaseLLMClient] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._config = config or LLMConfig()
        self._credentials = credentials or LLMCredentials()
        self._client = client
        self._client_factory = client_factory or _default_client_factory
        self._cache: dict[tuple[str, str], BaseLLMClient] = {}

    @classmethod
    def from_settings(cls, settings: "Settings", client: Optional[BaseLLMClient] = None) -> "LLMAdapter":
        creds = LLMCredentials(
            api_key=settings.openai_api_key or "",
            base_url=settings.llm_base_url or "",
            model=settings.effective_llm_model,
        )
        return cls(config=settings.llm, credentials=creds, client=client)

    # ── Resolution ────────────────────────────────────────────────────────────

    def resolve(self, run_config: Optional[RunConfig] = None) -> tuple[Optional[BaseLLMClient], str]:
        """
        Return (client, model) for this call. client=None selects the
        heuristic fallback.
        """
        override = run_config.llm if run_config else None
        if override is not None and override.available:
            model = override.model or self._credentials.model or self._config.model
            return self._client_for(override), model

        model = self._credentials.model or self._config.model
        if self._client is not None:
            return self._client, model
        if self._credentials.available:
            return self._client_for(self._credentials), model
        return None, model

    def _client_for(self, creds: LLMCredentials) -> BaseLLMClient:
        key = (creds.api_key, creds.base_url)
        client = self._cache.get(key)
        if client is None:
            client = self._client_factory(creds)
            self._cache[key] = client
            log.debug("llm_adapter.client_created", base_url=creds.base_url or "default")
        return client

    # ── Think ─────────────────────────────────────────────────────────────────

    async def think(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        run_config: Optional[RunConfig] = None,
        session_id: str = "",
        step: int = 0,
    ) -> Thought:
        client, model = self.resolve(run_config)
        if client is None:
            log.info("llm_adapter.heuristic_fallback", session_id=session_id, step=step)
            return self._heuristic(messages)

        gen_config = GenerationConfig(
            model=model,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
            tool_choice="auto",
        )
        retry = self._config.retry
        response = await call_with_retry(
            client,
            messages=messages,
            config=gen_config,
            tools=tools or None,
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        )

        content = (response.content or "").strip()
        if not response.has_tool_calls:
            return Thought(content=content)

        if len(response.tool_calls) > 1:
            log.warning(
                "llm_adapter.extra_tool_calls_dropped",
                session_id=session_id,
                step=step,
                kept=response.tool_calls[0].name,
                dropped=[tc.name for tc in response.tool_calls[1:]],
            )

        first = response.tool_calls[0]
        action = ToolCall(
            id=first.id or f"call_{session_id[:8]}_{step}",
            name=first.name,
            arguments=dict(first.arguments),
        )
        if not content:
            content = f"I'll call the {action.name} tool to proceed."
        return Thought(content=content, action=action)

    @staticmethod
    def _heuristic(messages: list[Message]) -> Thought:
        """Deterministic acknowledgement; never fabricates a tool call."""
        last_user = next(
            (m.content or "" for m in reversed(messages) if m.role == Role.USER),
            "",
        ).strip()
        preview = last_user[:_HEURISTIC_PREVIEW_CHARS]
        if len(last_user) > _HEURISTIC_PREVIEW_CHARS:
            preview += "..."
        return Thought(
            content=(
                f'I received your request: "{preview}". '
                "No language model is configured for this workspace, so I can't "
                "take any actions yet. Configure an API key or base URL to continue."
            ),
            heuristic=True,
        )
