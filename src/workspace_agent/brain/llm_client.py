"""
brain/llm_client.py — Abstract Chat-Completion Client + Retry

Provider implementations subclass BaseLLMClient and implement generate().

  - call_with_retry() — exponential backoff on transient errors
    (connection failures, rate limits); permanent errors propagate at once.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Optional

from workspace_agent.brain.types import GenerationConfig, LLMResponse, Message, ToolDefinition
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)


class BaseLLMClient(ABC):
    """
    Abstract base for chat-completion clients.

    Subclasses must implement:
      - generate()     -> call the LLM, return normalised LLMResponse
      - health_check() -> verify connectivity to the provider
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        config: GenerationConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> LLMResponse:
        """Call the LLM and return a normalised response."""
        ...

    async def health_check(self) -> bool:
        """Return True if the provider is reachable. Default: assume yes."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Retry logic
# ─────────────────────────────────────────────────────────────────────────────


async def call_with_retry(
    client: BaseLLMClient,
    messages: list[Message],
    config: GenerationConfig,
    tools: Optional[list[ToolDefinition]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> LLMResponse:
    """
    Call client.generate() with exponential backoff on transient errors.

    Retries on LLMConnectionError and LLMRateLimitError. Context-length,
    invalid-request and other LLMError subclasses propagate immediately.

    Backoff: min(base_delay * 2^attempt + jitter, max_delay), or the
    rate limiter's retry_after when provided.
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await client.generate(messages=messages, config=config, tools=tools)

        except (LLMConnectionError, LLMRateLimitError) as e:
            last_error = e

            if attempt == max_attempts - 1:
                break

            if isinstance(e, LLMRateLimitError) and e.retry_after:
                delay = min(e.retry_after, max_delay)
            else:
                jitter = random.uniform(0, 0.5)
                delay = min(base_delay * (2 ** attempt) + jitter, max_delay)

            log.warning(
                "llm.retrying",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_s=round(delay, 2),
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)

    raise last_error  # type: ignore[misc]


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class LLMError(Exception):
    """Base exception for all LLM client errors."""
    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Provider unreachable or authentication failed."""


class LLMRateLimitError(LLMError):
    """Rate limit hit — retry with exponential backoff."""
    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class LLMContextError(LLMError):
    """Input exceeds model context window."""


class LLMInvalidRequestError(LLMError):
    """Bad request — invalid parameters or unsupported feature."""
