"""
brain/openai_client.py — OpenAI Chat-Completion Client

BaseLLMClient over openai.AsyncOpenAI. base_url may point at any
OpenAI-compatible server; a keyless server gets a placeholder key because
the SDK will not construct without one.

The three translation functions are module-level so the engine's replay
shape can be checked without a client:

    to_openai_messages   Message list    → chat.completions "messages"
    to_openai_tools      ToolDefinition  → {"type": "function", ...}
    parse_completion     ChatCompletion  → LLMResponse (first choice only)

SDK exceptions are mapped onto the LLMError family so call_with_retry can
tell transient failures from permanent ones.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from workspace_agent.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from workspace_agent.brain.types import (
    FinishReason,
    GenerationConfig,
    LLMResponse,
    Message,
    Role,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)

_PROVIDER = "openai"

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
}


# ─────────────────────────────────────────────────────────────────────────────
# Wire translation
# ─────────────────────────────────────────────────────────────────────────────


def _wire_tool_call(tc: ToolCall) -> dict[str, Any]:
    return {
        "id": tc.id,
        "type": "function",
        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
    }


def to_openai_messages(messages: list[Message]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role in (Role.SYSTEM, Role.USER):
            wire.append({"role": msg.role.value, "content": msg.content or ""})
        elif msg.role == Role.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content or ""}
            if msg.tool_calls:
                entry["tool_calls"] = [_wire_tool_call(tc) for tc in msg.tool_calls]
            wire.append(entry)
        elif msg.role == Role.TOOL and msg.tool_response is not None:
            wire.append({
                "role": "tool",
                "tool_call_id": msg.tool_response.tool_call_id,
                "content": msg.tool_response.content,
            })
    return wire


def to_openai_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
        }
        for t in tools
    ]


def _parse_arguments(raw: Optional[str]) -> dict[str, Any]:
    """Model-produced argument JSON; anything that is not an object is kept under _raw."""
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {"_raw": raw}
    return args if isinstance(args, dict) else {"_raw": args}


def parse_completion(response: Any) -> LLMResponse:
    if not response.choices:
        raise LLMError("no choices in response", provider=_PROVIDER)
    choice = response.choices[0]
    msg = choice.message
    usage = response.usage
    return LLMResponse(
        content=msg.content,
        tool_calls=[
            ToolCall(id=tc.id or "", name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
            for tc in (msg.tool_calls or [])
        ],
        finish_reason=_FINISH_REASONS.get(choice.finish_reason or "stop", FinishReason.STOP),
        usage=TokenUsage(
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        ),
        model=response.model or "",
    )


def _map_error(e: openai.APIError) -> LLMError:
    text = str(e)
    if isinstance(e, openai.AuthenticationError):
        return LLMConnectionError(text, provider=_PROVIDER, status_code=401)
    if isinstance(e, openai.RateLimitError):
        return LLMRateLimitError(text, provider=_PROVIDER)
    if isinstance(e, openai.BadRequestError):
        lowered = text.lower()
        if "context" in lowered or "too long" in lowered:
            return LLMContextError(text, provider=_PROVIDER)
        return LLMInvalidRequestError(text, provider=_PROVIDER)
    if isinstance(e, openai.APIConnectionError):
        return LLMConnectionError(text, provider=_PROVIDER)
    return LLMError(text, provider=_PROVIDER, status_code=getattr(e, "status_code", None))


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────


class OpenAIClient(BaseLLMClient):

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        super().__init__(api_key=api_key, base_url=base_url)
        self._client = AsyncOpenAI(api_key=api_key or "not-needed", base_url=base_url or None)

    async def generate(
        self,
        messages: list[Message],
        config: GenerationConfig,
        tools: Optional[list[ToolDefinition]] = None,
    ) -> LLMResponse:
        log.debug("openai.generate.start", model=config.model, messages=len(messages), tools=len(tools or []))
        try:
            completion = await self._client.chat.completions.create(
                model=config.model,
                messages=to_openai_messages(messages),
                tools=to_openai_tools(tools) if tools else openai.NOT_GIVEN,
                tool_choice=config.tool_choice if tools else openai.NOT_GIVEN,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except openai.APIError as e:
            raise _map_error(e) from e

        result = parse_completion(completion)
        log.debug(
            "openai.generate.complete",
            model=result.model,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            finish_reason=result.finish_reason,
            tool_calls=len(result.tool_calls),
        )
        return result

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
        except openai.APIError as e:
            log.warning("openai.health_check.failed", error=str(e), error_type=type(e).__name__)
            return False
        return True
