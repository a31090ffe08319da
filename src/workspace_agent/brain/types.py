"""
brain/types.py — Workspace Agent Brain Data Models

Shared types used by the chat-completion clients, the LLM adapter and the
engine. Provider clients map their native response shapes into these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"           # tool result fed back to LLM


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"


# ─────────────────────────────────────────────────────────────────────────────
# Tool calling types
# ─────────────────────────────────────────────────────────────────────────────


class ToolCall(BaseModel):
    """A single tool invocation requested by the LLM."""
    id: str = Field(..., description="Unique ID for this tool call (from LLM or fabricated)")
    name: str = Field(..., description="Tool/function name to call")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Parsed JSON arguments")


class ToolResponse(BaseModel):
    """A tool observation fed back to the LLM."""
    tool_call_id: str
    name: str = ""
    content: str


class ToolDefinition(BaseModel):
    """
    Provider-agnostic tool definition (name, description, JSON-schema
    parameters). Clients translate this into the provider's function format.
    """
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


# ─────────────────────────────────────────────────────────────────────────────
# Message types
# ─────────────────────────────────────────────────────────────────────────────


class Message(BaseModel):
    """
    A single chat message shaped for a tool-calling API.

    For tool results, set role=TOOL and populate tool_response.
    For tool calls made by the assistant, set role=ASSISTANT and populate tool_calls.
    """
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_response: Optional[ToolResponse] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[list[ToolCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: str = "") -> "Message":
        return cls(
            role=Role.TOOL,
            content=content,
            tool_response=ToolResponse(tool_call_id=tool_call_id, name=name, content=content),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Request config / credentials
# ─────────────────────────────────────────────────────────────────────────────


class GenerationConfig(BaseModel):
    """Per-request generation parameters for a single generate() call."""
    model: str
    temperature: float = 0.2
    max_tokens: int = 8192
    tool_choice: str = "auto"


@dataclass(frozen=True)
class LLMCredentials:
    """
    Credentials for one chat-completion endpoint.

    Considered usable only when api_key or base_url is non-empty; a model
    name alone does not enable the real client.
    """
    api_key: str = ""
    base_url: str = ""
    model: str = ""

    @property
    def available(self) -> bool:
        return bool(self.api_key or self.base_url)


@dataclass(frozen=True)
class RunConfig:
    """Typed per-Run overrides passed explicitly to Engine.run() / confirm()."""
    llm: Optional[LLMCredentials] = None


# ─────────────────────────────────────────────────────────────────────────────
# LLM response
# ─────────────────────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMResponse(BaseModel):
    """Normalised response from a chat-completion provider."""
    content: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class Thought(BaseModel):
    """
    One adapter step: the assistant prose plus at most one tool action.
    action=None means `content` is the final answer.
    """
    content: str = ""
    action: Optional[ToolCall] = None
    heuristic: bool = False

    @property
    def has_action(self) -> bool:
        return self.action is not None
