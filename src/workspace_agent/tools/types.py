"""
tools/types.py — Tool System Data Models

Shared types used by the tool registry, the engine and every tool
implementation. The engine only ever sees tools through AgentTool.

Rules for tool authors:
  1. Declare `descriptor: ClassVar[ToolDescriptor]` (name, description,
     JSON-schema parameters, requires_confirmation).
  2. Implement `async execute(args, context) -> ToolResult`.
  3. Report failures as ToolResult.fail(); the registry folds stray
     exceptions into failures too, but a clear message helps the model recover.
  4. Tools are shared across sessions: do not store call-specific state on self.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Optional

from pydantic import BaseModel, Field

from workspace_agent.brain.types import ToolDefinition


# ─────────────────────────────────────────────────────────────────────────────
# Registration metadata
# ─────────────────────────────────────────────────────────────────────────────


class ToolDescriptor(BaseModel):
    """Name (unique key), description, parameters schema and confirmation flag."""
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    requires_confirmation: bool = False

    def to_definition(self) -> ToolDefinition:
        """Return the descriptor in the shape the LLM adapter expects."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Runtime types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolContext:
    """Who is calling: passed explicitly to every tool execution."""
    session_id: str = ""
    workspace_id: str = ""
    user_id: str = ""


class ToolResult(BaseModel):
    """The result of a tool execution."""
    success: bool
    output: str = ""                     # text summary shown to the model
    data: Optional[Any] = None           # structured payload for the UI
    error: str = ""

    @classmethod
    def ok(cls, output: str = "", data: Optional[Any] = None) -> "ToolResult":
        return cls(success=True, output=output, data=data)

    @classmethod
    def fail(cls, error: str, output: str = "", data: Optional[Any] = None) -> "ToolResult":
        return cls(success=False, error=error, output=output, data=data)

    def observation(self) -> str:
        """Text fed back to the model as the tool message content."""
        if self.success:
            return self.output
        return f"Error: {self.error}"


# ─────────────────────────────────────────────────────────────────────────────
# Tool capability
# ─────────────────────────────────────────────────────────────────────────────


class AgentTool(ABC):
    """Abstract base for every tool the agent can call."""

    descriptor: ClassVar[ToolDescriptor]

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    @property
    def parameters(self) -> dict[str, Any]:
        return self.descriptor.parameters

    @property
    def requires_confirmation(self) -> bool:
        return self.descriptor.requires_confirmation

    @abstractmethod
    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        """Run the tool. Must honour cancellation of the awaiting task."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


class FunctionTool(AgentTool):
    """Adapts a plain async function into an AgentTool (used by @registry.tool)."""

    def __init__(self, descriptor: ToolDescriptor, handler: ToolHandler):
        self.descriptor = descriptor  # type: ignore[misc]
        self._handler = handler

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        return await self._handler(args, context)
