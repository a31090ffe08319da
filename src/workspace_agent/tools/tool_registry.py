"""
tools/tool_registry.py — Tool Registry

Name-keyed collection of AgentTool instances. Append-only after startup:
duplicate names are rejected and nothing is ever deregistered.

Usage:
    registry = ToolRegistry()
    registry.register(CreatePlanTool(store))

    @registry.tool(
        name="get_workspace_info",
        description="Describe the workspace tables.",
        parameters={"type": "object", "properties": {}},
    )
    async def get_workspace_info(args, context) -> ToolResult:
        ...

    result = await registry.execute("get_workspace_info", {}, ToolContext(...))
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

from workspace_agent.exceptions import DuplicateRegistrationError, ToolNotFoundError
from workspace_agent.observability.logger import get_logger
from workspace_agent.tools.types import (
    AgentTool,
    FunctionTool,
    ToolContext,
    ToolDescriptor,
    ToolHandler,
    ToolResult,
)

log = get_logger(__name__)


class ToolRegistry:
    """
    Registry mapping tool names to AgentTool instances.

    Read-mostly and shared by every Run; an RLock guards the map so skills
    can be enabled while Runs are listing tools.
    """

    def __init__(self) -> None:
        self._tools: dict[str, AgentTool] = {}
        self._lock = threading.RLock()

    # ── Write ─────────────────────────────────────────────────────────────────

    def register(self, tool: AgentTool) -> None:
        """Register a tool. Raises DuplicateRegistrationError on a taken name."""
        name = tool.name
        with self._lock:
            if name in self._tools:
                raise DuplicateRegistrationError("tool", name)
            self._tools[name] = tool
        log.debug("tool.registered", tool=name, requires_confirmation=tool.requires_confirmation)

    def tool(
        self,
        name: str,
        description: str,
        parameters: Optional[dict[str, Any]] = None,
        requires_confirmation: bool = False,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering an async `fn(args, context) -> ToolResult`."""
        def decorator(fn: ToolHandler) -> ToolHandler:
            descriptor = ToolDescriptor(
                name=name,
                description=description,
                parameters=parameters or {"type": "object", "properties": {}, "required": []},
                requires_confirmation=requires_confirmation,
            )
            self.register(FunctionTool(descriptor, fn))
            return fn

        return decorator

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[AgentTool]:
        """Return the tool, or None if not registered."""
        with self._lock:
            return self._tools.get(name)

    def is_registered(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list_all(self) -> list[ToolDescriptor]:
        """Snapshot of all descriptors, in registration order."""
        with self._lock:
            return [t.descriptor.model_copy(deep=True) for t in self._tools.values()]

    def list_names(self) -> list[str]:
        with self._lock:
            return list(self._tools.keys())

    # ── Execute ───────────────────────────────────────────────────────────────

    async def execute(self, name: str, args: dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Dispatch to the named tool.

        Unknown names raise ToolNotFoundError carrying the structured failure.
        Exceptions raised by the tool are folded into a failure result;
        cancellation of the awaiting task propagates.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name, ToolResult.fail(f"unknown tool: {name}"))

        t0 = time.monotonic()
        try:
            result = await tool.execute(args, context)
        except Exception as e:  # noqa: BLE001
            log.error(
                "tool.execute.exception",
                tool=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ToolResult.fail(f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            log.warning("tool.execute.bad_result", tool=name, result_type=type(result).__name__)
            result = ToolResult.ok(output=str(result))

        log.debug(
            "tool.execute.done",
            tool=name,
            success=result.success,
            duration_ms=round((time.monotonic() - t0) * 1000, 1),
        )
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tools

    def __repr__(self) -> str:
        return f"<ToolRegistry tools={self.list_names()}>"
