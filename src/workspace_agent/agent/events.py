"""
agent/events.py — Agent Event Stream

Typed events emitted by one Engine.run() and the bounded stream that carries
them from the producer task to the consumer.

    stream = engine.run(workspace_id, user_id, "add a status column", session_id)
    async for event in stream:
        if event.type == EventType.CONFIRMATION_REQUIRED:
            ...

Per step the order is thought → tool_call → (confirmation_required |
tool_result). A successful Run ends with done; failures end with error.

The consumer may stop early:
  stream.cancel()   cancel the producer task (Run ends with error "cancelled")
  stream.aclose()   stop listening; later events are dropped so the producer
                    never blocks on a consumer that has gone away
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from workspace_agent.observability.logger import get_logger
from workspace_agent.tools.types import ToolResult

log = get_logger(__name__)


class EventType(str, Enum):
    THOUGHT = "thought"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CONFIRMATION_REQUIRED = "confirmation_required"
    MESSAGE = "message"
    DONE = "done"
    ERROR = "error"


_TERMINAL = frozenset({EventType.DONE, EventType.ERROR})

_AFFECTED_RESOURCES: dict[str, str] = {
    **dict.fromkeys(("create_table", "alter_table", "insert_data", "query_data"), "database"),
    **dict.fromkeys(("create_workflow", "modify_workflow", "suggest_workflow"), "workflow"),
    **dict.fromkeys(("generate_ui_schema", "modify_ui_schema"), "ui_schema"),
}


def affected_resource(tool_name: str) -> str:
    """Coarse UI-routing tag for a tool: database / workflow / ui_schema / ''."""
    return _AFFECTED_RESOURCES.get(tool_name, "")


# ─────────────────────────────────────────────────────────────────────────────
# Event model
# ─────────────────────────────────────────────────────────────────────────────


class AgentEvent(BaseModel):
    """One entry on the stream. Fields not relevant to `type` keep their defaults."""
    type: EventType
    session_id: str
    step: int = 0
    content: str = ""
    tool_name: str = ""
    tool_args: Optional[dict[str, Any]] = None
    tool_result: Optional[ToolResult] = None
    affected_resource: str = ""
    action_id: str = ""
    error: str = ""
    timestamp: float = Field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.type in _TERMINAL

    # ── Constructors ──────────────────────────────────────────────────────────

    @classmethod
    def thought(cls, session_id: str, step: int, content: str) -> "AgentEvent":
        return cls(type=EventType.THOUGHT, session_id=session_id, step=step, content=content)

    @classmethod
    def tool_call(
        cls, session_id: str, step: int, tool_name: str, tool_args: dict[str, Any]
    ) -> "AgentEvent":
        return cls(
            type=EventType.TOOL_CALL,
            session_id=session_id,
            step=step,
            tool_name=tool_name,
            tool_args=dict(tool_args),
        )

    @classmethod
    def tool_result_event(
        cls, session_id: str, step: int, tool_name: str, result: ToolResult
    ) -> "AgentEvent":
        return cls(
            type=EventType.TOOL_RESULT,
            session_id=session_id,
            step=step,
            tool_name=tool_name,
            tool_result=result,
            affected_resource=affected_resource(tool_name),
        )

    @classmethod
    def confirmation_required(
        cls,
        session_id: str,
        step: int,
        tool_name: str,
        tool_args: dict[str, Any],
        action_id: str,
    ) -> "AgentEvent":
        return cls(
            type=EventType.CONFIRMATION_REQUIRED,
            session_id=session_id,
            step=step,
            tool_name=tool_name,
            tool_args=dict(tool_args),
            action_id=action_id,
            content=f'The agent wants to execute "{tool_name}". Please approve or reject.',
        )

    @classmethod
    def message(cls, session_id: str, content: str) -> "AgentEvent":
        return cls(type=EventType.MESSAGE, session_id=session_id, content=content)

    @classmethod
    def done(cls, session_id: str) -> "AgentEvent":
        return cls(type=EventType.DONE, session_id=session_id)

    @classmethod
    def error_event(cls, session_id: str, error: str) -> "AgentEvent":
        return cls(type=EventType.ERROR, session_id=session_id, error=error)


# ─────────────────────────────────────────────────────────────────────────────
# Stream
# ─────────────────────────────────────────────────────────────────────────────

_END = object()


class EventStream:
    """
    Bounded single-producer / single-consumer event channel for one Run.

    Iteration ends once the producer has finished and the buffer is drained.
    """

    def __init__(self, session_id: str, maxsize: int = 32):
        self.session_id = session_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._finished = False
        self._closed = False
        self._cancelled = False
        self._terminal_sent = False

    # ── Producer side ─────────────────────────────────────────────────────────

    def attach(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(self._on_task_done)

    async def send(self, event: AgentEvent) -> bool:
        """Blocks while the buffer is full. Returns False once the consumer has closed."""
        if self._closed:
            return False
        await self._queue.put(event)
        if event.is_terminal:
            self._terminal_sent = True
        return True

    def send_nowait(self, event: AgentEvent) -> bool:
        """Best-effort send for paths that must not await (cancellation)."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning("event_stream.dropped", session_id=self.session_id, type=event.type.value)
            return False
        if event.is_terminal:
            self._terminal_sent = True
        return True

    def finish(self) -> None:
        """Mark the producer done. Safe to call more than once."""
        if self._finished:
            return
        self._finished = True
        try:
            self._queue.put_nowait(_END)
        except asyncio.QueueFull:
            # The consumer sees `finished` once it drains the buffer
            pass

    def _on_task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never runs its own handlers
        if task.cancelled() and not self._terminal_sent:
            self.send_nowait(AgentEvent.error_event(self.session_id, "cancelled"))
        self.finish()

    # ── Consumer side ─────────────────────────────────────────────────────────

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> AgentEvent:
        if self._closed or (self._finished and self._queue.empty()):
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item

    async def collect(self) -> list[AgentEvent]:
        """Drain the whole stream into a list."""
        return [event async for event in self]

    def cancel(self) -> None:
        """Cancel the Run. The producer emits error("cancelled") and marks the session failed."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Stop consuming. Buffered and future events are discarded."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def wait(self) -> None:
        """Wait for the producer task to finish (the consumer must be draining or closed)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        return self._finished

    def __repr__(self) -> str:
        return (
            f"<EventStream session={self.session_id!r} buffered={self._queue.qsize()} "
            f"finished={self._finished} closed={self._closed}>"
        )
