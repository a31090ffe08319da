"""
agent/session.py — Per-Session State

One Session exists per (workspace, conversation). It holds the lifecycle
status, the planning phase, the one-shot complexity hint, the message log,
the tool-call records, the optional pending action and the optional plan.

Every mutation happens under the session's own lock and bumps updated_at.
Readers get deep copies of composite values, so nothing handed out can be
used to mutate the session behind the lock's back.
"""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from workspace_agent.exceptions import (
    InvalidStatusError,
    PhaseTransitionError,
    SessionStateError,
)
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class SessionStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionPhase(str, Enum):
    PLANNING = "planning"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = [
    SessionPhase.PLANNING,
    SessionPhase.CONFIRMED,
    SessionPhase.EXECUTING,
    SessionPhase.COMPLETED,
]


class ComplexityHint(str, Enum):
    UNSET = ""
    COMPLEX = "complex"
    SIMPLE = "simple"
    QUESTION = "question"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PlanStepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidStatusError(value, [m.value for m in enum_cls]) from None


# ─────────────────────────────────────────────────────────────────────────────
# Value types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class MessageEntry:
    role: str                                 # user | assistant | system | tool
    content: str
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def tool_call_id(self) -> str:
        return str(self.metadata.get("tool_call_id", "") or "")


@dataclass
class ToolCallRecord:
    step: int
    tool_name: str
    args: dict[str, Any]
    result: dict[str, Any]                    # ToolResult.model_dump()
    tool_call_id: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class PendingAction:
    action_id: str
    tool_name: str
    tool_args: dict[str, Any]
    step: int
    tool_call_id: str = ""


@dataclass
class PlanGroup:
    id: str
    label: str = ""
    icon: str = ""


@dataclass
class PlanStep:
    id: str
    description: str = ""
    tool_hint: str = ""
    status: PlanStepStatus = PlanStepStatus.PENDING
    note: str = ""
    group_id: str = ""


@dataclass
class Plan:
    title: str
    status: PlanStatus = PlanStatus.DRAFT
    summary: str = ""                         # requirements summary
    groups: list[PlanGroup] = field(default_factory=list)
    steps: list[PlanStep] = field(default_factory=list)

    def step_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in PlanStepStatus}
        for step in self.steps:
            counts[PlanStepStatus(step.status).value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "status": PlanStatus(self.status).value,
            "summary": self.summary,
            "groups": [asdict(g) for g in self.groups],
            "steps": [
                {**asdict(s), "status": PlanStepStatus(s.status).value}
                for s in self.steps
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        return cls(
            title=data.get("title", ""),
            status=PlanStatus(data.get("status", PlanStatus.DRAFT.value)),
            summary=data.get("summary", ""),
            groups=[PlanGroup(**g) for g in data.get("groups", [])],
            steps=[
                PlanStep(**{**s, "status": PlanStepStatus(s.get("status", "pending"))})
                for s in data.get("steps", [])
            ],
        )


# ─────────────────────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────────────────────


class Session:
    """All runtime state for a single agent session."""

    def __init__(
        self,
        session_id: str,
        workspace_id: str = "",
        user_id: str = "",
        persona_id: str = "",
    ):
        self.id = session_id
        self.workspace_id = workspace_id
        self.user_id = user_id
        self.persona_id = persona_id
        self.created_at = time.time()

        self._lock = threading.RLock()
        self._updated_at = self.created_at
        self._status = SessionStatus.RUNNING
        self._phase = SessionPhase.PLANNING
        self._hint = ComplexityHint.UNSET
        self._messages: list[MessageEntry] = []
        self._tool_calls: list[ToolCallRecord] = []
        self._pending: Optional[PendingAction] = None
        self._plan: Optional[Plan] = None

    def _touch(self) -> None:
        # Strictly increasing even when the wall clock stalls or steps back
        now = time.time()
        self._updated_at = now if now > self._updated_at else self._updated_at + 1e-6

    @property
    def updated_at(self) -> float:
        with self._lock:
            return self._updated_at

    # ── Status ────────────────────────────────────────────────────────────────

    def get_status(self) -> SessionStatus:
        with self._lock:
            return self._status

    def set_status(self, status: SessionStatus | str) -> None:
        status = _coerce(SessionStatus, status)
        with self._lock:
            if status == SessionStatus.RUNNING and self._pending is not None:
                raise SessionStateError(
                    f"session {self.id} has pending action {self._pending.action_id}; "
                    f"resolve it before resuming"
                )
            self._status = status
            self._touch()

    def mark_failed(self) -> Optional[PendingAction]:
        """Clear any pending action and set status=failed in one step."""
        with self._lock:
            cleared, self._pending = self._pending, None
            self._status = SessionStatus.FAILED
            self._touch()
        return cleared

    # ── Phase ─────────────────────────────────────────────────────────────────

    def get_phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    def set_phase(self, phase: SessionPhase | str) -> None:
        phase = _coerce(SessionPhase, phase)
        with self._lock:
            if phase.rank < self._phase.rank:
                raise PhaseTransitionError(self._phase.value, phase.value)
            self._phase = phase
            self._touch()

    # ── Complexity hint ───────────────────────────────────────────────────────

    def get_complexity_hint(self) -> ComplexityHint:
        with self._lock:
            return self._hint

    def set_complexity_hint(self, hint: ComplexityHint | str) -> bool:
        """Write-once. Returns False (and changes nothing) if already set."""
        hint = _coerce(ComplexityHint, hint)
        with self._lock:
            if self._hint != ComplexityHint.UNSET:
                return False
            self._hint = hint
            self._touch()
            return True

    # ── Messages ──────────────────────────────────────────────────────────────

    def add_message(
        self,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MessageEntry:
        entry = MessageEntry(role=role, content=content, metadata=dict(metadata or {}))
        with self._lock:
            self._messages.append(entry)
            self._touch()
        return copy.deepcopy(entry)

    def get_messages(self) -> list[MessageEntry]:
        with self._lock:
            return copy.deepcopy(self._messages)

    def message_count(self) -> int:
        with self._lock:
            return len(self._messages)

    def replace_messages(self, messages: list[MessageEntry]) -> None:
        with self._lock:
            self._messages = copy.deepcopy(messages)
            self._touch()

    # ── Tool-call records ─────────────────────────────────────────────────────

    def add_tool_call(self, record: ToolCallRecord) -> None:
        with self._lock:
            self._tool_calls.append(copy.deepcopy(record))
            self._touch()

    def get_tool_calls(self) -> list[ToolCallRecord]:
        with self._lock:
            return copy.deepcopy(self._tool_calls)

    # ── Pending action ────────────────────────────────────────────────────────

    def set_pending_action(self, action: PendingAction) -> None:
        """Store the action and set status=paused atomically."""
        with self._lock:
            if self._pending is not None:
                raise SessionStateError(
                    f"session {self.id} already has pending action {self._pending.action_id}"
                )
            self._pending = copy.deepcopy(action)
            self._status = SessionStatus.PAUSED
            self._touch()

    def get_pending_action(self) -> Optional[PendingAction]:
        with self._lock:
            return copy.deepcopy(self._pending)

    def clear_pending_action(self) -> Optional[PendingAction]:
        with self._lock:
            cleared, self._pending = self._pending, None
            if cleared is not None:
                self._touch()
            return cleared

    def take_pending_action(self, action_id: str) -> Optional[PendingAction]:
        """Clear and return the pending action only if its id matches; else None, untouched."""
        with self._lock:
            if self._pending is None or self._pending.action_id != action_id:
                return None
            taken, self._pending = self._pending, None
            self._touch()
            return taken

    # ── Plan ──────────────────────────────────────────────────────────────────

    def get_plan(self) -> Optional[Plan]:
        with self._lock:
            return copy.deepcopy(self._plan)

    def set_plan(self, plan: Optional[Plan]) -> None:
        with self._lock:
            self._plan = copy.deepcopy(plan)
            self._touch()

    def confirm_plan(self) -> bool:
        """
        draft → confirmed, and phase → confirmed, in one step.

        Returns True iff the plan existed, was a draft, and the session has
        not moved past the confirmed phase. Phases never move backwards.
        """
        with self._lock:
            if self._plan is None or self._plan.status != PlanStatus.DRAFT:
                return False
            if self._phase.rank > SessionPhase.CONFIRMED.rank:
                log.warning("session.plan_confirm_rejected", session_id=self.id, phase=self._phase.value)
                return False
            self._plan.status = PlanStatus.CONFIRMED
            self._phase = SessionPhase.CONFIRMED
            self._touch()
        log.info("session.plan_confirmed", session_id=self.id)
        return True

    def begin_execution(self) -> bool:
        """confirmed → executing with the plan marked in_progress."""
        with self._lock:
            if self._phase != SessionPhase.CONFIRMED:
                return False
            self._phase = SessionPhase.EXECUTING
            if self._plan is not None:
                self._plan.status = PlanStatus.IN_PROGRESS
            self._touch()
        log.info("session.execution_started", session_id=self.id)
        return True

    def update_plan_step(
        self,
        step_id: str,
        status: PlanStepStatus | str,
        note: str = "",
    ) -> bool:
        """Returns False if there is no plan or no such step. Empty note keeps the old one."""
        status = _coerce(PlanStepStatus, status)
        with self._lock:
            if self._plan is None:
                return False
            for step in self._plan.steps:
                if step.id == step_id:
                    step.status = status
                    if note:
                        step.note = note
                    self._touch()
                    return True
            return False

    def complete_plan_if_done(self) -> bool:
        """
        An in_progress plan whose steps are all completed/failed becomes
        completed, and the session phase follows.
        """
        done = (PlanStepStatus.COMPLETED, PlanStepStatus.FAILED)
        with self._lock:
            plan = self._plan
            if plan is None or plan.status != PlanStatus.IN_PROGRESS or not plan.steps:
                return False
            if not all(s.status in done for s in plan.steps):
                return False
            plan.status = PlanStatus.COMPLETED
            self._phase = SessionPhase.COMPLETED
            self._touch()
        log.info("session.plan_completed", session_id=self.id)
        return True

    # ── Snapshot ──────────────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Point-in-time JSON-safe snapshot, as handed to persisters."""
        with self._lock:
            return {
                "id": self.id,
                "workspace_id": self.workspace_id,
                "user_id": self.user_id,
                "persona_id": self.persona_id,
                "status": self._status.value,
                "phase": self._phase.value,
                "complexity_hint": self._hint.value,
                "created_at": self.created_at,
                "updated_at": self._updated_at,
                "messages": [asdict(m) for m in self._messages],
                "tool_calls": [asdict(r) for r in self._tool_calls],
                "pending_action": asdict(self._pending) if self._pending else None,
                "plan": self._plan.to_dict() if self._plan else None,
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        session = cls(
            session_id=data["id"],
            workspace_id=data.get("workspace_id", ""),
            user_id=data.get("user_id", ""),
            persona_id=data.get("persona_id", ""),
        )
        session.created_at = data.get("created_at", session.created_at)
        session._updated_at = data.get("updated_at", session.created_at)
        session._status = SessionStatus(data.get("status", SessionStatus.RUNNING.value))
        session._phase = SessionPhase(data.get("phase", SessionPhase.PLANNING.value))
        session._hint = ComplexityHint(data.get("complexity_hint", ""))
        session._messages = [MessageEntry(**m) for m in data.get("messages", [])]
        session._tool_calls = [ToolCallRecord(**r) for r in data.get("tool_calls", [])]
        pending = data.get("pending_action")
        session._pending = PendingAction(**pending) if pending else None
        plan = data.get("plan")
        session._plan = Plan.from_dict(plan) if plan else None
        return session

    def __repr__(self) -> str:
        return (
            f"<Session id={self.id!r} workspace={self.workspace_id!r} "
            f"status={self._status.value} phase={self._phase.value}>"
        )
