"""
exceptions.py — Workspace Agent Unified Error Hierarchy

All agent-core exceptions live here. Every layer raises typed subclasses
of WorkspaceAgentError, never bare Exception.

Import from here, not from individual modules:
    from workspace_agent.exceptions import SessionNotFoundError, DuplicateRegistrationError

Hierarchy:
    WorkspaceAgentError
    ├── NotFoundError
    │   ├── SessionNotFoundError
    │   ├── PendingActionNotFoundError
    │   ├── ToolNotFoundError
    │   ├── PersonaNotFoundError
    │   └── SkillNotFoundError
    ├── ValidationError
    │   ├── DuplicateRegistrationError
    │   ├── InvalidStatusError
    │   ├── PhaseTransitionError
    │   ├── SessionStateError
    │   └── BuiltinProtectedError
    ├── PersistenceError
    └── LLMError  (re-exported from brain for convenience)
        ├── LLMConnectionError
        ├── LLMRateLimitError
        ├── LLMContextError
        └── LLMInvalidRequestError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from workspace_agent.tools.types import ToolResult


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class WorkspaceAgentError(Exception):
    """Base class for all workspace agent exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Not found
# ─────────────────────────────────────────────────────────────────────────────

class NotFoundError(WorkspaceAgentError):
    """A session, pending action, tool, persona or skill does not exist."""


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session not found: {session_id}")


class PendingActionNotFoundError(NotFoundError):
    """Confirm() was called with an action id that is not pending on the session."""

    def __init__(self, action_id: str) -> None:
        self.action_id = action_id
        super().__init__(f"no pending action with ID {action_id}")


class ToolNotFoundError(NotFoundError):
    """
    Raised by ToolRegistry.execute() for an unregistered tool name.

    Carries the structured failure result so callers that want to feed it
    back to the model don't have to rebuild it.
    """

    def __init__(self, name: str, result: Optional["ToolResult"] = None) -> None:
        self.name = name
        self.result = result
        super().__init__(f"unknown tool: {name}")


class PersonaNotFoundError(NotFoundError):
    def __init__(self, persona_id: str) -> None:
        self.persona_id = persona_id
        super().__init__(f"persona not found: {persona_id}")


class SkillNotFoundError(NotFoundError):
    def __init__(self, skill_id: str) -> None:
        self.skill_id = skill_id
        super().__init__(f"skill not found: {skill_id}")


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────

class ValidationError(WorkspaceAgentError):
    """Input rejected before any state was changed."""


class DuplicateRegistrationError(ValidationError):
    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is already registered")


class InvalidStatusError(ValidationError):
    def __init__(self, value: Any, allowed: list[str]) -> None:
        self.value = value
        self.allowed = allowed
        super().__init__(f"invalid status {value!r}; expected one of {allowed}")


class PhaseTransitionError(ValidationError):
    """Session phases only move forward: planning → confirmed → executing → completed."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"cannot move session phase from '{current}' back to '{requested}'")


class SessionStateError(ValidationError):
    """The requested mutation conflicts with the session's runtime state."""


class BuiltinProtectedError(ValidationError):
    """Built-in personas and skills cannot be deleted or edited structurally."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"built-in {kind} '{name}' cannot be modified or removed")


# ─────────────────────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────────────────────

class PersistenceError(WorkspaceAgentError):
    """A session persister failed to read or write a snapshot."""


# ─────────────────────────────────────────────────────────────────────────────
# LLM layer (defined in brain/llm_client.py)
# ─────────────────────────────────────────────────────────────────────────────

from workspace_agent.brain.llm_client import (  # noqa: E402,F401
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)


__all__ = [
    "WorkspaceAgentError",
    # Not found
    "NotFoundError",
    "SessionNotFoundError",
    "PendingActionNotFoundError",
    "ToolNotFoundError",
    "PersonaNotFoundError",
    "SkillNotFoundError",
    # Validation
    "ValidationError",
    "DuplicateRegistrationError",
    "InvalidStatusError",
    "PhaseTransitionError",
    "SessionStateError",
    "BuiltinProtectedError",
    # Persistence
    "PersistenceError",
    # LLM (re-exported)
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
