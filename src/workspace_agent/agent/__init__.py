"""
agent/ — Agent Execution Core

Public API:
    from workspace_agent.agent import Engine, SessionStore, EventStream

Component overview:
    Session          Per-conversation state (status, phase, plan, pending action, log)
    SessionStore     Owns live sessions; optional write-through persister
    classify         Deterministic intent pre-classification of the first message
    PromptBuilder    Phase-aware system prompt assembly
    Compactor        Rule-based summary of older turns at safe cutoffs
    Engine           ReAct loop: think → act → observe, pause, confirm, cancel
"""

from workspace_agent.agent.classifier import classify
from workspace_agent.agent.compactor import Compactor
from workspace_agent.agent.engine import PLANNING_PHASE_TOOLS, Engine
from workspace_agent.agent.events import AgentEvent, EventStream, EventType, affected_resource
from workspace_agent.agent.persistence import SessionPersister, SQLiteSessionPersister
from workspace_agent.agent.prompt_builder import PromptBuilder, build_web_creator_prompt
from workspace_agent.agent.session import (
    ComplexityHint,
    MessageEntry,
    PendingAction,
    Plan,
    PlanGroup,
    PlanStatus,
    PlanStep,
    PlanStepStatus,
    Session,
    SessionPhase,
    SessionStatus,
    ToolCallRecord,
)
from workspace_agent.agent.session_store import SessionStore

__all__ = [
    "Engine",
    "PLANNING_PHASE_TOOLS",
    "EventStream",
    "AgentEvent",
    "EventType",
    "affected_resource",
    "Session",
    "SessionStore",
    "SessionPersister",
    "SQLiteSessionPersister",
    "SessionStatus",
    "SessionPhase",
    "ComplexityHint",
    "MessageEntry",
    "ToolCallRecord",
    "PendingAction",
    "Plan",
    "PlanGroup",
    "PlanStep",
    "PlanStatus",
    "PlanStepStatus",
    "classify",
    "Compactor",
    "PromptBuilder",
    "build_web_creator_prompt",
]
