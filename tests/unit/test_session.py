"""
tests/unit/test_session.py — Session State Tests

Covers status/pending-action coupling, monotonic phases, the write-once
complexity hint, plan lifecycle helpers, defensive copies and the
snapshot used by persisters.
"""

from __future__ import annotations

import pytest

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
from workspace_agent.exceptions import (
    InvalidStatusError,
    PhaseTransitionError,
    SessionStateError,
)


def _pending(action_id="action_s1_1") -> PendingAction:
    return PendingAction(action_id=action_id, tool_name="deploy_logic", tool_args={"code": "x"}, step=1)


def _plan(status=PlanStatus.DRAFT) -> Plan:
    return Plan(
        title="Employee system",
        status=status,
        summary="employees + departments",
        groups=[PlanGroup(id="data_layer", label="Data")],
        steps=[
            PlanStep(id="s1", description="create employees", tool_hint="create_table", group_id="data_layer"),
            PlanStep(id="s2", description="generate ui", tool_hint="generate_ui_schema"),
        ],
    )


@pytest.fixture
def session():
    return Session("s1", workspace_id="ws1", user_id="u1")


# ─────────────────────────────────────────────────────────────────────────────
# Defaults / status
# ─────────────────────────────────────────────────────────────────────────────


class TestDefaultsStatus:
    def test_new_session_defaults(self, session):
        assert session.get_status() == SessionStatus.RUNNING
        assert session.get_phase() == SessionPhase.PLANNING
        assert session.get_complexity_hint() == ComplexityHint.UNSET
        assert session.get_messages() == []
        assert session.get_pending_action() is None
        assert session.get_plan() is None

    def test_set_status_accepts_strings(self, session):
        session.set_status("completed")
        assert session.get_status() == SessionStatus.COMPLETED

    def test_set_status_rejects_unknown_value(self, session):
        with pytest.raises(InvalidStatusError):
            session.set_status("sleeping")
        assert session.get_status() == SessionStatus.RUNNING

    def test_updated_at_strictly_increases(self, session):
        before = session.updated_at
        session.add_message("user", "hi")
        middle = session.updated_at
        session.set_status(SessionStatus.COMPLETED)
        assert before < middle < session.updated_at


# ─────────────────────────────────────────────────────────────────────────────
# Pending action
# ─────────────────────────────────────────────────────────────────────────────


class TestPendingAction:
    def test_set_pending_action_pauses(self, session):
        session.set_pending_action(_pending())
        assert session.get_status() == SessionStatus.PAUSED
        assert session.get_pending_action().action_id == "action_s1_1"

    def test_second_pending_action_rejected(self, session):
        session.set_pending_action(_pending())
        with pytest.raises(SessionStateError):
            session.set_pending_action(_pending("action_s1_2"))

    def test_cannot_resume_running_with_pending_action(self, session):
        session.set_pending_action(_pending())
        with pytest.raises(SessionStateError):
            session.set_status(SessionStatus.RUNNING)
        assert session.get_status() == SessionStatus.PAUSED

    def test_mark_failed_clears_pending(self, session):
        session.set_pending_action(_pending())
        cleared = session.mark_failed()
        assert cleared.action_id == "action_s1_1"
        assert session.get_pending_action() is None
        assert session.get_status() == SessionStatus.FAILED

    def test_take_pending_action_requires_matching_id(self, session):
        session.set_pending_action(_pending())
        assert session.take_pending_action("action_other") is None
        assert session.get_pending_action() is not None

        taken = session.take_pending_action("action_s1_1")
        assert taken.tool_name == "deploy_logic"
        assert session.get_pending_action() is None
        assert session.take_pending_action("action_s1_1") is None

    def test_pending_action_is_copied(self, session):
        action = _pending()
        session.set_pending_action(action)
        action.tool_args["code"] = "mutated"
        session.get_pending_action().tool_args["code"] = "mutated again"
        assert session.get_pending_action().tool_args == {"code": "x"}


# ─────────────────────────────────────────────────────────────────────────────
# Phase / hint
# ─────────────────────────────────────────────────────────────────────────────


class TestPhaseHint:
    def test_phase_moves_forward(self, session):
        session.set_phase(SessionPhase.CONFIRMED)
        session.set_phase("executing")
        session.set_phase(SessionPhase.EXECUTING)
        assert session.get_phase() == SessionPhase.EXECUTING

    def test_phase_cannot_move_back(self, session):
        session.set_phase(SessionPhase.EXECUTING)
        with pytest.raises(PhaseTransitionError):
            session.set_phase(SessionPhase.PLANNING)
        assert session.get_phase() == SessionPhase.EXECUTING

    def test_complexity_hint_is_write_once(self, session):
        assert session.set_complexity_hint(ComplexityHint.SIMPLE) is True
        assert session.set_complexity_hint(ComplexityHint.COMPLEX) is False
        assert session.get_complexity_hint() == ComplexityHint.SIMPLE


# ─────────────────────────────────────────────────────────────────────────────
# Messages / records
# ─────────────────────────────────────────────────────────────────────────────


class TestMessagesRecords:
    def test_messages_are_deep_copies(self, session):
        session.add_message("tool", "ok", {"tool": "create_table", "tool_call_id": "c1"})
        snapshot = session.get_messages()
        snapshot[0].metadata["tool"] = "changed"
        snapshot.append(MessageEntry(role="user", content="injected"))
        assert session.message_count() == 1
        assert session.get_messages()[0].metadata["tool"] == "create_table"
        assert session.get_messages()[0].tool_call_id == "c1"

    def test_replace_messages(self, session):
        session.add_message("user", "one")
        session.replace_messages([MessageEntry(role="system", content="summary")])
        assert [m.content for m in session.get_messages()] == ["summary"]

    def test_tool_call_records(self, session):
        session.add_tool_call(ToolCallRecord(step=1, tool_name="create_table", args={}, result={"success": True}))
        records = session.get_tool_calls()
        assert len(records) == 1
        assert records[0].tool_name == "create_table"


# ─────────────────────────────────────────────────────────────────────────────
# Plan lifecycle
# ─────────────────────────────────────────────────────────────────────────────


class TestPlanLifecycle:
    def test_confirm_plan_moves_phase(self, session):
        session.set_plan(_plan())
        assert session.confirm_plan() is True
        assert session.get_plan().status == PlanStatus.CONFIRMED
        assert session.get_phase() == SessionPhase.CONFIRMED
        # Only drafts can be confirmed
        assert session.confirm_plan() is False

    def test_confirm_plan_without_plan(self, session):
        assert session.confirm_plan() is False
        assert session.get_phase() == SessionPhase.PLANNING

    def test_confirm_plan_never_lowers_phase(self, session):
        session.set_plan(_plan())
        session.confirm_plan()
        session.begin_execution()
        session.set_plan(_plan())
        assert session.confirm_plan() is False
        assert session.get_phase() == SessionPhase.EXECUTING
        assert session.get_plan().status == PlanStatus.DRAFT

    def test_begin_execution(self, session):
        assert session.begin_execution() is False
        session.set_plan(_plan())
        session.confirm_plan()
        assert session.begin_execution() is True
        assert session.get_phase() == SessionPhase.EXECUTING
        assert session.get_plan().status == PlanStatus.IN_PROGRESS

    def test_update_plan_step_and_note(self, session):
        assert session.update_plan_step("s1", PlanStepStatus.COMPLETED) is False
        session.set_plan(_plan())
        assert session.update_plan_step("s1", "failed", "table exists") is True
        assert session.update_plan_step("s1", "failed") is True
        step = session.get_plan().steps[0]
        assert step.status == PlanStepStatus.FAILED
        assert step.note == "table exists"
        assert session.update_plan_step("missing", "completed") is False

    def test_complete_plan_if_done(self, session):
        session.set_plan(_plan())
        session.confirm_plan()
        session.begin_execution()
        session.update_plan_step("s1", PlanStepStatus.COMPLETED)
        assert session.complete_plan_if_done() is False
        session.update_plan_step("s2", PlanStepStatus.FAILED)
        assert session.complete_plan_if_done() is True
        assert session.get_plan().status == PlanStatus.COMPLETED
        assert session.get_phase() == SessionPhase.COMPLETED

    def test_complete_plan_ignores_draft(self, session):
        plan = _plan()
        for step in plan.steps:
            step.status = PlanStepStatus.COMPLETED
        session.set_plan(plan)
        assert session.complete_plan_if_done() is False

    def test_step_counts(self):
        plan = _plan()
        plan.steps[0].status = PlanStepStatus.COMPLETED
        assert plan.step_counts() == {"pending": 1, "in_progress": 0, "completed": 1, "failed": 0}


# ─────────────────────────────────────────────────────────────────────────────
# Snapshot
# ─────────────────────────────────────────────────────────────────────────────


class TestSnapshot:
    def test_snapshot_restores_state(self, session):
        session.set_complexity_hint(ComplexityHint.COMPLEX)
        session.add_message("user", "build it")
        session.add_tool_call(ToolCallRecord(step=1, tool_name="create_table", args={"name": "t"}, result={}))
        session.set_plan(_plan())
        session.confirm_plan()
        session.set_pending_action(_pending())

        restored = Session.from_dict(session.to_dict())

        assert restored.id == "s1"
        assert restored.workspace_id == "ws1"
        assert restored.get_status() == SessionStatus.PAUSED
        assert restored.get_phase() == SessionPhase.CONFIRMED
        assert restored.get_complexity_hint() == ComplexityHint.COMPLEX
        assert restored.get_messages()[0].content == "build it"
        assert restored.get_tool_calls()[0].args == {"name": "t"}
        assert restored.get_pending_action().action_id == "action_s1_1"
        assert restored.get_plan().status == PlanStatus.CONFIRMED
        assert restored.get_plan().steps[0].group_id == "data_layer"
        assert restored.updated_at == session.updated_at
