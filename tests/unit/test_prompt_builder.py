"""
tests/unit/test_prompt_builder.py — Prompt Assembly Tests

Checks the planning prompt per complexity hint, the execution layouts for
confirmed / executing sessions, the tool table, the context block and the
persona / skills deltas.
"""

from __future__ import annotations

import pytest

from workspace_agent.agent.classifier import classify
from workspace_agent.agent.prompt_builder import (
    PLAN_CONFIRMED_GUIDE,
    PromptBuilder,
    PromptToolEntry,
    build_web_creator_prompt,
    context_section,
    join_sections,
    tool_cost,
    tool_table_section,
)
from workspace_agent.agent.session import (
    ComplexityHint,
    Plan,
    PlanStatus,
    PlanStep,
    PlanStepStatus,
    Session,
    SessionPhase,
)
from workspace_agent.tools.types import ToolDescriptor

TOOLS = [
    ToolDescriptor(name="get_workspace_info", description="Describe the workspace tables. Returns names and columns."),
    ToolDescriptor(name="create_plan", description="Create a development plan."),
    ToolDescriptor(name="custom_thing", description="Pipes | are escaped."),
]


def _planning_session(message: str) -> Session:
    session = Session("s1", workspace_id="ws1", user_id="u1")
    session.set_complexity_hint(classify(message))
    return session


# ─────────────────────────────────────────────────────────────────────────────
# Planning modes
# ─────────────────────────────────────────────────────────────────────────────


class TestPlanningModes:
    def test_simple_planning_prompt(self):
        prompt = build_web_creator_prompt(TOOLS, _planning_session("给users表加一列status字段"))
        assert "Skip the Q&A conversation entirely" in prompt
        assert "Step 2 — Ask Clarifying Questions" not in prompt
        assert "Planning Conversation Phase (ACTIVE)" in prompt

    def test_question_planning_prompt(self):
        prompt = build_web_creator_prompt(TOOLS, _planning_session("what tables do I have?"))
        assert "Answer the question directly" in prompt
        assert "Do NOT call create_plan" in prompt

    def test_complex_planning_prompt(self):
        prompt = build_web_creator_prompt(TOOLS, _planning_session("帮我创建一个员工管理系统"))
        assert "Step 2 — Ask Clarifying Questions" in prompt
        assert "3 conversation rounds" in prompt

    def test_unset_hint_uses_complex_mode(self):
        prompt = build_web_creator_prompt(TOOLS, Session("s1"))
        assert "Step 2 — Ask Clarifying Questions" in prompt

    def test_no_session_is_planning_without_context(self):
        prompt = build_web_creator_prompt(TOOLS, None)
        assert "Planning Conversation Phase (ACTIVE)" in prompt
        assert "# Context" not in prompt

    def test_planning_prompt_omits_execution_sections(self):
        prompt = build_web_creator_prompt(TOOLS, _planning_session("build a crm"))
        assert "# Tool Use Guidelines" not in prompt
        assert "Phased Execution" not in prompt


# ─────────────────────────────────────────────────────────────────────────────
# Execution layouts
# ─────────────────────────────────────────────────────────────────────────────


class TestExecutionLayouts:
    def test_confirmed_phase_adds_plan_confirmed_guide(self):
        session = Session("s1", workspace_id="ws1", user_id="u1")
        session.set_phase(SessionPhase.CONFIRMED)
        prompt = build_web_creator_prompt(TOOLS, session)
        assert PLAN_CONFIRMED_GUIDE.strip() in prompt
        assert "# Tool Use Guidelines" in prompt
        assert "Phased Execution" in prompt
        assert "Planning Conversation Phase" not in prompt

    def test_executing_phase_has_no_confirmed_guide(self):
        session = Session("s1")
        session.set_phase(SessionPhase.EXECUTING)
        prompt = build_web_creator_prompt(TOOLS, session)
        assert PLAN_CONFIRMED_GUIDE.strip() not in prompt
        assert "Phased Execution" in prompt


# ─────────────────────────────────────────────────────────────────────────────
# Dynamic sections
# ─────────────────────────────────────────────────────────────────────────────


class TestDynamicSections:
    def test_tool_table_rows(self):
        table = tool_table_section(PromptToolEntry.from_descriptor(t) for t in TOOLS)
        assert "| Tool | When to Use | Cost |" in table
        # First sentence only
        assert "| get_workspace_info | Describe the workspace tables. | FREE |" in table
        assert "| create_plan | Create a development plan. | FREE |" in table
        assert "Pipes \\| are escaped." in table
        assert "| CHEAP |" in table

    def test_tool_table_truncates_long_descriptions(self):
        entry = PromptToolEntry(name="x", description="a" * 300, cost="CHEAP")
        row = tool_table_section([entry]).splitlines()[-1]
        assert "a" * 117 + "..." in row
        assert "a" * 118 not in row

    def test_empty_tool_table(self):
        assert tool_table_section([]) == ""

    @pytest.mark.parametrize(
        "name,cost",
        [("query_data", "FREE"), ("create_table", "CHEAP"), ("publish_app", "MODERATE"), ("unknown", "CHEAP")],
    )
    def test_tool_cost(self, name, cost):
        assert tool_cost(name) == cost

    def test_context_section_with_plan_progress(self):
        session = Session("s1", workspace_id="ws1", user_id="u1")
        session.set_plan(Plan(
            title="CRM",
            status=PlanStatus.DRAFT,
            summary="customers + deals",
            steps=[
                PlanStep(id="a", status=PlanStepStatus.COMPLETED),
                PlanStep(id="b", status=PlanStepStatus.IN_PROGRESS),
                PlanStep(id="c", status=PlanStepStatus.FAILED),
            ],
        ))
        text = context_section(session)
        assert "Current workspace_id: ws1" in text
        assert "Current user_id: u1" in text
        assert "Session phase: planning" in text
        assert "Plan: CRM (status: draft, 3 steps)" in text
        assert "Requirements summary: customers + deals" in text
        assert "Progress: 1/3 completed, 1 in progress, 1 failed" in text

    def test_context_section_without_session(self):
        assert context_section(None) == ""

    def test_join_sections_drops_empties(self):
        assert join_sections(" a ", "", "  ", "b\n") == "a\n\nb"


# ─────────────────────────────────────────────────────────────────────────────
# Persona / skills deltas
# ─────────────────────────────────────────────────────────────────────────────


class TestPersonaSkillsDeltas:
    def test_builder_appends_persona_then_skills(self):
        session = _planning_session("what tables do I have?")
        prompt = PromptBuilder().build(TOOLS, session, persona_prompt="# Persona: Analyst", skills_prompt="# Skills")
        base = build_web_creator_prompt(TOOLS, session)
        assert prompt.startswith(base)
        assert prompt.index("# Persona: Analyst") < prompt.index("# Skills")

    def test_builder_without_deltas_equals_base(self):
        session = Session("s1")
        assert PromptBuilder().build(TOOLS, session) == build_web_creator_prompt(TOOLS, session)

    def test_hint_is_read_from_session(self):
        session = Session("s1")
        session.set_complexity_hint(ComplexityHint.SIMPLE)
        assert "Skip the Q&A conversation entirely" in PromptBuilder().build([], session)
