"""
tools/plan_tools.py — Plan Tools (create_plan / update_plan)

The two tools that drive a session's plan through its lifecycle:

    create_plan  planning phase only: store a draft plan (shown as a TodoList)
    update_plan  execution phase: move one step between statuses; once every
                 step of an in_progress plan is completed or failed, the plan
                 and the session phase become completed

Both look the session up through the shared SessionStore using
ToolContext.session_id, and write the session through after changing it.
Neither requires confirmation. Bad arguments come back as failure results,
never as exceptions.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from workspace_agent.agent.session import Plan, PlanGroup, PlanStatus, PlanStep, PlanStepStatus, SessionPhase
from workspace_agent.agent.session_store import SessionStore
from workspace_agent.observability.logger import get_logger
from workspace_agent.skills.registry import Skill
from workspace_agent.tools.tool_registry import ToolRegistry
from workspace_agent.tools.types import AgentTool, ToolContext, ToolDescriptor, ToolResult

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Argument models
# ─────────────────────────────────────────────────────────────────────────────


class _GroupArgs(BaseModel):
    id: str
    label: str = ""
    icon: str = ""


class _StepArgs(BaseModel):
    id: str = ""
    description: str = ""
    tool: str = ""
    group_id: str = ""


class _CreatePlanArgs(BaseModel):
    title: str = ""
    summary: str = ""
    groups: list[_GroupArgs] = Field(default_factory=list)
    steps: list[_StepArgs] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return v.strip()


class _UpdatePlanArgs(BaseModel):
    step_id: str = ""
    status: str = ""
    note: str = ""


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
    return f"invalid arguments ({loc}): {err.get('msg', 'invalid value')}"


# ─────────────────────────────────────────────────────────────────────────────
# create_plan
# ─────────────────────────────────────────────────────────────────────────────


class CreatePlanTool(AgentTool):
    descriptor: ClassVar[ToolDescriptor] = ToolDescriptor(
        name="create_plan",
        description=(
            "Create a development plan for the user to review. Call this once requirements "
            "are clear; the plan is shown as a TodoList and must be confirmed before execution."
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Short plan title."},
                "summary": {"type": "string", "description": "Requirements summary gathered during planning."},
                "groups": {
                    "type": "array",
                    "description": "Optional step groups, e.g. data_layer, ui_layer, verification.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "label": {"type": "string"},
                            "icon": {"type": "string"},
                        },
                        "required": ["id"],
                    },
                },
                "steps": {
                    "type": "array",
                    "description": "Ordered plan steps.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "description": {"type": "string"},
                            "tool": {"type": "string", "description": "Tool expected to perform the step."},
                            "group_id": {"type": "string"},
                        },
                        "required": ["description"],
                    },
                },
            },
            "required": ["title", "steps"],
        },
        requires_confirmation=False,
    )

    def __init__(self, store: Optional[SessionStore] = None):
        self._store = store

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        if not isinstance(args, dict):
            return ToolResult.fail("invalid arguments: expected a JSON object")
        try:
            parsed = _CreatePlanArgs.model_validate(args)
        except ValidationError as e:
            return ToolResult.fail(_first_error(e))

        if not parsed.title:
            return ToolResult.fail("title is required")
        if not parsed.steps:
            return ToolResult.fail("at least one step is required")

        session = await self._store.get(context.session_id) if self._store and context.session_id else None
        if session is not None and session.get_phase() != SessionPhase.PLANNING:
            log.warning("plan.create_rejected", session_id=session.id, phase=session.get_phase().value)
            return ToolResult.fail(
                f"create_plan is only available in the planning phase (current phase: {session.get_phase().value}); "
                "use update_plan to track the confirmed plan"
            )

        groups = [PlanGroup(id=g.id, label=g.label, icon=g.icon) for g in parsed.groups]
        group_ids = {g.id for g in groups}
        steps = [
            PlanStep(
                id=s.id or f"step_{n}",
                description=s.description,
                tool_hint=s.tool,
                status=PlanStepStatus.PENDING,
                group_id=s.group_id if s.group_id in group_ids else "",
            )
            for n, s in enumerate(parsed.steps, start=1)
        ]
        plan = Plan(
            title=parsed.title,
            status=PlanStatus.DRAFT,
            summary=parsed.summary,
            groups=groups,
            steps=steps,
        )

        if session is not None:
            session.set_plan(plan)
            await self._store.persist(session.id)  # type: ignore[union-attr]
            log.info("plan.created", session_id=session.id, steps=len(steps), groups=len(groups))
        else:
            log.debug("plan.created_without_session", session_id=context.session_id or None)

        return ToolResult.ok(
            output=f"Plan '{plan.title}' created with {len(steps)} steps. Waiting for the user to confirm.",
            data={"type": "plan", "status": PlanStatus.DRAFT.value, "plan": plan.to_dict()},
        )


# ─────────────────────────────────────────────────────────────────────────────
# update_plan
# ─────────────────────────────────────────────────────────────────────────────


class UpdatePlanTool(AgentTool):
    descriptor: ClassVar[ToolDescriptor] = ToolDescriptor(
        name="update_plan",
        description=(
            "Update the status of one plan step. Mark a step in_progress before working on it "
            "and completed (or failed, with a note) right after."
        ),
        parameters={
            "type": "object",
            "properties": {
                "step_id": {"type": "string", "description": "ID of the plan step."},
                "status": {
                    "type": "string",
                    "enum": [s.value for s in PlanStepStatus],
                },
                "note": {"type": "string", "description": "Optional note, e.g. the failure reason."},
            },
            "required": ["step_id", "status"],
        },
        requires_confirmation=False,
    )

    def __init__(self, store: Optional[SessionStore] = None):
        self._store = store

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        if not isinstance(args, dict):
            return ToolResult.fail("invalid arguments: expected a JSON object")
        try:
            parsed = _UpdatePlanArgs.model_validate(args)
        except ValidationError as e:
            return ToolResult.fail(_first_error(e))

        if not parsed.step_id:
            return ToolResult.fail("step_id is required")
        try:
            status = PlanStepStatus(parsed.status)
        except ValueError:
            allowed = ", ".join(s.value for s in PlanStepStatus)
            return ToolResult.fail(f"invalid status {parsed.status!r}; expected one of: {allowed}")

        session = await self._store.get(context.session_id) if self._store and context.session_id else None
        if session is None or session.get_plan() is None:
            return ToolResult.fail("no active plan for this session")
        if not session.update_plan_step(parsed.step_id, status, parsed.note):
            return ToolResult.fail(f"plan step {parsed.step_id!r} not found")

        completed = session.complete_plan_if_done()
        await self._store.persist(session.id)  # type: ignore[union-attr]
        plan = session.get_plan()
        log.info(
            "plan.step_updated",
            session_id=session.id,
            step_id=parsed.step_id,
            status=status.value,
            plan_completed=completed,
        )

        output = f"Step {parsed.step_id} marked {status.value}."
        if completed:
            output += " All plan steps are done; the plan is completed."
        return ToolResult.ok(
            output=output,
            data={"type": "plan_update", "plan": plan.to_dict() if plan else None},
        )


def register_plan_tools(registry: ToolRegistry, store: SessionStore) -> None:
    """Register create_plan and update_plan, skipping names already taken."""
    for tool in (CreatePlanTool(store), UpdatePlanTool(store)):
        if not registry.is_registered(tool.name):
            registry.register(tool)


_PLANNING_SKILL_PROMPT = """\
Plans are created once with create_plan during the planning phase and kept
current with update_plan during execution. Only one step should be
in_progress at a time."""


def planning_skill(store: SessionStore) -> Skill:
    """Built-in skill bundling the plan tools."""
    return Skill(
        id="planning",
        name="Planning",
        description="Create a reviewable plan and track its progress step by step.",
        icon="ListOrdered",
        category="core",
        system_prompt=_PLANNING_SKILL_PROMPT,
        tools=[CreatePlanTool(store), UpdatePlanTool(store)],
        builtin=True,
    )
