"""
skills/personas.py — Persona Catalog

A persona narrows what the agent can do and how it presents itself:

    allowed_tools   tool-name allowlist (empty = every registered tool)
    system_prompt   prompt delta appended after the Web Creator prompt
    suggestions     canned starter prompts for the UI

Built-ins (web_creator, data_analyst, ui_designer, workflow_designer) are
always present. They can be relabelled but never removed or restructured.
Custom personas are added and removed at runtime.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Optional

from workspace_agent.exceptions import (
    BuiltinProtectedError,
    DuplicateRegistrationError,
    PersonaNotFoundError,
)
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)

DEFAULT_PERSONA_ID = "web_creator"


@dataclass
class Persona:
    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = "general"
    system_prompt: str = ""
    allowed_tools: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    builtin: bool = False

    def allows(self, tool_name: str) -> bool:
        return not self.allowed_tools or tool_name in self.allowed_tools


# ─────────────────────────────────────────────────────────────────────────────
# Built-in personas
# ─────────────────────────────────────────────────────────────────────────────

_PLAN_TOOLS = ["create_plan", "update_plan"]

_DATA_ANALYST_PROMPT = """\
====

# Persona: Data Analyst

You are acting as a **Data Analyst** for this workspace.
- Read the schema with get_workspace_info before writing any query
- Answer with numbers taken from query_data results, never estimates
- Summarise findings in short bullet points and name the tables you used
- Do not create or alter tables; suggest schema changes instead"""

_UI_DESIGNER_PROMPT = """\
====

# Persona: UI Designer

You are acting as a **UI Designer** for this workspace.
- Always read the current schema with get_ui_schema before changing it
- Prefer modify_ui_schema for targeted edits over regenerating the whole app
- Call get_block_spec for any block type you have not configured yet
- Keep navigation labels short and consistent"""

_WORKFLOW_DESIGNER_PROMPT = """\
====

# Persona: Workflow Designer

You are acting as a **Workflow Designer** for this workspace.
- Map the business process as triggers, steps and outcomes before building
- Reuse existing tables; read them with get_workspace_info first
- Describe every status transition the workflow introduces"""


def builtin_personas() -> list[Persona]:
    return [
        Persona(
            id=DEFAULT_PERSONA_ID,
            name="Web Creator",
            description="Builds complete web applications: data, UI, logic and publishing.",
            icon="Globe",
            category="builder",
            suggestions=[
                "Build an employee management system",
                "Create a customer CRM with a sales dashboard",
                "Add a status column to the orders table",
            ],
            builtin=True,
        ),
        Persona(
            id="data_analyst",
            name="Data Analyst",
            description="Explores workspace data and answers questions with queries.",
            icon="BarChart3",
            category="analysis",
            system_prompt=_DATA_ANALYST_PROMPT,
            allowed_tools=["get_workspace_info", "get_ui_schema", "query_data", *_PLAN_TOOLS],
            suggestions=[
                "What tables do I have?",
                "How many orders were created this month?",
                "Which customers have the most open tickets?",
            ],
            builtin=True,
        ),
        Persona(
            id="ui_designer",
            name="UI Designer",
            description="Designs and refines pages, navigation and blocks.",
            icon="LayoutDashboard",
            category="design",
            system_prompt=_UI_DESIGNER_PROMPT,
            allowed_tools=[
                "get_workspace_info", "get_ui_schema", "get_block_spec",
                "generate_ui_schema", "modify_ui_schema", "deploy_component",
                "attempt_completion", *_PLAN_TOOLS,
            ],
            suggestions=[
                "Add a dashboard page with KPI cards",
                "Hide the detail page from navigation",
                "Turn the users table into a card list",
            ],
            builtin=True,
        ),
        Persona(
            id="workflow_designer",
            name="Workflow Designer",
            description="Models business processes and automations.",
            icon="Activity",
            category="automation",
            system_prompt=_WORKFLOW_DESIGNER_PROMPT,
            allowed_tools=[
                "get_workspace_info", "query_data", "get_logic", "deploy_logic",
                "create_workflow", "modify_workflow", "suggest_workflow",
                "attempt_completion", *_PLAN_TOOLS,
            ],
            suggestions=[
                "Create an approval workflow for leave requests",
                "Notify the owner when an order is shipped",
            ],
            builtin=True,
        ),
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────────────


class PersonaRegistry:
    """Thread-safe persona catalog. Readers get copies."""

    _DISPLAY_FIELDS = frozenset({"name", "description", "icon", "suggestions"})
    _STRUCTURAL_FIELDS = frozenset({"category", "system_prompt", "allowed_tools"})

    def __init__(self, include_builtins: bool = True) -> None:
        self._personas: dict[str, Persona] = {}
        self._lock = threading.RLock()
        if include_builtins:
            for persona in builtin_personas():
                self._personas[persona.id] = persona

    def register(self, persona: Persona) -> None:
        with self._lock:
            if persona.id in self._personas:
                raise DuplicateRegistrationError("persona", persona.id)
            self._personas[persona.id] = copy.deepcopy(persona)
        log.info("persona.registered", persona_id=persona.id, tools=len(persona.allowed_tools))

    def unregister(self, persona_id: str) -> None:
        with self._lock:
            persona = self._personas.get(persona_id)
            if persona is None:
                raise PersonaNotFoundError(persona_id)
            if persona.builtin:
                raise BuiltinProtectedError("persona", persona_id)
            del self._personas[persona_id]
        log.info("persona.unregistered", persona_id=persona_id)

    def get(self, persona_id: str) -> Optional[Persona]:
        with self._lock:
            persona = self._personas.get(persona_id)
            return copy.deepcopy(persona) if persona else None

    def require(self, persona_id: str) -> Persona:
        persona = self.get(persona_id)
        if persona is None:
            raise PersonaNotFoundError(persona_id)
        return persona

    def list(self, category: Optional[str] = None) -> list[Persona]:
        with self._lock:
            return [
                copy.deepcopy(p)
                for p in self._personas.values()
                if category is None or p.category == category
            ]

    def update(self, persona_id: str, **changes) -> Persona:
        """
        Change fields in place. Built-ins accept display fields only
        (name, description, icon, suggestions).
        """
        unknown = set(changes) - self._DISPLAY_FIELDS - self._STRUCTURAL_FIELDS
        if unknown:
            raise ValueError(f"unknown persona fields: {sorted(unknown)}")
        with self._lock:
            persona = self._personas.get(persona_id)
            if persona is None:
                raise PersonaNotFoundError(persona_id)
            if persona.builtin and set(changes) & self._STRUCTURAL_FIELDS:
                raise BuiltinProtectedError("persona", persona_id)
            for key, value in changes.items():
                setattr(persona, key, copy.deepcopy(value))
            return copy.deepcopy(persona)

    def __contains__(self, persona_id: object) -> bool:
        with self._lock:
            return persona_id in self._personas

    def __len__(self) -> int:
        with self._lock:
            return len(self._personas)
