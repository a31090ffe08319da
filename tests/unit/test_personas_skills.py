"""
tests/unit/test_personas_skills.py — Persona Catalog + Skill Registry Tests
"""

from __future__ import annotations

from typing import Any, ClassVar

import pytest

from workspace_agent.exceptions import (
    BuiltinProtectedError,
    DuplicateRegistrationError,
    PersonaNotFoundError,
    SkillNotFoundError,
)
from workspace_agent.skills.personas import DEFAULT_PERSONA_ID, Persona, PersonaRegistry
from workspace_agent.skills.registry import Skill, SkillRegistry
from workspace_agent.tools.tool_registry import ToolRegistry
from workspace_agent.tools.types import AgentTool, ToolContext, ToolDescriptor, ToolResult


class _ChartTool(AgentTool):
    descriptor: ClassVar[ToolDescriptor] = ToolDescriptor(name="render_chart", description="Render a chart.")

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        return ToolResult.ok()


class _SharedTool(AgentTool):
    descriptor: ClassVar[ToolDescriptor] = ToolDescriptor(name="query_data", description="Query.")

    async def execute(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        return ToolResult.ok()


def _skill(skill_id="charts", enabled=True, tools=None, prompt="Use render_chart for trends.", builtin=False):
    return Skill(
        id=skill_id,
        name=skill_id.title(),
        system_prompt=prompt,
        tools=tools if tools is not None else [_ChartTool()],
        enabled=enabled,
        builtin=builtin,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Personas
# ─────────────────────────────────────────────────────────────────────────────


class TestPersonas:
    def test_builtin_personas_present(self):
        registry = PersonaRegistry()
        ids = {p.id for p in registry.list()}
        assert ids == {DEFAULT_PERSONA_ID, "data_analyst", "ui_designer", "workflow_designer"}
        web = registry.require(DEFAULT_PERSONA_ID)
        assert web.allowed_tools == []
        assert web.allows("anything")

    def test_persona_allowlist(self):
        analyst = PersonaRegistry().require("data_analyst")
        assert analyst.allows("query_data")
        assert not analyst.allows("create_table")

    def test_list_by_category(self):
        registry = PersonaRegistry()
        assert [p.id for p in registry.list(category="analysis")] == ["data_analyst"]

    def test_register_and_unregister_custom(self):
        registry = PersonaRegistry(include_builtins=False)
        registry.register(Persona(id="support", name="Support", allowed_tools=["query_data"]))
        assert "support" in registry and len(registry) == 1
        with pytest.raises(DuplicateRegistrationError):
            registry.register(Persona(id="support", name="Again"))
        registry.unregister("support")
        assert registry.get("support") is None
        with pytest.raises(PersonaNotFoundError):
            registry.unregister("support")

    def test_builtins_cannot_be_removed_or_restructured(self):
        registry = PersonaRegistry()
        with pytest.raises(BuiltinProtectedError):
            registry.unregister("data_analyst")
        with pytest.raises(BuiltinProtectedError):
            registry.update("data_analyst", allowed_tools=["create_table"])
        assert "create_table" not in registry.require("data_analyst").allowed_tools

        updated = registry.update("data_analyst", name="Analyst", suggestions=["Top customers?"])
        assert updated.name == "Analyst"
        assert registry.require("data_analyst").suggestions == ["Top customers?"]

    def test_update_rejects_unknown_fields(self):
        registry = PersonaRegistry()
        with pytest.raises(ValueError):
            registry.update("data_analyst", colour="blue")
        with pytest.raises(PersonaNotFoundError):
            registry.update("ghost", name="x")

    def test_readers_get_copies(self):
        registry = PersonaRegistry()
        copy = registry.require("ui_designer")
        copy.allowed_tools.append("delete_table")
        assert "delete_table" not in registry.require("ui_designer").allowed_tools


# ─────────────────────────────────────────────────────────────────────────────
# Skills
# ─────────────────────────────────────────────────────────────────────────────


class TestSkills:
    def test_enabled_skill_loads_tools(self):
        tools = ToolRegistry()
        skills = SkillRegistry(tools)
        skills.register(_skill())
        assert tools.is_registered("render_chart")
        assert "charts" in skills and len(skills) == 1

    def test_disabled_skill_loads_on_enable(self):
        tools = ToolRegistry()
        skills = SkillRegistry(tools)
        skills.register(_skill(enabled=False))
        assert not tools.is_registered("render_chart")
        assert skills.disabled_tool_names() == {"render_chart"}

        skills.enable("charts")
        assert tools.is_registered("render_chart")
        assert skills.disabled_tool_names() == set()

    def test_enable_twice_skips_registered_tools(self):
        tools = ToolRegistry()
        skills = SkillRegistry(tools)
        skills.register(_skill())
        skills.disable("charts")
        skills.enable("charts")
        assert tools.list_names() == ["render_chart"]

    def test_tool_shared_with_enabled_skill_stays_visible(self):
        tools = ToolRegistry()
        skills = SkillRegistry(tools)
        skills.register(_skill("reports", tools=[_SharedTool()]))
        skills.register(_skill("analytics", tools=[_SharedTool(), _ChartTool()], enabled=False))
        assert skills.disabled_tool_names() == {"render_chart"}

    def test_build_system_prompt(self):
        skills = SkillRegistry()
        assert skills.build_system_prompt() == ""
        skills.register(_skill("charts", prompt="  Use render_chart.  "))
        skills.register(_skill("quiet", prompt=""))
        skills.register(_skill("off", enabled=False, prompt="hidden"))
        assert skills.build_system_prompt() == "====\n\n# Skills\n\n## Charts\nUse render_chart."

    def test_list_enabled_only(self):
        skills = SkillRegistry()
        skills.register(_skill("a"))
        skills.register(_skill("b", enabled=False))
        assert [s.id for s in skills.list()] == ["a", "b"]
        assert [s.id for s in skills.list(enabled_only=True)] == ["a"]

    def test_update_and_delete_custom_skill(self):
        skills = SkillRegistry()
        skills.register(_skill())
        updated = skills.update("charts", description="Charts and graphs")
        assert updated.description == "Charts and graphs"
        assert skills.get("charts").description == "Charts and graphs"
        with pytest.raises(ValueError):
            skills.update("charts", tools=[])
        skills.delete("charts")
        assert skills.get("charts") is None

    def test_builtin_skill_is_protected(self):
        skills = SkillRegistry()
        skills.register(_skill("planning", builtin=True))
        with pytest.raises(BuiltinProtectedError):
            skills.update("planning", name="x")
        with pytest.raises(BuiltinProtectedError):
            skills.delete("planning")
        # Enable / disable are still allowed
        skills.disable("planning")
        assert not skills.get("planning").enabled

    def test_unknown_skill_raises(self):
        skills = SkillRegistry()
        with pytest.raises(SkillNotFoundError):
            skills.enable("ghost")
        with pytest.raises(SkillNotFoundError):
            skills.disable("ghost")
        with pytest.raises(DuplicateRegistrationError):
            skills.register(_skill("a"))
            skills.register(_skill("a"))
