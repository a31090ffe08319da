"""
skills/registry.py — Skill Registry

A skill bundles tools with a system-prompt block. Enabling a skill loads its
tools into the ToolRegistry (names already taken are skipped) and adds its
prompt block to the system prompt. The ToolRegistry is append-only, so
disabling a skill does not deregister anything: the engine hides the tools
of disabled skills when it filters the tool list for a step.

Usage:
    skills = SkillRegistry(tool_registry)
    skills.register(planning_skill(store))
    skills.disable("planning")
    prompt_block = skills.build_system_prompt()
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Optional

from workspace_agent.exceptions import (
    BuiltinProtectedError,
    DuplicateRegistrationError,
    SkillNotFoundError,
)
from workspace_agent.observability.logger import get_logger
from workspace_agent.tools.tool_registry import ToolRegistry
from workspace_agent.tools.types import AgentTool

log = get_logger(__name__)


@dataclass
class Skill:
    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = "general"
    system_prompt: str = ""
    tools: list[AgentTool] = field(default_factory=list)
    enabled: bool = True
    builtin: bool = False

    @property
    def tool_names(self) -> list[str]:
        return [t.name for t in self.tools]


class SkillRegistry:
    """Thread-safe skill catalog with runtime enable/disable."""

    _EDITABLE_FIELDS = frozenset({"name", "description", "icon", "category", "system_prompt"})

    def __init__(self, tool_registry: Optional[ToolRegistry] = None) -> None:
        self._skills: dict[str, Skill] = {}
        self._lock = threading.RLock()
        self._tool_registry = tool_registry

    # ── Write ─────────────────────────────────────────────────────────────────

    def register(self, skill: Skill) -> None:
        """Add a skill. Enabled skills load their tools right away."""
        with self._lock:
            if skill.id in self._skills:
                raise DuplicateRegistrationError("skill", skill.id)
            self._skills[skill.id] = skill
        log.info("skill.registered", skill_id=skill.id, tools=skill.tool_names, enabled=skill.enabled)
        if skill.enabled and self._tool_registry is not None:
            self._load_tools(skill, self._tool_registry)

    def enable(self, skill_id: str, tool_registry: Optional[ToolRegistry] = None) -> None:
        registry = tool_registry or self._tool_registry
        with self._lock:
            skill = self._require(skill_id)
            skill.enabled = True
        if registry is not None:
            self._load_tools(skill, registry)
        log.info("skill.enabled", skill_id=skill_id)

    def disable(self, skill_id: str) -> None:
        with self._lock:
            self._require(skill_id).enabled = False
        log.info("skill.disabled", skill_id=skill_id)

    def update(self, skill_id: str, **changes) -> Skill:
        """Edit display fields and prompt. Built-ins are read-only."""
        unknown = set(changes) - self._EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"unknown skill fields: {sorted(unknown)}")
        with self._lock:
            skill = self._require(skill_id)
            if skill.builtin:
                raise BuiltinProtectedError("skill", skill_id)
            for key, value in changes.items():
                setattr(skill, key, value)
            return copy.copy(skill)

    def delete(self, skill_id: str) -> None:
        with self._lock:
            skill = self._require(skill_id)
            if skill.builtin:
                raise BuiltinProtectedError("skill", skill_id)
            del self._skills[skill_id]
        log.info("skill.deleted", skill_id=skill_id)

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, skill_id: str) -> Optional[Skill]:
        with self._lock:
            skill = self._skills.get(skill_id)
            # Shallow: tool instances are shared, not copied
            return copy.copy(skill) if skill else None

    def list(self, enabled_only: bool = False) -> list[Skill]:
        with self._lock:
            return [
                copy.copy(s) for s in self._skills.values()
                if s.enabled or not enabled_only
            ]

    def disabled_tool_names(self) -> set[str]:
        """Tools owned only by disabled skills; a tool shared with an enabled skill stays visible."""
        with self._lock:
            enabled = {n for s in self._skills.values() if s.enabled for n in s.tool_names}
            disabled = {n for s in self._skills.values() if not s.enabled for n in s.tool_names}
        return disabled - enabled

    def build_system_prompt(self) -> str:
        """Prompt block for the enabled skills, or "" when none contribute one."""
        with self._lock:
            blocks = [
                f"## {s.name}\n{s.system_prompt.strip()}"
                for s in self._skills.values()
                if s.enabled and s.system_prompt.strip()
            ]
        if not blocks:
            return ""
        return "====\n\n# Skills\n\n" + "\n\n".join(blocks)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _require(self, skill_id: str) -> Skill:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillNotFoundError(skill_id)
        return skill

    @staticmethod
    def _load_tools(skill: Skill, registry: ToolRegistry) -> None:
        loaded = []
        for tool in skill.tools:
            try:
                registry.register(tool)
            except DuplicateRegistrationError:
                continue
            loaded.append(tool.name)
        if loaded:
            log.debug("skill.tools_loaded", skill_id=skill.id, tools=loaded)

    def __contains__(self, skill_id: object) -> bool:
        with self._lock:
            return skill_id in self._skills

    def __len__(self) -> int:
        with self._lock:
            return len(self._skills)
