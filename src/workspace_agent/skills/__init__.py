"""
skills/__init__.py — Persona & Skill Catalog

Personas narrow tool visibility and add a prompt delta; skills bundle tools
with a prompt block and can be toggled at runtime.

Usage:
    from workspace_agent.skills import PersonaRegistry, SkillRegistry, Skill
"""

from workspace_agent.skills.personas import DEFAULT_PERSONA_ID, Persona, PersonaRegistry
from workspace_agent.skills.registry import Skill, SkillRegistry

__all__ = [
    "Persona",
    "PersonaRegistry",
    "DEFAULT_PERSONA_ID",
    "Skill",
    "SkillRegistry",
]
