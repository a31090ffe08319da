"""
tools/__init__.py — Tool System

Public interface for the tool system. Concrete construction tools
(create_table, generate_ui_schema, ...) live with the host; only the plan
tools ship here.

Usage:
    from workspace_agent.tools import ToolRegistry, AgentTool, ToolResult

    registry = ToolRegistry()
    registry.register(MyTool())
"""

from workspace_agent.tools.tool_registry import ToolRegistry
from workspace_agent.tools.types import (
    AgentTool,
    FunctionTool,
    ToolContext,
    ToolDescriptor,
    ToolResult,
)

__all__ = [
    "ToolRegistry",
    "AgentTool",
    "FunctionTool",
    "ToolContext",
    "ToolDescriptor",
    "ToolResult",
]
