"""
workspace_agent — Agent Execution Core

Phase-aware tool-calling engine for the workspace builder: sessions with a
planning → confirmed → executing → completed lifecycle, a streamed ReAct
loop with human confirmation of side-effecting tools, and rolling
conversation compaction.

Public API:
    from workspace_agent.agent import Engine, SessionStore, EventType
    from workspace_agent.tools import ToolRegistry, AgentTool, ToolResult
"""

__version__ = "0.1.0"
