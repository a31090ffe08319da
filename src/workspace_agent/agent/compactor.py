"""
agent/compactor.py — Rolling Conversation Compaction

Once a session's message log grows past `threshold`, everything before a
safe cutoff is folded into one system-role summary:

    [summary] + messages[cutoff:]

The cutoff starts at len - keep_recent and walks back until the message just
before it is a user turn. Every assistant tool call and its tool reply then
sit on the same side of the boundary. With no such boundary in the prefix,
nothing happens this round.

The summary is rule-based: user requests, tool executions grouped by
(name, success), tables created, UI-schema operations and short error texts.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Optional

from workspace_agent.agent.session import MessageEntry, Session
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)

_REQUEST_PREVIEW = 200
_ERROR_PREVIEW = 100

_UI_SCHEMA_TOOLS = frozenset({"generate_ui_schema", "modify_ui_schema"})

_TABLE_NAME_RE = re.compile(
    r"""(?:created\s+table|table\s+created)\s*[:\s]\s*["'`]?([A-Za-z_][\w]*)""",
    re.IGNORECASE,
)
_TABLE_NAME_FALLBACK_RE = re.compile(r"""table\s+["'`]([A-Za-z_][\w]*)["'`]""", re.IGNORECASE)

SUMMARY_HEADER = "[Conversation summary of earlier turns]"


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _table_from_output(content: str) -> Optional[str]:
    m = _TABLE_NAME_RE.search(content) or _TABLE_NAME_FALLBACK_RE.search(content)
    return m.group(1) if m else None


def summarize(messages: list[MessageEntry]) -> str:
    """Rule-based digest of a message prefix."""
    requests: list[str] = []
    executions: Counter[tuple[str, bool]] = Counter()
    tables: list[str] = []
    ui_ops: list[str] = []
    errors: list[str] = []

    for msg in messages:
        if msg.role == "user":
            requests.append(_truncate(msg.content, _REQUEST_PREVIEW))
        elif msg.role == "tool":
            name = str(msg.metadata.get("tool", "") or "unknown")
            success = bool(msg.metadata.get("success", False))
            executions[(name, success)] += 1

            if success and name == "create_table":
                table = _table_from_output(msg.content)
                if table and table not in tables:
                    tables.append(table)
            if name in _UI_SCHEMA_TOOLS:
                ui_ops.append(f"{name} ({'ok' if success else 'failed'})")
            if not success:
                errors.append(f"{name}: {_truncate(msg.content, _ERROR_PREVIEW)}")
        elif msg.role == "system" and msg.content.startswith(SUMMARY_HEADER):
            # Carry an earlier summary forward rather than nesting it
            requests.append(_truncate(msg.content[len(SUMMARY_HEADER):], _REQUEST_PREVIEW))

    lines = [SUMMARY_HEADER]
    if requests:
        lines.append("User requests:")
        lines.extend(f"- {r}" for r in requests)
    if executions:
        lines.append("Tool executions:")
        for (name, success), count in executions.items():
            lines.append(f"- {name} [{'success' if success else 'failed'}] x{count}")
    if tables:
        lines.append("Tables created: " + ", ".join(tables))
    if ui_ops:
        lines.append("UI schema operations: " + ", ".join(ui_ops))
    if errors:
        lines.append("Errors:")
        lines.extend(f"- {e}" for e in errors)
    return "\n".join(lines)


class Compactor:
    """Replaces the older prefix of a session's log with a summary message."""

    def __init__(self, threshold: int = 40, keep_recent: int = 10):
        self.threshold = threshold
        self.keep_recent = keep_recent

    def find_cutoff(self, messages: list[MessageEntry]) -> int:
        """Index of the first kept message, or 0 when there's nothing safe to fold."""
        if len(messages) <= self.threshold:
            return 0
        cutoff = len(messages) - self.keep_recent
        if cutoff <= 1:
            return 0
        while messages[cutoff - 1].role != "user":
            cutoff -= 1
            if cutoff <= 1:
                return 0
        return cutoff

    def compact(self, session: Session) -> bool:
        """Compact in place. Returns True if the log was rewritten."""
        messages = session.get_messages()
        cutoff = self.find_cutoff(messages)
        if cutoff == 0:
            return False

        summary = MessageEntry(
            role="system",
            content=summarize(messages[:cutoff]),
            metadata={"type": "summary", "compacted": cutoff},
        )
        session.replace_messages([summary, *messages[cutoff:]])
        log.info(
            "compactor.compacted",
            session_id=session.id,
            folded=cutoff,
            kept=len(messages) - cutoff,
        )
        return True
