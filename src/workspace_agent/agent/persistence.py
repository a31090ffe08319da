"""
agent/persistence.py — Session Persisters

The session store writes a full snapshot through a SessionPersister after
every observable mutation. In-memory state stays authoritative; persisters
only make sessions survive a process restart (e.g. across a confirmation
pause).

SQLiteSessionPersister stores one JSON snapshot row per session:

    persister = SQLiteSessionPersister("./data/sqlite/sessions.db")
    await persister.init()
    store = SessionStore(persister=persister)
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import aiosqlite

from workspace_agent.agent.session import Session
from workspace_agent.exceptions import PersistenceError
from workspace_agent.observability.logger import get_logger

if TYPE_CHECKING:
    from workspace_agent.config.settings import Settings

log = get_logger(__name__)


class SessionPersister(ABC):
    """Optional durable backing for the SessionStore."""

    @abstractmethod
    async def save(self, session: Session) -> None: ...

    @abstractmethod
    async def load(self, session_id: str) -> Optional[Session]: ...

    @abstractmethod
    async def list_by_workspace(self, workspace_id: str) -> list[Session]: ...

    @abstractmethod
    async def remove(self, session_id: str) -> None: ...


# ── Schema DDL ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS agent_sessions (
    id            TEXT PRIMARY KEY,
    workspace_id  TEXT NOT NULL,
    user_id       TEXT NOT NULL,
    status        TEXT NOT NULL,
    phase         TEXT NOT NULL,
    snapshot      TEXT NOT NULL,      -- Session.to_dict() as JSON
    updated_at    REAL NOT NULL,
    saved_at      REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_agent_sessions_workspace ON agent_sessions(workspace_id);
"""


class SQLiteSessionPersister(SessionPersister):
    """Async SQLite-backed persister (one JSON snapshot per session)."""

    def __init__(self, db_path: str = "./data/sqlite/sessions.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        """Create the database file and tables if they don't exist."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        log.info("session_persister.initialized", db_path=self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError(
                "SQLiteSessionPersister is not initialised (or has been closed). "
                "Call `await persister.init()` before use."
            )
        return self._db

    # ── SessionPersister ──────────────────────────────────────────────────────

    async def save(self, session: Session) -> None:
        db = self._require_db()
        snapshot = session.to_dict()
        await db.execute(
            """INSERT INTO agent_sessions
               (id, workspace_id, user_id, status, phase, snapshot, updated_at, saved_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 workspace_id=excluded.workspace_id,
                 user_id=excluded.user_id,
                 status=excluded.status,
                 phase=excluded.phase,
                 snapshot=excluded.snapshot,
                 updated_at=excluded.updated_at,
                 saved_at=excluded.saved_at""",
            (
                snapshot["id"],
                snapshot["workspace_id"],
                snapshot["user_id"],
                snapshot["status"],
                snapshot["phase"],
                json.dumps(snapshot, ensure_ascii=False, default=str),
                snapshot["updated_at"],
                time.time(),
            ),
        )
        await db.commit()

    async def load(self, session_id: str) -> Optional[Session]:
        db = self._require_db()
        cursor = await db.execute(
            "SELECT snapshot FROM agent_sessions WHERE id=?", (session_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Session.from_dict(json.loads(row["snapshot"]))

    async def list_by_workspace(self, workspace_id: str) -> list[Session]:
        db = self._require_db()
        cursor = await db.execute(
            "SELECT snapshot FROM agent_sessions WHERE workspace_id=? ORDER BY updated_at DESC",
            (workspace_id,),
        )
        rows = await cursor.fetchall()
        return [Session.from_dict(json.loads(r["snapshot"])) for r in rows]

    async def remove(self, session_id: str) -> None:
        db = self._require_db()
        await db.execute("DELETE FROM agent_sessions WHERE id=?", (session_id,))
        await db.commit()


async def persister_from_settings(settings: "Settings") -> Optional[SQLiteSessionPersister]:
    """Initialised SQLite persister for persistence.sqlite_path, or None when unset."""
    path = settings.persistence.sqlite_path
    if not path:
        return None
    persister = SQLiteSessionPersister(path)
    await persister.init()
    return persister
