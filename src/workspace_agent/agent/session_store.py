"""
agent/session_store.py — Centralized Session Store

Owns all Session objects (session_id → Session). An asyncio.Lock guards the
map; each Session guards its own contents.

With a persister configured, misses consult it before creating, and
persist() writes a snapshot through after every observable mutation.
Persister failures are logged and swallowed: the in-memory session stays
authoritative.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from workspace_agent.agent.persistence import SessionPersister
from workspace_agent.agent.session import Session
from workspace_agent.observability.logger import get_logger

log = get_logger(__name__)


class SessionStore:
    """Async-safe session store shared by the engine and the plan tools."""

    def __init__(self, persister: Optional[SessionPersister] = None):
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._persister = persister

    @property
    def persister(self) -> Optional[SessionPersister]:
        return self._persister

    # ── Lookup / create ───────────────────────────────────────────────────────

    async def get_or_create(
        self,
        session_id: str,
        workspace_id: str,
        user_id: str,
        persona_id: str = "",
    ) -> Session:
        """Idempotent on session_id: the same object comes back every time."""
        session = await self.get(session_id)
        if session is not None:
            return session

        created = Session(
            session_id=session_id,
            workspace_id=workspace_id,
            user_id=user_id,
            persona_id=persona_id,
        )
        async with self._lock:
            # Another task may have created it while we were loading
            session = self._sessions.setdefault(session_id, created)
        if session is created:
            log.info(
                "session_store.created",
                session_id=session_id,
                workspace_id=workspace_id,
                persona_id=persona_id or None,
            )
            await self._save(session)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """Return the live session, loading it from the persister on a miss."""
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is not None or self._persister is None:
            return session

        loaded = await self._load(session_id)
        if loaded is None:
            return None
        async with self._lock:
            return self._sessions.setdefault(session_id, loaded)

    async def list_sessions(self, workspace_id: str) -> list[Session]:
        """Sessions bound to a workspace. Live instances win over persisted copies."""
        async with self._lock:
            live = {sid: s for sid, s in self._sessions.items() if s.workspace_id == workspace_id}

        if self._persister is None:
            return list(live.values())

        try:
            persisted = await self._persister.list_by_workspace(workspace_id)
        except Exception as e:  # noqa: BLE001
            log.warning("session_store.list_failed", workspace_id=workspace_id, error=str(e))
            return list(live.values())

        result = [live.pop(s.id, s) for s in persisted]
        result.extend(live.values())
        return result

    # ── Mutation ──────────────────────────────────────────────────────────────

    async def delete(self, session_id: str) -> bool:
        """Remove from memory and from the persister. True if it existed anywhere."""
        async with self._lock:
            existed = self._sessions.pop(session_id, None) is not None

        if self._persister is not None:
            try:
                if not existed:
                    existed = await self._persister.load(session_id) is not None
                await self._persister.remove(session_id)
            except Exception as e:  # noqa: BLE001
                log.warning("session_store.remove_failed", session_id=session_id, error=str(e))

        if existed:
            log.info("session_store.deleted", session_id=session_id)
        return existed

    async def persist(self, session_id: str) -> None:
        """Snapshot and write through. No-op without a persister or for unknown ids."""
        if self._persister is None:
            return
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            await self._save(session)

    # ── Persister helpers ─────────────────────────────────────────────────────

    async def _save(self, session: Session) -> None:
        if self._persister is None:
            return
        try:
            await self._persister.save(session)
        except Exception as e:  # noqa: BLE001
            log.warning(
                "session_store.persist_failed",
                session_id=session.id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _load(self, session_id: str) -> Optional[Session]:
        try:
            return await self._persister.load(session_id)  # type: ignore[union-attr]
        except Exception as e:  # noqa: BLE001
            log.warning("session_store.load_failed", session_id=session_id, error=str(e))
            return None

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def count(self) -> int:
        """Number of live (in-memory) sessions."""
        return len(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __repr__(self) -> str:
        return f"<SessionStore sessions={len(self._sessions)} persister={self._persister!r}>"
