"""
tests/unit/test_session_store.py — SessionStore + SQLite Persister Tests

Uses a real aiosqlite database under tmp_path. A persister that always
raises checks that write-through failures never reach the caller.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio

from workspace_agent.agent.persistence import (
    SessionPersister,
    SQLiteSessionPersister,
    persister_from_settings,
)
from workspace_agent.agent.session import Session, SessionStatus, ToolCallRecord
from workspace_agent.agent.session_store import SessionStore
from workspace_agent.config.settings import PersistenceConfig, Settings
from workspace_agent.exceptions import PersistenceError


class _BrokenPersister(SessionPersister):
    def __init__(self):
        self.save_calls = 0

    async def save(self, session: Session) -> None:
        self.save_calls += 1
        raise OSError("disk full")

    async def load(self, session_id: str) -> Optional[Session]:
        raise OSError("disk gone")

    async def list_by_workspace(self, workspace_id: str) -> list[Session]:
        raise OSError("disk gone")

    async def remove(self, session_id: str) -> None:
        raise OSError("disk gone")


@pytest_asyncio.fixture
async def sqlite_persister(tmp_path):
    persister = SQLiteSessionPersister(str(tmp_path / "sessions.db"))
    await persister.init()
    yield persister
    await persister.close()


# ─────────────────────────────────────────────────────────────────────────────
# In-memory store
# ─────────────────────────────────────────────────────────────────────────────


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self):
        store = SessionStore()
        first = await store.get_or_create("s1", "ws1", "u1")
        second = await store.get_or_create("s1", "ws-other", "u-other")
        assert first is second
        assert second.workspace_id == "ws1"
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_concurrent_get_or_create_returns_one_session(self):
        store = SessionStore()
        sessions = await asyncio.gather(*(store.get_or_create("s1", "ws1", "u1") for _ in range(10)))
        assert all(s is sessions[0] for s in sessions)
        assert store.count == 1

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self):
        assert await SessionStore().get("missing") is None

    @pytest.mark.asyncio
    async def test_list_sessions_filters_by_workspace(self):
        store = SessionStore()
        await store.get_or_create("a", "ws1", "u1")
        await store.get_or_create("b", "ws1", "u1")
        await store.get_or_create("c", "ws2", "u1")
        ids = sorted(s.id for s in await store.list_sessions("ws1"))
        assert ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_delete(self):
        store = SessionStore()
        await store.get_or_create("s1", "ws1", "u1")
        assert await store.delete("s1") is True
        assert await store.get("s1") is None
        assert await store.delete("s1") is False

    @pytest.mark.asyncio
    async def test_persist_without_persister_is_noop(self):
        store = SessionStore()
        await store.get_or_create("s1", "ws1", "u1")
        await store.persist("s1")
        await store.persist("unknown")


# ─────────────────────────────────────────────────────────────────────────────
# SQLite persister
# ─────────────────────────────────────────────────────────────────────────────


class TestSQLitePersister:
    @pytest.mark.asyncio
    async def test_sqlite_write_through_and_reload(self, sqlite_persister):
        store = SessionStore(sqlite_persister)
        session = await store.get_or_create("s1", "ws1", "u1", persona_id="data_analyst")
        session.add_message("user", "what tables do I have?")
        session.set_status(SessionStatus.COMPLETED)
        await store.persist("s1")

        # A fresh store over the same database sees the snapshot
        reloaded_store = SessionStore(sqlite_persister)
        reloaded = await reloaded_store.get("s1")
        assert reloaded is not None
        assert reloaded.persona_id == "data_analyst"
        assert reloaded.get_status() == SessionStatus.COMPLETED
        assert [m.content for m in reloaded.get_messages()] == ["what tables do I have?"]
        # Loaded sessions are cached as the live instance
        assert await reloaded_store.get("s1") is reloaded

    @pytest.mark.asyncio
    async def test_sqlite_saves_non_json_tool_data(self, sqlite_persister):
        store = SessionStore(sqlite_persister)
        session = await store.get_or_create("s1", "ws1", "u1")
        session.add_tool_call(ToolCallRecord(
            step=1,
            tool_name="query_data",
            args={},
            result={"success": True, "data": {"created_at": datetime(2024, 5, 1, 12, 30)}},
        ))
        await store.persist("s1")

        reloaded = await sqlite_persister.load("s1")
        assert reloaded.get_tool_calls()[0].result["data"]["created_at"] == "2024-05-01 12:30:00"

    @pytest.mark.asyncio
    async def test_sqlite_list_and_delete(self, sqlite_persister):
        store = SessionStore(sqlite_persister)
        await store.get_or_create("a", "ws1", "u1")
        await store.get_or_create("b", "ws1", "u1")

        fresh = SessionStore(sqlite_persister)
        live = await fresh.get_or_create("c", "ws1", "u1")
        listed = await fresh.list_sessions("ws1")
        assert sorted(s.id for s in listed) == ["a", "b", "c"]
        assert next(s for s in listed if s.id == "c") is live

        assert await fresh.delete("a") is True
        assert await sqlite_persister.load("a") is None

    @pytest.mark.asyncio
    async def test_sqlite_requires_init(self, tmp_path):
        persister = SQLiteSessionPersister(str(tmp_path / "x.db"))
        with pytest.raises(PersistenceError):
            await persister.load("s1")

    @pytest.mark.asyncio
    async def test_persister_from_settings(self, tmp_path):
        assert await persister_from_settings(Settings()) is None

        settings = Settings(persistence=PersistenceConfig(sqlite_path=str(tmp_path / "db" / "s.db")))
        persister = await persister_from_settings(settings)
        try:
            assert isinstance(persister, SQLiteSessionPersister)
            assert (tmp_path / "db" / "s.db").exists()
        finally:
            await persister.close()


# ─────────────────────────────────────────────────────────────────────────────
# Failure isolation
# ─────────────────────────────────────────────────────────────────────────────


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_persister_failures_are_swallowed(self):
        broken = _BrokenPersister()
        store = SessionStore(broken)

        session = await store.get_or_create("s1", "ws1", "u1")
        session.add_message("user", "hi")
        await store.persist("s1")

        assert broken.save_calls == 2
        assert await store.get("s1") is session
        assert await store.get("missing") is None
        assert [s.id for s in await store.list_sessions("ws1")] == ["s1"]
        assert await store.delete("s1") is True
