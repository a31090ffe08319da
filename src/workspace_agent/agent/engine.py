"""
agent/engine.py — Agent Engine (ReAct loop)

Drives a session from a user message to a final answer, a pause for human
confirmation, a max-steps error or a cancellation. Each Run works in its own
asyncio task and reports through an EventStream.

Per step:
    1. stop if the Run was cancelled or the session was marked failed
    2. filter tools: registry ∩ persona allowlist ∩ planning-phase set,
       minus the tools of disabled skills
    3. assemble the system prompt and replay the session log to the adapter
    4. think (bounded by step_timeout_seconds) → thought event + assistant message
    5. no action        → message + done, session completed
       unknown tool     → failed tool_result, loop continues
       needs approval   → pending action, confirmation_required, Run ends
       otherwise        → execute (bounded), tool_result, tool message + record
    6. compact the log when it has grown past the threshold

Confirm() resolves a pending action without resuming the loop; the caller
starts a new Run to continue. Cancel() marks the session failed; a Run in
flight notices as soon as its current think or tool call returns, and ends
with a "cancelled" error without touching the status again.

Usage:
    engine = Engine.from_settings(settings)          # in-memory sessions
    engine = await Engine.open(settings)             # + SQLite when configured
    stream = engine.run("ws1", "u1", "build an employee system", "sess-1")
    async for event in stream:
        ...
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Optional

from workspace_agent.agent.classifier import classify
from workspace_agent.agent.compactor import Compactor
from workspace_agent.agent.events import AgentEvent, EventStream
from workspace_agent.agent.persistence import persister_from_settings
from workspace_agent.agent.prompt_builder import PromptBuilder
from workspace_agent.agent.session import (
    ComplexityHint,
    MessageEntry,
    PendingAction,
    Session,
    SessionPhase,
    SessionStatus,
    ToolCallRecord,
)
from workspace_agent.agent.session_store import SessionStore
from workspace_agent.brain.adapter import LLMAdapter
from workspace_agent.brain.llm_client import BaseLLMClient, LLMError
from workspace_agent.brain.types import Message, RunConfig, ToolCall
from workspace_agent.config.settings import AgentConfig
from workspace_agent.exceptions import (
    PendingActionNotFoundError,
    SessionNotFoundError,
    ToolNotFoundError,
)
from workspace_agent.observability.logger import bind_session, clear_session, get_logger
from workspace_agent.skills.personas import Persona, PersonaRegistry
from workspace_agent.skills.registry import SkillRegistry
from workspace_agent.tools.tool_registry import ToolRegistry
from workspace_agent.tools.types import ToolContext, ToolDescriptor, ToolResult

if TYPE_CHECKING:
    from workspace_agent.config.settings import Settings

log = get_logger(__name__)

# Read-only tools plus create_plan: all the model may call before a plan is confirmed
PLANNING_PHASE_TOOLS = frozenset({"get_workspace_info", "get_ui_schema", "create_plan", "query_data"})

ERR_CANCELLED = "cancelled"
ERR_MAX_STEPS = "reached maximum steps"
ERR_PAUSED = "session is paused awaiting confirmation"


def to_provider_messages(entries: list[MessageEntry]) -> list[Message]:
    """
    Replay a session log in tool-calling shape.

    Tool entries without a tool_call_id are skipped. An assistant tool call
    with no tool reply yet (paused or cancelled) is sent as plain prose so
    the provider never sees an unanswered call.
    """
    answered = {e.tool_call_id for e in entries if e.role == "tool" and e.tool_call_id}
    out: list[Message] = []
    for e in entries:
        if e.role == "user":
            out.append(Message.user(e.content))
        elif e.role == "system":
            out.append(Message.system(e.content))
        elif e.role == "assistant":
            call_id = e.tool_call_id
            name = str(e.metadata.get("tool_call_name", "") or "")
            if call_id and name and call_id in answered:
                raw = e.metadata.get("tool_call_args") or "{}"
                try:
                    args = json.loads(raw) if isinstance(raw, str) else dict(raw)
                except ValueError:
                    args = {"_raw": raw}
                if not isinstance(args, dict):
                    args = {"_raw": args}
                out.append(Message.assistant(e.content, [ToolCall(id=call_id, name=name, arguments=args)]))
            else:
                out.append(Message.assistant(e.content))
        elif e.role == "tool" and e.tool_call_id:
            out.append(Message.tool(e.tool_call_id, e.content, name=str(e.metadata.get("tool", "") or "")))
    return out


class Engine:
    """
    Phase-aware tool-calling engine.

    Inject all dependencies via the constructor; use from_settings() to wire
    the defaults (plan tools registered, personas and skills catalogs, an
    adapter built from the configured credentials).
    """

    def __init__(
        self,
        registry: ToolRegistry,
        sessions: SessionStore,
        llm: LLMAdapter,
        config: Optional[AgentConfig] = None,
        personas: Optional[PersonaRegistry] = None,
        skills: Optional[SkillRegistry] = None,
        compactor: Optional[Compactor] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self._registry = registry
        self._sessions = sessions
        self._llm = llm
        self._config = config or AgentConfig()
        self._personas = personas
        self._skills = skills
        self._compactor = compactor or Compactor(
            threshold=self._config.compaction_threshold,
            keep_recent=self._config.keep_recent,
        )
        self._prompts = prompt_builder or PromptBuilder()

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    # ─────────────────────────────────────────────────────────────────────────
    # Public: Run
    # ─────────────────────────────────────────────────────────────────────────

    def run(
        self,
        workspace_id: str,
        user_id: str,
        message: str,
        session_id: str,
        *,
        persona_id: str = "",
        run_config: Optional[RunConfig] = None,
    ) -> EventStream:
        """Start a Run and return its stream immediately. Needs a running event loop."""
        stream = EventStream(session_id, maxsize=self._config.event_buffer)
        task = asyncio.get_running_loop().create_task(
            self._run(stream, workspace_id, user_id, message, session_id, persona_id, run_config),
            name=f"agent-run:{session_id}",
        )
        stream.attach(task)
        return stream

    async def _run(
        self,
        stream: EventStream,
        workspace_id: str,
        user_id: str,
        message: str,
        session_id: str,
        persona_id: str,
        run_config: Optional[RunConfig],
    ) -> None:
        bind_session(session_id, user_id, workspace_id)
        session: Optional[Session] = None
        try:
            session = await self._sessions.get_or_create(session_id, workspace_id, user_id, persona_id)
            if session.get_status() == SessionStatus.PAUSED:
                log.info("engine.run.rejected_paused", pending=getattr(session.get_pending_action(), "action_id", None))
                await stream.send(AgentEvent.error_event(session_id, ERR_PAUSED))
                return

            persona = self._resolve_persona(session.persona_id or persona_id)
            await self._begin(session, message)
            log.info(
                "engine.run.start",
                phase=session.get_phase().value,
                hint=session.get_complexity_hint().value or None,
                persona_id=persona.id if persona else None,
            )
            await self._loop(stream, session, persona, run_config)

        except asyncio.CancelledError:
            log.info("engine.run.cancelled")
            stream.send_nowait(AgentEvent.error_event(session_id, ERR_CANCELLED))
            if session is not None:
                session.mark_failed()
                await self._sessions.persist(session_id)
        except Exception as e:
            log.error("engine.run.error", error=str(e), error_type=type(e).__name__, exc_info=True)
            await stream.send(AgentEvent.error_event(session_id, f"{type(e).__name__}: {e}"))
            if session is not None:
                session.mark_failed()
                await self._sessions.persist(session_id)
        finally:
            stream.finish()
            clear_session()

    async def _begin(self, session: Session, message: str) -> None:
        """Status → running, phase bookkeeping, append the user turn."""
        session.set_status(SessionStatus.RUNNING)
        phase = session.get_phase()
        if phase == SessionPhase.CONFIRMED:
            session.begin_execution()
        elif phase == SessionPhase.PLANNING and session.get_complexity_hint() == ComplexityHint.UNSET:
            session.set_complexity_hint(classify(message))
        session.add_message("user", message)
        await self._sessions.persist(session.id)

    # ─────────────────────────────────────────────────────────────────────────
    # ReAct loop
    # ─────────────────────────────────────────────────────────────────────────

    async def _loop(
        self,
        stream: EventStream,
        session: Session,
        persona: Optional[Persona],
        run_config: Optional[RunConfig],
    ) -> None:
        sid = session.id
        timeout = self._config.step_timeout_seconds
        context = ToolContext(session_id=sid, workspace_id=session.workspace_id, user_id=session.user_id)

        for step in range(1, self._config.max_steps + 1):
            if self._cancelled(stream, session):
                log.info("engine.step.cancelled", step=step)
                await self._fail(stream, session, ERR_CANCELLED)
                return

            tools = self._filter_tools(session, persona)
            messages = [
                Message.system(self._system_prompt(tools, session, persona)),
                *to_provider_messages(session.get_messages()),
            ]

            # ── Think ─────────────────────────────────────────────────────────
            try:
                thought = await asyncio.wait_for(
                    self._llm.think(
                        messages,
                        [t.to_definition() for t in tools],
                        run_config=run_config,
                        session_id=sid,
                        step=step,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                log.warning("engine.think.timeout", step=step, timeout=timeout)
                await self._fail(stream, session, f"step {step} timed out after {timeout:g}s")
                return
            except LLMError as e:
                log.error("engine.think.failed", step=step, error=str(e), error_type=type(e).__name__)
                await self._fail(stream, session, f"llm error: {e}")
                return

            if self._cancelled(stream, session):
                log.info("engine.think.cancelled", step=step)
                await self._fail(stream, session, ERR_CANCELLED)
                return

            await stream.send(AgentEvent.thought(sid, step, thought.content))
            meta: dict[str, Any] = {"step": step, "type": "thought"}
            action = thought.action
            if action is not None:
                meta.update(
                    tool_call_id=action.id,
                    tool_call_name=action.name,
                    tool_call_args=json.dumps(action.arguments, ensure_ascii=False),
                )
            session.add_message("assistant", thought.content, meta)
            await self._sessions.persist(sid)

            # ── Final answer ──────────────────────────────────────────────────
            if action is None:
                if self._cancelled(stream, session):
                    await self._fail(stream, session, ERR_CANCELLED)
                    return
                session.set_status(SessionStatus.COMPLETED)
                await self._sessions.persist(sid)
                await stream.send(AgentEvent.message(sid, thought.content))
                log.info("engine.run.completed", steps=step, heuristic=thought.heuristic)
                await stream.send(AgentEvent.done(sid))
                return

            # ── Act ───────────────────────────────────────────────────────────
            await stream.send(AgentEvent.tool_call(sid, step, action.name, action.arguments))
            tool = self._registry.get(action.name)
            if tool is None or action.name not in {t.name for t in tools}:
                reason = (
                    f"unknown tool: {action.name}" if tool is None
                    else f"tool {action.name!r} is not available in this session (phase or persona)"
                )
                log.warning("engine.tool.rejected", step=step, tool=action.name, reason=reason)
                result = ToolResult.fail(reason)
                await stream.send(AgentEvent.tool_result_event(sid, step, action.name, result))
                session.add_message("tool", result.observation(), {
                    "tool": action.name,
                    "error": True,
                    "success": False,
                    "step": step,
                    "tool_call_id": action.id,
                })
                await self._sessions.persist(sid)
                continue

            if tool.requires_confirmation:
                pending = PendingAction(
                    action_id=f"action_{sid}_{step}",
                    tool_name=action.name,
                    tool_args=dict(action.arguments),
                    step=step,
                    tool_call_id=action.id,
                )
                if self._cancelled(stream, session):
                    await self._fail(stream, session, ERR_CANCELLED)
                    return
                session.set_pending_action(pending)
                await self._sessions.persist(sid)
                log.info("engine.run.paused", step=step, tool=action.name, action_id=pending.action_id)
                await stream.send(AgentEvent.confirmation_required(
                    sid, step, action.name, pending.tool_args, pending.action_id,
                ))
                return

            result = await self._execute_tool(action.name, action.arguments, context)
            await stream.send(AgentEvent.tool_result_event(sid, step, action.name, result))
            self._record_execution(session, step, action.name, action.arguments, action.id, result)
            await self._sessions.persist(sid)

            if self._compactor.compact(session):
                await self._sessions.persist(sid)

        if self._cancelled(stream, session):
            await self._fail(stream, session, ERR_CANCELLED)
            return
        log.warning("engine.run.max_steps", max_steps=self._config.max_steps)
        await self._fail(stream, session, ERR_MAX_STEPS)

    @staticmethod
    def _cancelled(stream: EventStream, session: Session) -> bool:
        """Stream cancelled, or Engine.cancel() marked the session failed."""
        return stream.cancelled or session.get_status() == SessionStatus.FAILED

    async def _fail(self, stream: EventStream, session: Session, error: str) -> None:
        session.mark_failed()
        await self._sessions.persist(session.id)
        await stream.send(AgentEvent.error_event(session.id, error))

    # ─────────────────────────────────────────────────────────────────────────
    # Public: Confirm / Cancel
    # ─────────────────────────────────────────────────────────────────────────

    async def confirm(self, session_id: str, action_id: str, approved: bool) -> Optional[ToolResult]:
        """
        Resolve the session's pending action.

        Approved: execute it, record it, mark the session completed and return
        the result. Rejected: record the refusal as the tool reply, mark the
        session completed and return None. Unknown session or action id raise
        without touching the session.
        """
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        pending = session.take_pending_action(action_id)
        if pending is None:
            raise PendingActionNotFoundError(action_id)

        bind_session(session_id, session.user_id, session.workspace_id)
        try:
            if not approved:
                session.add_message("tool", f'The user rejected the "{pending.tool_name}" action.', {
                    "tool": pending.tool_name,
                    "success": False,
                    "rejected": True,
                    "step": pending.step,
                    "tool_call_id": pending.tool_call_id,
                })
                session.set_status(SessionStatus.COMPLETED)
                await self._sessions.persist(session_id)
                log.info("engine.confirm.rejected", action_id=action_id, tool=pending.tool_name)
                return None

            context = ToolContext(
                session_id=session_id,
                workspace_id=session.workspace_id,
                user_id=session.user_id,
            )
            try:
                result = await self._execute_tool(pending.tool_name, pending.tool_args, context)
                self._record_execution(
                    session, pending.step, pending.tool_name, pending.tool_args,
                    pending.tool_call_id, result, confirmed=True,
                )
            except BaseException:
                # Pending action is already taken: never leave the session paused without one
                log.warning("engine.confirm.interrupted", action_id=action_id, tool=pending.tool_name)
                session.mark_failed()
                await self._sessions.persist(session_id)
                raise
            if session.get_status() != SessionStatus.FAILED:
                session.set_status(SessionStatus.COMPLETED)
            await self._sessions.persist(session_id)
            log.info(
                "engine.confirm.executed",
                action_id=action_id,
                tool=pending.tool_name,
                success=result.success,
            )
            return result
        finally:
            clear_session()

    async def cancel(self, session_id: str) -> None:
        """Mark the session failed and drop any pending action."""
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        cleared = session.mark_failed()
        await self._sessions.persist(session_id)
        log.info(
            "engine.cancelled",
            session_id=session_id,
            pending_cleared=cleared.action_id if cleared else None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _resolve_persona(self, persona_id: str) -> Optional[Persona]:
        if not persona_id or self._personas is None:
            return None
        persona = self._personas.get(persona_id)
        if persona is None:
            log.warning("engine.persona_unknown", persona_id=persona_id)
        return persona

    def _filter_tools(self, session: Session, persona: Optional[Persona]) -> list[ToolDescriptor]:
        tools = self._registry.list_all()
        if persona is not None and persona.allowed_tools:
            tools = [t for t in tools if persona.allows(t.name)]
        if session.get_phase() == SessionPhase.PLANNING:
            tools = [t for t in tools if t.name in PLANNING_PHASE_TOOLS]
        if self._skills is not None:
            hidden = self._skills.disabled_tool_names()
            tools = [t for t in tools if t.name not in hidden]
        return tools

    def _system_prompt(
        self,
        tools: list[ToolDescriptor],
        session: Session,
        persona: Optional[Persona],
    ) -> str:
        return self._prompts.build(
            tools,
            session,
            persona_prompt=persona.system_prompt if persona else "",
            skills_prompt=self._skills.build_system_prompt() if self._skills else "",
        )

    async def _execute_tool(self, name: str, args: dict[str, Any], context: ToolContext) -> ToolResult:
        timeout = self._config.step_timeout_seconds
        try:
            return await asyncio.wait_for(self._registry.execute(name, args, context), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("engine.tool.timeout", tool=name, timeout=timeout)
            return ToolResult.fail(f"tool {name} timed out after {timeout:g}s")
        except ToolNotFoundError as e:
            return e.result or ToolResult.fail(str(e))

    @staticmethod
    def _record_execution(
        session: Session,
        step: int,
        tool_name: str,
        args: dict[str, Any],
        tool_call_id: str,
        result: ToolResult,
        confirmed: bool = False,
    ) -> None:
        """One tool message and one tool-call record, sharing the tool-call id."""
        meta: dict[str, Any] = {
            "tool": tool_name,
            "success": result.success,
            "step": step,
            "tool_call_id": tool_call_id,
        }
        if confirmed:
            meta["confirmed"] = True
        session.add_message("tool", result.observation(), meta)
        session.add_tool_call(ToolCallRecord(
            step=step,
            tool_name=tool_name,
            args=dict(args),
            result=result.model_dump(mode="json"),
            tool_call_id=tool_call_id,
        ))

    # ─────────────────────────────────────────────────────────────────────────
    # Factory
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        registry: Optional[ToolRegistry] = None,
        sessions: Optional[SessionStore] = None,
        llm_client: Optional[BaseLLMClient] = None,
        personas: Optional[PersonaRegistry] = None,
        skills: Optional[SkillRegistry] = None,
    ) -> "Engine":
        """Create an Engine from Settings. The planning skill is registered when missing."""
        from workspace_agent.tools.plan_tools import planning_skill

        registry = registry if registry is not None else ToolRegistry()
        sessions = sessions if sessions is not None else SessionStore()
        skills = skills if skills is not None else SkillRegistry(registry)
        if "planning" not in skills:
            skills.register(planning_skill(sessions))
            skills.enable("planning", registry)

        return cls(
            registry=registry,
            sessions=sessions,
            llm=LLMAdapter.from_settings(settings, client=llm_client),
            config=settings.agent,
            personas=personas if personas is not None else PersonaRegistry(),
            skills=skills,
        )

    @classmethod
    async def open(
        cls,
        settings: "Settings",
        registry: Optional[ToolRegistry] = None,
        llm_client: Optional[BaseLLMClient] = None,
        personas: Optional[PersonaRegistry] = None,
        skills: Optional[SkillRegistry] = None,
    ) -> "Engine":
        """
        from_settings() with a session store backed by the SQLite persister
        configured under persistence.sqlite_path (in-memory when unset).
        Close it with `await engine.sessions.persister.close()`.
        """
        persister = await persister_from_settings(settings)
        return cls.from_settings(
            settings,
            registry=registry,
            sessions=SessionStore(persister),
            llm_client=llm_client,
            personas=personas,
            skills=skills,
        )
