"""Per-call orchestration for the main receptionist service.

One ``CallLifecycle`` exists per call.  It owns the ``CallSession`` and
wires the model's events, tool calls and completion signal to the journal,
the tool dispatcher and the transfer orchestrator.

    NEW -> ANSWERED -> CONVERSING -> (TRANSFERRING -> CONVERSING)* -> CLOSED
"""

import functools
import json
import logging
import time
from typing import Any, Callable

from frontdesk.api_client import PrivateApiClient
from frontdesk.config import Settings
from frontdesk.contacts import resolve_contact
from frontdesk.engine import EngineEventKind, RealtimeEngine
from frontdesk.journal import CallJournal
from frontdesk.logs import call_logger
from frontdesk.post_call import log_transcript_dump
from frontdesk.prompts import build_main_instructions
from frontdesk.session import CallSession, TranscriptTurn
from frontdesk.states import CallStatus, DialStatus, SessionState
from frontdesk.tenant import resolve_config
from frontdesk.timers import ScheduledTask
from frontdesk.tools import TOOL_DEFINITIONS, ToolDispatcher
from frontdesk.transfer import TransferOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "New customer inquiry"
IDLE_GOODBYE = "It sounds like you may have stepped away. Thank you for calling, goodbye."

TRANSCRIPT_ROLES = {
    EngineEventKind.CALLER_TRANSCRIPT: "caller",
    EngineEventKind.ASSISTANT_TRANSCRIPT: "assistant",
}


def contained(handler):
    """Log a handler's exceptions instead of letting them reach the transport."""

    @functools.wraps(handler)
    async def wrapper(self, *args, **kwargs):
        try:
            return await handler(self, *args, **kwargs)
        except Exception:
            self.log.exception("%s failed", handler.__name__)

    return wrapper


class CallLifecycle:
    def __init__(
        self,
        transport,
        api: PrivateApiClient,
        settings: Settings,
        *,
        engine: RealtimeEngine | None = None,
        settle_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.api = api
        self.settings = settings
        self.engine = engine or RealtimeEngine(settings)
        self.clock = clock
        self.session = CallSession(
            call_sid=transport.call_sid,
            caller_number=transport.caller,
            called_number=transport.called,
            direction=transport.direction,
            customer_data=dict(transport.customer_data),
        )
        self.log = call_logger(__name__, self.session.call_sid, self.session.caller_number)
        self.journal = CallJournal(api, self.session.call_sid, log=self.log)
        self.transfers = TransferOrchestrator(
            self.session, transport, self.journal, self.engine, settings,
            settle_delay=settle_delay, log=self.log,
        )
        self.tools = ToolDispatcher(self.session, api, self.journal, self.transfers, settings, log=self.log)
        self._idle_timer = ScheduledTask(settings.idle_timeout_s, self._on_idle, label="idle timeout")
        self.hooks = {
            "/event": self.handle_event,
            "/toolCall": self.handle_tool_call,
            "/final": self.handle_final,
            "/dialAction": self.handle_dial_action,
            "/enqueue-result": self.handle_enqueue_result,
        }

    @property
    def context(self):
        return self.session.context

    # ── Session start ──

    @contained
    async def start(self) -> None:
        session = self.session
        session.start_time = self.clock()
        self.log.info("New incoming call from %s to %s", session.caller_number, session.called_number)

        config = await resolve_config(self.api, session.called_number, self.settings)
        session.config = config
        session.voice = config.voice
        session.temperature = config.temperature
        session.contact = await resolve_contact(self.api, config.company_id, session.caller_number)
        session.instructions = build_main_instructions(config, session.caller_number, session.contact)
        self.log.info(
            "Voice %s (%s), config %s",
            session.voice,
            "configured" if config.configured_voice else "default",
            config.config_source.value,
        )

        session.call_record_id = await self.journal.create(session)
        session.state = SessionState.ANSWERED

        if not self.engine.available:
            self.log.warning("Missing OPENAI_API_KEY, hanging up")
            self.context.end_requested = True
            self.transport.hangup()
            await self.transport.send()
            return

        summary = session.customer_data.get("conversation_summary") or DEFAULT_SUMMARY
        self.transport.answer().pause(2).tag({
            "phone_num": self.settings.agent_number,
            "conversation_summary": summary,
            "llm_enabled": True,
        })
        self.engine.start_main_session(self.transport, session, TOOL_DEFINITIONS)
        await self.transport.send()
        session.state = SessionState.CONVERSING
        self._touch()

    # ── Model callbacks ──

    @contained
    async def handle_event(self, evt: dict) -> None:
        kind = self.engine.classify_event(evt)
        role = TRANSCRIPT_ROLES.get(kind)
        if role:
            self._touch()
            text = self.engine.transcript_text(evt)
            if text:
                turn = TranscriptTurn(role=role, text=text)
                self.session.transcripts.append(turn)
                self.journal.record_transcript(turn)

        self.journal.record_event(evt.get("type") or "unknown", evt)

        if kind is EngineEventKind.ASSISTANT_TRANSCRIPT:
            self.transfers.on_assistant_transcript()

    @contained
    async def handle_tool_call(self, evt: dict) -> None:
        name = evt.get("name") or ""
        tool_call_id = evt.get("tool_call_id") or ""
        args = evt.get("args") or {}
        self._touch()
        self.log.info("Tool called: %s (%s)", name, tool_call_id)

        if isinstance(args, str):
            try:
                args = json.loads(args)
            except ValueError:
                await self.engine.send_tool_error(self.transport, tool_call_id, f"Malformed arguments for {name}")
                return

        result = await self.tools.dispatch(name, args)
        await self.engine.send_tool_output(self.transport, tool_call_id, result)
        self.journal.record_event("tool_call", {
            "name": name,
            "tool_call_id": tool_call_id,
            "success": "error" not in result and result.get("success", True),
        })

    @contained
    async def handle_final(self, evt: dict) -> None:
        try:
            self._on_final(evt)
        finally:
            await self.transport.reply()

    def _on_final(self, evt: dict) -> None:
        signal = self.engine.parse_final(evt)
        self.log.info("Model session completed: %s", signal.reason)

        if signal.fatal:
            if signal.error_code == "rate_limit_exceeded":
                self.log.error("Rate limit exceeded: %s (retry after %ss)", signal.message, signal.retry_after)
            else:
                self.log.error("Model error: %s", signal.message or "Unknown error")
            self.journal.record_event("engine_error", {
                "reason": signal.reason,
                "code": signal.error_code,
                "message": signal.message,
                "retry_after": signal.retry_after,
            })
            self.context.end_requested = True
            self.transport.hangup()
        elif signal.is_normal_end:
            if self.context.end_requested:
                self.log.info("Ending call as requested")
                self.journal.update_status(CallStatus.COMPLETED)
                self.transport.hangup()
            elif self.context.transfer_in_progress:
                self.log.info("Transfer in progress, leaving the dial to complete")
            else:
                self.log.info("Keeping session alive for continued conversation")

    @contained
    async def handle_dial_action(self, evt: dict) -> None:
        status = evt.get("dial_call_status") or ""
        self._touch()
        try:
            await self.transfers.on_dial_result(status, evt)
            if status == DialStatus.COMPLETED.value and not self.session.closed:
                # Bridged leg has ended; nothing left for the receptionist to do
                self.context.end_requested = True
                self.transport.hangup()
        finally:
            await self.transport.reply()

    @contained
    async def handle_enqueue_result(self, evt: dict) -> None:
        result = evt.get("enqueue_result")
        if result == "ok":
            self.log.info("Caller enqueued, waiting for an agent")
        else:
            self.log.error("Enqueue failed: %s", result)
        self.journal.record_event("enqueue_result", evt)
        await self.transport.reply()

    @contained
    async def handle_error(self, error: Any) -> None:
        self.log.error("Session error: %s", error)
        self.journal.record_event("session_error", {"error": str(error)})

    # ── Idle timeout ──

    def _touch(self) -> None:
        if self.settings.idle_timeout_s > 0 and not self.session.closed:
            self._idle_timer.start()

    async def _on_idle(self) -> None:
        if self.session.closed:
            return
        if self.context.transfer_in_progress:
            self._idle_timer.start()
            return
        self.log.info("No activity for %ss, ending call", self.settings.idle_timeout_s)
        self.context.end_requested = True
        self.journal.record_event("idle_timeout", {"idle_timeout_s": self.settings.idle_timeout_s})
        self.transport.say(IDLE_GOODBYE).hangup()
        await self.transport.send()

    # ── Teardown ──

    async def close(self, code: Any = None, reason: str = "") -> None:
        """End-of-call teardown. Safe to call more than once."""
        if self.session.closed:
            return
        self.session.closed = True
        self.session.state = SessionState.CLOSED
        self.transfers.cancel()
        self._idle_timer.cancel()
        self.log.info("Session closed (code=%s reason=%s)", code, reason)

        end_time = self.clock()
        try:
            self.journal.finalize(self.session.start_time, end_time, code, reason)
            log_transcript_dump(self.session, end_time, self.journal.status)
        except Exception:
            self.log.exception("End-of-call journaling failed")
        finally:
            await self.journal.close()
