"""Specialist hand-off service on ``/warm-transfer``.

The model talks to the caller until it decides a specialist is needed.  Its
``transfer_call_to_agent`` tool parks the caller in a queue named after the
call and asks jambonz to place an outbound call whose leg is served by
``/dial-specialist``, which dequeues the caller once the specialist has
heard the summary.
"""

import json
import logging
from typing import Any

from frontdesk.api_client import PrivateApiClient
from frontdesk.config import Settings
from frontdesk.engine import RealtimeEngine
from frontdesk.lifecycle import contained
from frontdesk.logs import call_logger
from frontdesk.prompts import build_warm_transfer_instructions
from frontdesk.tenant import resolve_config
from frontdesk.tools import WARM_TRANSFER_TOOL, WARM_TRANSFER_TOOLS
from frontdesk.transfer import parse_destination

logger = logging.getLogger(__name__)

SPECIALIST_HOOK = "/dial-specialist"
CONSULTATION_HOOK = "/consultationDone"
HOLD_MESSAGE = "Please hold while we connect you to a specialist."
TRANSFER_STARTED = "Successfully initiated transfer to specialist."
TRANSFER_FAILED = "Failed to transfer call"
RATE_LIMITED = "Sorry, you have exceeded your OpenAI rate limits."
GENERIC_ERROR = "Sorry, there was an error processing your request."


def rate_limit_message(retry_after: int | None) -> str:
    if retry_after is None:
        return RATE_LIMITED
    return f"{RATE_LIMITED} Please try again in {retry_after} seconds."


class WarmTransferFlow:
    def __init__(
        self,
        transport,
        api: PrivateApiClient,
        settings: Settings,
        *,
        engine: RealtimeEngine | None = None,
    ):
        self.transport = transport
        self.api = api
        self.settings = settings
        self.engine = engine or RealtimeEngine(settings)
        self.log = call_logger(__name__, transport.call_sid, transport.caller)
        self.conversation_summary = ""
        self.hooks = {
            "/event": self.handle_event,
            "/final": self.handle_final,
            "/toolCall": self.handle_tool_call,
            CONSULTATION_HOOK: self.handle_consultation_done,
        }

    @contained
    async def start(self) -> None:
        self.log.info("New warm-transfer call from %s to %s", self.transport.caller, self.transport.called)
        config = await resolve_config(self.api, self.transport.called, self.settings)

        if not self.engine.available:
            self.log.warning("Missing OPENAI_API_KEY, hanging up")
            self.transport.hangup()
            await self.transport.send()
            return

        instructions = build_warm_transfer_instructions(config.company_name or self.settings.company_name)
        self.transport.answer().pause(1).llm(**self.engine.llm_verb(
            instructions, config.voice, config.temperature, WARM_TRANSFER_TOOLS,
        )).hangup()
        await self.transport.send()

    async def handle_event(self, evt: dict) -> None:
        self.log.debug("Model event: %s", evt.get("type"))

    @contained
    async def handle_final(self, evt: dict) -> None:
        try:
            signal = self.engine.parse_final(evt)
            self.log.info("Model session completed: %s", signal.reason)
            if signal.fatal:
                if signal.error_code == "rate_limit_exceeded":
                    text = rate_limit_message(signal.retry_after)
                else:
                    text = GENERIC_ERROR
                self.log.error("Model error: %s", signal.message or signal.reason)
                self.transport.say(text).hangup()
        finally:
            await self.transport.reply()

    @contained
    async def handle_tool_call(self, evt: dict) -> None:
        name = evt.get("name") or ""
        tool_call_id = evt.get("tool_call_id") or ""
        self.log.info("Tool called: %s (%s)", name, tool_call_id)

        if name != WARM_TRANSFER_TOOL:
            await self.engine.send_tool_error(self.transport, tool_call_id, f"Unknown tool: {name}")
            return

        try:
            args = evt.get("args") or {}
            if isinstance(args, str):
                args = json.loads(args)
            self.conversation_summary = args.get("conversation_summary") or ""

            await self.engine.send_tool_output(self.transport, tool_call_id, {
                "success": True,
                "message": TRANSFER_STARTED,
            })
            queue = self.transport.call_sid
            self.transport.say(HOLD_MESSAGE).enqueue(name=queue, actionHook=CONSULTATION_HOOK)
            await self.transport.send()
            await self.transport.send_command("dial", {
                "call_hook": SPECIALIST_HOOK,
                "from": self.settings.caller_id or self.transport.caller,
                "to": parse_destination(self.settings.agent_number, self.settings.transfer_trunk),
                "tag": {
                    "conversation_summary": self.conversation_summary,
                    "queue": queue,
                },
            })
        except Exception:
            self.log.exception("Error transferring call")
            await self.engine.send_tool_error(self.transport, tool_call_id, TRANSFER_FAILED)

    async def handle_consultation_done(self, evt: dict) -> None:
        self.log.info("Consultation done: %s", evt.get("queue_result") or evt)
        await self.transport.reply()

    async def handle_error(self, error: Any) -> None:
        self.log.error("Session error: %s", error)

    async def close(self, code: Any = None, reason: str = "") -> None:
        self.log.info("Warm-transfer session closed (code=%s reason=%s)", code, reason)
