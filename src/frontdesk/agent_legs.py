"""Services for the agent side of a transfer.

``/dial-agent`` answers an outbound leg placed to an agent, whispers the
conversation summary and bridges the agent into the parent call.
``/dial-specialist`` does the same for a specialist picking a caller out of
a named queue.
"""

import logging
from typing import Any

from frontdesk.logs import call_logger

logger = logging.getLogger(__name__)

AGENT_ANNOUNCEMENT = (
    "You have an incoming customer call. If you are available, please stay on "
    "the line and I will connect you now."
)
SPECIALIST_ANNOUNCEMENT = "Incoming call transferred to specialist."
SPECIALIST_CONNECTING = "Now you will be connected to the caller."
CALLER_HUNG_UP = "I'm sorry, the caller hung up."


class AgentLegFlow:
    def __init__(self, transport):
        self.transport = transport
        self.log = call_logger(__name__, transport.call_sid)
        self.hooks = {"/dequeue": self.handle_dequeue}

    @property
    def summary(self) -> str:
        return self.transport.customer_data.get("conversation_summary") or ""

    async def start(self) -> None:
        raise NotImplementedError

    async def handle_dequeue(self, evt: dict) -> None:
        result = evt.get("dequeue_result")
        self.log.info("Dequeue result: %s", result)
        if result == "timeout":
            self.transport.say(CALLER_HUNG_UP).hangup()
        elif result == "bridged":
            self.log.info("Caller connected")
        else:
            self.transport.hangup()
        await self.transport.reply()

    async def handle_error(self, error: Any) -> None:
        self.log.error("Session error: %s", error)

    async def close(self, code: Any = None, reason: str = "") -> None:
        self.log.info("Agent leg closed (code=%s reason=%s)", code, reason)


class DialAgentFlow(AgentLegFlow):
    async def start(self) -> None:
        self.log.info("Agent leg for parent call %s", self.transport.parent_call_sid)
        self.transport.answer().tag({
            "conversation_summary": self.summary or "Customer transfer",
        }).pause(1).say(self.summary or AGENT_ANNOUNCEMENT).bridge(
            call_sid=self.transport.parent_call_sid,
            whisperHook="/whisper",
        )
        await self.transport.send()


class DialSpecialistFlow(AgentLegFlow):
    async def start(self) -> None:
        queue = self.transport.customer_data.get("queue") or ""
        self.log.info("Specialist leg dequeuing from %s", queue or "<no queue>")
        self.transport.say(self.summary or SPECIALIST_ANNOUNCEMENT).say(SPECIALIST_CONNECTING).dequeue(
            name=queue,
            beep=True,
            timeout=2,
            actionHook="/dequeue",
        )
        await self.transport.send()

    async def handle_dequeue(self, evt: dict) -> None:
        # A dequeue that neither bridged nor timed out leaves the specialist on the line
        if evt.get("dequeue_result") not in ("timeout", "bridged"):
            self.log.info("Dequeue result: %s", evt.get("dequeue_result"))
            await self.transport.reply()
            return
        await super().handle_dequeue(evt)
