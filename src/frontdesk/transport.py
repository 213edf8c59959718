"""jambonz WebSocket application protocol (``ws-jambonz-v1``).

jambonz opens one WebSocket per call leg.  It sends ``session:new`` when the
call arrives, ``verb:hook`` when a verb's action hook fires (``/final``,
``/dialAction``, ...), ``llm:event`` / ``llm:tool-call`` from a running
``llm`` verb, and status notifications.  The application answers hooks with
an ``ack`` carrying the next batch of verbs, pushes unsolicited verbs with a
``redirect`` command, and returns tool results with ``llm:tool-output``.

Messages for a call are handled one at a time in arrival order.  Handler
exceptions are logged here and never reach the socket loop, and every
message that expects an ack gets exactly one.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

SUBPROTOCOL = "ws-jambonz-v1"

Hook = Callable[[dict], Awaitable[None]]


class TelephonySession:
    """Outbound verb stream for one call.

    Verb methods queue and return ``self`` so a turn reads as one chain::

        await session.answer().pause(2).llm(**opts).send()
    """

    def __init__(self, call_sid: str, data: dict | None = None):
        self.call_sid = call_sid
        self.data = data or {}
        self.closed = False
        self._verbs: list[dict] = []
        self._pending_ack: Optional[str] = None

    # ── Call attributes from session:new ──

    @property
    def caller(self) -> str:
        return self.data.get("from") or self.data.get("caller_id") or "unknown"

    @property
    def called(self) -> str:
        return self.data.get("to") or self.data.get("called_number") or ""

    @property
    def direction(self) -> str:
        return self.data.get("direction") or "inbound"

    @property
    def parent_call_sid(self) -> str:
        return self.data.get("parent_call_sid") or ""

    @property
    def customer_data(self) -> dict:
        return self.data.get("customerData") or self.data.get("customer_data") or {}

    @property
    def queued_verbs(self) -> list[dict]:
        return list(self._verbs)

    @property
    def awaiting_ack(self) -> bool:
        return self._pending_ack is not None

    # ── Verbs ──

    def _verb(self, verb: str, /, **opts) -> "TelephonySession":
        self._verbs.append({"verb": verb, **opts})
        return self

    def answer(self):
        return self._verb("answer")

    def pause(self, length: float):
        return self._verb("pause", length=length)

    def say(self, text: str, **opts):
        return self._verb("say", text=text, **opts)

    def tag(self, data: dict):
        return self._verb("tag", data=data)

    def llm(self, **opts):
        return self._verb("llm", **opts)

    def dial(self, **opts):
        return self._verb("dial", **opts)

    def bridge(self, **opts):
        return self._verb("bridge", **opts)

    def enqueue(self, **opts):
        return self._verb("enqueue", **opts)

    def dequeue(self, **opts):
        return self._verb("dequeue", **opts)

    def hangup(self):
        return self._verb("hangup")

    # ── Sending ──

    def expect_ack(self, msgid: str) -> None:
        self._pending_ack = msgid

    async def send(self) -> None:
        """Flush queued verbs: as the ack if a message is waiting for one, else as a redirect."""
        verbs, self._verbs = self._verbs, []
        if self.closed:
            if verbs:
                logger.debug("[%s] session closed, dropping %d verbs", self.call_sid, len(verbs))
            return
        if self._pending_ack is not None:
            msgid, self._pending_ack = self._pending_ack, None
            await self._transmit({"type": "ack", "msgid": msgid, "data": verbs})
        elif verbs:
            await self._transmit({
                "type": "command",
                "command": "redirect",
                "queueCommand": False,
                "data": verbs,
            })

    async def reply(self) -> None:
        """Acknowledge the hook being handled, with whatever verbs are queued."""
        await self.send()

    async def send_tool_output(self, tool_call_id: str, data: Any) -> None:
        if self.closed:
            return
        await self._transmit({
            "type": "command",
            "command": "llm:tool-output",
            "tool_call_id": tool_call_id,
            "data": data,
        })

    async def send_command(self, command: str, data: dict) -> None:
        if self.closed:
            return
        await self._transmit({"type": "command", "command": command, "data": data})

    async def _transmit(self, message: dict) -> None:
        raise NotImplementedError


class WebSocketTelephonySession(TelephonySession):
    def __init__(self, websocket: WebSocket, call_sid: str, data: dict | None = None):
        super().__init__(call_sid, data)
        self.websocket = websocket

    async def _transmit(self, message: dict) -> None:
        await self.websocket.send_text(json.dumps(message))


class CallFlow(Protocol):
    """What a WebSocket route needs from the per-call handler object."""

    hooks: dict[str, Hook]

    async def start(self) -> None: ...

    async def close(self, code: Any = None, reason: str = "") -> None: ...

    async def handle_error(self, error: Any) -> None: ...


FlowFactory = Callable[[TelephonySession], CallFlow]

DEFAULT_HOOKS = {
    "llm:event": "/event",
    "llm:tool-call": "/toolCall",
}


async def guarded(label: str, call_sid: str, awaitable: Awaitable[Any]) -> None:
    """Await a handler, logging instead of raising."""
    try:
        await awaitable
    except Exception:
        logger.exception("[%s] %s handler failed", call_sid, label)


class JambonzConnection:
    """Reads one jambonz WebSocket and routes messages to call flows."""

    def __init__(self, websocket: WebSocket, factory: FlowFactory, path: str = ""):
        self.websocket = websocket
        self.factory = factory
        self.path = path
        self.sessions: dict[str, tuple[TelephonySession, CallFlow]] = {}

    async def serve(self) -> None:
        code: Any = None
        reason = ""
        try:
            while True:
                raw = await self.websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("%s: ignoring non-JSON message: %.200s", self.path, raw)
                    continue
                if not isinstance(message, dict):
                    logger.warning("%s: ignoring non-object message: %.200s", self.path, raw)
                    continue
                await self.dispatch(message)
        except WebSocketDisconnect as e:
            code = e.code
            reason = getattr(e, "reason", "") or ""
        finally:
            for call_sid, (session, flow) in list(self.sessions.items()):
                session.closed = True
                await guarded("close", call_sid, flow.close(code, reason))
            self.sessions.clear()

    async def dispatch(self, message: dict) -> None:
        msg_type = message.get("type", "")
        call_sid = message.get("call_sid", "")
        msgid = message.get("msgid")
        data = message.get("data") or {}

        if msg_type == "session:new":
            session = WebSocketTelephonySession(self.websocket, call_sid, data)
            if msgid:
                session.expect_ack(msgid)
            flow = self.factory(session)
            self.sessions[call_sid] = (session, flow)
            await guarded("session:new", call_sid, flow.start())
            await self._ensure_ack(session)
            return

        entry = self.sessions.get(call_sid)
        if entry is None:
            logger.warning("%s: %s for unknown call %s", self.path, msg_type, call_sid)
            return
        session, flow = entry

        if msg_type in ("verb:hook", "llm:event", "llm:tool-call"):
            hook = message.get("hook") or DEFAULT_HOOKS.get(msg_type, "")
            if msgid and msg_type == "verb:hook":
                session.expect_ack(msgid)
            handler = flow.hooks.get(hook)
            if handler is None:
                logger.info("[%s] no handler for %s %s", call_sid, msg_type, hook)
            else:
                await guarded(hook, call_sid, handler(data))
            await self._ensure_ack(session)
        elif msg_type == "call:status":
            logger.info("[%s] call status: %s", call_sid, data.get("call_status"))
        elif msg_type == "verb:status":
            logger.debug("[%s] verb status: %s", call_sid, data)
        elif msg_type == "jambonz:error":
            await guarded("error", call_sid, flow.handle_error(data))
        else:
            logger.debug("[%s] ignoring message type %s", call_sid, msg_type)

    async def _ensure_ack(self, session: TelephonySession) -> None:
        if session.awaiting_ack:
            await guarded("ack", session.call_sid, session.send())
