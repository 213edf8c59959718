"""Announcement-synchronized call transfer.

``transfer_call`` only records where the caller should go.  The dial waits
for the model to finish saying so: the first assistant transcript after the
request arms a settle timer, and the dial goes out when it fires.  Dialing
straight from the tool call would talk over the announcement.

    NONE -> PENDING -> ANNOUNCED -> DIALING -> COMPLETED | FAILED

A failed dial doesn't end the call; the model is restarted with a
callback-only prompt.
"""

import logging
from typing import Optional

from frontdesk.config import Settings
from frontdesk.engine import RealtimeEngine
from frontdesk.journal import CallJournal
from frontdesk.session import CallSession, TransferDescriptor
from frontdesk.states import (
    CallStatus,
    DialStatus,
    SessionState,
    TransferState,
)
from frontdesk.timers import ScheduledTask
from frontdesk.tools import callback_tools

logger = logging.getLogger(__name__)

PRE_DIAL_PAUSE_S = 1
DIAL_ACTION_HOOK = "/dialAction"


def parse_destination(number: str, trunk: str = "") -> str:
    """Route a bare number through the transfer trunk when one is configured."""
    if trunk and "@" not in number:
        return f"{number}@{trunk}"
    return number


def _is_known_failure(status: str) -> bool:
    try:
        return DialStatus(status).is_failure
    except ValueError:
        return False


class TransferOrchestrator:
    def __init__(
        self,
        session: CallSession,
        transport,
        journal: CallJournal,
        engine: RealtimeEngine,
        settings: Settings,
        *,
        settle_delay: Optional[float] = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.session = session
        self.transport = transport
        self.journal = journal
        self.engine = engine
        self.settings = settings
        self.log = log or logger
        self.state = TransferState.NONE
        self.last_dialed: Optional[TransferDescriptor] = None
        delay = settings.transfer_settle_delay_s if settle_delay is None else settle_delay
        self._dial_timer = ScheduledTask(delay, self._dial, label="transfer dial")

    @property
    def context(self):
        return self.session.context

    @property
    def pending(self) -> Optional[TransferDescriptor]:
        return self.context.transfer_pending

    @property
    def in_progress(self) -> bool:
        return self.context.transfer_in_progress

    def request(self, descriptor: TransferDescriptor) -> bool:
        """Record a transfer request. Returns False while a dial is already out."""
        if self.state is TransferState.DIALING:
            self.log.warning(
                "Transfer to %s rejected, dial to %s still in progress",
                descriptor.department,
                self.last_dialed.department if self.last_dialed else "?",
            )
            return False

        if self.pending is not None:
            self.log.info(
                "Replacing pending transfer to %s with %s",
                self.pending.department,
                descriptor.department,
            )
        self.context.transfer_pending = descriptor
        if self.state is not TransferState.ANNOUNCED:
            # Already announced: the armed timer dials whatever is pending when it fires
            self.context.transfer_announced = False
            self.state = TransferState.PENDING
        return True

    def on_assistant_transcript(self) -> bool:
        """Arm the dial after the model's announcement. Returns True if armed."""
        if self.session.closed or self.pending is None or self.context.transfer_announced:
            return False
        descriptor = self.pending
        self.context.transfer_announced = True
        self.context.transfer_in_progress = True
        self.state = TransferState.ANNOUNCED
        self.session.state = SessionState.TRANSFERRING
        self.log.info(
            "Assistant announced transfer to %s; dialing %s in %ss",
            descriptor.department,
            descriptor.transfer_number,
            self._dial_timer.delay,
        )
        self._dial_timer.start()
        return True

    def dial_target(self, number: str) -> str:
        return parse_destination(number, self.settings.transfer_trunk)

    def dial_verb(self, descriptor: TransferDescriptor) -> dict:
        company = self.session.company_name or self.settings.company_name
        return {
            "target": [{"type": "phone", "number": self.dial_target(descriptor.transfer_number)}],
            "answerOnBridge": True,
            "actionHook": DIAL_ACTION_HOOK,
            "headers": {
                "X-Conversation-Summary": descriptor.summary,
                "X-Department": descriptor.department,
                "X-Transfer-Reason": descriptor.reason,
                "X-Caller-Info": descriptor.caller_info,
                "X-Company": company,
            },
        }

    async def _dial(self):
        if self.session.closed:
            return
        descriptor = self.pending
        if descriptor is None:
            return

        self.log.info("Dialing %s for %s department", descriptor.transfer_number, descriptor.department)
        self.state = TransferState.DIALING
        self.last_dialed = descriptor
        error: Optional[Exception] = None
        try:
            self.transport.pause(PRE_DIAL_PAUSE_S).dial(**self.dial_verb(descriptor))
            await self.transport.send()
        except Exception as e:
            error = e
        finally:
            self.context.transfer_pending = None

        if error is not None:
            self.log.error("Failed to send dial to %s: %s", descriptor.transfer_number, error)
            await self.on_dial_result(DialStatus.FAILED.value, {"error": str(error)})
            return
        self.journal.record_event("transfer_dialed", {
            "department": descriptor.department,
            "transfer_number": descriptor.transfer_number,
        })

    async def on_dial_result(self, status: str, evt: dict | None = None) -> None:
        evt = evt or {}
        status = (status or "").lower()
        self.log.info("Dial action result: %s", status)

        if status == DialStatus.IN_PROGRESS.value:
            # Agent leg answered; the bridge is up but not finished
            return

        try:
            if status == DialStatus.COMPLETED.value:
                self.state = TransferState.COMPLETED
                self.journal.update_status(
                    CallStatus.TRANSFERRED,
                    metadata={"transfer_completed": True, "transfer_status": status},
                )
            elif _is_known_failure(status):
                await self._fail(status)
            else:
                # Missing or unrecognized statuses still end the dial
                self.log.warning("Unexpected dial status %r, treating as failed", status)
                await self._fail(status or DialStatus.FAILED.value)
        finally:
            self.context.transfer_in_progress = False
            if not self.session.closed:
                self.session.state = SessionState.CONVERSING

    async def _fail(self, status: str) -> None:
        self.state = TransferState.FAILED
        self.context.offer_callback = True
        self.journal.update_status(
            CallStatus.TRANSFER_FAILED,
            metadata={"transfer_failed": True, "transfer_failure_reason": status},
        )
        if self.session.closed:
            return
        self.log.info("Transfer failed (%s); offering a callback with voice %s", status, self.session.voice)
        await self.engine.start_callback_session(
            self.transport, self.session, callback_tools(self.session.caller_number),
        )

    def cancel(self) -> None:
        self._dial_timer.cancel()
