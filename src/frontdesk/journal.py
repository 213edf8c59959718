"""Call record journal.

Persistence for one call: the call record, its transcript turns, its event
log, and the contact/callback side effects of tool calls.  Only ``create``
is awaited by the call flow (the record must exist before anything refers to
it).  Everything else is queued onto a per-call writer task so a slow or
failing private API never delays a conversation turn; the queue is FIFO,
which keeps transcripts and events in arrival order.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from frontdesk.api_client import PrivateApiClient
from frontdesk.states import CallStatus, is_terminal_status

logger = logging.getLogger(__name__)

WriteFactory = Callable[[], Awaitable[Any]]


class CallJournal:
    def __init__(
        self,
        api: PrivateApiClient,
        call_sid: str,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
        drain_timeout: float = 10.0,
    ):
        self.api = api
        self.call_sid = call_sid
        self.log = log or logger
        self.drain_timeout = drain_timeout
        self.call_record_id: Optional[int] = None
        self.status: Optional[str] = None
        self.metadata: dict = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self._finalized = False

    @property
    def has_record(self) -> bool:
        return self.call_record_id is not None

    async def create(self, session) -> Optional[int]:
        """Create the call record. Failure leaves the journal record-less."""
        config = session.config
        metadata = {
            "to": session.called_number,
            "direction": session.direction,
            "customerData": session.customer_data,
            "company": config.company if config else None,
        }
        payload = {
            "callSid": session.call_sid,
            "companyId": session.tenant_id,
            "phoneNumberId": config.phone_number_id if config else None,
            "phoneNumber": session.caller_number,
            "calledNumber": session.called_number,
            "status": CallStatus.IN_PROGRESS.value,
            "metadata": metadata,
        }
        try:
            record = await self.api.create_call(payload)
        except Exception as e:
            self.log.error("Failed to create call record: %s", e)
            return None

        self.call_record_id = record.get("id") if isinstance(record, dict) else None
        if self.call_record_id is None:
            self.log.error("Call record response had no id: %s", record)
            return None
        self.status = CallStatus.IN_PROGRESS.value
        self.metadata = dict(metadata)
        self.log.info("Call record created with ID %s", self.call_record_id)
        return self.call_record_id

    # ── Queued writes ──

    def _submit(self, label: str, factory: WriteFactory) -> bool:
        if self._closed:
            self.log.debug("Journal closed, dropping %s", label)
            return False
        if not self.has_record:
            self.log.debug("No call record, skipping %s", label)
            return False
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._worker = asyncio.create_task(self._drain())
        self._queue.put_nowait((label, factory))
        return True

    async def _drain(self):
        while True:
            label, factory = await self._queue.get()
            try:
                await factory()
            except Exception as e:
                self.log.error("Failed to %s: %s", label, e)
            finally:
                self._queue.task_done()

    def record_transcript(self, turn) -> bool:
        body = [turn.to_api()]
        return self._submit(
            "save transcript",
            lambda: self.api.add_transcripts(self.call_sid, body),
        )

    def record_event(self, event_type: str, payload: dict | None = None) -> bool:
        return self._submit(
            f"log event {event_type}",
            lambda: self.api.add_event(self.call_sid, event_type, payload),
        )

    def update(self, **fields) -> bool:
        """PATCH the call record. ``metadata`` is merged into what was sent before."""
        extra = fields.pop("metadata", None)
        if extra:
            self.metadata.update(extra)
        body = dict(fields)
        if self.metadata:
            body["metadata"] = dict(self.metadata)
        return self._submit(
            "update call",
            lambda: self.api.update_call(self.call_sid, body),
        )

    def update_status(self, status, **fields) -> bool:
        """Update the record status; a terminal status is never replaced."""
        value = getattr(status, "value", status)
        if is_terminal_status(self.status):
            self.log.debug("Call already %s, ignoring status %s", self.status, value)
            return False
        if not self.has_record:
            return False
        self.status = value
        return self.update(status=value, **fields)

    def defer(self, label: str, factory: WriteFactory) -> bool:
        """Queue an arbitrary side effect behind the writes already submitted."""
        return self._submit(label, factory)

    # ── Terminal write ──

    def finalize(
        self,
        start_time: float,
        end_time: float,
        close_code: Any = None,
        close_reason: str = "",
    ) -> bool:
        """The single end-of-call write. Later calls return False."""
        if self._finalized:
            return False
        self._finalized = True
        if not self.has_record:
            return False

        duration = int(end_time - start_time) if start_time > 0 else 0
        fields = {
            "endedAt": datetime.fromtimestamp(end_time, tz=timezone.utc).isoformat(),
            "duration": max(duration, 0),
            "metadata": {"close_code": close_code, "close_reason": close_reason},
        }
        if is_terminal_status(self.status):
            self.update(**fields)
        else:
            self.update_status(CallStatus.DISCONNECTED, **fields)
        self.log.info("Call marked %s after %ss", self.status, fields["duration"])
        return True

    async def close(self):
        """Flush queued writes (bounded by ``drain_timeout``) and stop the writer."""
        if self._closed:
            return
        self._closed = True
        if self._queue is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            self.log.warning(
                "Journal drain timed out with %d writes pending", self._queue.qsize()
            )
        finally:
            if self._worker:
                self._worker.cancel()
