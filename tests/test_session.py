from datetime import datetime, timezone

from frontdesk.session import CallbackRequest, CallSession, TranscriptTurn, TransferDescriptor
from frontdesk.states import (
    CallbackStatus,
    CallStatus,
    DialStatus,
    SessionState,
    is_terminal_status,
)


class TestCallSession:
    def test_defaults(self):
        s = CallSession(call_sid="CA1")
        assert s.caller_number == "unknown"
        assert s.state is SessionState.NEW
        assert s.closed is False
        assert s.context.transfer_pending is None
        assert s.tenant_id is None
        assert s.config_source is None

    def test_sessions_do_not_share_state(self):
        a = CallSession(call_sid="CA1")
        b = CallSession(call_sid="CA2")
        a.transcripts.append(TranscriptTurn(role="caller", text="hi"))
        a.collected_data["callerName"] = "Jane"
        a.context.end_requested = True
        assert b.transcripts == []
        assert b.collected_data == {}
        assert b.context.end_requested is False


class TestTransferDescriptor:
    def test_summary(self):
        d = TransferDescriptor("billing", "invoice question", "Jane, Acme Co", "8811001")
        assert d.summary == (
            "Transfer to billing department. Reason: invoice question. Caller info: Jane, Acme Co"
        )


class TestCallbackRequest:
    def test_new_request_is_pending(self):
        req = CallbackRequest("CB12345678", "+14155551212", "tomorrow 10am", "invoice")
        assert req.status is CallbackStatus.PENDING
        payload = req.to_api()
        assert payload["status"] == "pending"
        assert "scheduledFor" not in payload

    def test_scheduled_for_included_when_set(self):
        req = CallbackRequest("CB1", "+1", "2026-01-02T10:00:00", "x", scheduled_for="2026-01-02T10:00:00")
        assert req.to_api()["scheduledFor"] == "2026-01-02T10:00:00"


class TestTranscriptTurn:
    def test_to_api(self):
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert TranscriptTurn("assistant", "Hello", ts).to_api() == {
            "role": "assistant",
            "text": "Hello",
            "timestamp": "2026-01-01T00:00:00+00:00",
        }


class TestStates:
    def test_terminal_statuses(self):
        assert is_terminal_status(CallStatus.COMPLETED)
        assert is_terminal_status("transferred")
        assert is_terminal_status("disconnected")
        assert not is_terminal_status(CallStatus.TRANSFER_FAILED)
        assert not is_terminal_status("transferred_to_sales")
        assert not is_terminal_status(None)

    def test_dial_failures(self):
        assert DialStatus.BUSY.is_failure
        assert DialStatus.NO_ANSWER.is_failure
        assert not DialStatus.IN_PROGRESS.is_failure
        assert not DialStatus.COMPLETED.is_failure
