import asyncio

import pytest

from frontdesk.api_client import ApiError
from frontdesk.journal import CallJournal
from frontdesk.session import CallSession, TranscriptTurn
from frontdesk.states import CallStatus


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_posts_in_progress_record(self, api, session):
        journal = CallJournal(api, session.call_sid)
        record_id = await journal.create(session)
        assert record_id == 42
        assert journal.has_record
        payload = api.create_call.await_args.args[0]
        assert payload["callSid"] == "CA_test_123"
        assert payload["status"] == "in_progress"
        assert payload["phoneNumber"] == session.caller_number
        assert payload["metadata"]["direction"] == "inbound"

    @pytest.mark.asyncio
    async def test_failed_create_makes_writes_noops(self, api, session):
        api.create_call.side_effect = ApiError("down")
        journal = CallJournal(api, session.call_sid)
        assert await journal.create(session) is None
        assert journal.record_event("tool_call", {}) is False
        assert journal.update(status="completed") is False
        await journal.close()
        api.add_event.assert_not_called()
        api.update_call.assert_not_called()


class TestOrdering:
    @pytest.mark.asyncio
    async def test_writes_reach_api_in_submission_order(self, api, journal):
        order = []

        async def slow_transcripts(call_sid, turns):
            await asyncio.sleep(0.01)
            order.append(("transcript", turns[0]["text"]))

        async def fast_event(call_sid, event_type, payload):
            order.append(("event", event_type))

        api.add_transcripts.side_effect = slow_transcripts
        api.add_event.side_effect = fast_event

        journal.record_transcript(TranscriptTurn(role="caller", text="first"))
        journal.record_event("second")
        journal.record_transcript(TranscriptTurn(role="assistant", text="third"))
        await journal.close()

        assert order == [("transcript", "first"), ("event", "second"), ("transcript", "third")]

    @pytest.mark.asyncio
    async def test_failed_write_does_not_stop_later_writes(self, api, journal):
        api.add_event.side_effect = [ApiError("boom"), {}]
        journal.record_event("one")
        journal.record_event("two")
        await journal.close()
        assert api.add_event.await_count == 2

    @pytest.mark.asyncio
    async def test_transcript_wire_role(self, api, journal):
        journal.record_transcript(TranscriptTurn(role="caller", text="hello"))
        await journal.close()
        call_sid, turns = api.add_transcripts.await_args.args
        assert call_sid == "CA_test_123"
        assert turns[0]["role"] == "user"
        assert turns[0]["text"] == "hello"

    @pytest.mark.asyncio
    async def test_writes_after_close_are_dropped(self, api, journal):
        await journal.close()
        assert journal.record_event("late") is False


class TestStatus:
    @pytest.mark.asyncio
    async def test_terminal_status_is_never_replaced(self, api, journal):
        assert journal.update_status(CallStatus.TRANSFERRED) is True
        assert journal.update_status(CallStatus.TRANSFER_FAILED) is False
        await journal.close()
        statuses = [c.args[1].get("status") for c in api.update_call.await_args_list]
        assert statuses == ["transferred"]
        assert journal.status == "transferred"

    @pytest.mark.asyncio
    async def test_non_terminal_statuses_may_replace_each_other(self, api, journal):
        journal.update_status(CallStatus.transferred_to("sales"))
        journal.update_status(CallStatus.TRANSFER_FAILED)
        journal.update_status(CallStatus.transferred_to("billing"))
        await journal.close()
        assert journal.status == "transferred_to_billing"
        assert api.update_call.await_count == 3

    @pytest.mark.asyncio
    async def test_metadata_is_merged(self, api, journal):
        journal.update(metadata={"a": 1})
        journal.update(metadata={"b": 2})
        await journal.close()
        last_body = api.update_call.await_args_list[-1].args[1]
        assert last_body["metadata"] == {"a": 1, "b": 2}


class TestFinalize:
    @pytest.mark.asyncio
    async def test_finalize_writes_disconnected_once(self, api, journal):
        assert journal.finalize(1000.0, 1042.5, 1000, "normal") is True
        assert journal.finalize(1000.0, 1050.0) is False
        await journal.close()
        assert api.update_call.await_count == 1
        body = api.update_call.await_args.args[1]
        assert body["status"] == "disconnected"
        assert body["duration"] == 42
        assert body["metadata"]["close_code"] == 1000
        assert "endedAt" in body

    @pytest.mark.asyncio
    async def test_finalize_keeps_terminal_status(self, api, journal):
        journal.update_status(CallStatus.COMPLETED)
        journal.finalize(1000.0, 1010.0)
        await journal.close()
        body = api.update_call.await_args.args[1]
        assert "status" not in body
        assert body["duration"] == 10
        assert journal.status == "completed"

    @pytest.mark.asyncio
    async def test_finalize_without_record_is_noop(self, api):
        journal = CallJournal(api, "CA1")
        assert journal.finalize(1000.0, 1010.0) is False
        await journal.close()
        api.update_call.assert_not_called()


@pytest.mark.asyncio
async def test_create_payload_for_fallback_session(api):
    session = CallSession(call_sid="CA9")
    journal = CallJournal(api, "CA9")
    await journal.create(session)
    payload = api.create_call.await_args.args[0]
    assert payload["companyId"] is None
    assert payload["phoneNumberId"] is None
