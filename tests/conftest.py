from unittest.mock import AsyncMock

import pytest

from frontdesk.api_client import ApiNotFound, PrivateApiClient
from frontdesk.config import Settings
from frontdesk.journal import CallJournal
from frontdesk.session import CallSession
from frontdesk.tenant import fallback_config
from frontdesk.transport import TelephonySession

CALLER = "+14155551212"
CALLED = "+18005550100"


class RecordingTransport(TelephonySession):
    """TelephonySession that keeps every outbound message instead of sending it."""

    def __init__(self, call_sid: str = "CA_test_123", data: dict | None = None):
        if data is None:
            data = {"from": CALLER, "to": CALLED, "direction": "inbound"}
        super().__init__(call_sid, data)
        self.sent: list[dict] = []

    async def _transmit(self, message: dict) -> None:
        self.sent.append(message)

    @property
    def verbs(self) -> list[dict]:
        return [
            verb
            for msg in self.sent
            if msg["type"] == "ack" or msg.get("command") == "redirect"
            for verb in msg["data"]
        ]

    @property
    def verb_names(self) -> list[str]:
        return [v["verb"] for v in self.verbs]

    def verbs_named(self, name: str) -> list[dict]:
        return [v for v in self.verbs if v["verb"] == name]

    @property
    def tool_outputs(self) -> list[dict]:
        return [m for m in self.sent if m.get("command") == "llm:tool-output"]


@pytest.fixture
def settings():
    return Settings(
        private_api_url="http://private-api.test",
        openai_api_key="sk-test",
        agent_number="8811001",
        transfer_settle_delay_s=0.01,
        idle_timeout_s=0,
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def api():
    """Private API double: no tenant config, no known contact, writes succeed."""
    client = AsyncMock(spec=PrivateApiClient)
    client.get_phone_number_config.side_effect = ApiNotFound("not found", status_code=404)
    client.get_contact_by_phone.side_effect = ApiNotFound("not found", status_code=404)
    client.create_call.return_value = {"id": 42}
    client.update_call.return_value = {}
    client.add_transcripts.return_value = {}
    client.add_event.return_value = {}
    client.search_contacts.return_value = []
    client.create_callback.return_value = {"callbackId": "CB1234ABCD"}
    client.create_or_update_contact.return_value = {"id": 7}
    client.update_call_with_contact.return_value = {}
    return client


@pytest.fixture
def session(settings):
    s = CallSession(call_sid="CA_test_123", caller_number=CALLER, called_number=CALLED)
    s.config = fallback_config(CALLED, settings)
    return s


@pytest.fixture
def journal(api):
    """Journal with a call record already created. Tests await close() to drain it."""
    j = CallJournal(api, "CA_test_123", drain_timeout=1.0)
    j.call_record_id = 42
    j.status = "in_progress"
    return j
