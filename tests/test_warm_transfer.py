import json

import pytest

from conftest import RecordingTransport
from frontdesk.config import Settings
from frontdesk.warm_transfer import (
    GENERIC_ERROR,
    HOLD_MESSAGE,
    TRANSFER_FAILED,
    WarmTransferFlow,
    rate_limit_message,
)


def incoming():
    transport = RecordingTransport("CA_warm")
    transport.expect_ack("m1")
    return transport


def tool_call(summary="Jane from Acme Co wants a quote for fifty seats."):
    return {
        "name": "transfer_call_to_agent",
        "tool_call_id": "call_1",
        "args": {"conversation_summary": summary},
    }


def commands(transport, name):
    return [m for m in transport.sent if m.get("command") == name]


@pytest.fixture
def flow(api, settings):
    return WarmTransferFlow(incoming(), api, settings)


class TestStart:
    @pytest.mark.asyncio
    async def test_answers_with_handoff_model(self, flow):
        await flow.start()
        transport = flow.transport
        assert transport.sent[0]["msgid"] == "m1"
        assert transport.verb_names == ["answer", "pause", "llm", "hangup"]
        llm = transport.verbs_named("llm")[0]
        tools = llm["llmOptions"]["session_update"]["tools"]
        assert [t["name"] for t in tools] == ["transfer_call_to_agent"]
        assert tools[0]["parameters"]["required"] == ["conversation_summary"]
        assert llm["llmOptions"]["response_create"]["voice"] == "alloy"
        assert "Front Desk" in llm["llmOptions"]["response_create"]["instructions"]

    @pytest.mark.asyncio
    async def test_tenant_voice_and_company(self, api, settings):
        api.get_phone_number_config.side_effect = None
        api.get_phone_number_config.return_value = {
            "id": 3,
            "company": {"id": 9, "name": "Acme Co"},
            "metadata": {"voiceSettings": {"voice": "shimmer", "temperature": 0.6}},
        }
        flow = WarmTransferFlow(incoming(), api, settings)
        await flow.start()
        response = flow.transport.verbs_named("llm")[0]["llmOptions"]["response_create"]
        assert response["voice"] == "shimmer"
        assert response["temperature"] == 0.6
        assert "Acme Co" in response["instructions"]

    @pytest.mark.asyncio
    async def test_missing_key_hangs_up(self, api):
        flow = WarmTransferFlow(incoming(), api, Settings())
        await flow.start()
        assert flow.transport.sent == [{"type": "ack", "msgid": "m1", "data": [{"verb": "hangup"}]}]


class TestToolCall:
    @pytest.mark.asyncio
    async def test_queues_caller_and_dials_specialist(self, flow):
        await flow.handle_tool_call(tool_call())
        transport = flow.transport

        output = commands(transport, "llm:tool-output")[0]
        assert output["tool_call_id"] == "call_1"
        assert json.loads(output["data"]["item"]["output"])["success"] is True

        assert transport.verbs == [
            {"verb": "say", "text": HOLD_MESSAGE},
            {"verb": "enqueue", "name": "CA_warm", "actionHook": "/consultationDone"},
        ]

        dial = commands(transport, "dial")[0]["data"]
        assert dial["call_hook"] == "/dial-specialist"
        assert dial["from"] == "+14155551212"
        assert dial["to"] == "8811001"
        assert dial["tag"] == {
            "conversation_summary": "Jane from Acme Co wants a quote for fifty seats.",
            "queue": "CA_warm",
        }
        assert [m["command"] for m in transport.sent] == ["llm:tool-output", "redirect", "dial"]

    @pytest.mark.asyncio
    async def test_caller_id_and_trunk(self, api):
        settings = Settings(openai_api_key="sk-test", caller_id="+18005550199", transfer_trunk="pbx.example.com")
        flow = WarmTransferFlow(incoming(), api, settings)
        await flow.handle_tool_call(tool_call())
        dial = commands(flow.transport, "dial")[0]["data"]
        assert dial["from"] == "+18005550199"
        assert dial["to"] == "8811001@pbx.example.com"

    @pytest.mark.asyncio
    async def test_string_arguments(self, flow):
        evt = tool_call()
        evt["args"] = json.dumps({"conversation_summary": "Billing dispute"})
        await flow.handle_tool_call(evt)
        assert flow.conversation_summary == "Billing dispute"
        assert commands(flow.transport, "dial")[0]["data"]["tag"]["conversation_summary"] == "Billing dispute"

    @pytest.mark.asyncio
    async def test_failure_reports_tool_error(self, api, settings):
        class DialFails(RecordingTransport):
            async def send_command(self, command, data):
                raise ConnectionError("socket gone")

        flow = WarmTransferFlow(DialFails("CA_warm"), api, settings)
        await flow.handle_tool_call(tool_call())
        outputs = commands(flow.transport, "llm:tool-output")
        assert outputs[-1]["data"] == {"error": TRANSFER_FAILED}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, flow):
        await flow.handle_tool_call({"name": "transfer_call", "tool_call_id": "call_2", "args": {}})
        assert commands(flow.transport, "llm:tool-output")[0]["data"] == {"error": "Unknown tool: transfer_call"}
        assert commands(flow.transport, "dial") == []


class TestFinal:
    @pytest.mark.asyncio
    async def test_rate_limit_is_spoken(self, flow):
        flow.transport.expect_ack("m2")
        await flow.handle_final({
            "completion_reason": "server failure",
            "error": {"code": "rate_limit_exceeded", "message": "Rate limit reached. Please try again in 20s."},
        })
        assert flow.transport.sent == [{
            "type": "ack",
            "msgid": "m2",
            "data": [
                {"verb": "say", "text": "Sorry, you have exceeded your OpenAI rate limits. Please try again in 20 seconds."},
                {"verb": "hangup"},
            ],
        }]

    @pytest.mark.asyncio
    async def test_other_failure(self, flow):
        flow.transport.expect_ack("m2")
        await flow.handle_final({"completion_reason": "server error", "error": {"message": "boom"}})
        assert flow.transport.verbs == [{"verb": "say", "text": GENERIC_ERROR}, {"verb": "hangup"}]

    @pytest.mark.asyncio
    async def test_normal_end_is_acked_empty(self, flow):
        flow.transport.expect_ack("m2")
        await flow.handle_final({"completion_reason": "normal conversation end"})
        assert flow.transport.sent == [{"type": "ack", "msgid": "m2", "data": []}]

    def test_rate_limit_message_without_delay(self):
        assert rate_limit_message(None) == "Sorry, you have exceeded your OpenAI rate limits."


class TestConsultationDone:
    @pytest.mark.asyncio
    async def test_is_acknowledged(self, flow):
        flow.transport.expect_ack("m3")
        await flow.handle_consultation_done({"queue_result": "bridged"})
        assert flow.transport.sent == [{"type": "ack", "msgid": "m3", "data": []}]
