"""Realtime speech model on the call.

The model runs inside jambonz's ``llm`` verb (OpenAI realtime).  This module
builds that verb, interprets the events jambonz relays back from it, and
returns tool results to the model.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from frontdesk.config import Settings
from frontdesk.prompts import build_callback_instructions

logger = logging.getLogger(__name__)

VENDOR = "openai"
OUTPUT_AUDIO_FORMAT = "pcm16"
MAX_OUTPUT_TOKENS = 4096
TRANSCRIPTION_MODEL = "whisper-1"

EVENT_HOOK = "/event"
TOOL_HOOK = "/toolCall"
FINAL_HOOK = "/final"

SUBSCRIBED_EVENTS = [
    "conversation.item.*",
    "response.audio_transcript.done",
    "input_audio_buffer.committed",
]

CALLER_TRANSCRIPT_EVENT = "conversation.item.input_audio_transcription.completed"
ASSISTANT_TRANSCRIPT_EVENT = "response.audio_transcript.done"

FATAL_REASONS = {"server failure", "server error"}
NORMAL_END_REASON = "normal conversation end"

RETRY_AFTER = re.compile(r"try again in (\d+)", re.IGNORECASE)


@dataclass
class TurnDetection:
    """Server-side VAD. The long silence window keeps slow talkers from being cut off."""

    type: str = "server_vad"
    threshold: float = 0.8
    prefix_padding_ms: int = 600
    silence_duration_ms: int = 1100


class EngineEventKind(Enum):
    CALLER_TRANSCRIPT = "caller_transcript"
    ASSISTANT_TRANSCRIPT = "assistant_transcript"
    OTHER = "other"


@dataclass
class FinalSignal:
    reason: str
    fatal: bool = False
    error_code: str = ""
    message: str = ""
    retry_after: Optional[int] = None

    @property
    def is_normal_end(self) -> bool:
        return self.reason == NORMAL_END_REASON


class RealtimeEngine:
    def __init__(self, settings: Settings, turn_detection: TurnDetection | None = None):
        self.settings = settings
        self.turn_detection = turn_detection or TurnDetection()

    @property
    def available(self) -> bool:
        return bool(self.settings.openai_api_key)

    def llm_verb(
        self,
        instructions: str,
        voice: str,
        temperature: float,
        tools: list[dict],
    ) -> dict:
        """Options for the jambonz ``llm`` verb."""
        return {
            "vendor": VENDOR,
            "model": self.settings.realtime_model,
            "auth": {"apiKey": self.settings.openai_api_key},
            "actionHook": FINAL_HOOK,
            "eventHook": EVENT_HOOK,
            "toolHook": TOOL_HOOK,
            "events": list(SUBSCRIBED_EVENTS),
            "llmOptions": {
                "response_create": {
                    "modalities": ["text", "audio"],
                    "instructions": instructions,
                    "voice": voice,
                    "output_audio_format": OUTPUT_AUDIO_FORMAT,
                    "temperature": temperature,
                    "max_output_tokens": MAX_OUTPUT_TOKENS,
                },
                "session_update": {
                    "voice": voice,
                    "tools": tools,
                    "tool_choice": "auto",
                    "input_audio_transcription": {"model": TRANSCRIPTION_MODEL},
                    "turn_detection": asdict(self.turn_detection),
                },
            },
        }

    def start_main_session(self, transport, session, tools: list[dict]) -> None:
        """Queue the main receptionist model on ``transport``.

        Instructions are whatever the session was composed with at answer
        time; they are not rebuilt mid-call.
        """
        transport.llm(**self.llm_verb(
            session.instructions, session.voice, session.temperature, tools,
        ))

    async def start_callback_session(self, transport, session, tools: list[dict]) -> None:
        """Replace the running model with one that can only schedule a callback."""
        instructions = build_callback_instructions(session.caller_number)
        transport.pause(0.5).llm(**self.llm_verb(
            instructions, session.voice, session.temperature, tools,
        ))
        await transport.send()

    def classify_event(self, evt: dict) -> EngineEventKind:
        event_type = evt.get("type", "")
        if event_type == CALLER_TRANSCRIPT_EVENT:
            return EngineEventKind.CALLER_TRANSCRIPT
        if event_type == ASSISTANT_TRANSCRIPT_EVENT:
            return EngineEventKind.ASSISTANT_TRANSCRIPT
        return EngineEventKind.OTHER

    @staticmethod
    def transcript_text(evt: dict) -> str:
        return (evt.get("transcript") or "").strip()

    def parse_final(self, evt: dict) -> FinalSignal:
        reason = evt.get("completion_reason") or evt.get("reason") or ""
        error = evt.get("error") or {}
        if not isinstance(error, dict):
            error = {"message": str(error)}
        message = error.get("message") or ""
        retry_after = None
        match = RETRY_AFTER.search(message)
        if match:
            retry_after = int(match.group(1))
        return FinalSignal(
            reason=reason,
            fatal=reason in FATAL_REASONS,
            error_code=error.get("code") or "",
            message=message,
            retry_after=retry_after,
        )

    async def send_tool_output(self, transport, tool_call_id: str, result: Any) -> None:
        await transport.send_tool_output(tool_call_id, {
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": tool_call_id,
                "output": json.dumps(result),
            },
        })

    async def send_tool_error(self, transport, tool_call_id: str, message: str) -> None:
        await transport.send_tool_output(tool_call_id, {"error": message})
