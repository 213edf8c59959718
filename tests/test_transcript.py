from datetime import datetime, timezone

from frontdesk.session import TranscriptTurn
from frontdesk.transcript import to_timestamped_dump


def at(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


CONVERSATION = [
    TranscriptTurn("assistant", "Thanks for calling Acme Co.", at(1000.0)),
    TranscriptTurn("caller", "I have a billing question.", at(1002.5)),
    TranscriptTurn("assistant", "Let me transfer you.", at(1004.0)),
]


class TestToTimestampedDump:
    def test_relative_timestamps(self):
        dump = to_timestamped_dump(CONVERSATION, 1000.0, "CA1", "+14155551212", "completed")
        assert dump["call_sid"] == "CA1"
        assert dump["final_state"] == "completed"
        assert [e["t"] for e in dump["entries"]] == [0.0, 2.5, 4.0]

    def test_missing_start_uses_first_turn(self):
        dump = to_timestamped_dump(CONVERSATION[1:], 0, "CA1", "+14155551212", "disconnected")
        assert dump["entries"][0]["t"] == 0.0
        assert dump["entries"][1]["t"] == 1.5

    def test_empty_transcript(self):
        assert to_timestamped_dump([], 1000.0, "CA1", "+1", "disconnected")["entries"] == []
