import json
import logging

from frontdesk.session import CallSession
from frontdesk.transcript import to_timestamped_dump

logger = logging.getLogger(__name__)

DUMP_PREFIX = "TRANSCRIPT_DUMP"


def _encoded_size(obj) -> int:
    return len(json.dumps(obj).encode("utf-8"))


def transcript_dump_lines(dump: dict, max_bytes: int = 3500) -> list[str]:
    """Render a transcript dump as TRANSCRIPT_DUMP|i/n|{json} log lines.

    Entries are packed greedily.  Only the first line repeats the header
    fields, so an entry that alone exceeds max_bytes still gets its own line.
    """
    header = {k: v for k, v in dump.items() if k != "entries"}
    bodies = [{**header, "entries": []}]
    budget = max_bytes - _encoded_size(bodies[0])

    for entry in dump.get("entries", []):
        cost = _encoded_size(entry) + 2
        if bodies[-1]["entries"] and cost > budget:
            bodies.append({"entries": []})
            budget = max_bytes - _encoded_size(bodies[-1])
        bodies[-1]["entries"].append(entry)
        budget -= cost

    return [
        f"{DUMP_PREFIX}|{n}/{len(bodies)}|{json.dumps(body)}"
        for n, body in enumerate(bodies, start=1)
    ]


def log_transcript_dump(session: CallSession, end_time: float, final_status: str | None) -> list[str]:
    """Emit the end-of-call transcript as TRANSCRIPT_DUMP log lines."""
    dump = to_timestamped_dump(
        session.transcripts,
        start_time=session.start_time,
        call_sid=session.call_sid,
        phone=session.caller_number,
        final_state=final_status or session.state.value,
    )
    dump["duration_s"] = round(end_time - session.start_time, 1) if session.start_time > 0 else 0
    dump["callbacks"] = [c.reference_id for c in session.callbacks]
    lines = transcript_dump_lines(dump)
    for line in lines:
        logger.info(line)
    return lines
