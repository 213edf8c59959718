from frontdesk.session import TranscriptTurn


def to_timestamped_dump(
    turns: list[TranscriptTurn],
    start_time: float,
    call_sid: str,
    phone: str,
    final_state: str,
) -> dict:
    """Build a transcript dump dict for structured logging.

    Timestamps become seconds relative to call start.  If start_time is 0,
    the first turn's timestamp is used as the base.
    """
    base_time = start_time
    if base_time <= 0 and turns:
        base_time = turns[0].timestamp.timestamp()

    entries = [
        {
            "t": round(t.timestamp.timestamp() - base_time, 1),
            "role": t.role,
            "content": t.text,
        }
        for t in turns
    ]
    return {
        "call_sid": call_sid,
        "phone": phone,
        "final_state": final_state,
        "entries": entries,
    }
