import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the server process."""
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO; journal traffic would drown call logs
    logging.getLogger("httpx").setLevel(logging.WARNING)


class CallLogAdapter(logging.LoggerAdapter):
    """Prefix every record with the call SID (and caller when known)."""

    def process(self, msg, kwargs):
        call_sid = self.extra.get("call_sid", "-")
        caller = self.extra.get("caller")
        prefix = f"[{call_sid}]" if not caller else f"[{call_sid} {caller}]"
        return f"{prefix} {msg}", kwargs


def call_logger(name: str, call_sid: str, caller: str = "") -> CallLogAdapter:
    return CallLogAdapter(logging.getLogger(name), {"call_sid": call_sid, "caller": caller})
