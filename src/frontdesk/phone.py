"""Phone number normalization for tool arguments.

The realtime model transcribes spoken self-reference ("this number", "my
phone") as words rather than digits.  A phrase must never be stored where a
phone number belongs, so these helpers substitute the caller's originating
number.
"""

import re
import uuid

SELF_REFERENCE_PHRASES = (
    "this number",
    "same number",
    "my number",
    "current number",
    "the number",
    "this phone",
    "my phone",
    "same phone",
    "number i'm calling from",
    "number i am calling from",
    "the number provided",
    "number provided",
)

# Extra phrasings seen when the model fills the callback tool
CALLBACK_SELF_REFERENCE_PHRASES = SELF_REFERENCE_PHRASES + (
    "calling from",
    "session.from",
    "the number the user is calling from",
)

MAX_CALLBACK_NUMBER_LENGTH = 20
PHONE_CHARS = re.compile(r"^\+?[\d\s\-\(\)]+$")


def _clean(value: str) -> str:
    return value.strip().lower().replace("’", "'")


def is_self_reference(value: str | None, phrases=SELF_REFERENCE_PHRASES) -> bool:
    if not value:
        return False
    lower = _clean(value)
    return any(phrase == lower or phrase in lower for phrase in phrases)


def normalize_contact_number(value: str | None, caller_number: str) -> str:
    """Contact number for collected caller data.

    Empty values and self-reference phrases become the caller's number;
    anything else is kept as given.
    """
    if not value or not value.strip():
        return caller_number
    if is_self_reference(value):
        return caller_number
    return value.strip()


def normalize_callback_number(value: str | None, caller_number: str) -> str:
    """Number to call back.

    Stricter than ``normalize_contact_number``: values that are implausibly
    long or contain anything but phone characters also fall back to the
    caller's number.
    """
    if not value or not value.strip():
        return caller_number
    if len(value) > MAX_CALLBACK_NUMBER_LENGTH:
        return caller_number
    if is_self_reference(value, CALLBACK_SELF_REFERENCE_PHRASES):
        return caller_number
    if PHONE_CHARS.match(value.strip()):
        return value.strip()
    return caller_number


def new_callback_reference() -> str:
    """Reference read back to the caller, e.g. ``CB1F3A9C2E``."""
    return f"CB{uuid.uuid4().hex[:8].upper()}"
