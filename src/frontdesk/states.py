from enum import Enum

TERMINAL_CALL_STATUSES = {"completed", "transferred", "disconnected"}
FAILED_DIAL_STATUSES = {"failed", "busy", "no-answer", "canceled"}


class SessionState(Enum):
    NEW = "new"
    ANSWERED = "answered"
    CONVERSING = "conversing"
    TRANSFERRING = "transferring"
    CLOSED = "closed"


class TransferState(Enum):
    NONE = "none"
    PENDING = "pending"
    ANNOUNCED = "announced"
    DIALING = "dialing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConfigSource(Enum):
    RESOLVED = "resolved"
    FALLBACK = "fallback"


class CallStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TRANSFERRED = "transferred"
    TRANSFER_FAILED = "transfer_failed"
    DISCONNECTED = "disconnected"

    @staticmethod
    def transferred_to(department: str) -> str:
        return f"transferred_to_{department}"


def is_terminal_status(status: str) -> bool:
    return getattr(status, "value", status) in TERMINAL_CALL_STATUSES


class DialStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"

    @property
    def is_failure(self) -> bool:
        return self.value in FAILED_DIAL_STATUSES


class CallbackStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
