from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from frontdesk.contacts import Contact
from frontdesk.states import CallbackStatus, ConfigSource, SessionState
from frontdesk.tenant import TenantConfig


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranscriptTurn:
    role: str  # "caller" | "assistant"
    text: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_api(self) -> dict:
        return {
            "role": "user" if self.role == "caller" else "assistant",
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TransferDescriptor:
    department: str
    reason: str
    caller_info: str
    transfer_number: str

    @property
    def summary(self) -> str:
        return (
            f"Transfer to {self.department} department. "
            f"Reason: {self.reason}. Caller info: {self.caller_info}"
        )


@dataclass
class CallbackRequest:
    reference_id: str
    phone_number: str
    requested_time: str
    topic: str
    status: CallbackStatus = CallbackStatus.PENDING
    call_id: Optional[int] = None
    scheduled_for: Optional[str] = None

    def to_api(self) -> dict:
        payload = {
            "callbackId": self.reference_id,
            "callId": self.call_id,
            "phoneNumber": self.phone_number,
            "preferredTime": self.requested_time,
            "topic": self.topic,
            "status": self.status.value,
        }
        if self.scheduled_for:
            payload["scheduledFor"] = self.scheduled_for
        return payload


@dataclass
class ConversationContext:
    transfer_pending: Optional[TransferDescriptor] = None
    transfer_announced: bool = False
    transfer_in_progress: bool = False
    end_requested: bool = False
    offer_callback: bool = False


@dataclass
class CallSession:
    call_sid: str
    caller_number: str = "unknown"
    called_number: str = ""
    direction: str = "inbound"
    start_time: float = 0.0
    customer_data: dict = field(default_factory=dict)

    # Resolved at answer
    config: Optional[TenantConfig] = None
    contact: Optional[Contact] = None
    voice: str = "alloy"
    temperature: float = 0.8
    instructions: str = ""

    # Conversation state
    transcripts: list[TranscriptTurn] = field(default_factory=list)
    collected_data: dict = field(default_factory=dict)
    caller_info: dict = field(default_factory=dict)
    callbacks: list[CallbackRequest] = field(default_factory=list)
    context: ConversationContext = field(default_factory=ConversationContext)

    # Persisted-record linkage
    call_record_id: Optional[int] = None
    contact_id: Optional[int] = None

    state: SessionState = SessionState.NEW
    closed: bool = False

    @property
    def config_source(self) -> Optional[ConfigSource]:
        return self.config.config_source if self.config else None

    @property
    def tenant_id(self) -> Optional[int]:
        return self.config.company_id if self.config else None

    @property
    def company_name(self) -> str:
        return self.config.company_name if self.config else ""
