import logging
from dataclasses import dataclass
from typing import Optional

from frontdesk.api_client import PrivateApiClient

logger = logging.getLogger(__name__)


@dataclass
class Contact:
    id: Optional[int]
    name: str
    phone_number: str = ""
    company_name: str = ""
    email: str = ""
    department: str = ""
    total_calls: int = 0
    is_vip: bool = False
    notes: str = ""
    last_contacted_at: str = ""

    @classmethod
    def from_api(cls, payload: dict) -> "Contact":
        return cls(
            id=payload.get("id"),
            name=payload.get("name") or "",
            phone_number=payload.get("phoneNumber") or "",
            company_name=payload.get("companyName") or "",
            email=payload.get("email") or "",
            department=payload.get("department") or "",
            total_calls=payload.get("totalCalls") or 0,
            is_vip=bool(payload.get("isVip")),
            notes=payload.get("notes") or "",
            last_contacted_at=payload.get("lastContactedAt") or "",
        )

    def summary(self) -> dict:
        """Lightweight form returned to the model by search_contacts."""
        return {
            "name": self.name,
            "phoneNumber": self.phone_number,
            "companyName": self.company_name,
            "department": self.department,
            "email": self.email,
            "isVip": self.is_vip,
            "lastContactedAt": self.last_contacted_at,
        }


async def resolve_contact(
    api: PrivateApiClient,
    tenant_id: Optional[int],
    caller_number: str,
) -> Optional[Contact]:
    """Best-effort lookup of the caller among the tenant's contacts.

    Not finding one is the common case for a new caller, so every miss,
    including a failed request, is logged at info and returns None.
    """
    if not tenant_id or not caller_number or caller_number == "unknown":
        return None
    try:
        payload = await api.get_contact_by_phone(tenant_id, caller_number)
    except Exception as e:
        logger.info("No existing contact found for %s (%s)", caller_number, e)
        return None
    if not isinstance(payload, dict) or not payload.get("name"):
        logger.info("No existing contact found for %s", caller_number)
        return None

    contact = Contact.from_api(payload)
    logger.info(
        "Found existing contact for %s: %s (vip=%s, calls=%d)",
        caller_number,
        contact.name,
        contact.is_vip,
        contact.total_calls,
    )
    return contact
