"""Receptionist tools exposed to the realtime model.

``TOOL_DEFINITIONS`` is the schema sent to the model at session start.
``ToolDispatcher`` runs a tool call and always returns a JSON-serializable
dict; handler failures come back as ``{"error": ...}`` so nothing raises
into the transport.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from frontdesk.api_client import PrivateApiClient
from frontdesk.config import Settings
from frontdesk.contacts import Contact
from frontdesk.journal import CallJournal
from frontdesk.phone import (
    new_callback_reference,
    normalize_callback_number,
    normalize_contact_number,
)
from frontdesk.session import CallbackRequest, CallSession, TransferDescriptor, utcnow
from frontdesk.states import CallStatus

logger = logging.getLogger(__name__)

STAY_ON_LINE = "Please stay on the line while I connect you, thanks for your patience."


class ToolName(str, Enum):
    SEARCH_CONTACTS = "search_contacts"
    COLLECT_CALLER_DATA = "collect_caller_data"
    GATHER_CALLER_INFO = "gather_caller_info"
    SCHEDULE_CALLBACK = "schedule_callback"
    TRANSFER_CALL = "transfer_call"


TRANSFER_DEPARTMENTS = ["sales", "support", "billing", "technical", "general"]


def _string(description: str) -> dict:
    return {"type": "string", "description": description}


def _function(name: str, description: str, properties: dict, required: list[str] | None = None) -> dict:
    parameters: dict = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required
    return {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": parameters,
    }


def schedule_callback_definition(caller_number: str = "") -> dict:
    if caller_number and caller_number != "unknown":
        phone_hint = f'Phone number for callback. Use {caller_number} if the customer says "this number".'
    else:
        phone_hint = (
            "Phone number for callback. Use the caller's number if the customer says "
            '"this number" or "same number". Otherwise use the specific number they provide.'
        )
    return _function(
        ToolName.SCHEDULE_CALLBACK.value,
        "Schedule a callback for the customer when nobody is available right now",
        {
            "preferred_time": _string(
                "Customer preferred callback time in ISO 8601 format (e.g., 2024-01-01T14:00:00)"
            ),
            "phone_number": _string(phone_hint),
            "topic": _string("Topic for the callback"),
        },
        ["preferred_time", "phone_number", "topic"],
    )


TOOL_DEFINITIONS = [
    _function(
        ToolName.SEARCH_CONTACTS.value,
        "Search for contacts in the database by name, phone, or company",
        {
            "query": _string("General search query (searches across name, phone, email, company)"),
            "name": _string("Contact name to search for"),
            "phoneNumber": _string("Phone number to search for"),
            "email": _string("Email to search for"),
        },
    ),
    _function(
        ToolName.COLLECT_CALLER_DATA.value,
        "Collect and store caller information with custom fields",
        {
            "caller_name": _string("Name of the caller"),
            "company_name": _string("Company or venue name"),
            "contact_number": _string("Phone number to call back to"),
            "email": _string("Email address of the caller"),
            "department": _string("Department or role of the caller"),
            "reason_for_calling": _string("Detailed reason for the call"),
            "custom_fields": {"type": "object", "description": "Any additional custom fields collected"},
        },
        ["caller_name", "reason_for_calling"],
    ),
    _function(
        ToolName.GATHER_CALLER_INFO.value,
        "Gather and confirm caller information (legacy, prefer collect_caller_data)",
        {
            "caller_name": _string("Name of the caller"),
            "company_name": _string("Company or venue name"),
            "contact_number": _string("Phone number to call back to"),
            "issue_description": _string("Brief description of the issue"),
        },
        ["caller_name", "company_name", "contact_number", "issue_description"],
    ),
    schedule_callback_definition(),
    _function(
        ToolName.TRANSFER_CALL.value,
        "Transfer caller to the appropriate department (sales, support, billing, etc.)",
        {
            "department": {
                "type": "string",
                "enum": TRANSFER_DEPARTMENTS,
                "description": "Department to transfer the call to",
            },
            "reason": _string("Reason for the transfer (pricing inquiry, technical issue, etc.)"),
            "caller_info": _string("Brief summary of caller information to pass to the department"),
        },
        ["department", "reason", "caller_info"],
    ),
]


WARM_TRANSFER_TOOL = "transfer_call_to_agent"

WARM_TRANSFER_TOOLS = [
    _function(
        WARM_TRANSFER_TOOL,
        "Transfers the call to a specialist",
        {
            "conversation_summary": _string(
                "A brief summary of the conversation, no more than 100 words. Include the caller's name "
                "if they gave it, their interests and needs, any specific concerns, and any product or "
                "service they asked about. Do not speak the summary."
            ),
        },
        ["conversation_summary"],
    ),
]


def callback_tools(caller_number: str) -> list[dict]:
    """Tool schema for the callback-only session after a failed transfer."""
    return [schedule_callback_definition(caller_number)]


def transfer_confirmation(department: str, reason: str) -> str:
    if department == "sales":
        opener = f"I'll connect you with our sales team for your {reason}."
    elif department in ("support", "technical"):
        opener = f"Let me connect you with our {department} team who can help with your {reason}."
    elif department == "billing":
        opener = f"I'll transfer you to our billing department to help with your {reason}."
    else:
        opener = f"I'm connecting you with our {department} department for your {reason}."
    return f"{opener} {STAY_ON_LINE}"


def _iso_or_none(value: str) -> Optional[str]:
    try:
        return datetime.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        return None


Handler = Callable[[dict], Awaitable[dict]]


class ToolDispatcher:
    def __init__(
        self,
        session: CallSession,
        api: PrivateApiClient,
        journal: CallJournal,
        transfers,
        settings: Settings,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.session = session
        self.api = api
        self.journal = journal
        self.transfers = transfers
        self.settings = settings
        self.log = log or logger
        self._handlers: dict[ToolName, Handler] = {
            ToolName.SEARCH_CONTACTS: self.search_contacts,
            ToolName.COLLECT_CALLER_DATA: self.collect_caller_data,
            ToolName.GATHER_CALLER_INFO: self.gather_caller_info,
            ToolName.SCHEDULE_CALLBACK: self.schedule_callback,
            ToolName.TRANSFER_CALL: self.transfer_call,
        }
        missing = [t.value for t in ToolName if t not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler for tools: {missing}")

    async def dispatch(self, name: str, args: dict | None) -> dict:
        try:
            tool = ToolName(name)
        except ValueError:
            self.log.warning("Unknown tool requested: %s", name)
            return {"error": f"Unknown tool: {name}"}
        try:
            return await self._handlers[tool](args or {})
        except Exception as e:
            self.log.exception("Tool %s failed", tool.value)
            return {"error": str(e) or type(e).__name__}

    # ── Handlers ──

    async def search_contacts(self, args: dict) -> dict:
        tenant_id = self.session.tenant_id
        if not tenant_id:
            return {
                "success": False,
                "message": "Company not configured for contact search",
                "contacts": [],
            }
        params = {k: v for k, v in args.items() if v}
        self.log.info("Searching contacts with params: %s", params)
        try:
            rows = await self.api.search_contacts(tenant_id, params)
        except Exception as e:
            self.log.error("Failed to search contacts: %s", e)
            return {
                "success": False,
                "message": "Unable to search contacts at this time",
                "contacts": [],
            }
        if not rows:
            return {
                "success": True,
                "message": "No contacts found matching your search criteria",
                "contacts": [],
            }
        contacts = [Contact.from_api(row).summary() for row in rows]
        self.log.info("Found %d contacts", len(contacts))
        return {
            "success": True,
            "message": f"Found {len(contacts)} contact(s) matching your search",
            "contacts": contacts,
        }

    async def collect_caller_data(self, args: dict) -> dict:
        caller_name = args.get("caller_name") or ""
        company_name = args.get("company_name") or ""
        reason = args.get("reason_for_calling") or ""
        contact_number = normalize_contact_number(
            args.get("contact_number"), self.session.caller_number,
        )
        if args.get("contact_number") and contact_number != args["contact_number"].strip():
            self.log.info(
                "Replaced self-reference %r with caller's number %s",
                args["contact_number"], contact_number,
            )

        collected = {
            "callerName": caller_name,
            "companyName": company_name or None,
            "contactNumber": contact_number,
            "email": args.get("email"),
            "department": args.get("department"),
            "reasonForCalling": reason,
            "customFields": args.get("custom_fields"),
            "collectedAt": utcnow().isoformat(),
        }
        self.session.collected_data.update({k: v for k, v in collected.items() if v is not None})
        snapshot = dict(self.session.collected_data)

        self.journal.update(
            collectedData=snapshot,
            metadata={
                "data_collected": True,
                "collected_fields": [k for k, v in snapshot.items() if v],
            },
        )

        tenant_id = self.session.tenant_id
        if tenant_id:
            contact_payload = {
                "companyId": tenant_id,
                "name": caller_name,
                "phoneNumber": contact_number,
                "email": args.get("email"),
                "companyName": company_name or None,
                "department": args.get("department"),
                "notes": reason,
                "customFields": args.get("custom_fields"),
            }
            self.journal.defer("upsert contact", lambda: self._upsert_contact(contact_payload, snapshot))

        company = company_name or "your company"
        return {
            "success": True,
            "message": (
                f"Thank you {caller_name}. I've recorded that you're calling from "
                f"{company} about {reason}. Let me help you with that."
            ),
            "collected_data": snapshot,
        }

    async def _upsert_contact(self, payload: dict, collected: dict):
        contact = await self.api.create_or_update_contact(payload)
        contact_id = contact.get("id") if isinstance(contact, dict) else None
        if contact_id is None:
            self.log.error("Contact upsert returned no id: %s", contact)
            return
        self.session.contact_id = contact_id
        await self.api.update_call_with_contact(self.session.call_sid, contact_id, collected)
        self.log.info("Contact created/updated with ID: %s", contact_id)

    async def gather_caller_info(self, args: dict) -> dict:
        caller_name = args.get("caller_name") or ""
        company_name = args.get("company_name") or ""
        issue = args.get("issue_description") or ""
        contact_number = normalize_contact_number(
            args.get("contact_number"), self.session.caller_number,
        )
        self.session.caller_info = {
            "name": caller_name,
            "company": company_name,
            "contactNumber": contact_number,
            "issue": issue,
            "timestamp": utcnow().isoformat(),
        }
        self.journal.update(metadata={
            "caller_info_collected": True,
            "caller_name": caller_name,
            "company_name": company_name,
            "contact_number": contact_number,
            "issue_description": issue,
        })
        return {
            "success": True,
            "message": (
                f"Got it! So I have {caller_name} from {company_name}, and I can reach you "
                f"back at {contact_number}. Let me get this escalated to the right team right away."
            ),
            "caller_info": {
                "name": caller_name,
                "company": company_name,
                "contact": contact_number,
                "issue": issue,
            },
        }

    async def schedule_callback(self, args: dict) -> dict:
        preferred_time = args.get("preferred_time") or ""
        topic = args.get("topic") or ""
        requested = args.get("phone_number")
        phone_number = normalize_callback_number(requested, self.session.caller_number)
        if phone_number != (requested or "").strip():
            self.log.info("Using caller's number %s for callback (input: %r)", phone_number, requested)

        request = CallbackRequest(
            reference_id=new_callback_reference(),
            phone_number=phone_number,
            requested_time=preferred_time,
            topic=topic,
            call_id=self.journal.call_record_id,
            scheduled_for=_iso_or_none(preferred_time),
        )

        persisted = True
        try:
            created = await self.api.create_callback(request.to_api())
            server_id = created.get("callbackId") if isinstance(created, dict) else None
            if server_id:
                request.reference_id = server_id
        except Exception as e:
            persisted = False
            self.log.error("Failed to save callback: %s", e)
            self.journal.record_event("callback_persist_failed", {
                "callbackId": request.reference_id,
                "error": str(e),
            })

        self.session.callbacks.append(request)
        self.log.info("Callback %s requested for %s at %s", request.reference_id, preferred_time, phone_number)

        if persisted:
            message = (
                f"Perfect! I've scheduled a callback for {preferred_time} at {phone_number}. "
                f"Our team will call you about {topic}. Your reference number is "
                f"{request.reference_id}. Is there anything else I can help you with?"
            )
        else:
            message = (
                f"I've noted your callback request for {preferred_time} at {phone_number} "
                f"regarding {topic}. Your reference number is {request.reference_id}. "
                "Our team will contact you as scheduled."
            )
        return {
            "success": True,
            "callback_id": request.reference_id,
            "message": message,
            "scheduled_time": preferred_time,
            "phone_number": phone_number,
            "topic": topic,
        }

    async def transfer_call(self, args: dict) -> dict:
        department = (args.get("department") or "general").lower()
        reason = args.get("reason") or ""
        caller_info = args.get("caller_info") or ""

        if self.session.config is not None:
            number = self.session.config.department_number(department, self.settings)
        else:
            number = self.settings.department_default(department)
        descriptor = TransferDescriptor(
            department=department,
            reason=reason,
            caller_info=caller_info,
            transfer_number=number,
        )

        if not self.transfers.request(descriptor):
            return {
                "success": False,
                "message": "A transfer is already connecting. Please ask the caller to hold.",
            }

        self.log.info("Transfer to %s requested at %s: %s", department, number, reason)
        self.journal.update_status(
            CallStatus.transferred_to(department),
            department=department,
            transferReason=reason,
            conversationSummary=descriptor.summary,
            metadata={
                "transferred_to": department,
                "transfer_reason": reason,
                "caller_summary": caller_info,
            },
        )
        return {
            "success": True,
            "message": transfer_confirmation(department, reason),
            "transfer": {
                "department": department,
                "reason": reason,
                "caller_info": caller_info,
                "transfer_number": number,
            },
        }
