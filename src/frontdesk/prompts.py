from typing import Optional

from frontdesk.contacts import Contact
from frontdesk.tenant import TenantConfig

FALLBACK_DEPARTMENT_LIST = ["Sales", "Support", "Engineering", "Billing", "General"]

OPERATING_MODES = """# Operating Modes

## Mode 1: Digital Receptionist
When callers reach the company during normal operations:
- Greet professionally: "How can I assist you today?"
- Identify the destination (department or specific person)
- Handle ambiguity: if two people share a first name, ask which one
- Collect caller information before transferring
- Transfer, or take a message when nobody is available

## Mode 2: Overflow
When all staff are busy:
- Let the caller know everyone is busy at the moment
- Offer to wait or to schedule a callback
- If they want a callback, collect a detailed message for it"""

WORKFLOW = """# Core Workflow

1. Identify what the caller needs: a person or a department.
2. If the destination is ambiguous, clarify it.
3. ALWAYS collect before transferring: caller's name, company, phone number, and a short reason for calling.
   Example: "May I have your name, telephone number, and a short message? If they aren't available, I'll pass your details along."
4. Transfer: FIRST tell the caller you are connecting them, THEN call transfer_call. Say nothing else after the tool returns except its confirmation.
5. If a transfer fails, apologise and offer a callback with schedule_callback."""

STYLE = """# Tone & Conversation Style
- Professional but friendly; you are the first point of contact.
- Efficient and concise. One question at a time.
- Always speak English and keep the same voice for the whole call.
- Confirm callback numbers and times by repeating them.
- Never claim to be human; you are the company's AI receptionist.
- If input is garbled, politely ask the caller to repeat.

When formatting for speech:
- Use natural pauses with ellipses ("...")
- Say "dot" rather than "."
- Spell out acronyms carefully"""

GUARDRAILS = """# Guardrails
- Stay focused on call routing, messages and callback scheduling.
- Don't provide extensive technical support; collect the details and route them.
- If unsure about a person or department, ask for clarification.

If a transfer fails: "I'm having trouble reaching them right now. Let me schedule a callback so someone can get back to you shortly."
If the caller is impatient: "I understand your time is valuable. Would you prefer a callback instead of waiting?"
If the destination is unclear: "I want to make sure I connect you with the right person. Could you tell me what this is regarding?\""""


def build_main_instructions(
    config: TenantConfig,
    caller_number: str,
    contact: Optional[Contact] = None,
) -> str:
    """System prompt for the main receptionist session.

    Interpolated once when the call is answered.
    """
    company = config.company_name or "the company"
    sections = [
        f"# Personality\nYou are the AI receptionist for {company}.",
    ]
    if config.instructions:
        sections.append(config.instructions.strip())
    sections.extend([
        OPERATING_MODES,
        WORKFLOW,
        _caller_number_rules(caller_number),
        _data_collection(config),
        _privacy(config),
        STYLE,
        _known_caller(contact),
        _departments(config),
        GUARDRAILS,
    ])
    return "\n\n".join(s for s in sections if s)


def build_callback_instructions(caller_number: str) -> str:
    """System prompt for the follow-up session after a failed transfer."""
    return f"""The transfer to the department failed. Apologise briefly and offer to schedule a callback.

If they want a callback, use the schedule_callback tool:
- Ask when they would prefer to be called back
- Confirm the phone number (if they say "this number" it means {caller_number})
- Get the topic or reason for the callback

If they don't want a callback, thank them for calling and end the conversation politely."""



def build_warm_transfer_instructions(company_name: str) -> str:
    """System prompt for the specialist hand-off service."""
    return f"""You are a friendly receptionist for {company_name}. Help callers with their inquiries and transfer them to specialists when needed.

When transferring the call to a specialist, FIRST tell the caller that you are transferring them to a specialist, and ONLY THEN, after you finish speaking, invoke the transfer_call_to_agent tool.
Do not say anything else after invoking the tool."""

def _caller_number_rules(caller_number: str) -> str:
    if not caller_number or caller_number == "unknown":
        return ""
    return (
        "# Caller Number\n"
        f"The caller is calling from {caller_number}. If they say \"this number\" or "
        f"\"the number I'm calling from\", use {caller_number}."
    )


def _data_collection(config: TenantConfig) -> str:
    lines = [
        "# Data Collection",
        "Every call must capture: caller name, company name, contact number, reason for calling, "
        "requested destination, and any callback scheduled.",
    ]
    if config.data_fields:
        lines.append("Additional fields to collect:")
        for f in config.data_fields:
            requirement = "required" if f.required else "optional"
            hint = f": {f.ai_prompt}" if f.ai_prompt else ""
            lines.append(f"- {f.label} ({requirement}){hint}")
    return "\n".join(lines)


def _privacy(config: TenantConfig) -> str:
    return (
        "# Recording Settings\n"
        f"- Transcription: {'Enabled' if config.transcribe_enabled else 'Disabled'}\n"
        f"- Summarization: {'Enabled' if config.summarize_enabled else 'Disabled'}"
    )


def _known_caller(contact: Optional[Contact]) -> str:
    if contact is None:
        return ""
    lines = [
        "# Known Caller",
        f"- Name: {contact.name}",
        f"- Company: {contact.company_name or 'Not specified'}",
        f"- Previous Calls: {contact.total_calls}",
        f"- VIP Status: {'VIP Customer' if contact.is_vip else 'Regular Customer'}",
    ]
    if contact.notes:
        lines.append(f"- Notes: {contact.notes}")
    return "\n".join(lines)


def _departments(config: TenantConfig) -> str:
    if config.departments:
        items = [
            f"- {d.name}: {d.description}" if d.description else f"- {d.name}"
            for d in config.departments
        ]
    else:
        items = [f"- {name}" for name in FALLBACK_DEPARTMENT_LIST]
    return "# Available Departments\n" + "\n".join(items)
