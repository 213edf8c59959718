"""Tenant configuration for a dialed number.

The private API stores one configuration per phone number: the tenant
company, free-form instructions, voice settings, department transfer numbers
and the extra fields the receptionist should collect.  A lookup failure never
stops the call from being answered; a fixed fallback profile is used instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from frontdesk.api_client import ApiError, ApiNotFound, PrivateApiClient
from frontdesk.config import Settings
from frontdesk.states import ConfigSource

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "alloy"
DEFAULT_TEMPERATURE = 0.8
DEFAULT_DEPARTMENTS = ("sales", "support", "billing", "technical")


@dataclass
class Department:
    name: str
    transfer_number: str = ""
    description: str = ""


@dataclass
class DataField:
    label: str
    required: bool = False
    ai_prompt: str = ""


@dataclass
class TenantConfig:
    called_number: str
    config_source: ConfigSource = ConfigSource.RESOLVED
    phone_number_id: Optional[int] = None
    company_id: Optional[int] = None
    company_name: str = ""
    instructions: str = ""
    support_number: str = ""
    voice: str = DEFAULT_VOICE
    temperature: float = DEFAULT_TEMPERATURE
    departments: list[Department] = field(default_factory=list)
    data_fields: list[DataField] = field(default_factory=list)
    transcribe_enabled: bool = False
    summarize_enabled: bool = False
    company: dict = field(default_factory=dict)
    configured_voice: str = ""

    @property
    def is_fallback(self) -> bool:
        return self.config_source is ConfigSource.FALLBACK

    def department(self, name: str) -> Optional[Department]:
        for dept in self.departments:
            if dept.name == name:
                return dept
        return None

    def department_number(self, name: str, settings: Settings) -> str:
        """Transfer destination: tenant map, then env defaults, then the agent number."""
        dept = self.department(name)
        if dept and dept.transfer_number:
            return dept.transfer_number
        return settings.department_default(name)

    @classmethod
    def from_api(cls, called_number: str, payload: dict) -> "TenantConfig":
        metadata = payload.get("metadata") or {}
        voice_settings = metadata.get("voiceSettings") or {}
        company = payload.get("company") or {}
        collection = company.get("dataCollectionFields") or {}

        departments = [
            Department(
                name=d.get("name", ""),
                transfer_number=d.get("transferNumber") or "",
                description=d.get("description") or "",
            )
            for d in metadata.get("departments") or []
            if d.get("name")
        ]
        data_fields = [
            DataField(
                label=f.get("label", ""),
                required=bool(f.get("required")),
                ai_prompt=f.get("aiPrompt") or "",
            )
            for f in collection.get("customFields") or []
            if f.get("label")
        ]
        configured_voice = voice_settings.get("voice") or ""
        temperature = voice_settings.get("temperature")

        return cls(
            called_number=called_number,
            config_source=ConfigSource.RESOLVED,
            phone_number_id=payload.get("id"),
            company_id=company.get("id"),
            company_name=company.get("name") or "",
            instructions=payload.get("instructions") or "",
            support_number=payload.get("supportNumber") or "",
            voice=configured_voice or DEFAULT_VOICE,
            temperature=float(temperature) if temperature else DEFAULT_TEMPERATURE,
            departments=departments,
            data_fields=data_fields,
            transcribe_enabled=bool(metadata.get("transcribeEnabled")),
            summarize_enabled=bool(metadata.get("summarizeEnabled")),
            company=company,
            configured_voice=configured_voice,
        )


def fallback_config(called_number: str, settings: Settings) -> TenantConfig:
    """Deterministic profile used when the dialed number can't be resolved."""
    return TenantConfig(
        called_number=called_number,
        config_source=ConfigSource.FALLBACK,
        company_name=settings.company_name,
        support_number=settings.agent_number,
        voice=DEFAULT_VOICE,
        temperature=DEFAULT_TEMPERATURE,
        departments=[
            Department(name=name, transfer_number=settings.agent_number)
            for name in DEFAULT_DEPARTMENTS
        ],
    )


async def resolve_config(api: PrivateApiClient, called_number: str, settings: Settings) -> TenantConfig:
    """Resolve tenant configuration for the dialed number. Never raises."""
    try:
        payload = await api.get_phone_number_config(called_number)
        if not isinstance(payload, dict):
            raise ApiError(f"unexpected config payload type {type(payload).__name__}")
        config = TenantConfig.from_api(called_number, payload)
    except ApiNotFound:
        logger.info("No tenant configuration for %s, using fallback profile", called_number)
        return fallback_config(called_number, settings)
    except Exception as e:
        logger.error("Failed to fetch phone config for %s: %s", called_number, e)
        logger.info("Using fallback profile for %s", called_number)
        return fallback_config(called_number, settings)

    logger.info(
        "Phone config loaded for %s: company=%s voice=%s (%s) temperature=%s departments=%s",
        called_number,
        config.company_name or config.company_id,
        config.voice,
        "configured" if config.configured_voice else "default",
        config.temperature,
        [d.name for d in config.departments],
    )
    return config
