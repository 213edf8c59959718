"""Startup configuration.

Settings come from environment variables (``.env`` locally).  Nothing here
is fatal: a call without a model credential is still answered, journaled and
hung up, so the validator only warns.  Department numbers are consulted when
a tenant's own configuration doesn't name a destination.
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_AGENT_NUMBER = "8811001"
DEFAULT_PRIVATE_API_URL = "http://private-api:3000"

RECOMMENDED_VARS = [
    "OPENAI_API_KEY",
    "PRIVATE_API_URL",
    "AGENT_NUMBER",
]

OPTIONAL_VARS = [
    "PRIVATE_API_KEY",
    "REALTIME_MODEL",
    "SALES_NUMBER",
    "SUPPORT_NUMBER",
    "BILLING_NUMBER",
    "TRANSFER_TRUNK",
    "CALLER_ID",
    "TRANSFER_SETTLE_DELAY_S",
    "IDLE_TIMEOUT_S",
    "COMPANY_NAME",
    "LOG_LEVEL",
]


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    private_api_url: str = DEFAULT_PRIVATE_API_URL
    private_api_key: str = ""
    openai_api_key: str = ""
    realtime_model: str = "gpt-realtime"
    agent_number: str = DEFAULT_AGENT_NUMBER
    sales_number: str = ""
    support_number: str = ""
    billing_number: str = ""
    transfer_trunk: str = ""
    caller_id: str = ""
    transfer_settle_delay_s: float = 5.0
    idle_timeout_s: float = 120.0
    company_name: str = "Front Desk"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            private_api_url=os.getenv("PRIVATE_API_URL") or DEFAULT_PRIVATE_API_URL,
            private_api_key=os.getenv("PRIVATE_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            realtime_model=os.getenv("REALTIME_MODEL") or "gpt-realtime",
            agent_number=os.getenv("AGENT_NUMBER") or DEFAULT_AGENT_NUMBER,
            sales_number=os.getenv("SALES_NUMBER", ""),
            support_number=os.getenv("SUPPORT_NUMBER", ""),
            billing_number=os.getenv("BILLING_NUMBER", ""),
            transfer_trunk=os.getenv("TRANSFER_TRUNK", ""),
            caller_id=os.getenv("CALLER_ID", ""),
            transfer_settle_delay_s=_float_env("TRANSFER_SETTLE_DELAY_S", 5.0),
            idle_timeout_s=_float_env("IDLE_TIMEOUT_S", 120.0),
            company_name=os.getenv("COMPANY_NAME") or "Front Desk",
        )

    def department_default(self, department: str) -> str:
        """Environment-level transfer number for a department."""
        if department == "sales":
            return self.sales_number or self.agent_number
        if department in ("support", "technical"):
            return self.support_number or self.agent_number
        if department == "billing":
            return self.billing_number or self.agent_number
        return self.agent_number


def validate_config() -> list[str]:
    """Check environment variables at startup.

    Returns the names of missing recommended variables (each is also logged
    as a warning).  Optional variables are logged at debug.
    """
    missing = [var for var in RECOMMENDED_VARS if not os.getenv(var)]
    for var in missing:
        logger.warning("Recommended env var %s is not set", var)
    if "OPENAI_API_KEY" in missing:
        logger.warning("Calls will be answered and hung up until OPENAI_API_KEY is set")

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.debug("Optional env var %s is not set", var)
    return missing
