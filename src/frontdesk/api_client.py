import logging
from typing import Any

import httpx

from frontdesk.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A private API request failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApiNotFound(ApiError):
    """The private API answered 404."""


class ApiUnavailable(ApiError):
    """The circuit breaker is open; the request was not attempted."""


class PrivateApiClient:
    """HTTP client for the private API (tenant config, calls, contacts, callbacks).

    One shared ``httpx.AsyncClient`` per process.  Requests go through a
    circuit breaker: after 3 consecutive transport/5xx failures they are
    refused for 60s with ``ApiUnavailable``.  Callers decide what a failure
    means for the call; this class only raises.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="private API",
        )
        if client is not None:
            self._client = client
        else:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["X-API-Key"] = api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )

    async def close(self):
        """Close the shared HTTP client. Call at server shutdown."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict | None = None,
    ) -> Any:
        label = f"{method} {path}"
        if not self._circuit.should_try():
            raise ApiUnavailable(f"{label} skipped: private API circuit open")
        try:
            resp = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            self._circuit.record_failure()
            raise ApiError(f"{label} failed: {e!r}") from e

        if resp.status_code >= 500:
            self._circuit.record_failure()
        else:
            self._circuit.record_success()

        if resp.status_code == 404:
            raise ApiNotFound(f"{label} not found", status_code=404)
        if resp.is_error:
            logger.error("%s returned %d: %s", label, resp.status_code, resp.text[:500])
            raise ApiError(_error_message(resp, label), status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"{label} returned non-JSON body") from e

    # ── Tenant configuration ──

    async def get_phone_number_config(self, phone_number: str) -> dict:
        return await self._request("GET", f"/api/phone-numbers/lookup/{phone_number}")

    # ── Calls ──

    async def create_call(self, payload: dict) -> dict:
        return await self._request("POST", "/api/calls", json=payload)

    async def update_call(self, call_sid: str, fields: dict) -> dict:
        return await self._request("PATCH", f"/api/calls/{call_sid}", json=fields)

    async def add_transcripts(self, call_sid: str, transcripts: list[dict]) -> dict:
        return await self._request(
            "POST",
            "/api/calls/transcripts",
            json={"callSid": call_sid, "transcripts": transcripts},
        )

    async def add_event(self, call_sid: str, event_type: str, event_data: dict | None = None) -> dict:
        return await self._request(
            "POST",
            "/api/calls/events",
            json={"callSid": call_sid, "eventType": event_type, "eventData": event_data},
        )

    async def update_call_with_contact(self, call_sid: str, contact_id: int, collected_data: dict) -> dict:
        return await self._request(
            "PATCH",
            f"/api/calls/{call_sid}",
            json={"contactId": contact_id, "collectedData": collected_data},
        )

    # ── Callbacks ──

    async def create_callback(self, payload: dict) -> dict:
        return await self._request("POST", "/api/callbacks", json=payload)

    # ── Contacts ──

    async def search_contacts(self, company_id: int, params: dict) -> list[dict]:
        query = {"companyId": str(company_id)}
        query.update({k: str(v) for k, v in params.items() if v})
        result = await self._request("GET", "/api/contacts/search", params=query)
        return result if isinstance(result, list) else result.get("contacts", [])

    async def get_contact_by_phone(self, company_id: int, phone_number: str) -> dict:
        return await self._request(
            "GET",
            f"/api/contacts/lookup/{phone_number}",
            params={"companyId": str(company_id)},
        )

    async def create_or_update_contact(self, payload: dict) -> dict:
        return await self._request("POST", "/api/contacts", json=payload)


def _error_message(resp: httpx.Response, label: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return f"{label}: {body['error']}"
    return f"{label} failed: {resp.status_code}"
