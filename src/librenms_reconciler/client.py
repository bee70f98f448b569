"""LibreNMS v0 REST API client.

Thin async collaborator used by the entity handlers. It only moves decoded
JSON in and out; payload construction and interpretation live in the
handlers and the reconciliation engine. Transport errors are retried here,
never in the engine.
"""
import logging
from typing import Any, Optional

import httpx

from .utils.connection import UNSENT_EXCEPTIONS, with_retry

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A LibreNMS API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, method: str = "", path: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.method = method
        self.path = path

    def __str__(self) -> str:
        status = f" HTTP {self.status_code}" if self.status_code is not None else ""
        return f"{self.method} {self.path}{status}: {self.message}".strip()


def _records(body: dict, *keys: str) -> list[dict]:
    """Pull a record list out of a LibreNMS response envelope."""
    for key in keys:
        value = body.get(key)
        if value is None:
            continue
        if isinstance(value, dict):
            return [value]
        records: list[dict] = []
        for item in value:
            # services come back grouped per device: [[{...}, {...}]]
            if isinstance(item, list):
                records.extend(item)
            else:
                records.append(item)
        return records
    return []


class LibreNMSClient:
    """Async client for the LibreNMS API.

    Usage:
        async with LibreNMSClient("https://librenms.example.com", token) as client:
            records = await client.get_device(42)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30,
        verify_ssl: bool = True,
        retries: int = 3,
        retry_min_wait: float = 1,
        retry_max_wait: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        backoff = dict(max_attempts=retries, min_wait=retry_min_wait, max_wait=retry_max_wait)
        self._send = with_retry(**backoff)(self._send_once)
        # POST creates entities; resend only if it never left this host
        self._send_create = with_retry(exceptions=UNSENT_EXCEPTIONS, **backoff)(self._send_once)

    @property
    def api_root(self) -> str:
        return f"{self.base_url}/api/v0"

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.api_root,
                timeout=httpx.Timeout(self._timeout),
                verify=self._verify_ssl,
                headers={"X-Auth-Token": self._token, "Accept": "application/json"},
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # === Request plumbing ===

    async def _send_once(self, method: str, path: str, payload: Any = None) -> httpx.Response:
        kwargs = {"json": payload} if payload is not None else {}
        return await self._client().request(method, path, **kwargs)

    async def request(self, method: str, path: str, payload: Any = None) -> dict:
        """Issue one API call and return the decoded body.

        Raises:
            ApiError: on HTTP errors, undecodable bodies or ``status: error``
        """
        logger.debug(f"{method} {path}")
        try:
            send = self._send_create if method == "POST" else self._send
            resp = await send(method, path, payload)
        except httpx.HTTPError as e:
            raise ApiError(f"transport error: {e}", method=method, path=path) from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {"message": resp.text}

        if not isinstance(body, dict):
            body = {"data": body}

        if resp.status_code >= 400 or body.get("status") == "error":
            message = body.get("message") or resp.reason_phrase or "request failed"
            raise ApiError(str(message), status_code=resp.status_code, method=method, path=path)

        return body

    # === Devices ===

    async def create_device(self, payload: dict) -> dict:
        return await self.request("POST", "/devices", payload)

    async def get_device(self, identifier: Any) -> list[dict]:
        body = await self.request("GET", f"/devices/{identifier}")
        return _records(body, "devices")

    async def update_device(self, identifier: Any, fields: dict) -> dict:
        """PATCH with parallel ``field``/``data`` arrays."""
        return await self.request("PATCH", f"/devices/{identifier}", fields)

    async def delete_device(self, identifier: Any) -> dict:
        return await self.request("DELETE", f"/devices/{identifier}")

    # === Device groups ===

    async def create_device_group(self, payload: dict) -> dict:
        return await self.request("POST", "/devicegroups", payload)

    async def list_device_groups(self) -> list[dict]:
        body = await self.request("GET", "/devicegroups")
        return _records(body, "groups")

    async def get_device_group(self, identifier: int) -> list[dict]:
        groups = await self.list_device_groups()
        return [g for g in groups if str(g.get("id")) == str(identifier)]

    async def get_device_group_members(self, identifier: int) -> list[dict]:
        body = await self.request("GET", f"/devicegroups/{identifier}")
        return _records(body, "devices")

    async def update_device_group(self, identifier: int, payload: dict) -> dict:
        return await self.request("PATCH", f"/devicegroups/{identifier}", payload)

    async def delete_device_group(self, identifier: int) -> dict:
        return await self.request("DELETE", f"/devicegroups/{identifier}")

    # === Alert rules ===

    async def create_alert_rule(self, payload: dict) -> dict:
        return await self.request("POST", "/rules", payload)

    async def list_alert_rules(self) -> list[dict]:
        body = await self.request("GET", "/rules")
        return _records(body, "rules")

    async def get_alert_rule(self, identifier: int) -> list[dict]:
        body = await self.request("GET", f"/rules/{identifier}")
        return _records(body, "rules")

    async def update_alert_rule(self, payload: dict) -> dict:
        """Full-document update; payload carries ``rule_id``."""
        return await self.request("PUT", "/rules", payload)

    async def delete_alert_rule(self, identifier: int) -> dict:
        return await self.request("DELETE", f"/rules/{identifier}")

    # === Locations ===

    async def create_location(self, payload: dict) -> dict:
        return await self.request("POST", "/locations", payload)

    async def list_locations(self) -> list[dict]:
        body = await self.request("GET", "/resources/locations")
        return _records(body, "locations")

    async def get_location(self, identifier: int) -> list[dict]:
        body = await self.request("GET", f"/location/{identifier}")
        return _records(body, "get_location", "location")

    async def update_location(self, identifier: int, payload: dict) -> dict:
        return await self.request("PATCH", f"/locations/{identifier}", payload)

    async def delete_location(self, identifier: int) -> dict:
        return await self.request("DELETE", f"/locations/{identifier}")

    # === Services ===

    async def create_service(self, device: Any, payload: dict) -> dict:
        return await self.request("POST", f"/services/{device}", payload)

    async def get_service(self, identifier: int) -> list[dict]:
        body = await self.request("GET", f"/services/{identifier}")
        return _records(body, "services")

    async def update_service(self, identifier: int, payload: dict) -> dict:
        return await self.request("PATCH", f"/services/{identifier}", payload)

    async def delete_service(self, identifier: int) -> dict:
        return await self.request("DELETE", f"/services/{identifier}")
