"""Mini README: Thin async HTTP wrapper around the ledger API.

Structure:
    * LedgerHttpApi - issues the four ledger requests through ``httpx``.
    * parse_state_payload - validates a JSON body carries a numeric ``total``.

Every transport problem (connection errors, timeouts, non-2xx statuses) is
raised as ``TransportFailure``; bodies that arrive but cannot be used are
raised as ``MalformedResponse``. Callers decide what to roll back.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

import httpx

from ..errors import MalformedResponse, TransportFailure
from ..ledger import LedgerState
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def parse_state_payload(device_id: str, payload: Any) -> LedgerState:
    """Convert a response body into ``LedgerState`` or raise ``MalformedResponse``."""

    if not isinstance(payload, dict) or not _is_number(payload.get("total")):
        raise MalformedResponse(f"response has no numeric total: {payload!r}")
    version = payload.get("version", payload.get("latestEventId", 0))
    if isinstance(version, bool) or not isinstance(version, int):
        version = 0
    return LedgerState(device_id=device_id, total=payload["total"], version=version)


class LedgerHttpApi:
    """Issue ledger requests for one device against a base URL."""

    def __init__(
        self,
        device_id: str,
        *,
        base_url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.device_id = device_id
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def aclose(self) -> None:
        """Close the underlying client when this wrapper created it."""

        if self._owns_client:
            await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as error:
            raise TransportFailure(f"{method} {path} timed out after {self._timeout}s") from error
        except httpx.HTTPError as error:
            raise TransportFailure(f"{method} {path} failed: {error}") from error
        if response.is_error:
            raise TransportFailure(
                f"HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    async def _send_for_state(self, method: str, path: str, **kwargs: Any) -> LedgerState:
        response = await self._send(method, path, **kwargs)
        if not response.content.strip():
            payload: Any = {}
        else:
            try:
                payload = response.json()
            except ValueError as error:
                raise MalformedResponse(f"response is not JSON: {response.text!r}") from error
        return parse_state_payload(self.device_id, payload)

    async def increment(self, amount: float, *, idempotency_key: Optional[str] = None) -> LedgerState:
        """POST an increment and return the authoritative state."""

        headers = {"Accept": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return await self._send_for_state(
            "POST",
            "/api/savings",
            json_body={"amount": amount, "deviceId": self.device_id},
            headers=headers,
        )

    async def reset(self, *, idempotency_key: Optional[str] = None) -> LedgerState:
        """POST a reset and return the authoritative state."""

        headers = {"Accept": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return await self._send_for_state(
            "POST",
            "/api/reset",
            json_body={"deviceId": self.device_id},
            headers=headers,
        )

    async def get_state(self) -> LedgerState:
        """GET the full ledger state."""

        return await self._send_for_state(
            "GET",
            "/api/device",
            params={"deviceId": self.device_id},
            headers={"Accept": "application/json"},
        )

    async def get_version(self) -> int:
        """GET the plain-text version scalar."""

        response = await self._send("GET", "/api/latest-savings", params={"deviceId": self.device_id})
        text = response.text.strip()
        try:
            version = int(text)
        except ValueError as error:
            raise MalformedResponse(f"version is not an integer: {text!r}") from error
        if version < 0:
            raise MalformedResponse(f"version is negative: {version}")
        return version
