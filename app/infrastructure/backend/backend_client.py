from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.application.exceptions import BackendUnavailableError


@dataclass(frozen=True)
class BackendResult:
    """Outcome of a backend call. ``NO_RESPONSE`` means every attempt failed."""

    status_code: int | None = None
    body: Any = None

    @property
    def available(self) -> bool:
        return self.status_code is not None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def data(self) -> dict[str, Any] | None:
        if not isinstance(self.body, dict):
            return None
        data = self.body.get("data")
        return data if isinstance(data, dict) else None


NO_RESPONSE = BackendResult()


class BackendClient:
    """JSON REST client with a per-request timeout and bounded retries.

    ``call`` never raises: 2xx and 4xx answers are returned as-is, while
    timeouts, transport errors and 5xx answers are retried until the attempt
    budget runs out, at which point ``NO_RESPONSE`` is returned. A URL that
    cannot be parsed returns ``NO_RESPONSE`` without retrying.

    The API key is only attached to ``authenticated`` calls; third-party
    URLs such as vote webhooks must be called with ``authenticated=False``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._auth_headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._retries = max(1, retries)
        self._retry_delay = max(0.0, retry_delay)
        self._logger = logging.getLogger(__name__)

    async def call(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> BackendResult:
        last_error: str | None = None
        for attempt in range(1, self._retries + 1):
            try:
                return await self._send_once(method, path, body, authenticated)
            except BackendUnavailableError as e:
                last_error = str(e)
                self._logger.warning(
                    "Backend call failed",
                    extra={"method": method, "path": path, "attempt": attempt, "error": last_error},
                )
            if attempt < self._retries and self._retry_delay:
                await asyncio.sleep(self._retry_delay)

        self._logger.error(
            "Backend call exhausted retries",
            extra={"method": method, "path": path, "retries": self._retries, "error": last_error},
        )
        return NO_RESPONSE

    async def _send_once(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        authenticated: bool,
    ) -> BackendResult:
        headers = self._auth_headers if authenticated else None
        try:
            resp = await self._client.request(method, path, json=body, headers=headers)
        except httpx.InvalidURL as e:
            self._logger.error("Backend call rejected", extra={"method": method, "path": path, "error": str(e)})
            return NO_RESPONSE
        except httpx.HTTPError as e:
            raise BackendUnavailableError(f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 500:
            raise BackendUnavailableError(f"HTTP {resp.status_code}")

        try:
            payload = resp.json() if resp.content else None
        except ValueError:
            payload = None
        return BackendResult(status_code=resp.status_code, body=payload)

    async def aclose(self) -> None:
        await self._client.aclose()
