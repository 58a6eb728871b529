"""Client for the updater trigger endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from patchlevel.constants import SECRET_HEADER
from patchlevel.logging import get_logger

log = get_logger("patchlevel.client")

DEFAULT_TIMEOUT = 300.0


@dataclass
class TriggerResponse:
    """Parsed reply from ``POST /update``."""

    success: bool
    error: str | None = None
    deferred: bool = False
    version: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TriggerResponse:
        return cls(
            success=bool(data.get("success", False)),
            error=data.get("error"),
            deferred=bool(data.get("deferred", False)),
            version=data.get("version"),
        )


class UpdaterClient:
    """Triggers update runs on a remote patchlevel endpoint."""

    def __init__(
        self,
        base_url: str,
        secret: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._secret = secret
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def trigger(self) -> TriggerResponse:
        """Ask the endpoint to run pending updates."""
        try:
            async with self._client() as client:
                resp = await client.post("/update", headers={SECRET_HEADER: self._secret})
        except httpx.HTTPError as exc:
            log.warning("updater_unreachable", url=self._base_url, error=str(exc))
            return TriggerResponse(success=False, error=f"Updater unreachable: {exc}")

        try:
            data = resp.json()
        except ValueError:
            log.warning("updater_bad_response", status=resp.status_code)
            return TriggerResponse(
                success=False, error=f"Unexpected response (HTTP {resp.status_code})"
            )

        response = TriggerResponse.from_dict(data if isinstance(data, dict) else {})
        if not response.success:
            log.warning(
                "updater_trigger_failed",
                status=resp.status_code,
                deferred=response.deferred,
                error=response.error,
            )
        return response

    async def health(self) -> bool:
        """Return True if the endpoint answers its health check."""
        try:
            async with self._client() as client:
                resp = await client.get("/health")
        except httpx.HTTPError:
            return False
        return resp.status_code == 200
