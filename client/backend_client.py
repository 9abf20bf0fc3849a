from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx


class BackendError(RuntimeError):
    """Base error for backend calls."""


class BackendTimeoutError(BackendError):
    """Backend request timed out."""


class BackendUnavailableError(BackendError):
    """Backend service is unreachable."""


class BackendProtocolError(BackendError):
    """Backend response is malformed."""


@dataclass
class BackendHttpError(BackendError):
    status_code: int
    detail: Any
    message: str

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


@dataclass
class ConciergeApiClient:
    """Async client for the partner search API, used by the chat front-ends."""

    base_url: str
    timeout_seconds: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None

    async def get_ready(self) -> dict[str, Any]:
        return await self._request_json("GET", "/ready")

    async def search(
        self,
        q: str,
        cidade_id: str | None = None,
        categoria: str | None = None,
        limit: int = 10,
        debug: bool = False,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"q": q, "limit": limit}
        if cidade_id:
            params["cidade_id"] = cidade_id
        if categoria:
            params["categoria"] = categoria
        if debug:
            params["debug"] = "1"
        payload = await self._request_json("GET", "/rag/search", params=params)
        if not isinstance(payload.get("items"), list):
            raise BackendProtocolError("Backend search response missing 'items'")
        return payload

    async def _request_json(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        base_url = self.base_url.rstrip("/")
        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            raise BackendTimeoutError("Request timed out") from exc
        except httpx.NetworkError as exc:
            raise BackendUnavailableError("Backend unavailable") from exc

        if response.status_code >= 400:
            detail = _response_detail(response)
            raise BackendHttpError(
                status_code=response.status_code,
                detail=detail,
                message=response.reason_phrase or "Backend error",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendProtocolError("Backend returned non-JSON response") from exc

        if not isinstance(payload, dict):
            raise BackendProtocolError("Backend returned unexpected JSON payload")
        return payload


def _response_detail(response: httpx.Response) -> Any:
    try:
        payload = response.json()
        if isinstance(payload, dict):
            return payload.get("detail")
        return payload
    except ValueError:
        return response.text
