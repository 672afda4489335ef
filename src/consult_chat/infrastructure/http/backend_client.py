"""HTTP client for the consultation backend (history, listing, fallback send)."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from consult_chat.application.dto.message import FallbackSendDTO
from consult_chat.application.exceptions import BackendError
from consult_chat.config import Settings

logger = logging.getLogger(__name__)


class HttpxConsultationBackend:
    """Implements application.ports.backend.ConsultationBackend."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings) -> HttpxConsultationBackend:
        client = httpx.AsyncClient(
            base_url=config.API_BASE_URL,
            timeout=config.API_TIMEOUT,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_consultations(self, user_id: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", "/api/consultations", params={"userId": user_id})
        return list(payload.get("data") or [])

    async def fetch_messages(self, consultation_id: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/api/consultations/{consultation_id}/messages")
        return list(payload.get("messages") or [])

    async def post_message(self, dto: FallbackSendDTO) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/api/consultations/{dto.consultation_id}/messages",
            json=dto.to_request(),
        )
        message = payload.get("message")
        return message if isinstance(message, dict) else {}

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {url} failed: {exc!r}") from exc

        if resp.is_error:
            raise BackendError(_error_detail(resp), status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError as exc:
            raise BackendError(f"{method} {url} returned invalid JSON", status_code=resp.status_code) from exc
        logger.debug("%s %s -> %d", method, url, resp.status_code)
        return body if isinstance(body, dict) else {}


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {resp.status_code}"
