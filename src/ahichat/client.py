"""Async HTTP client for the chat backend."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import BACKEND_URL, CHAT_PATH, REQUEST_TIMEOUT_SECONDS, SESSION_OPEN_PATH
from .models import Session

logger = logging.getLogger(__name__)


class BackendClient:
    """Thin wrapper over httpx.AsyncClient for the /chat and /session-open endpoints."""

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        timeout: float | None = REQUEST_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        logger.debug("POST %s", path)
        response = await self._http.post(path, json=body)
        response.raise_for_status()
        return response.json()

    async def chat(self, message: str, session: Session) -> Any:
        return await self._post(
            CHAT_PATH,
            {
                "message": message,
                "sessionId": session.id,
                "sessionStart": session.started_at,
            },
        )

    async def session_open(self, session: Session) -> Any:
        return await self._post(
            SESSION_OPEN_PATH,
            {"sessionId": session.id, "sessionStart": session.started_at},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
