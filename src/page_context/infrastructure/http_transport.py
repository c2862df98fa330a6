"""HTTP transport adapter — implements the DocumentTransport port.

Asks the in-page agent for a snapshot of the document it is attached to.
The agent answers ``POST {agent_url}/sessions/{session_id}/snapshot`` with
a JSON snapshot body.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from page_context.domain.exceptions import (
    DocumentAccessDeniedError,
    DocumentUnavailableError,
    ErrorCode,
    ExtractionError,
    TransportError,
)
from page_context.domain.ports.collaborators import SnapshotPayload

logger = logging.getLogger(__name__)

_PAYLOAD = TypeAdapter(SnapshotPayload)


class HttpDocumentTransport:
    """Concrete DocumentTransport backed by an httpx client."""

    def __init__(self, client: httpx.AsyncClient, agent_url: str) -> None:
        self._client = client
        self._base = agent_url.rstrip("/")
        self._headers = {"Accept": "application/json", "User-Agent": "page-context/1.0"}

    async def request_snapshot(self, session_id: str) -> SnapshotPayload:
        """POST /sessions/{session_id}/snapshot → SnapshotPayload."""
        url = f"{self._base}/sessions/{session_id}/snapshot"
        try:
            resp = await self._client.post(url, headers=self._headers, json={"session_id": session_id})
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"Agent did not answer in time: {url}", code=ErrorCode.TRANSPORT_TIMEOUT
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Network error reaching {url}: {exc}") from exc

        if resp.status_code == 200:
            return self._parse(resp, session_id)

        if resp.status_code == 404:
            raise DocumentUnavailableError(f"Agent has no document for session {session_id!r}")

        if resp.status_code == 403:
            raise DocumentAccessDeniedError(
                f"Agent was refused access to the document of session {session_id!r}"
            )

        raise TransportError(f"Agent returned HTTP {resp.status_code} for {url}")

    @staticmethod
    def _parse(resp: httpx.Response, session_id: str) -> SnapshotPayload:
        try:
            return _PAYLOAD.validate_json(resp.content)
        except ValidationError as exc:
            logger.debug("Bad snapshot body for %s: %s", session_id, exc)
            raise ExtractionError(
                f"Agent sent a malformed snapshot for session {session_id!r}",
                code=ErrorCode.EXTRACTION_INVALID_DATA,
            ) from exc
