"""Ports for the boundary collaborators: persistence, transport, notification, telemetry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from page_context.domain.entities import ExtractionOutcome


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    """One structured transition reported to the telemetry collaborator."""

    name: str
    phase: str
    operation_id: str | None = None
    category: str | None = None
    score: int | None = None
    duration_ms: float | None = None
    attempts: int | None = None
    error_code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Notification:
    """Terminal outcome as shown to the user."""

    session_id: str
    success: bool
    title: str
    message: str
    score: int | None = None
    actions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SnapshotPayload:
    """Raw document content as delivered by the transport collaborator."""

    url: str
    html: str
    user_agent: str = ""
    ready_state: str = "complete"
    capabilities: dict[str, Any] = field(default_factory=dict)


class OutcomeStore(Protocol):
    def save(self, session_id: str, outcome: ExtractionOutcome) -> None: ...

    def load_latest(self, session_id: str) -> ExtractionOutcome | None: ...


class DocumentTransport(Protocol):
    async def request_snapshot(self, session_id: str) -> SnapshotPayload:
        """Deliver an extraction request to the document context and return its reply."""
        ...


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class TelemetrySink(Protocol):
    def emit(self, event: TelemetryEvent) -> None: ...


class SnapshotLoader(Protocol):
    def load(self, payload: SnapshotPayload) -> None:
        """Replace the document's content with *payload*."""
        ...
