"""Telemetry sink — logs every event and keeps the most recent ones in memory."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict
from typing import Any

from page_context.domain.ports.collaborators import TelemetryEvent

logger = logging.getLogger(__name__)


class LoggingTelemetrySink:
    """Concrete TelemetrySink; ``recent()`` feeds the diagnostics endpoint."""

    def __init__(self, buffer_size: int = 200) -> None:
        self._events: deque[TelemetryEvent] = deque(maxlen=buffer_size)

    def emit(self, event: TelemetryEvent) -> None:
        self._events.append(event)
        logger.info(
            "%s phase=%s category=%s score=%s duration_ms=%s error=%s",
            event.name,
            event.phase,
            event.category,
            event.score,
            f"{event.duration_ms:.1f}" if event.duration_ms is not None else None,
            event.error_code,
        )

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        events = list(self._events)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return [asdict(e) for e in events]

    def clear(self) -> None:
        self._events.clear()
