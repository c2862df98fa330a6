"""Notifier — writes terminal outcomes to the log and remembers the last one per session."""

from __future__ import annotations

import logging

from page_context.domain.ports.collaborators import Notification

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def __init__(self) -> None:
        self._last: dict[str, Notification] = {}

    def notify(self, notification: Notification) -> None:
        self._last[notification.session_id] = notification
        if notification.success:
            logger.info("[%s] %s: %s", notification.session_id, notification.title, notification.message)
        else:
            logger.warning(
                "[%s] %s: %s (try: %s)",
                notification.session_id,
                notification.title,
                notification.message,
                "; ".join(notification.actions) or "nothing",
            )

    def last(self, session_id: str) -> Notification | None:
        return self._last.get(session_id)
