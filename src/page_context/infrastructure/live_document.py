"""Session document — the live, navigable probe source behind one session.

Wraps the current :class:`HtmlDocument` and swaps it on navigation or when
a fresh snapshot arrives.  Every swap notifies the registered listeners,
which is how the session's classifier drops its cached detection early.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from page_context.domain.exceptions import DocumentUnavailableError
from page_context.domain.ports.collaborators import SnapshotPayload
from page_context.infrastructure.html_document import (
    DEFAULT_CAPABILITY_DEPTH,
    DocumentSnapshot,
    HtmlDocument,
    HtmlElement,
)

logger = logging.getLogger(__name__)

NavigationListener = Callable[[str], None]


class LiveDocument:
    """Probe source whose content can change between detection cycles."""

    def __init__(
        self,
        snapshot: DocumentSnapshot | None = None,
        *,
        max_depth: int = DEFAULT_CAPABILITY_DEPTH,
    ) -> None:
        self._max_depth = max_depth
        self._listeners: list[NavigationListener] = []
        self._ready = asyncio.Event()
        self._current: HtmlDocument | None = None
        if snapshot is not None:
            self._swap(snapshot)

    @property
    def loaded(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> HtmlDocument:
        if self._current is None:
            raise DocumentUnavailableError("No document has been loaded into this session")
        return self._current

    def on_navigate(self, listener: NavigationListener) -> None:
        self._listeners.append(listener)

    # ── Content changes ─────────────────────────────────────────────────

    def load(self, payload: SnapshotPayload) -> None:
        self.replace(DocumentSnapshot.from_payload(payload))

    def replace(self, snapshot: DocumentSnapshot) -> None:
        self._swap(snapshot)
        self._notify(snapshot.url)

    def navigate(self, url: str, html: str | None = None) -> None:
        """Move to *url*; without *html* the page counts as still loading."""
        previous = self._current.snapshot if self._current is not None else None
        snapshot = DocumentSnapshot(
            url=url,
            html=html or "",
            user_agent=previous.user_agent if previous else "",
            ready_state="complete" if html is not None else "loading",
        )
        self.replace(snapshot)

    def mark_ready(self) -> None:
        self._ready.set()

    def _swap(self, snapshot: DocumentSnapshot) -> None:
        self._current = HtmlDocument(snapshot, max_depth=self._max_depth)
        if self._current.ready:
            self._ready.set()
        else:
            self._ready.clear()

    def _notify(self, url: str) -> None:
        logger.debug("Document navigated to %s", url)
        for listener in self._listeners:
            try:
                listener(url)
            except Exception:
                logger.warning("Navigation listener failed", exc_info=True)

    # ── DocumentProbeSource ─────────────────────────────────────────────

    @property
    def address(self) -> str:
        return self.current.address

    @property
    def user_agent(self) -> str:
        return self.current.user_agent

    def title(self) -> str:
        return self.current.title()

    def has_capability(self, name: str) -> bool:
        return self.current.has_capability(name)

    def capability(self, name: str) -> Any:
        return self.current.capability(name)

    def select(self, selector: str) -> Sequence[HtmlElement]:
        return self.current.select(selector)

    def count(self, selector: str) -> int:
        return self.current.count(selector)

    def text(self) -> str:
        return self.current.text()

    async def wait_ready(self) -> None:
        await self._ready.wait()
