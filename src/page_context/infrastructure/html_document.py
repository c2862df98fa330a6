"""HTML snapshot adapter — implements the DocumentProbeSource port over selectolax's
Lexbor backend.

A snapshot is the serialised markup of a page plus the few runtime facts
markup cannot carry: the user agent, the ready state and a JSON view of the
page's editor globals (``capabilities``).  Capability lookup only follows
allow-listed roots and never descends more than ``max_depth`` segments.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from selectolax.lexbor import LexborHTMLParser, LexborNode

from page_context.domain.exceptions import InvalidDocumentError
from page_context.domain.ports.collaborators import SnapshotPayload
from page_context.domain.value_objects import DocumentAddress

logger = logging.getLogger(__name__)

CAPABILITY_ALLOW_LIST: frozenset[str] = frozenset({"monaco", "CodeMirror", "acquireVsCodeApi"})
DEFAULT_CAPABILITY_DEPTH = 4

# The DOM is parsed and queryable from "interactive" on.
READY_STATES: frozenset[str] = frozenset({"interactive", "complete"})


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    url: str
    html: str
    user_agent: str = ""
    ready_state: str = "complete"
    capabilities: dict[str, Any] = field(default_factory=dict)
    captured_at: float = field(default_factory=time.time)

    @classmethod
    def from_payload(cls, payload: SnapshotPayload) -> DocumentSnapshot:
        return cls(
            url=payload.url,
            html=payload.html,
            user_agent=payload.user_agent,
            ready_state=payload.ready_state,
            capabilities=dict(payload.capabilities),
        )


class HtmlElement:
    """A matched node, exposed through the DocumentElement port."""

    __slots__ = ("_node",)

    def __init__(self, node: LexborNode) -> None:
        self._node = node

    @property
    def tag(self) -> str:
        return self._node.tag or ""

    @property
    def attrs(self) -> Mapping[str, str | None]:
        return dict(self._node.attributes)

    @property
    def classes(self) -> tuple[str, ...]:
        return tuple((self._node.attributes.get("class") or "").split())

    def text(self) -> str:
        return self._node.text(deep=True)

    def select(self, selector: str) -> Sequence[HtmlElement]:
        return _wrap(self._node.css(selector))


def _position(node: LexborNode) -> tuple[int, ...]:
    """Sibling-index path from the root; identifies a node within its tree."""
    path: list[int] = []
    current: LexborNode | None = node
    while current is not None:
        index = 0
        sibling = current.prev
        while sibling is not None:
            index += 1
            sibling = sibling.prev
        path.append(index)
        current = current.parent
    return tuple(reversed(path))


def _wrap(nodes: Sequence[LexborNode]) -> list[HtmlElement]:
    # A node can match more than one member of a selector list.
    seen: set[tuple[int, ...]] = set()
    elements: list[HtmlElement] = []
    for node in nodes:
        key = _position(node)
        if key in seen:
            continue
        seen.add(key)
        elements.append(HtmlElement(node))
    return elements


_MISSING = object()


class HtmlDocument:
    """Read-only probe source over one :class:`DocumentSnapshot`.

    Parsing is lazy and happens at most once per document.
    """

    def __init__(
        self,
        snapshot: DocumentSnapshot,
        *,
        max_depth: int = DEFAULT_CAPABILITY_DEPTH,
        allow_list: frozenset[str] = CAPABILITY_ALLOW_LIST,
    ) -> None:
        DocumentAddress.from_string(snapshot.url)
        if not isinstance(snapshot.capabilities, dict):
            raise InvalidDocumentError("Snapshot capabilities must be a JSON object")
        self._snapshot = snapshot
        self._max_depth = max_depth
        self._allow_list = allow_list
        self._tree: LexborHTMLParser | None = None

    @classmethod
    def from_html(cls, url: str, html: str, **kwargs: Any) -> HtmlDocument:
        return cls(DocumentSnapshot(url=url, html=html, **kwargs))

    @property
    def snapshot(self) -> DocumentSnapshot:
        return self._snapshot

    @property
    def ready(self) -> bool:
        return self._snapshot.ready_state in READY_STATES

    # ── DocumentProbeSource ─────────────────────────────────────────────

    @property
    def address(self) -> str:
        return self._snapshot.url

    @property
    def user_agent(self) -> str:
        return self._snapshot.user_agent

    def title(self) -> str:
        node = self._parsed().css_first("title")
        return node.text(strip=True) if node is not None else ""

    def has_capability(self, name: str) -> bool:
        return self._lookup(name) not in (_MISSING, None)

    def capability(self, name: str) -> Any:
        value = self._lookup(name)
        return None if value is _MISSING else value

    def select(self, selector: str) -> Sequence[HtmlElement]:
        return _wrap(self._parsed().css(selector))

    def count(self, selector: str) -> int:
        return len(self.select(selector))

    def text(self) -> str:
        body = self._parsed().body
        return body.text(deep=True, separator="\n") if body is not None else ""

    async def wait_ready(self) -> None:
        # A static snapshot never changes state.
        return None

    # ── Internals ───────────────────────────────────────────────────────

    def _parsed(self) -> LexborHTMLParser:
        if self._tree is None:
            self._tree = LexborHTMLParser(self._snapshot.html or "")
        return self._tree

    def _lookup(self, name: str) -> Any:
        parts = name.split(".")
        if parts[0] not in self._allow_list or len(parts) > self._max_depth:
            logger.debug("Capability %r refused by allow-list or depth cap", name)
            return _MISSING
        value: Any = self._snapshot.capabilities
        for part in parts:
            if not isinstance(value, dict) or part not in value:
                return _MISSING
            value = value[part]
        return value
