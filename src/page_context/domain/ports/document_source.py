"""Port: document probe source — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence


class DocumentElement(Protocol):
    """One element matched by a structural query."""

    @property
    def tag(self) -> str: ...

    @property
    def attrs(self) -> Mapping[str, str | None]: ...

    @property
    def classes(self) -> tuple[str, ...]: ...

    def text(self) -> str:
        """Text content of the element and all its descendants."""
        ...

    def select(self, selector: str) -> Sequence[DocumentElement]:
        """Descendants matching a CSS selector."""
        ...


class DocumentProbeSource(Protocol):
    """Read-only view of the live external document.

    Every query is side-effect-free.  Any of them may raise; callers in the
    core absorb those errors as "no signal".
    """

    @property
    def address(self) -> str: ...

    @property
    def user_agent(self) -> str: ...

    def title(self) -> str: ...

    def has_capability(self, name: str) -> bool:
        """True when the dotted global *name* is exposed and non-null."""
        ...

    def capability(self, name: str) -> Any:
        """Value of the dotted global *name*, depth-limited; ``None`` when absent."""
        ...

    def select(self, selector: str) -> Sequence[DocumentElement]: ...

    def count(self, selector: str) -> int: ...

    def text(self) -> str:
        """Raw text content of the whole document body."""
        ...

    async def wait_ready(self) -> None:
        """Suspend until the document reports it has finished loading."""
        ...
