"""Value objects — self-validating domain primitives."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from page_context.domain.exceptions import InvalidDocumentError, InvalidScoreError

SCORE_MIN = 0
SCORE_MAX = 100

# "host:port" is not a scheme; "about:blank" and "data:..." are
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:(?!\d)")


@dataclass(frozen=True, slots=True, order=True)
class Score:
    """Integer confidence in ``[0, 100]``.

    Direct construction only accepts an in-range ``int``; arithmetic results
    must go through :meth:`clamp`, which is the single place raw numbers are
    turned into a score.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidScoreError(f"Score must be an int, got {self.value!r}")
        if not SCORE_MIN <= self.value <= SCORE_MAX:
            raise InvalidScoreError(
                f"Score {self.value} is outside [{SCORE_MIN}, {SCORE_MAX}]"
            )

    @classmethod
    def clamp(cls, raw: float) -> Score:
        """Round half up and clamp *raw*; NaN becomes 0."""
        if raw is None or (isinstance(raw, float) and math.isnan(raw)):
            return cls(SCORE_MIN)
        if raw == math.inf:
            return cls(SCORE_MAX)
        if raw == -math.inf:
            return cls(SCORE_MIN)
        rounded = math.floor(raw + 0.5)
        return cls(min(SCORE_MAX, max(SCORE_MIN, int(rounded))))

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class DocumentAddress:
    """Parsed document location used by the address probes.

    Accepts anything a browser would show in its location bar.  Text with
    no scheme (``example.com/x``, ``localhost:3000``) is read as ``https``;
    scheme-only pages such as ``about:blank`` or ``data:`` URLs keep their
    scheme and simply have no hostname.
    """

    raw: str
    hostname: str
    port: int | None
    path: str

    @classmethod
    def from_string(cls, address: str) -> DocumentAddress:
        text = (address or "").strip()
        if not text:
            return cls(raw="", hostname="", port=None, path="/")
        candidate = text if _SCHEME_RE.match(text) else f"https://{text}"
        try:
            parts = urlsplit(candidate)
            port = parts.port
        except ValueError as exc:
            raise InvalidDocumentError(f"Malformed document address: {text!r}") from exc
        return cls(
            raw=text,
            hostname=(parts.hostname or "").lower(),
            port=port,
            path=parts.path or "/",
        )

    def host_matches(self, domain: str) -> bool:
        """True for *domain* itself or any of its subdomains."""
        return self.hostname == domain or self.hostname.endswith(f".{domain}")
