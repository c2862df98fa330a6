"""Probe set — read-only signal checks against the document.

Probes are grouped into tiers that the classifier runs in priority order.
A probe never lets an exception escape :func:`run_probe`; a raising probe
counts as "found nothing".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from page_context.domain.entities import Category, DetectionTier
from page_context.domain.ports.document_source import DocumentProbeSource
from page_context.domain.value_objects import DocumentAddress

logger = logging.getLogger(__name__)

ProbeCheck = Callable[[DocumentProbeSource], bool]

CHEAP_TIERS: frozenset[DetectionTier] = frozenset(
    {DetectionTier.CAPABILITY, DetectionTier.ADDRESS}
)

DEV_PORTS: frozenset[int] = frozenset({3000, 3001, 4200, 5000, 5173, 8000, 8080, 9000})

CODE_ELEMENT_SELECTORS: tuple[str, ...] = (
    "pre code",
    ".highlight",
    ".hljs",
    '[class*="language-"]',
    '[class*="lang-"]',
    ".code-block",
)

MIN_CODE_ELEMENTS = 3


@dataclass(frozen=True, slots=True)
class Probe:
    name: str
    tier: DetectionTier
    category: Category
    check: ProbeCheck


@dataclass(frozen=True, slots=True)
class ProbeResult:
    probe: Probe
    matched: bool
    errored: bool = False


def run_probe(probe: Probe, source: DocumentProbeSource) -> ProbeResult:
    """Evaluate one probe, absorbing any exception it raises."""
    try:
        return ProbeResult(probe=probe, matched=bool(probe.check(source)))
    except Exception:
        logger.debug("Probe %s raised — treating as no signal", probe.name, exc_info=True)
        return ProbeResult(probe=probe, matched=False, errored=True)


# ── Check builders ──────────────────────────────────────────────────────────


def capability_check(name: str) -> ProbeCheck:
    def check(source: DocumentProbeSource) -> bool:
        return source.has_capability(name)

    return check


def host_check(*domains: str) -> ProbeCheck:
    def check(source: DocumentProbeSource) -> bool:
        address = DocumentAddress.from_string(source.address)
        return any(address.host_matches(domain) for domain in domains)

    return check


def local_server_check(source: DocumentProbeSource) -> bool:
    address = DocumentAddress.from_string(source.address)
    host = address.hostname
    if host in ("localhost", "127.0.0.1", "0.0.0.0", "::1") or host.startswith("192.168."):
        return True
    return address.port in DEV_PORTS


def marker_check(selector: str) -> ProbeCheck:
    def check(source: DocumentProbeSource) -> bool:
        return source.count(selector) > 0

    return check


def code_content_check(source: DocumentProbeSource) -> bool:
    total = sum(source.count(selector) for selector in CODE_ELEMENT_SELECTORS)
    return total >= MIN_CODE_ELEMENTS


_EDITOR_AGENT_RE = re.compile(r"\b(?:vscode|electron)\b", re.IGNORECASE)


def editor_agent_check(source: DocumentProbeSource) -> bool:
    return bool(_EDITOR_AGENT_RE.search(source.user_agent or ""))


# ── Default priority order ──────────────────────────────────────────────────


def default_probes() -> tuple[Probe, ...]:
    """The fixed probe order, cheapest and most definitive first."""
    cap, addr = DetectionTier.CAPABILITY, DetectionTier.ADDRESS
    struct, heur = DetectionTier.STRUCTURAL, DetectionTier.HEURISTIC
    return (
        Probe("monaco-global", cap, Category.MONACO, capability_check("monaco.editor")),
        Probe("github-host", addr, Category.GITHUB, host_check("github.com")),
        Probe("gitlab-host", addr, Category.GITLAB, host_check("gitlab.com")),
        Probe("stackblitz-host", addr, Category.STACKBLITZ, host_check("stackblitz.com", "stackblitz.io")),
        Probe("codesandbox-host", addr, Category.CODESANDBOX, host_check("codesandbox.io", "csb.app")),
        Probe("codepen-host", addr, Category.CODEPEN, host_check("codepen.io")),
        Probe("vscode-web-host", addr, Category.VSCODE_WEB, host_check("vscode.dev", "github.dev")),
        Probe("local-server", addr, Category.LOCALHOST, local_server_check),
        Probe("codemirror-global", cap, Category.CODEMIRROR, capability_check("CodeMirror")),
        Probe("vscode-workbench", struct, Category.VSCODE_WEB, marker_check(".monaco-workbench")),
        Probe("monaco-dom", struct, Category.MONACO, marker_check(".monaco-editor")),
        Probe("codemirror-dom", struct, Category.CODEMIRROR, marker_check(".CodeMirror, .cm-editor")),
        Probe(
            "repository-dom",
            struct,
            Category.GITHUB,
            marker_check('.repository-content, [data-testid="repository-container"]'),
        ),
        Probe("code-content", struct, Category.HAS_CODE, code_content_check),
        Probe("editor-agent", heur, Category.VSCODE_WEB, editor_agent_check),
        Probe("vscode-api-global", heur, Category.VSCODE_WEB, capability_check("acquireVsCodeApi")),
    )


def by_tier(probes: Sequence[Probe], *tiers: DetectionTier) -> list[Probe]:
    """Probes of the given tiers, in their original order."""
    wanted = set(tiers)
    return [p for p in probes if p.tier in wanted]
