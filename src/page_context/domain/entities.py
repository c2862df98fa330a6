"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum

from page_context.domain.value_objects import Score


class Category(str, Enum):
    """Closed set of environment kinds a document can be classified as."""

    GITHUB = "github"
    GITLAB = "gitlab"
    MONACO = "monaco"
    CODEMIRROR = "codemirror"
    VSCODE_WEB = "vscode-web"
    STACKBLITZ = "stackblitz"
    CODESANDBOX = "codesandbox"
    CODEPEN = "codepen"
    LOCALHOST = "localhost"
    HAS_CODE = "has-code"
    UNKNOWN = "unknown"

    @property
    def is_low_confidence(self) -> bool:
        """``has-code`` and ``unknown`` are two tiers of the same bucket."""
        return self in (Category.HAS_CODE, Category.UNKNOWN)


class DetectionTier(str, Enum):
    """Which probe tier resolved a classification."""

    CAPABILITY = "capability"
    ADDRESS = "address"
    STRUCTURAL = "structural"
    HEURISTIC = "heuristic"
    BREAKER = "breaker"
    NONE = "none"


class FileRole(str, Enum):
    """Role an observed file plays in the project."""

    README = "readme"
    CONFIG = "config"
    LOCK = "lock"
    ENV = "env"
    ENTRY_POINT = "entry_point"
    SOURCE = "source"
    TEST = "test"
    DOCS = "docs"


class Presence(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class RecoveryPhase(str, Enum):
    """States of one operation id inside the recovery orchestrator."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FALLBACK_ATTEMPTING = "fallback_attempting"
    FALLBACK_FAILED = "fallback_failed"


UNKNOWN = "unknown"


# ── Detection ───────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DetectionCacheEntry:
    """The single cached classification held by a classifier."""

    category: Category
    computed_at: float
    confidence: int
    tier: DetectionTier = DetectionTier.NONE


@dataclass(slots=True)
class CircuitBreakerState:
    """Mutable failure bookkeeping, owned by exactly one breaker."""

    failure_count: int = 0
    last_failure_at: float | None = None


# ── Extraction ──────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ObservedFile:
    """A file recovered from the document."""

    path: str
    language: str
    content: str = ""
    line_count: int = 0
    byte_size: int = 0

    @classmethod
    def from_content(cls, path: str, language: str, content: str = "") -> ObservedFile:
        """Build a file, deriving line and byte counts from *content*."""
        return cls(
            path=path,
            language=language or UNKNOWN,
            content=content,
            line_count=content.count("\n") + 1 if content else 0,
            byte_size=len(content.encode("utf-8")),
        )

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)


@dataclass(frozen=True, slots=True)
class ProjectStructure:
    """All files observed on the document plus their derived layout."""

    files: tuple[ObservedFile, ...] = ()
    directories: tuple[str, ...] = ()
    entry_points: tuple[str, ...] = ()
    total_files: int = 0
    total_lines: int = 0
    source_tier: int = 0  # 1-based chain position, 0 = nothing found
    strategy: str = ""

    @classmethod
    def empty(cls) -> ProjectStructure:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def languages(self) -> tuple[str, ...]:
        """Distinct known languages in first-seen order."""
        seen: dict[str, None] = {}
        for f in self.files:
            if f.language != UNKNOWN:
                seen.setdefault(f.language, None)
        return tuple(seen)

    @property
    def primary_language(self) -> str:
        """Language with the most lines, ``"unknown"`` when nothing is known."""
        totals: dict[str, int] = {}
        for f in self.files:
            if f.language != UNKNOWN:
                totals[f.language] = totals.get(f.language, 0) + max(f.line_count, 1)
        if not totals:
            return UNKNOWN
        return max(totals.items(), key=lambda kv: (kv[1], kv[0]))[0]


@dataclass(frozen=True, slots=True)
class DeclaredPackage:
    name: str
    version: str = UNKNOWN
    is_dev: bool = False


@dataclass(frozen=True, slots=True)
class DependencySnapshot:
    """Best-effort dependency signals; missing evidence stays ``unknown``."""

    runtime_language: str = UNKNOWN
    package_manager: str = UNKNOWN
    packages: tuple[DeclaredPackage, ...] = ()
    lock_file: str | None = None
    lock_file_presence: Presence = Presence.UNKNOWN

    @classmethod
    def unknown(cls) -> DependencySnapshot:
        return cls()


@dataclass(frozen=True, slots=True)
class EnvironmentVariable:
    key: str
    is_required: bool = False
    has_default: bool = False


@dataclass(frozen=True, slots=True)
class EnvironmentSnapshot:
    variables: tuple[EnvironmentVariable, ...] = ()
    config_files: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> EnvironmentSnapshot:
        return cls()


@dataclass(frozen=True, slots=True)
class ContentSignals:
    """Generic code-content evidence, independent of the category."""

    code_block_count: int = 0
    languages: tuple[str, ...] = ()
    highlighted_block_count: int = 0

    @classmethod
    def none(cls) -> ContentSignals:
        return cls()


# ── Outcome ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class PackagedResult:
    """The versioned artifact handed to downstream consumers."""

    format_version: str
    generated_at: str
    category: Category
    score: Score
    confidence_level: str
    structure: ProjectStructure
    dependencies: DependencySnapshot
    environment: EnvironmentSnapshot
    summary: str
    instructions: str
    source_address: str
    digest: str
    size: int = 0


@dataclass(frozen=True, slots=True)
class ExtractionSuccess:
    result: PackagedResult
    degraded: bool = False

    @property
    def score(self) -> Score:
        return self.result.score

    @property
    def category(self) -> Category:
        return self.result.category


@dataclass(frozen=True, slots=True)
class ExtractionFailure:
    reason_code: str
    human_message: str
    suggested_actions: tuple[str, ...] = ()


ExtractionOutcome = ExtractionSuccess | ExtractionFailure


# ── Recovery ────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class RetryState:
    """Per-operation retry bookkeeping, owned by the recovery orchestrator."""

    operation_id: str
    started_at: float
    updated_at: float
    attempt_count: int = 0
    last_error: BaseException | None = None
    phase: RecoveryPhase = RecoveryPhase.IDLE
