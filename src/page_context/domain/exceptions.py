"""Domain exception hierarchy.

Every error leaving a component carries a stable :class:`ErrorCode`, a
:class:`Severity` and a :class:`RecoveryStrategy`.  The recovery
orchestrator is the only place that reads the strategy to decide whether to
retry; the interface layer maps codes to HTTP status codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class RecoveryStrategy(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    DEGRADE = "degrade"
    USER_ACTION = "user_action_required"
    RESTART = "restart_required"
    NONE = "none"


class ErrorCode(str, Enum):
    # Classification (1000-1099)
    CLASSIFICATION_TIMEOUT = "PC_1001"
    CLASSIFICATION_FAILED = "PC_1002"
    CATEGORY_NOT_SUPPORTED = "PC_1003"
    DOCUMENT_ACCESS_DENIED = "PC_1004"

    # Extraction (1100-1199)
    EXTRACTION_TIMEOUT = "PC_1101"
    EXTRACTION_FAILED = "PC_1102"
    EXTRACTION_INVALID_DATA = "PC_1103"
    DOCUMENT_UNAVAILABLE = "PC_1104"
    INVALID_DOCUMENT = "PC_1105"

    # Scoring (1200-1299)
    INVALID_SCORE = "PC_1201"
    INVALID_SCORING_POLICY = "PC_1202"

    # Recovery (1300-1399)
    RECOVERY_EXHAUSTED = "PC_1301"
    PIPELINE_DEADLINE_EXCEEDED = "PC_1302"
    OPERATION_TIMEOUT = "PC_1303"

    # Boundary collaborators (1400-1499)
    STORAGE_FAILED = "PC_1401"
    TRANSPORT_FAILED = "PC_1402"
    TRANSPORT_TIMEOUT = "PC_1403"
    NOTIFICATION_FAILED = "PC_1404"
    PERMISSION_MISSING = "PC_1405"
    POLICY_VIOLATION = "PC_1406"

    # General (1900-1999)
    UNKNOWN_ERROR = "PC_1901"
    CONFIGURATION_ERROR = "PC_1903"


# Never retried, whatever their recovery tag says.
NON_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.PERMISSION_MISSING,
        ErrorCode.CATEGORY_NOT_SUPPORTED,
        ErrorCode.POLICY_VIOLATION,
    }
)


@dataclass(frozen=True, slots=True)
class ErrorProfile:
    """Default severity, recovery tag and user-facing wording for a code."""

    severity: Severity
    recovery: RecoveryStrategy
    user_message: str
    actions: tuple[str, ...]


_TRY_AGAIN = ("Try the extraction again", "Reload the page")

ERROR_PROFILES: dict[ErrorCode, ErrorProfile] = {
    ErrorCode.CLASSIFICATION_TIMEOUT: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "The page could not be classified quickly enough. It may still be loading.",
        ("Wait for the page to finish loading", *_TRY_AGAIN),
    ),
    ErrorCode.CLASSIFICATION_FAILED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.DEGRADE,
        "The development environment of this page could not be identified.",
        ("Open the project in a supported editor or repository host",),
    ),
    ErrorCode.CATEGORY_NOT_SUPPORTED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.DEGRADE,
        "This kind of page is not supported for context extraction.",
        ("Try a repository host or an online editor", "Copy the code manually"),
    ),
    ErrorCode.DOCUMENT_ACCESS_DENIED: ErrorProfile(
        Severity.HIGH,
        RecoveryStrategy.USER_ACTION,
        "The page content cannot be read because of its security settings.",
        ("Reload the page", "Try a different page"),
    ),
    ErrorCode.EXTRACTION_TIMEOUT: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "Extraction took longer than expected.",
        ("Wait a moment and try again", "Reload the page"),
    ),
    ErrorCode.EXTRACTION_FAILED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "Project information could not be extracted from this page.",
        _TRY_AGAIN,
    ),
    ErrorCode.EXTRACTION_INVALID_DATA: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.FALLBACK,
        "The page returned data that could not be understood.",
        _TRY_AGAIN,
    ),
    ErrorCode.DOCUMENT_UNAVAILABLE: ErrorProfile(
        Severity.HIGH,
        RecoveryStrategy.USER_ACTION,
        "No document is available to inspect.",
        ("Open a page with code on it", "Make sure the page has finished loading"),
    ),
    ErrorCode.INVALID_DOCUMENT: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.NONE,
        "The submitted document is malformed.",
        ("Check the document address and markup",),
    ),
    ErrorCode.INVALID_SCORE: ErrorProfile(
        Severity.HIGH,
        RecoveryStrategy.NONE,
        "An internal scoring error occurred.",
        ("Report this problem",),
    ),
    ErrorCode.INVALID_SCORING_POLICY: ErrorProfile(
        Severity.CRITICAL,
        RecoveryStrategy.RESTART,
        "The scoring configuration is invalid.",
        ("Fix the scoring weights so they sum to 1.0", "Restart the service"),
    ),
    ErrorCode.RECOVERY_EXHAUSTED: ErrorProfile(
        Severity.HIGH,
        RecoveryStrategy.NONE,
        "The operation kept failing after several attempts.",
        _TRY_AGAIN,
    ),
    ErrorCode.PIPELINE_DEADLINE_EXCEEDED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "Extraction did not finish in time.",
        ("Wait a moment and try again",),
    ),
    ErrorCode.OPERATION_TIMEOUT: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "The operation did not finish in time.",
        ("Wait a moment and try again",),
    ),
    ErrorCode.STORAGE_FAILED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.DEGRADE,
        "The result could not be saved. It is still available for this request.",
        ("Continue without saving", "Check the storage directory permissions"),
    ),
    ErrorCode.TRANSPORT_FAILED: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "Could not communicate with the page.",
        ("Try again", "Reload the page"),
    ),
    ErrorCode.TRANSPORT_TIMEOUT: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "The page did not answer in time.",
        ("Try again", "Check the network connection"),
    ),
    ErrorCode.NOTIFICATION_FAILED: ErrorProfile(
        Severity.LOW,
        RecoveryStrategy.DEGRADE,
        "A notification could not be displayed.",
        (),
    ),
    ErrorCode.PERMISSION_MISSING: ErrorProfile(
        Severity.CRITICAL,
        RecoveryStrategy.USER_ACTION,
        "A required permission is missing.",
        ("Grant the required permission", "Reload the page"),
    ),
    ErrorCode.POLICY_VIOLATION: ErrorProfile(
        Severity.HIGH,
        RecoveryStrategy.DEGRADE,
        "The page's security policy does not allow inspection.",
        ("Try a different page", "Copy the code manually"),
    ),
    ErrorCode.UNKNOWN_ERROR: ErrorProfile(
        Severity.MEDIUM,
        RecoveryStrategy.RETRY,
        "Something unexpected happened. Please try again.",
        _TRY_AGAIN,
    ),
    ErrorCode.CONFIGURATION_ERROR: ErrorProfile(
        Severity.CRITICAL,
        RecoveryStrategy.RESTART,
        "The service is misconfigured.",
        ("Check the service configuration", "Restart the service"),
    ),
}


class PageContextError(Exception):
    """Base exception for the entire application."""

    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str = "",
        *,
        code: ErrorCode | None = None,
        severity: Severity | None = None,
        recovery: RecoveryStrategy | None = None,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.code = code or self.default_code
        profile = ERROR_PROFILES[self.code]
        self.severity = severity or profile.severity
        self.recovery = recovery or profile.recovery
        self.user_message = user_message or profile.user_message
        self.actions = profile.actions
        self.context = dict(context or {})
        super().__init__(message or self.user_message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "recovery": self.recovery.value,
            "message": self.user_message,
            "actions": list(self.actions),
        }

    @classmethod
    def from_unknown(
        cls, exc: BaseException, *, code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    ) -> PageContextError:
        """Return *exc* unchanged when it already is one of ours, else wrap it."""
        if isinstance(exc, PageContextError):
            return exc
        if isinstance(exc, TimeoutError):
            code = ErrorCode.EXTRACTION_TIMEOUT
        wrapped = PageContextError(
            f"{type(exc).__name__}: {exc}", code=code, context={"original": repr(exc)}
        )
        wrapped.__cause__ = exc
        return wrapped


# ── Classification ──────────────────────────────────────────────────────────


class ClassificationError(PageContextError):
    """Classification timed out, was denied document access, or was inconclusive."""

    default_code = ErrorCode.CLASSIFICATION_FAILED


class DocumentAccessDeniedError(ClassificationError):
    default_code = ErrorCode.DOCUMENT_ACCESS_DENIED


# ── Extraction ──────────────────────────────────────────────────────────────


class ExtractionError(PageContextError):
    default_code = ErrorCode.EXTRACTION_FAILED


class DocumentUnavailableError(ExtractionError):
    """There is no document at all; even the minimal fallback cannot run."""

    default_code = ErrorCode.DOCUMENT_UNAVAILABLE


class InvalidDocumentError(ExtractionError):
    """The submitted snapshot or its address cannot be parsed."""

    default_code = ErrorCode.INVALID_DOCUMENT


# ── Scoring ─────────────────────────────────────────────────────────────────


class ScoringError(PageContextError):
    default_code = ErrorCode.INVALID_SCORE


class InvalidScoreError(ScoringError):
    """A value outside ``[0, 100]`` reached the :class:`Score` constructor."""


class InvalidScoringPolicyError(ScoringError):
    """Weights do not sum to 1.0 or the category table is incomplete."""

    default_code = ErrorCode.INVALID_SCORING_POLICY


# ── Boundary collaborators ──────────────────────────────────────────────────


class BoundaryError(PageContextError):
    """A collaborator outside the core is unavailable."""


class StorageError(BoundaryError):
    default_code = ErrorCode.STORAGE_FAILED


class TransportError(BoundaryError):
    default_code = ErrorCode.TRANSPORT_FAILED


class NotificationError(BoundaryError):
    default_code = ErrorCode.NOTIFICATION_FAILED


class SessionNotFoundError(PageContextError):
    """No document session is registered under the requested id."""

    default_code = ErrorCode.DOCUMENT_UNAVAILABLE
