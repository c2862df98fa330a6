"""Packaged result format — versioned, checksummed, JSON on the wire.

The digest is an unsigned 32-bit polynomial rolling checksum (multiplier 31)
over the canonical JSON bytes of every field except the digest itself.  It
guards against accidental corruption, not tampering.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError

from page_context.domain.entities import (
    Category,
    DependencySnapshot,
    EnvironmentSnapshot,
    ExtractionFailure,
    ExtractionOutcome,
    ExtractionSuccess,
    PackagedResult,
    ProjectStructure,
)
from page_context.domain.exceptions import ErrorCode, ExtractionError, InvalidScoreError
from page_context.domain.value_objects import Score
from page_context.services.scoring import confidence_level

FORMAT_VERSION = "1.0.0"

HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 50

_MASK = 0xFFFFFFFF


@lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter[Any]:
    return TypeAdapter(tp)


# ── Digest ──────────────────────────────────────────────────────────────────


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def rolling_checksum(data: bytes) -> str:
    h = 0
    for byte in data:
        h = (h * 31 + byte) & _MASK
    return f"{h:08x}"


def compute_digest(payload: dict[str, Any]) -> str:
    """Digest of *payload* with any ``digest`` key left out."""
    body = {k: v for k, v in payload.items() if k != "digest"}
    return rolling_checksum(canonical_json(body).encode("utf-8"))


# ── Derived text ────────────────────────────────────────────────────────────


def derive_summary(
    category: Category, score: Score, structure: ProjectStructure, deps: DependencySnapshot
) -> str:
    summary = f"{category.value} project with {score.value}% context confidence."
    if structure.total_files > 0:
        summary += f" Contains {structure.total_files} files ({structure.total_lines} lines total)."
    if deps.runtime_language != "unknown":
        summary += f" Primary language: {deps.runtime_language}."
    return summary


def derive_instructions(category: Category, score: Score) -> str:
    text = f"Context extracted from {category.value} with {score.value}% confidence. "
    if score.value >= HIGH_CONFIDENCE:
        return text + (
            "High confidence - Full project context available. "
            "You have access to complete file structure, dependencies, and configuration. "
            "Provide detailed, project-specific assistance."
        )
    if score.value >= MEDIUM_CONFIDENCE:
        return text + (
            "Medium confidence - Partial context available. "
            "Basic project information is present but some details may be incomplete. "
            "Ask for clarification on specific implementation details if needed."
        )
    return text + (
        "Low confidence - Limited context available. "
        "Only basic page information extracted. "
        "Request additional context or code snippets for better assistance."
    )


# ── Build / (de)serialise ───────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_payload(result: PackagedResult) -> dict[str, Any]:
    payload: dict[str, Any] = _adapter(PackagedResult).dump_python(result, mode="json")
    payload["score"] = result.score.value
    return payload


def from_payload(payload: dict[str, Any]) -> PackagedResult:
    data = dict(payload)
    if isinstance(data.get("score"), int):
        data["score"] = {"value": data["score"]}
    try:
        return _adapter(PackagedResult).validate_python(data)
    except ValidationError as exc:
        raise ExtractionError(
            f"Malformed packaged result: {exc.error_count()} validation error(s)",
            code=ErrorCode.EXTRACTION_INVALID_DATA,
        ) from exc
    except InvalidScoreError as exc:
        raise ExtractionError(
            f"Malformed packaged result: {exc}", code=ErrorCode.EXTRACTION_INVALID_DATA
        ) from exc


def build_packaged_result(
    *,
    category: Category,
    score: Score,
    structure: ProjectStructure,
    dependencies: DependencySnapshot,
    environment: EnvironmentSnapshot,
    source_address: str,
    now: Callable[[], str] = _now_iso,
) -> PackagedResult:
    """Assemble the artifact and seal it with its digest."""
    structure_json = canonical_json(_adapter(ProjectStructure).dump_python(structure, mode="json"))
    draft = PackagedResult(
        format_version=FORMAT_VERSION,
        generated_at=now(),
        category=category,
        score=score,
        confidence_level=confidence_level(score),
        structure=structure,
        dependencies=dependencies,
        environment=environment,
        summary=derive_summary(category, score, structure, dependencies),
        instructions=derive_instructions(category, score),
        source_address=source_address,
        digest="",
        size=len(structure_json.encode("utf-8")),
    )
    payload = to_payload(draft)
    return from_payload({**payload, "digest": compute_digest(payload)})


def dumps(result: PackagedResult) -> str:
    """Human-readable JSON, keys sorted so equal results serialise identically."""
    return json.dumps(to_payload(result), sort_keys=True, indent=2, ensure_ascii=False)


def loads(text: str) -> PackagedResult:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError(
            "Packaged result is not valid JSON", code=ErrorCode.EXTRACTION_INVALID_DATA
        ) from exc
    if not isinstance(payload, dict):
        raise ExtractionError(
            "Packaged result must be a JSON object", code=ErrorCode.EXTRACTION_INVALID_DATA
        )
    return from_payload(payload)


def verify(result: PackagedResult) -> bool:
    """True when the stored digest matches the result's content."""
    return compute_digest(to_payload(result)) == result.digest


def verify_text(text: str) -> bool:
    """Check the digest of serialised JSON without trusting the parse step."""
    payload = json.loads(text)
    return isinstance(payload, dict) and compute_digest(payload) == payload.get("digest")


# ── Outcome envelopes (persistence) ─────────────────────────────────────────


def outcome_to_dict(outcome: ExtractionOutcome) -> dict[str, Any]:
    if isinstance(outcome, ExtractionSuccess):
        return {"kind": "success", "degraded": outcome.degraded, "result": to_payload(outcome.result)}
    return {"kind": "failure", **_adapter(ExtractionFailure).dump_python(outcome, mode="json")}


def outcome_from_dict(data: dict[str, Any]) -> ExtractionOutcome:
    kind = data.get("kind")
    if kind == "success":
        return ExtractionSuccess(
            result=from_payload(data["result"]), degraded=bool(data.get("degraded", False))
        )
    if kind == "failure":
        body = {k: v for k, v in data.items() if k != "kind"}
        return _adapter(ExtractionFailure).validate_python(body)
    raise ExtractionError(
        f"Unknown outcome kind: {kind!r}", code=ErrorCode.EXTRACTION_INVALID_DATA
    )
