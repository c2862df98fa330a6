"""API routes — thin controllers that delegate to the use case."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from page_context.domain.entities import ExtractionOutcome, ExtractionSuccess
from page_context.domain.exceptions import ErrorCode, SessionNotFoundError
from page_context.interface.dependencies import (
    Container,
    UseCaseFactory,
    get_container,
    get_use_case_factory,
)
from page_context.interface.error_handlers import error_json, status_for
from page_context.interface.schemas import (
    ClassifyResponse,
    ErrorResponse,
    ExtractRequest,
    ExtractResponse,
    NavigateRequest,
    NavigateResponse,
)
from page_context.services.packaging import outcome_to_dict, to_payload

router = APIRouter()

_FAILURE_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse, "description": "No document available"},
    422: {"model": ErrorResponse, "description": "Malformed snapshot or address"},
    502: {"model": ErrorResponse, "description": "Agent transport failed"},
    503: {"model": ErrorResponse, "description": "Service misconfigured"},
}


def _outcome_response(outcome: ExtractionOutcome) -> ExtractResponse | JSONResponse:
    if isinstance(outcome, ExtractionSuccess):
        return ExtractResponse(degraded=outcome.degraded, result=to_payload(outcome.result))
    return error_json(
        status_for(outcome.reason_code),
        outcome.reason_code,
        outcome.human_message,
        outcome.suggested_actions,
    )


@router.post("/extract", response_model=ExtractResponse, responses=_FAILURE_RESPONSES)
async def extract(
    body: ExtractRequest,
    container: Container = Depends(get_container),
    build_use_case: UseCaseFactory = Depends(get_use_case_factory),
) -> ExtractResponse | JSONResponse:
    """Extract and score the context of the submitted page."""
    session = container.sessions.get_or_create(body.session_id)
    session.document.replace(body.snapshot.to_snapshot())
    outcome = await build_use_case(session).execute(body.session_id)
    return _outcome_response(outcome)


@router.post("/classify", response_model=ClassifyResponse, responses=_FAILURE_RESPONSES)
async def classify(
    body: ExtractRequest,
    container: Container = Depends(get_container),
) -> ClassifyResponse:
    """Classify the submitted page without extracting anything."""
    session = container.sessions.get_or_create(body.session_id)
    session.document.replace(body.snapshot.to_snapshot())
    entry = await session.classifier.classify_detailed()
    return ClassifyResponse(
        session_id=body.session_id,
        category=entry.category.value,
        confidence=entry.confidence,
        tier=entry.tier.value,
    )


@router.post("/sessions/{session_id}/navigate", response_model=NavigateResponse)
async def navigate(
    session_id: str,
    body: NavigateRequest,
    container: Container = Depends(get_container),
) -> NavigateResponse:
    """Record an address change; the session's cached detection is dropped."""
    session = container.sessions.get_or_create(session_id)
    session.document.navigate(body.url, body.html)
    return NavigateResponse(session_id=session_id, url=body.url)


@router.post(
    "/sessions/{session_id}/extract-remote",
    response_model=ExtractResponse,
    responses=_FAILURE_RESPONSES,
)
async def extract_remote(
    session_id: str,
    container: Container = Depends(get_container),
    build_use_case: UseCaseFactory = Depends(get_use_case_factory),
) -> ExtractResponse | JSONResponse:
    """Ask the in-page agent for a fresh snapshot, then extract it."""
    if container.transport is None:
        return error_json(
            503,
            ErrorCode.CONFIGURATION_ERROR.value,
            "No page agent is configured. Set PAGE_CONTEXT_AGENT_URL.",
        )
    session = container.sessions.get_or_create(session_id)
    outcome = await build_use_case(session).execute_remote(session_id, session.document)
    return _outcome_response(outcome)


@router.get("/sessions/{session_id}/outcome", responses=_FAILURE_RESPONSES)
async def latest_outcome(
    session_id: str,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    """The last outcome stored for the session."""
    outcome = container.store.load_latest(session_id)
    if outcome is None:
        raise SessionNotFoundError(f"No outcome stored for session {session_id!r}")
    return outcome_to_dict(outcome)


@router.get("/diagnostics")
async def diagnostics(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Breaker and cache state per session, in-flight retries, recent telemetry."""
    sessions: dict[str, Any] = {}
    for session_id, session in container.sessions.items():
        breaker = session.classifier.breaker
        state = breaker.state
        entry = session.classifier.cache_entry
        sessions[session_id] = {
            "loaded": session.document.loaded,
            "breaker": {
                "open": breaker.is_open(),
                "failure_count": state.failure_count,
                "last_failure_at": state.last_failure_at,
            },
            "cache": (
                {
                    "category": entry.category.value,
                    "confidence": entry.confidence,
                    "tier": entry.tier.value,
                }
                if entry is not None
                else None
            ),
            "in_flight": session.classifier.in_flight,
        }
    return {
        "sessions": sessions,
        "retries": container.recovery.active_operations(),
        "telemetry": container.telemetry.recent(50),
    }
