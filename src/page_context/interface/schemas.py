"""Pydantic request / response DTOs for the API boundary."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from page_context.infrastructure.html_document import DocumentSnapshot


class SnapshotIn(BaseModel):
    """A serialised page as captured by the in-page agent."""

    url: str
    html: str = ""
    user_agent: str = ""
    ready_state: Literal["loading", "interactive", "complete"] = "complete"
    capabilities: dict[str, Any] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _strip_url(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "url must not be empty."
            raise ValueError(msg)
        return stripped

    def to_snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot(
            url=self.url,
            html=self.html,
            user_agent=self.user_agent,
            ready_state=self.ready_state,
            capabilities=dict(self.capabilities),
        )


class ExtractRequest(BaseModel):
    """Request body for ``POST /extract`` and ``POST /classify``."""

    session_id: str = Field(default="default", min_length=1, max_length=128)
    snapshot: SnapshotIn


class NavigateRequest(BaseModel):
    """Request body for ``POST /sessions/{session_id}/navigate``."""

    url: str = Field(min_length=1)
    html: str | None = None


class ExtractResponse(BaseModel):
    """Successful response: the packaged result, possibly degraded."""

    status: Literal["ok"] = "ok"
    degraded: bool = False
    result: dict[str, Any]


class ClassifyResponse(BaseModel):
    session_id: str
    category: str
    confidence: int
    tier: str


class NavigateResponse(BaseModel):
    session_id: str
    url: str
    invalidated: bool = True


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    status: str = "error"
    code: str
    message: str
    actions: list[str] = Field(default_factory=list)
