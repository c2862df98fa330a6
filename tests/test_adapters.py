"""Tests for the boundary adapters: outcome stores, HTTP transport, telemetry and notifier."""

from __future__ import annotations

import json

import httpx
import pytest

from page_context.domain.entities import ExtractionFailure
from page_context.domain.exceptions import (
    DocumentAccessDeniedError,
    DocumentUnavailableError,
    ErrorCode,
    ExtractionError,
    StorageError,
    TransportError,
)
from page_context.domain.ports.collaborators import Notification, TelemetryEvent
from page_context.infrastructure.http_transport import HttpDocumentTransport
from page_context.infrastructure.notifier import LoggingNotifier
from page_context.infrastructure.outcome_store import InMemoryOutcomeStore, JsonFileOutcomeStore
from page_context.infrastructure.telemetry import LoggingTelemetrySink

FAILURE = ExtractionFailure("PC_1104", "Nothing to read", ("Reload the page",))


# ── Outcome stores ──────────────────────────────────────────────────────────


class TestOutcomeStores:
    def test_in_memory_keeps_latest(self) -> None:
        store = InMemoryOutcomeStore()
        assert store.load_latest("s") is None
        store.save("s", FAILURE)
        assert store.load_latest("s") == FAILURE

    def test_json_file_round_trip(self, tmp_path) -> None:
        store = JsonFileOutcomeStore(tmp_path / "outcomes")
        store.save("tab/1", FAILURE)

        assert (tmp_path / "outcomes" / "tab_1.json").exists()
        assert not list((tmp_path / "outcomes").glob("*.tmp"))
        assert store.load_latest("tab/1") == FAILURE
        assert store.load_latest("other") is None

    def test_corrupt_file_is_a_storage_error(self, tmp_path) -> None:
        (tmp_path / "s.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileOutcomeStore(tmp_path).load_latest("s")

    def test_unwritable_directory_is_a_storage_error(self, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        with pytest.raises(StorageError) as info:
            JsonFileOutcomeStore(blocker / "sub").save("s", FAILURE)
        assert info.value.code is ErrorCode.STORAGE_FAILED


# ── HTTP transport ──────────────────────────────────────────────────────────


def _transport(handler) -> HttpDocumentTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDocumentTransport(client, "http://agent.local/")


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_snapshot_is_parsed(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"url": "https://codepen.io/pen/1", "html": "<p></p>"})

        payload = await _transport(handler).request_snapshot("tab-1")

        assert payload.url == "https://codepen.io/pen/1"
        assert payload.ready_state == "complete"
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "http://agent.local/sessions/tab-1/snapshot"
        assert json.loads(seen[0].content) == {"session_id": "tab-1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (404, DocumentUnavailableError),
            (403, DocumentAccessDeniedError),
            (500, TransportError),
        ],
    )
    async def test_status_codes_map_to_domain_errors(self, status: int, error: type[Exception]) -> None:
        transport = _transport(lambda _request: httpx.Response(status))
        with pytest.raises(error):
            await transport.request_snapshot("tab-1")

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        transport = _transport(lambda _request: httpx.Response(200, json={"html": "no url"}))
        with pytest.raises(ExtractionError) as info:
            await transport.request_snapshot("tab-1")
        assert info.value.code is ErrorCode.EXTRACTION_INVALID_DATA

    @pytest.mark.asyncio
    async def test_timeouts_and_network_errors(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        def refused(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError) as info:
            await _transport(timeout).request_snapshot("tab-1")
        assert info.value.code is ErrorCode.TRANSPORT_TIMEOUT

        with pytest.raises(TransportError) as info:
            await _transport(refused).request_snapshot("tab-1")
        assert info.value.code is ErrorCode.TRANSPORT_FAILED


# ── Telemetry and notifier ──────────────────────────────────────────────────


def test_telemetry_buffer_is_bounded() -> None:
    sink = LoggingTelemetrySink(buffer_size=3)
    for i in range(5):
        sink.emit(TelemetryEvent(name=f"e{i}", phase="test", duration_ms=float(i)))
    assert [e["name"] for e in sink.recent()] == ["e2", "e3", "e4"]
    assert [e["name"] for e in sink.recent(1)] == ["e4"]
    assert sink.recent(0) == []
    sink.clear()
    assert sink.recent() == []


def test_notifier_remembers_last_per_session() -> None:
    notifier = LoggingNotifier()
    notifier.notify(Notification("a", True, "Context extracted", "ok", score=90))
    notifier.notify(Notification("a", False, "Extraction failed", "nope", actions=("Reload the page",)))
    last = notifier.last("a")
    assert last is not None and not last.success
    assert notifier.last("b") is None
