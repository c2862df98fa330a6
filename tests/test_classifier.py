"""Tests for the environment classifier, its probes and its circuit breaker."""

from __future__ import annotations

import asyncio

import pytest

from fakes import FakeClock, FakeElement, FakeSource, RecordingSink
from page_context.domain.entities import Category, DetectionTier
from page_context.services.circuit_breaker import CircuitBreaker
from page_context.services.classifier import EnvironmentClassifier
from page_context.services.probes import Probe, default_probes, run_probe


def _classifier(source: FakeSource, clock: FakeClock, **kwargs: object) -> EnvironmentClassifier:
    return EnvironmentClassifier(source, clock=clock, **kwargs)  # type: ignore[arg-type]


# ── Probes ──────────────────────────────────────────────────────────────────


class TestProbes:
    def test_raising_probe_is_no_signal(self) -> None:
        def boom(_source: object) -> bool:
            raise RuntimeError("boom")

        probe = Probe("boom", DetectionTier.STRUCTURAL, Category.MONACO, boom)
        result = run_probe(probe, FakeSource())
        assert not result.matched
        assert result.errored

    def test_capability_probes_precede_address_probes(self) -> None:
        names = [p.name for p in default_probes()]
        assert names.index("monaco-global") < names.index("github-host")


# ── Detection order ─────────────────────────────────────────────────────────


class TestDetection:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            ("https://github.com/octo/hello", Category.GITHUB),
            ("https://gitlab.com/group/project", Category.GITLAB),
            ("https://stackblitz.com/edit/demo", Category.STACKBLITZ),
            ("https://abc123.csb.app/", Category.CODESANDBOX),
            ("https://codepen.io/pen/xyz", Category.CODEPEN),
            ("https://vscode.dev/", Category.VSCODE_WEB),
            ("http://localhost:3000/", Category.LOCALHOST),
            ("http://192.168.1.20/", Category.LOCALHOST),
            ("http://example.com:5173/", Category.LOCALHOST),
        ],
    )
    async def test_address_probes(self, clock: FakeClock, address: str, expected: Category) -> None:
        entry = await _classifier(FakeSource(address), clock).classify_detailed()
        assert entry.category is expected
        assert entry.tier is DetectionTier.ADDRESS
        assert entry.confidence == 95

    @pytest.mark.asyncio
    async def test_capability_beats_address(self, clock: FakeClock) -> None:
        source = FakeSource("https://github.com/o/r", capabilities={"monaco.editor": {"x": 1}})
        entry = await _classifier(source, clock).classify_detailed()
        assert entry.category is Category.MONACO
        assert entry.tier is DetectionTier.CAPABILITY

    @pytest.mark.asyncio
    async def test_structural_marker(self, clock: FakeClock) -> None:
        source = FakeSource(elements={".monaco-editor": [FakeElement()]})
        entry = await _classifier(source, clock).classify_detailed()
        assert entry.category is Category.MONACO
        assert entry.tier is DetectionTier.STRUCTURAL
        assert entry.confidence == 75

    @pytest.mark.asyncio
    async def test_generic_code_content(self, clock: FakeClock) -> None:
        source = FakeSource(elements={"pre code": [FakeElement(), FakeElement(), FakeElement()]})
        assert await _classifier(source, clock).classify() is Category.HAS_CODE

    @pytest.mark.asyncio
    async def test_two_code_elements_are_not_enough(self, clock: FakeClock) -> None:
        source = FakeSource(elements={"pre code": [FakeElement(), FakeElement()]})
        assert await _classifier(source, clock).classify() is Category.UNKNOWN

    @pytest.mark.asyncio
    async def test_heuristic_agent_string(self, clock: FakeClock) -> None:
        source = FakeSource(user_agent="Mozilla/5.0 Code/1.85 Electron/25.0")
        entry = await _classifier(source, clock).classify_detailed()
        assert entry.category is Category.VSCODE_WEB
        assert entry.tier is DetectionTier.HEURISTIC

    @pytest.mark.asyncio
    async def test_nothing_matches(self, clock: FakeClock) -> None:
        entry = await _classifier(FakeSource(), clock).classify_detailed()
        assert entry.category is Category.UNKNOWN
        assert entry.tier is DetectionTier.NONE
        assert entry.confidence == 0

    @pytest.mark.asyncio
    async def test_throwing_probes_still_complete(self, clock: FakeClock) -> None:
        source = FakeSource(raising={"has_capability", "count", "select", "address", "user_agent"})
        classifier = _classifier(source, clock, structural_timeout=0.5)
        category = await asyncio.wait_for(classifier.classify(), timeout=1.0)
        assert category is Category.UNKNOWN
        assert classifier.breaker.state.failure_count == 1

    @pytest.mark.asyncio
    async def test_classify_is_always_asynchronous(self, clock: FakeClock) -> None:
        result = _classifier(FakeSource("https://github.com/o/r"), clock).classify()
        assert asyncio.iscoroutine(result)
        assert await result is Category.GITHUB


# ── Single-flight and cache ─────────────────────────────────────────────────


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self, clock: FakeClock) -> None:
        source = FakeSource(elements={".monaco-editor": [FakeElement()]})
        source.ready_delay = 0.01
        classifier = _classifier(source, clock, structural_timeout=1.0)

        results = await asyncio.gather(*(classifier.classify() for _ in range(10)))

        assert set(results) == {Category.MONACO}
        assert source.calls["wait_ready"] == 1

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_probing(self, clock: FakeClock) -> None:
        source = FakeSource("https://github.com/o/r")
        classifier = _classifier(source, clock)
        await classifier.classify()
        probes_run = source.calls["has_capability"]

        clock.advance(4.9)
        await classifier.classify()
        assert source.calls["has_capability"] == probes_run
        assert classifier.cached() is Category.GITHUB

    @pytest.mark.asyncio
    async def test_expired_cache_probes_again(self, clock: FakeClock) -> None:
        source = FakeSource("https://github.com/o/r")
        classifier = _classifier(source, clock)
        await classifier.classify()
        probes_run = source.calls["has_capability"]

        clock.advance(5.0)
        assert classifier.cached() is None
        await classifier.classify()
        assert source.calls["has_capability"] > probes_run

    @pytest.mark.asyncio
    async def test_invalidate_forces_fresh_probing(self, clock: FakeClock) -> None:
        source = FakeSource("https://github.com/o/r")
        classifier = _classifier(source, clock)
        assert await classifier.classify() is Category.GITHUB

        source._address = "https://gitlab.com/g/p"
        classifier.invalidate()
        assert await classifier.classify() is Category.GITLAB

    @pytest.mark.asyncio
    async def test_result_of_invalidated_run_is_not_cached(self, clock: FakeClock) -> None:
        source = FakeSource(elements={".monaco-editor": [FakeElement()]})
        source.ready_delay = 0.02
        classifier = _classifier(source, clock, structural_timeout=1.0)

        task = asyncio.ensure_future(classifier.classify())
        await asyncio.sleep(0.005)
        classifier.invalidate()
        assert await task is Category.MONACO
        assert classifier.cache_entry is None

    @pytest.mark.asyncio
    async def test_telemetry_failures_are_swallowed(self, clock: FakeClock) -> None:
        class Broken:
            def emit(self, event: object) -> None:
                raise RuntimeError("sink down")

        classifier = _classifier(FakeSource("https://github.com/o/r"), clock, telemetry=Broken())
        assert await classifier.classify() is Category.GITHUB

    @pytest.mark.asyncio
    async def test_detection_event_emitted(self, clock: FakeClock, sink: RecordingSink) -> None:
        classifier = _classifier(FakeSource("https://github.com/o/r"), clock, telemetry=sink)
        await classifier.classify()
        assert sink.names() == ["detection_complete"]
        assert sink.events[0].category == "github"


# ── Structural timeout and breaker ──────────────────────────────────────────


class TestBreaker:
    @pytest.mark.asyncio
    async def test_structural_timeout_resolves_unknown_and_counts_failure(self, clock: FakeClock) -> None:
        source = FakeSource(elements={".monaco-editor": [FakeElement()]})
        source.ready_delay = 1.0
        classifier = _classifier(source, clock, structural_timeout=0.02)

        entry = await asyncio.wait_for(classifier.classify_detailed(), timeout=0.5)

        assert entry.category is Category.UNKNOWN
        assert classifier.breaker.state.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_breaker_degrades_to_address_probes(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(threshold=2, window=60.0, clock=clock)
        breaker.record_failure()
        breaker.record_failure()
        source = FakeSource(
            "https://github.com/o/r", capabilities={"monaco.editor": {"x": 1}}
        )
        entry = await _classifier(source, clock, breaker=breaker).classify_detailed()

        assert entry.category is Category.GITHUB
        assert entry.tier is DetectionTier.BREAKER
        assert entry.confidence == 50
        assert "has_capability" not in source.calls

    @pytest.mark.asyncio
    async def test_open_breaker_without_address_match_is_unknown(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(threshold=1, window=60.0, clock=clock)
        breaker.record_failure()
        source = FakeSource(elements={".monaco-editor": [FakeElement()]})
        entry = await _classifier(source, clock, breaker=breaker).classify_detailed()
        assert entry.category is Category.UNKNOWN
        assert "wait_ready" not in source.calls

    def test_breaker_opens_at_threshold_and_resets_after_window(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(threshold=5, window=60.0, clock=clock)
        for _ in range(4):
            breaker.record_failure()
        assert not breaker.is_open()
        breaker.record_failure()
        assert breaker.is_open()

        clock.advance(60.0)
        assert not breaker.is_open()
        assert breaker.state.failure_count == 0

    def test_failures_outside_window_do_not_accumulate(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(threshold=3, window=10.0, clock=clock)
        breaker.record_failure()
        breaker.record_failure()
        clock.advance(11.0)
        breaker.record_failure()
        assert breaker.state.failure_count == 1
        assert not breaker.is_open()

    def test_state_is_a_copy(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(clock=clock)
        breaker.state.failure_count = 99
        assert breaker.state.failure_count == 0

    def test_rejects_zero_threshold(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreaker(threshold=0)
