"""Environment classifier — single-flight, cached, breaker-guarded detection.

One classifier instance owns exactly one cache entry, one in-flight
computation and one circuit breaker.  Callers that arrive while a
computation is running share its result; callers that arrive while the
cache is fresh get the cached entry without any probing.

Probe tiers, in order:

1. cheap probes (named capabilities and address patterns) — the first match
   short-circuits everything else;
2. structural probes (marker elements) under a hard timeout; a timeout
   resolves to ``unknown`` and counts as a breaker failure;
3. the passive heuristic tier (agent string, editor host API);
4. ``unknown``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from page_context.domain.entities import Category, DetectionCacheEntry, DetectionTier
from page_context.domain.ports.collaborators import TelemetryEvent, TelemetrySink
from page_context.domain.ports.document_source import DocumentProbeSource
from page_context.services.circuit_breaker import CircuitBreaker
from page_context.services.probes import (
    Probe,
    ProbeResult,
    by_tier,
    default_probes,
    run_probe,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TierConfidence:
    """Confidence assigned to a classification by the tier that resolved it."""

    address: int = 95
    capability: int = 90
    structural: int = 75
    heuristic: int = 50
    breaker: int = 50
    none: int = 0

    def for_tier(self, tier: DetectionTier) -> int:
        return getattr(self, tier.value)


@dataclass(frozen=True, slots=True)
class _TierOutcome:
    hit: Probe | None
    ran: int
    errored: int

    @property
    def all_errored(self) -> bool:
        return self.ran > 0 and self.errored == self.ran


def _first_match(results: Sequence[ProbeResult]) -> _TierOutcome:
    errored = sum(1 for r in results if r.errored)
    for r in results:
        if r.matched:
            return _TierOutcome(hit=r.probe, ran=len(results), errored=errored)
    return _TierOutcome(hit=None, ran=len(results), errored=errored)


class EnvironmentClassifier:
    """Assigns one :class:`Category` to the document behind *source*.

    Parameters
    ----------
    source:
        The document probe source to inspect.
    probes:
        Probe priority list; defaults to :func:`default_probes`.
    cache_ttl:
        Seconds a classification stays fresh.
    structural_timeout:
        Hard limit, in seconds, for the structural tier (including the
        document-ready wait).
    breaker:
        Circuit breaker owned by this classifier.
    clock:
        Monotonic clock used for cache ageing.
    """

    def __init__(
        self,
        source: DocumentProbeSource,
        probes: Sequence[Probe] | None = None,
        *,
        cache_ttl: float = 5.0,
        structural_timeout: float = 0.1,
        breaker: CircuitBreaker | None = None,
        clock: Callable[[], float] = time.monotonic,
        confidence: TierConfidence | None = None,
        telemetry: TelemetrySink | None = None,
    ) -> None:
        self._source = source
        self._probes = tuple(probes) if probes is not None else default_probes()
        self._ttl = cache_ttl
        self._structural_timeout = structural_timeout
        self._clock = clock
        self._breaker = breaker or CircuitBreaker(clock=clock)
        self._confidence = confidence or TierConfidence()
        self._telemetry = telemetry

        self._cache: DetectionCacheEntry | None = None
        self._in_flight: asyncio.Task[DetectionCacheEntry] | None = None
        self._generation = 0

    # ── Public API ──────────────────────────────────────────────────────

    @property
    def source(self) -> DocumentProbeSource:
        return self._source

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def cache_entry(self) -> DetectionCacheEntry | None:
        return self._cache

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def cached(self) -> Category | None:
        """The cached category if still fresh, without probing."""
        entry = self._fresh_entry()
        return entry.category if entry else None

    async def classify(self) -> Category:
        entry = await self.classify_detailed()
        return entry.category

    async def classify_detailed(self) -> DetectionCacheEntry:
        """Return the current classification with its confidence and tier."""
        if self._in_flight is not None:
            return await asyncio.shield(self._in_flight)

        entry = self._fresh_entry()
        if entry is not None:
            return entry

        task = asyncio.get_running_loop().create_task(self._compute())
        self._in_flight = task
        task.add_done_callback(self._clear_in_flight)
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Drop the cached entry; a running computation is left alone."""
        self._cache = None
        self._generation += 1

    # ── Internals ───────────────────────────────────────────────────────

    def _fresh_entry(self) -> DetectionCacheEntry | None:
        entry = self._cache
        if entry is None:
            return None
        if self._clock() - entry.computed_at >= self._ttl:
            return None
        return entry

    def _clear_in_flight(self, task: asyncio.Task[DetectionCacheEntry]) -> None:
        if self._in_flight is task:
            self._in_flight = None

    def _entry(self, category: Category, tier: DetectionTier) -> DetectionCacheEntry:
        return DetectionCacheEntry(
            category=category,
            computed_at=self._clock(),
            confidence=self._confidence.for_tier(tier),
            tier=tier,
        )

    async def _compute(self) -> DetectionCacheEntry:
        generation = self._generation
        started = time.perf_counter()
        try:
            if self._breaker.is_open():
                entry = self._degraded()
            else:
                entry = await self._run_tiers()
        except Exception:
            logger.exception("Classification crashed — resolving to unknown")
            self._breaker.record_failure()
            entry = self._entry(Category.UNKNOWN, DetectionTier.NONE)

        # An invalidation during the run means this result describes an
        # address that is no longer current: hand it to waiters, do not cache.
        if generation == self._generation:
            self._cache = entry
        self._report(entry, (time.perf_counter() - started) * 1000)
        return entry

    def _degraded(self) -> DetectionCacheEntry:
        logger.warning("Detection circuit breaker is open — using address probes only")
        outcome = _first_match(
            [run_probe(p, self._source) for p in by_tier(self._probes, DetectionTier.ADDRESS)]
        )
        if outcome.hit is None:
            return self._entry(Category.UNKNOWN, DetectionTier.NONE)
        return DetectionCacheEntry(
            category=outcome.hit.category,
            computed_at=self._clock(),
            confidence=self._confidence.breaker,
            tier=DetectionTier.BREAKER,
        )

    async def _run_tiers(self) -> DetectionCacheEntry:
        cheap = _first_match(
            [
                run_probe(p, self._source)
                for p in by_tier(self._probes, DetectionTier.CAPABILITY, DetectionTier.ADDRESS)
            ]
        )
        if cheap.hit is not None:
            self._breaker.record_success()
            return self._entry(cheap.hit.category, cheap.hit.tier)

        try:
            structural = await asyncio.wait_for(
                self._run_structural(), timeout=self._structural_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Structural probes exceeded %.0f ms — resolving to unknown",
                self._structural_timeout * 1000,
            )
            self._breaker.record_failure()
            return self._entry(Category.UNKNOWN, DetectionTier.NONE)

        if structural.hit is not None:
            self._breaker.record_success()
            return self._entry(structural.hit.category, DetectionTier.STRUCTURAL)

        heuristic = _first_match(
            [run_probe(p, self._source) for p in by_tier(self._probes, DetectionTier.HEURISTIC)]
        )
        if heuristic.hit is not None:
            self._breaker.record_success()
            return self._entry(heuristic.hit.category, DetectionTier.HEURISTIC)

        if cheap.all_errored and structural.all_errored:
            # Nothing about the document could be read at all.
            logger.warning("Every probe raised — document appears inaccessible")
            self._breaker.record_failure()
        else:
            self._breaker.record_success()
        return self._entry(Category.UNKNOWN, DetectionTier.NONE)

    async def _run_structural(self) -> _TierOutcome:
        await self._source.wait_ready()
        results: list[ProbeResult] = []
        for probe in by_tier(self._probes, DetectionTier.STRUCTURAL):
            result = run_probe(probe, self._source)
            results.append(result)
            if result.matched:
                break
            # Yield so the timeout can fire between probes.
            await asyncio.sleep(0)
        return _first_match(results)

    def _report(self, entry: DetectionCacheEntry, duration_ms: float) -> None:
        logger.debug(
            "Classified as %s (tier=%s, confidence=%d) in %.1f ms",
            entry.category.value,
            entry.tier.value,
            entry.confidence,
            duration_ms,
        )
        if self._telemetry is None:
            return
        try:
            self._telemetry.emit(
                TelemetryEvent(
                    name="detection_complete",
                    phase="classification",
                    category=entry.category.value,
                    duration_ms=duration_ms,
                    data={"tier": entry.tier.value, "confidence": entry.confidence},
                )
            )
        except Exception:
            logger.debug("Telemetry emit failed", exc_info=True)
