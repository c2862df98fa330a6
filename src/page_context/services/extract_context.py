"""Extract-context use case — the main orchestration pipeline.

This is the single entry point for the business logic.  It sequences
classifier → strategy chain → signals → scoring → redaction → packaging
under one deadline, and hands the whole run to the recovery orchestrator
with a last-resort minimal-result fallback.  The interface layer injects
concrete collaborators at runtime.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from page_context.domain.entities import (
    Category,
    ContentSignals,
    DependencySnapshot,
    EnvironmentSnapshot,
    ExtractionFailure,
    ExtractionOutcome,
    ExtractionSuccess,
    ProjectStructure,
)
from page_context.domain.exceptions import ErrorCode, PageContextError
from page_context.domain.ports.collaborators import (
    DocumentTransport,
    Notification,
    Notifier,
    OutcomeStore,
    SnapshotLoader,
    TelemetryEvent,
    TelemetrySink,
)
from page_context.domain.value_objects import Score
from page_context.services.classifier import EnvironmentClassifier
from page_context.services.packaging import build_packaged_result
from page_context.services.recovery import RecoveryOrchestrator, RetryConfig
from page_context.services.redaction import redact_structure
from page_context.services.scoring import ScoringEngine
from page_context.services.signals import (
    extract_content_signals,
    extract_dependencies,
    extract_environment,
)
from page_context.services.strategies import StrategyChain

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE = 2.0


def pipeline_retry_config(deadline: float = DEFAULT_DEADLINE) -> RetryConfig:
    """Two attempts, short backoff, enough wall time for both to hit the deadline."""
    return RetryConfig(
        max_attempts=2,
        base_delay=0.1,
        max_delay=0.5,
        timeout=deadline * 2 + 0.5,
    )


class ExtractContextUseCase:
    """Orchestrates the full document → packaged-result pipeline.

    Parameters
    ----------
    classifier:
        The session's classifier; its source is the document extracted from.
    chain:
        Strategy chain bound to the same document.
    scorer:
        Scoring engine with a validated policy.
    recovery:
        Shared recovery orchestrator.
    telemetry, persistence, notifier:
        Optional boundary collaborators.  Their failures never fail a run.
    transport:
        Needed only by :meth:`execute_remote`.
    deadline:
        Overall time limit, in seconds, for one pipeline attempt.
    """

    def __init__(
        self,
        classifier: EnvironmentClassifier,
        chain: StrategyChain,
        scorer: ScoringEngine,
        recovery: RecoveryOrchestrator,
        *,
        telemetry: TelemetrySink | None = None,
        persistence: OutcomeStore | None = None,
        notifier: Notifier | None = None,
        transport: DocumentTransport | None = None,
        deadline: float = DEFAULT_DEADLINE,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._classifier = classifier
        self._chain = chain
        self._scorer = scorer
        self._recovery = recovery
        self._telemetry = telemetry
        self._store = persistence
        self._notifier = notifier
        self._transport = transport
        self._deadline = deadline
        self._retry = retry_config or pipeline_retry_config(deadline)
        self._clock = clock

    # ── Public entry points ─────────────────────────────────────────────

    async def execute(self, session_id: str = "default") -> ExtractionOutcome:
        """Run the pipeline once and deliver its outcome to every collaborator."""
        started = self._clock()
        try:
            address = self._classifier.source.address
        except Exception as exc:
            outcome: ExtractionOutcome = self._failure(PageContextError.from_unknown(exc))
        else:
            logger.info("Extracting context from %s", address or "<blank document>")
            try:
                outcome = await self._recovery.with_recovery(
                    self._run_once,
                    operation_id=f"extract:{address}",
                    retry_config=self._retry,
                    fallback_operation=self._minimal_result,
                    context="extraction",
                )
            except Exception as exc:
                outcome = self._failure(PageContextError.from_unknown(exc))

        self._deliver(session_id, outcome, started)
        return outcome

    async def execute_remote(self, session_id: str, document: SnapshotLoader) -> ExtractionOutcome:
        """Pull a fresh snapshot through the transport, load it, then :meth:`execute`."""
        if self._transport is None:
            raise PageContextError(
                "No transport collaborator is configured", code=ErrorCode.CONFIGURATION_ERROR
            )
        transport = self._transport
        started = self._clock()
        try:
            payload = await self._recovery.with_recovery(
                lambda: transport.request_snapshot(session_id),
                operation_id=f"transport:{session_id}",
                context="transport",
            )
        except Exception as exc:
            outcome = self._failure(PageContextError.from_unknown(exc))
            self._deliver(session_id, outcome, started)
            return outcome

        document.load(payload)
        return await self.execute(session_id)

    # ── Pipeline ────────────────────────────────────────────────────────

    async def _run_once(self) -> ExtractionSuccess:
        try:
            async with asyncio.timeout(self._deadline):
                return await self._pipeline()
        except TimeoutError as exc:
            raise PageContextError(
                f"Pipeline exceeded its {self._deadline:.1f}s deadline",
                code=ErrorCode.PIPELINE_DEADLINE_EXCEEDED,
            ) from exc

    async def _pipeline(self) -> ExtractionSuccess:
        source = self._classifier.source

        # 1. Classify (single-flight, cached)
        category = await self._classifier.classify()

        # 2. Strategy chain; exhaustion is an empty structure, not an error
        t0 = self._clock()
        structure = await self._chain.extract(category)
        self._emit(
            TelemetryEvent(
                name="extraction_complete",
                phase="extraction",
                category=category.value,
                duration_ms=(self._clock() - t0) * 1000,
                data={
                    "files": structure.total_files,
                    "tier": structure.source_tier,
                    "strategy": structure.strategy,
                },
            )
        )

        # 3. Redact secrets; everything after this sees only the clean copy
        redacted = redact_structure(structure)
        if redacted.redaction_count:
            logger.warning("Redacted %d potential secret(s) from context", redacted.redaction_count)
        structure = redacted.structure

        # 4. Signals
        content = extract_content_signals(source)
        dependencies = extract_dependencies(source, structure, content)
        environment = extract_environment(source, structure)

        # 5. Score
        breakdown = self._scorer.breakdown(category, structure, dependencies, environment, content)
        self._emit(
            TelemetryEvent(
                name="scoring_complete",
                phase="scoring",
                category=category.value,
                score=breakdown.total.value,
                data=breakdown.as_dict(),
            )
        )

        # 6. Package
        result = build_packaged_result(
            category=category,
            score=breakdown.total,
            structure=structure,
            dependencies=dependencies,
            environment=environment,
            source_address=source.address,
        )
        return ExtractionSuccess(result=result)

    async def _minimal_result(self) -> ExtractionSuccess:
        """Last resort: an ``unknown`` result carrying nothing but the address."""
        source = self._classifier.source
        address = source.address
        structure = ProjectStructure.empty()
        dependencies = DependencySnapshot.unknown()
        environment = EnvironmentSnapshot.empty()
        score = self._scorer.score(
            Category.UNKNOWN, structure, dependencies, environment, ContentSignals.none()
        )
        logger.warning("Falling back to a minimal result for %s", address)
        result = build_packaged_result(
            category=Category.UNKNOWN,
            score=score,
            structure=structure,
            dependencies=dependencies,
            environment=environment,
            source_address=address,
        )
        return ExtractionSuccess(result=result, degraded=True)

    # ── Delivery ────────────────────────────────────────────────────────

    @staticmethod
    def _failure(error: PageContextError) -> ExtractionFailure:
        logger.error("Extraction failed [%s]: %s", error.code.value, error)
        return ExtractionFailure(
            reason_code=error.code.value,
            human_message=error.user_message,
            suggested_actions=tuple(error.actions),
        )

    def _deliver(self, session_id: str, outcome: ExtractionOutcome, started: float) -> None:
        if self._store is not None:
            try:
                self._store.save(session_id, outcome)
            except Exception:
                logger.warning("Could not persist outcome for session %s", session_id, exc_info=True)

        if self._notifier is not None:
            try:
                self._notifier.notify(_notification(session_id, outcome))
            except Exception:
                logger.debug("Notifier failed for session %s", session_id, exc_info=True)

        duration_ms = (self._clock() - started) * 1000
        if isinstance(outcome, ExtractionSuccess):
            self._emit(
                TelemetryEvent(
                    name="pipeline_complete",
                    phase="pipeline",
                    operation_id=session_id,
                    category=outcome.category.value,
                    score=outcome.score.value,
                    duration_ms=duration_ms,
                    data={"degraded": outcome.degraded},
                )
            )
        else:
            self._emit(
                TelemetryEvent(
                    name="pipeline_failed",
                    phase="pipeline",
                    operation_id=session_id,
                    duration_ms=duration_ms,
                    error_code=outcome.reason_code,
                )
            )

    def _emit(self, event: TelemetryEvent) -> None:
        if self._telemetry is None:
            return
        try:
            self._telemetry.emit(event)
        except Exception:
            logger.debug("Telemetry emit failed for %s", event.name, exc_info=True)


def _notification(session_id: str, outcome: ExtractionOutcome) -> Notification:
    if isinstance(outcome, ExtractionSuccess):
        score: Score = outcome.score
        title = "Limited context extracted" if outcome.degraded else "Context extracted"
        return Notification(
            session_id=session_id,
            success=True,
            title=title,
            message=outcome.result.summary,
            score=score.value,
        )
    return Notification(
        session_id=session_id,
        success=False,
        title="Extraction failed",
        message=outcome.human_message,
        actions=outcome.suggested_actions,
    )
