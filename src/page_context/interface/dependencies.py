"""FastAPI dependency injection wiring — the composition root."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from page_context.domain.exceptions import SessionNotFoundError
from page_context.domain.ports.collaborators import DocumentTransport, OutcomeStore
from page_context.infrastructure.config import Settings, get_settings
from page_context.infrastructure.http_transport import HttpDocumentTransport
from page_context.infrastructure.live_document import LiveDocument
from page_context.infrastructure.notifier import LoggingNotifier
from page_context.infrastructure.outcome_store import InMemoryOutcomeStore, JsonFileOutcomeStore
from page_context.infrastructure.telemetry import LoggingTelemetrySink
from page_context.services.circuit_breaker import CircuitBreaker
from page_context.services.classifier import EnvironmentClassifier
from page_context.services.extract_context import ExtractContextUseCase
from page_context.services.recovery import RecoveryOrchestrator, RetryConfig
from page_context.services.scoring import ScoringEngine, ScoringPolicy
from page_context.services.strategies import StrategyChain

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


@dataclass(slots=True)
class Session:
    """One document with its own classifier, breaker and strategy chain."""

    session_id: str
    document: LiveDocument
    classifier: EnvironmentClassifier
    chain: StrategyChain


class SessionRegistry:
    """Owns every session; the ``default`` one always exists."""

    def __init__(self, settings: Settings, telemetry: LoggingTelemetrySink | None = None) -> None:
        self._settings = settings
        self._telemetry = telemetry
        self._sessions: dict[str, Session] = {}
        self.get_or_create(DEFAULT_SESSION)

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._build(session_id)
            self._sessions[session_id] = session
            logger.debug("Created session %s", session_id)
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id!r}")
        return session

    def items(self) -> list[tuple[str, Session]]:
        return sorted(self._sessions.items())

    def _build(self, session_id: str) -> Session:
        s = self._settings
        document = LiveDocument(max_depth=s.capability_depth)
        classifier = EnvironmentClassifier(
            document,
            cache_ttl=s.cache_ttl_seconds,
            structural_timeout=s.structural_timeout_seconds,
            breaker=CircuitBreaker(s.breaker_threshold, s.breaker_window_seconds),
            telemetry=self._telemetry,
        )
        document.on_navigate(lambda _url: classifier.invalidate())
        chain = StrategyChain(document, max_files=s.max_files, max_file_size=s.max_file_size)
        return Session(session_id=session_id, document=document, classifier=classifier, chain=chain)


@dataclass(slots=True)
class Container:
    settings: Settings
    scorer: ScoringEngine
    recovery: RecoveryOrchestrator
    telemetry: LoggingTelemetrySink
    notifier: LoggingNotifier
    store: OutcomeStore
    sessions: SessionRegistry
    http_client: httpx.AsyncClient | None = None
    transport: DocumentTransport | None = None


_container: Container | None = None


def build_container(settings: Settings) -> Container:
    """Wire every long-lived collaborator.  Raises on an invalid scoring policy."""
    telemetry = LoggingTelemetrySink(settings.telemetry_buffer)
    policy = ScoringPolicy.from_overrides(settings.scoring_weights, settings.category_scores)
    store: OutcomeStore = (
        JsonFileOutcomeStore(settings.outcome_store_dir)
        if settings.outcome_store_dir
        else InMemoryOutcomeStore()
    )
    container = Container(
        settings=settings,
        scorer=ScoringEngine(policy),
        recovery=RecoveryOrchestrator(
            telemetry, stale_after=settings.retry_stale_after_seconds
        ),
        telemetry=telemetry,
        notifier=LoggingNotifier(),
        store=store,
        sessions=SessionRegistry(settings, telemetry),
    )
    if settings.agent_url:
        container.http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.transport_timeout))
        container.transport = HttpDocumentTransport(container.http_client, settings.agent_url)
    return container


async def startup() -> None:
    """Initialise shared resources — called from the lifespan context manager."""
    global _container  # noqa: PLW0603

    _container = build_container(get_settings())
    _container.recovery.start_sweeper()


async def shutdown() -> None:
    """Release shared resources."""
    global _container  # noqa: PLW0603

    if _container is None:
        return
    await _container.recovery.stop_sweeper()
    if _container.http_client is not None:
        await _container.http_client.aclose()
    _container = None


def get_container() -> Container:
    assert _container is not None, "startup() was not called"
    return _container


def get_use_case_factory() -> UseCaseFactory:
    return UseCaseFactory(get_container())


class UseCaseFactory:
    """Builds a use case bound to one session's document."""

    def __init__(self, container: Container) -> None:
        self._c = container

    def __call__(self, session: Session) -> ExtractContextUseCase:
        c = self._c
        s = c.settings
        deadline = s.pipeline_deadline_seconds
        retry = RetryConfig(
            max_attempts=s.retry_max_attempts,
            base_delay=s.retry_base_delay,
            max_delay=s.retry_max_delay,
            timeout=deadline * s.retry_max_attempts + s.retry_max_delay,
        )
        return ExtractContextUseCase(
            session.classifier,
            session.chain,
            c.scorer,
            c.recovery,
            telemetry=c.telemetry,
            persistence=c.store,
            notifier=c.notifier,
            transport=c.transport,
            deadline=deadline,
            retry_config=retry,
        )
