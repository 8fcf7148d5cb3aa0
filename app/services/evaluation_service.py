"""
Evaluation service: the operation facade over sessions, billing, reports
and the phase result history.

Holds the in-memory registry of live sessions. A user owns at most one
live session; submitting a new URL discards the previous one.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import (
    CreditSettings,
    EvaluationSettings,
    get_credit_settings,
    get_evaluation_settings,
    get_session_settings,
)
from app.domain.collaborators import (
    ChatResponder,
    CompetitorDiscoverer,
    MetricsCapturer,
    NarrativeAnalyzer,
    PhaseScorer,
    Screenshotter,
)
from app.domain.errors import PersistenceError, SessionNotFoundError
from app.domain.evaluation import EvaluationSnapshot, PhaseResult, SessionState
from app.logging_utils import log_event
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from app.services.phase_orchestrator import (
    DatabasePhaseResultWriter,
    PhaseOrchestrator,
    PhaseResultWriter,
    StreamHandle,
)
from app.services.rate_limiter import get_rate_limiter
from app.services.report_service import ReportHandle, ReportService
from db.models.ledger_transaction import LedgerAction
from db.repositories.evaluation_repository import EvaluationRepository
from db.repositories.phase_result_repository import PhaseResultRepository
from scoring.metric_projector import MetricProjector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredPhaseResult:
    id: uuid.UUID
    evaluation_id: uuid.UUID
    phase: str
    narrative: str
    metrics_subset: dict[str, Any]
    score: int | None
    screenshot_ref: str | None
    created_at: datetime


def normalize_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    if not url:
        raise ValueError("A website URL is required.")
    if "://" not in url:
        url = f"https://{url}"
    return url


class EvaluationService:
    """
    Coordinates capture, session lifecycle and reporting for all users.
    """

    def __init__(
        self,
        *,
        capturer: MetricsCapturer,
        analyzer: NarrativeAnalyzer,
        scorer: PhaseScorer,
        discoverer: CompetitorDiscoverer,
        screenshotter: Screenshotter,
        responder: ChatResponder,
        session_factory: sessionmaker[Session] | None = None,
        ledger: CreditLedger | None = None,
        writer: PhaseResultWriter | None = None,
        report_service: ReportService | None = None,
        rate_limiter: Any | None = None,
        projector: MetricProjector | None = None,
        settings: EvaluationSettings | None = None,
        credit_settings: CreditSettings | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._capturer = capturer
        self._analyzer = analyzer
        self._scorer = scorer
        self._discoverer = discoverer
        self._screenshotter = screenshotter
        self._responder = responder
        self._ledger = ledger or get_credit_ledger()
        self._writer = writer or DatabasePhaseResultWriter(session_factory=session_factory)
        self._settings = settings or get_evaluation_settings()
        self._credit_settings = credit_settings or get_credit_settings()
        self._report_service = report_service or ReportService(
            session_factory=session_factory,
            ledger=self._ledger,
            credit_settings=self._credit_settings,
        )
        self._rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        self._projector = projector or MetricProjector()

        self._sessions: dict[uuid.UUID, PhaseOrchestrator] = {}
        self._session_by_user: dict[str, uuid.UUID] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, user_id: str, url: str) -> uuid.UUID:
        """
        Capture ``url`` and open a new session for ``user_id``.

        The evaluation cost is reserved before capture and refunded if the
        capture or the snapshot persistence fails. Any previous session of
        the same user is discarded.
        """

        target_url = normalize_url(url)
        self._rate_limiter.acquire(user_id)
        session_id = uuid.uuid4()

        with self._ledger.charge(
            user_id,
            self._credit_settings.evaluation_cost,
            action=LedgerAction.EVALUATION,
            evaluation_id=session_id,
        ):
            snapshot = self._capturer.capture(target_url)
            self._store_snapshot(session_id, user_id, snapshot)

        orchestrator = PhaseOrchestrator(
            SessionState(user_id=user_id, snapshot=snapshot, session_id=session_id),
            analyzer=self._analyzer,
            scorer=self._scorer,
            discoverer=self._discoverer,
            screenshotter=self._screenshotter,
            ledger=self._ledger,
            writer=self._writer,
            projector=self._projector,
            settings=self._settings,
            credit_settings=self._credit_settings,
        )
        with self._registry_lock:
            previous_id = self._session_by_user.get(user_id)
            previous = self._sessions.pop(previous_id, None) if previous_id is not None else None
            self._sessions[session_id] = orchestrator
            self._session_by_user[user_id] = session_id
        if previous is not None:
            previous.abandon()

        log_event(logger, logging.INFO, "session_started", session_id=session_id, user_id=user_id, url=target_url)
        return session_id

    def _store_snapshot(self, session_id: uuid.UUID, user_id: str, snapshot: EvaluationSnapshot) -> None:
        try:
            with self._session_factory() as db:
                with db.begin():
                    EvaluationRepository(db).create_evaluation(
                        evaluation_id=session_id,
                        user_id=user_id,
                        url=snapshot.url,
                        snapshot=snapshot.to_payload(),
                        captured_at=snapshot.captured_at,
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store evaluation snapshot for {snapshot.url}.") from exc

    def _get_orchestrator(self, session_id: uuid.UUID) -> PhaseOrchestrator:
        with self._registry_lock:
            orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return orchestrator

    def advance_phase(self, session_id: uuid.UUID) -> PhaseResult | StreamHandle:
        return self._get_orchestrator(session_id).advance()

    def get_session_state(self, session_id: uuid.UUID) -> SessionState:
        return self._get_orchestrator(session_id).snapshot()

    def submit_chat_message(self, session_id: uuid.UUID, text: str) -> str:
        message = (text or "").strip()
        if not message:
            raise ValueError("Chat message must not be empty.")
        return self._get_orchestrator(session_id).chat(message, self._responder)

    def evict_idle_sessions(self, idle_ttl_seconds: float | None = None) -> int:
        """
        Discard sessions idle longer than the TTL.

        Streams being read are kept. A stream handle nobody started reading
        within the stream timeout is reclaimed first, which refunds its
        reservation and lets the session age out normally.
        """

        ttl = idle_ttl_seconds if idle_ttl_seconds is not None else get_session_settings().idle_ttl_seconds
        with self._registry_lock:
            live = list(self._sessions.values())
        for orchestrator in live:
            orchestrator.reclaim_unconsumed_stream(self._settings.stream_timeout_seconds)

        cutoff = time.monotonic() - ttl
        evicted: list[PhaseOrchestrator] = []
        with self._registry_lock:
            for session_id, orchestrator in list(self._sessions.items()):
                if orchestrator.is_streaming or orchestrator.last_activity > cutoff:
                    continue
                evicted.append(self._sessions.pop(session_id))
                if self._session_by_user.get(orchestrator.user_id) == session_id:
                    del self._session_by_user[orchestrator.user_id]
        for orchestrator in evicted:
            orchestrator.abandon()
        if evicted:
            log_event(logger, logging.INFO, "sessions_evicted", count=len(evicted))
        return len(evicted)

    def active_session_count(self) -> int:
        with self._registry_lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Reports and history
    # ------------------------------------------------------------------

    def generate_report(self, session_id: uuid.UUID) -> ReportHandle:
        """Build a report from the stored phase results; the live session may be gone."""
        return self._report_service.generate_report(user_id=self._owner_of(session_id), evaluation_id=session_id)

    def _owner_of(self, session_id: uuid.UUID) -> str:
        with self._registry_lock:
            orchestrator = self._sessions.get(session_id)
        if orchestrator is not None:
            return orchestrator.user_id
        with self._session_factory() as db:
            evaluation = EvaluationRepository(db).get_evaluation(session_id)
            if evaluation is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            return evaluation.user_id

    def list_reports(self, user_id: str) -> list[ReportHandle]:
        return self._report_service.list_reports(user_id)

    def get_report(self, report_id: uuid.UUID) -> ReportHandle:
        return self._report_service.get_report(report_id)

    def list_phase_results(
        self,
        user_id: str,
        evaluation_id: uuid.UUID | None = None,
    ) -> list[StoredPhaseResult]:
        with self._session_factory() as db:
            records = PhaseResultRepository(db).list_results(user_id=user_id, evaluation_id=evaluation_id)
            return [
                StoredPhaseResult(
                    id=record.id,
                    evaluation_id=record.evaluation_id,
                    phase=record.phase,
                    narrative=record.narrative,
                    metrics_subset=dict(record.metrics_subset or {}),
                    score=record.score,
                    screenshot_ref=record.screenshot_ref,
                    created_at=record.created_at,
                )
                for record in records
            ]


@lru_cache(maxsize=1)
def get_evaluation_service() -> EvaluationService:
    """
    Build the process-wide service with the HTTP capture connector and
    the configured LLM adapter.
    """

    from app.config import get_llm_settings
    from app.connectors.capture_connector import CaptureServiceConnector
    from llm_analysis.adapter import build_adapter
    from llm_analysis.analyzers import (
        LLMChatResponder,
        LLMCompetitorDiscoverer,
        LLMNarrativeAnalyzer,
        LLMPhaseScorer,
    )

    llm_settings = get_llm_settings()
    adapter = build_adapter(llm_settings)
    connector = CaptureServiceConnector()
    return EvaluationService(
        capturer=connector,
        analyzer=LLMNarrativeAnalyzer(adapter, settings=llm_settings),
        scorer=LLMPhaseScorer(adapter, settings=llm_settings),
        discoverer=LLMCompetitorDiscoverer(
            adapter,
            max_competitors=get_evaluation_settings().max_competitors,
            settings=llm_settings,
        ),
        screenshotter=connector,
        responder=LLMChatResponder(adapter, settings=llm_settings),
    )
