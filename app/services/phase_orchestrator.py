"""
Phase orchestrator: the single writer of one evaluation session.

Advances the session through the fixed phase order, billing each step
through the credit ledger and durably recording every completed phase
before the in-memory state changes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import AsyncIterator, Mapping
from decimal import Decimal
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import CreditSettings, EvaluationSettings, get_credit_settings, get_evaluation_settings
from app.domain.collaborators import (
    ChatResponder,
    CompetitorDiscoverer,
    NarrativeAnalyzer,
    PhaseScorer,
    Screenshotter,
)
from app.domain.errors import (
    CollaboratorError,
    PersistenceError,
    SessionBusyError,
    SessionCompleteError,
)
from app.domain.evaluation import ConversationTurn, MetricValue, PhaseResult, SessionState, overall_score
from app.domain.phases import TERMINAL_PHASE, Phase, is_scored, next_phase
from app.domain.streaming import DoneEvent, StreamEvent
from app.logging_utils import log_event
from app.services.credit_ledger import CreditLedger
from app.services.history import bounded_history
from app.services.recommendation_stream import RecommendationStream
from db.models.ledger_transaction import LedgerAction
from db.repositories.phase_result_repository import PhaseResultRepository
from scoring.metric_projector import MetricProjector

logger = logging.getLogger(__name__)


class PhaseResultWriter(Protocol):
    def append(self, state: SessionState, result: PhaseResult) -> None:
        ...


class DatabasePhaseResultWriter:
    """
    Appends phase results to the relational store; raises PersistenceError
    on any storage failure.
    """

    def __init__(self, *, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

    def append(self, state: SessionState, result: PhaseResult) -> None:
        try:
            with self._session_factory() as db:
                with db.begin():
                    PhaseResultRepository(db).append_result(
                        user_id=state.user_id,
                        evaluation_id=state.session_id,
                        phase=result.phase.value,
                        narrative=result.narrative,
                        metrics_subset=dict(result.metrics_subset),
                        score=result.score,
                        screenshot_ref=result.screenshot_ref,
                        created_at=result.created_at,
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to store {result.phase.value} result for session {state.session_id}."
            ) from exc


class PhaseOrchestrator:
    """
    Owns one SessionState behind a lock.

    Concurrent callers queue on the lock for up to ``lock_wait_seconds``
    and then get SessionBusyError. While a Recommendations stream is open
    every further advance is rejected as busy.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        analyzer: NarrativeAnalyzer,
        scorer: PhaseScorer,
        discoverer: CompetitorDiscoverer,
        screenshotter: Screenshotter,
        ledger: CreditLedger,
        writer: PhaseResultWriter,
        projector: MetricProjector | None = None,
        settings: EvaluationSettings | None = None,
        credit_settings: CreditSettings | None = None,
    ) -> None:
        self._state = state
        self._analyzer = analyzer
        self._scorer = scorer
        self._discoverer = discoverer
        self._screenshotter = screenshotter
        self._ledger = ledger
        self._writer = writer
        self._projector = projector or MetricProjector()
        self._settings = settings or get_evaluation_settings()
        self._credit_settings = credit_settings or get_credit_settings()

        self._lock = threading.Lock()
        self._state_guard = threading.Lock()
        self._active_stream: StreamHandle | None = None
        self._stream_started = False
        self._stream_opened_at = 0.0
        self._abandoned = False
        self.last_activity = time.monotonic()

    @property
    def session_id(self) -> uuid.UUID:
        return self._state.session_id

    @property
    def user_id(self) -> str:
        return self._state.user_id

    @property
    def is_abandoned(self) -> bool:
        return self._abandoned

    @property
    def is_streaming(self) -> bool:
        return self._active_stream is not None

    def snapshot(self) -> SessionState:
        with self._state_guard:
            return self._state.snapshot_copy()

    def abandon(self) -> None:
        """Stop relaying stream events; in-flight fetches end on their own timers."""
        self._abandoned = True
        log_event(logger, logging.INFO, "session_abandoned", session_id=self.session_id, user_id=self.user_id)

    # ------------------------------------------------------------------
    # Advance
    # ------------------------------------------------------------------

    def advance(self) -> PhaseResult | StreamHandle:
        """
        Run the next phase.

        Returns the new PhaseResult (error-tagged if a collaborator
        failed), or a StreamHandle for the Recommendations phase.

        Raises:
            SessionBusyError: Another caller holds the session or a stream is open.
            SessionCompleteError: The session already passed its terminal phase.
            InsufficientBalanceError: The phase-advance cost cannot be reserved.
            PersistenceError: The result could not be stored; state is unchanged.
        """

        if not self._lock.acquire(timeout=self._settings.lock_wait_seconds):
            raise SessionBusyError(f"Session {self.session_id} is busy; try again shortly.")
        try:
            if self._abandoned:
                raise SessionBusyError(f"Session {self.session_id} has been replaced by a newer evaluation.")
            if self._active_stream is not None:
                raise SessionBusyError(f"Session {self.session_id} is streaming recommendations.")
            if self._state.is_complete:
                raise SessionCompleteError(f"Session {self.session_id} is complete.")
            phase = next_phase(self._state.current_phase)
            if phase is None:
                raise SessionCompleteError(f"Session {self.session_id} is complete.")

            self.last_activity = time.monotonic()
            metrics_subset = self._projector.project(phase, self._state.snapshot)
            if phase is TERMINAL_PHASE:
                return self._open_stream(metrics_subset)
            return self._run_phase(phase, metrics_subset)
        finally:
            self._lock.release()

    def _run_phase(self, phase: Phase, metrics_subset: dict[str, MetricValue]) -> PhaseResult:
        cost = self._credit_settings.phase_advance_cost
        try:
            with self._ledger.charge(
                self.user_id,
                cost,
                action=LedgerAction.PHASE_ADVANCE,
                evaluation_id=self.session_id,
            ):
                result = self._call_collaborators(phase, metrics_subset)
                self._writer.append(self._state, result)
        except CollaboratorError as exc:
            log_event(
                logger,
                logging.WARNING,
                "phase_failed",
                session_id=self.session_id,
                phase=phase.value,
                collaborator=exc.collaborator,
                error=str(exc),
            )
            return PhaseResult.failure(phase, str(exc))

        self._apply(result)
        log_event(
            logger,
            logging.INFO,
            "phase_completed",
            session_id=self.session_id,
            phase=phase.value,
            score=result.score,
            overall_score=self._state.overall_score,
        )
        return result

    def _call_collaborators(self, phase: Phase, metrics_subset: dict[str, MetricValue]) -> PhaseResult:
        snapshot = self._state.snapshot
        history = self._history_for(phase)
        analyzer_metrics: Mapping[str, MetricValue] = metrics_subset
        if phase is Phase.OVERALL:
            analyzer_metrics = {
                "phase_scores": {scored.value: score for scored, score in self._state.phase_scores.items()},
                "overall_score": self._state.overall_score,
            }
        screenshot = snapshot.screenshot if phase is Phase.VISION else None

        narrative = self._analyzer.analyze(snapshot.url, phase, analyzer_metrics, history, screenshot)
        score = self._scorer.score(phase, metrics_subset) if is_scored(phase) else None
        if score is not None and not 0 <= score <= 100:
            raise CollaboratorError("phase_scorer", f"score {score} is outside [0, 100]")

        return PhaseResult(
            phase=phase,
            narrative=narrative,
            metrics_subset=metrics_subset,
            score=score,
            screenshot_ref=f"evaluations/{self.session_id}/screenshot" if screenshot else None,
        )

    def _apply(self, result: PhaseResult) -> None:
        with self._state_guard:
            state = self._state
            state.results.append(result)
            if result.score is not None:
                state.phase_scores[result.phase] = result.score
                state.overall_score = overall_score(state.phase_scores)
            state.conversation.append(ConversationTurn(role="assistant", content=result.narrative, phase=result.phase))
            state.current_phase = result.phase
            if result.phase is TERMINAL_PHASE:
                state.is_complete = True

    def _history_for(self, phase: Phase | None) -> list[ConversationTurn]:
        with self._state_guard:
            conversation = list(self._state.conversation)
        return bounded_history(
            conversation,
            phase,
            limit=self._settings.history_limit,
            recent_user_turns=self._settings.recent_user_turns,
        )

    # ------------------------------------------------------------------
    # Recommendations stream
    # ------------------------------------------------------------------

    def _open_stream(self, metrics_subset: dict[str, MetricValue]) -> StreamHandle:
        cost = self._credit_settings.phase_advance_cost
        self._ledger.reserve(
            self.user_id,
            cost,
            action=LedgerAction.PHASE_ADVANCE,
            evaluation_id=self.session_id,
        )
        stream = RecommendationStream(
            url=self._state.snapshot.url,
            metrics=metrics_subset,
            history=self._history_for(TERMINAL_PHASE),
            analyzer=self._analyzer,
            discoverer=self._discoverer,
            screenshotter=self._screenshotter,
            settings=self._settings,
        )
        handle = StreamHandle(self, stream, metrics_subset=metrics_subset, reserved=cost)
        with self._state_guard:
            self._active_stream = handle
            self._stream_started = False
            self._stream_opened_at = time.monotonic()
        log_event(logger, logging.INFO, "recommendation_stream_opened", session_id=self.session_id)
        return handle

    def _start_stream(self, handle: StreamHandle) -> bool:
        with self._state_guard:
            if self._active_stream is not handle:
                return False
            self._stream_started = True
            return True

    def _complete_stream(self, result: PhaseResult) -> None:
        self._writer.append(self._state, result)
        self._apply(result)
        log_event(logger, logging.INFO, "session_completed", session_id=self.session_id)

    def _close_stream(self, handle: StreamHandle, *, succeeded: bool, reserved: Decimal) -> None:
        with self._state_guard:
            if self._active_stream is not handle:
                return
            self._active_stream = None
        self.last_activity = time.monotonic()
        if not succeeded:
            self._refund_stream(reserved)

    def _refund_stream(self, reserved: Decimal) -> None:
        try:
            self._ledger.refund(
                self.user_id,
                reserved,
                action=LedgerAction.PHASE_ADVANCE,
                evaluation_id=self.session_id,
            )
        except Exception:
            logger.exception("Refund after failed recommendation stream could not be applied session_id=%s", self.session_id)

    def reclaim_unconsumed_stream(self, max_age_seconds: float) -> bool:
        """
        Close a stream handle nobody started iterating within
        ``max_age_seconds`` and refund its reservation.
        """

        with self._state_guard:
            handle = self._active_stream
            if handle is None or self._stream_started:
                return False
            if time.monotonic() - self._stream_opened_at < max_age_seconds:
                return False
            self._active_stream = None
        self.last_activity = time.monotonic()
        self._refund_stream(handle.reserved)
        log_event(logger, logging.WARNING, "recommendation_stream_reclaimed", session_id=self.session_id)
        return True

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat(self, message: str, responder: ChatResponder) -> str:
        """
        Answer a user question in the context of the current phase.

        Both turns are appended only after the reply succeeded.
        """

        if not self._lock.acquire(timeout=self._settings.lock_wait_seconds):
            raise SessionBusyError(f"Session {self.session_id} is busy; try again shortly.")
        try:
            self.last_activity = time.monotonic()
            phase = self._state.current_phase
            history = self._history_for(phase)
            with self._ledger.charge(
                self.user_id,
                self._credit_settings.chat_message_cost,
                action=LedgerAction.CHAT_MESSAGE,
                evaluation_id=self.session_id,
            ):
                reply = responder.reply(self._state.snapshot.url, phase, message, history)
            with self._state_guard:
                self._state.conversation.append(ConversationTurn(role="user", content=message, phase=phase))
                self._state.conversation.append(ConversationTurn(role="assistant", content=reply, phase=phase))
            return reply
        finally:
            self._lock.release()


class StreamHandle:
    """
    Relays the Recommendations stream to one consumer and finalizes the
    session when ``done`` arrives.
    """

    def __init__(
        self,
        orchestrator: PhaseOrchestrator,
        stream: RecommendationStream,
        *,
        metrics_subset: dict[str, MetricValue],
        reserved: Decimal,
    ) -> None:
        self._orchestrator = orchestrator
        self._stream = stream
        self._metrics_subset = metrics_subset
        self._reserved = reserved
        self._consumed = False

    @property
    def session_id(self) -> uuid.UUID:
        return self._orchestrator.session_id

    @property
    def reserved(self) -> Decimal:
        return self._reserved

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Yield stream events. Raises StreamTimeoutError, CollaboratorError
        or PersistenceError after refunding the reservation.
        """

        if self._consumed:
            raise RuntimeError("StreamHandle.events() can only be iterated once.")
        self._consumed = True
        if not self._orchestrator._start_stream(self):
            raise SessionBusyError(f"Recommendation stream for session {self.session_id} expired before it was read.")

        succeeded = False
        try:
            async for event in self._stream.events():
                if self._orchestrator.is_abandoned:
                    log_event(logger, logging.INFO, "stream_relay_stopped", session_id=self.session_id)
                    break
                if isinstance(event, DoneEvent):
                    await asyncio.to_thread(self._orchestrator._complete_stream, self._build_result())
                    succeeded = True
                yield event
        finally:
            await asyncio.shield(
                asyncio.to_thread(self._orchestrator._close_stream, self, succeeded=succeeded, reserved=self._reserved)
            )

    def _build_result(self) -> PhaseResult:
        subset = dict(self._metrics_subset)
        subset["competitors"] = [task.to_summary() for task in self._stream.tasks]
        return PhaseResult(
            phase=TERMINAL_PHASE,
            narrative=self._stream.narrative or "",
            metrics_subset=subset,
        )
