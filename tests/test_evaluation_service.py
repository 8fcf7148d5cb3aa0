"""
tests/test_evaluation_service.py

Tests for EvaluationService session lifecycle, billing and history.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from decimal import Decimal

import pytest

from app.domain.errors import (
    CollaboratorError,
    InsufficientBalanceError,
    RateLimitExceededError,
    SessionBusyError,
    SessionNotFoundError,
)
from app.domain.phases import Phase
from app.services.evaluation_service import EvaluationService, normalize_url
from app.services.phase_orchestrator import DatabasePhaseResultWriter
from app.services.rate_limiter import UserRateLimiter, _NoopRateLimiter
from db.repositories.evaluation_repository import EvaluationRepository


@pytest.fixture()
def service(
    session_factory,
    ledger,
    capturer,
    analyzer,
    scorer,
    discoverer,
    screenshotter,
    responder,
    evaluation_settings,
    credit_settings,
) -> EvaluationService:
    ledger.open_account("user-1")
    return EvaluationService(
        capturer=capturer,
        analyzer=analyzer,
        scorer=scorer,
        discoverer=discoverer,
        screenshotter=screenshotter,
        responder=responder,
        session_factory=session_factory,
        ledger=ledger,
        writer=DatabasePhaseResultWriter(session_factory=session_factory),
        rate_limiter=_NoopRateLimiter(),
        settings=evaluation_settings,
        credit_settings=credit_settings,
    )


class TestNormalizeUrl:
    def test_adds_scheme(self) -> None:
        assert normalize_url("  example.com ") == "https://example.com"

    def test_keeps_existing_scheme(self) -> None:
        assert normalize_url("http://example.com") == "http://example.com"

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            normalize_url("   ")


class TestStartSession:
    def test_start_bills_and_stores_snapshot(self, service, ledger, session_factory, capturer) -> None:
        session_id = service.start_session("user-1", "www.example.com")

        assert capturer.calls == ["https://www.example.com"]
        assert ledger.balance("user-1") == Decimal("13.00")
        state = service.get_session_state(session_id)
        assert state.current_phase is None
        assert state.user_id == "user-1"
        with session_factory() as db:
            stored = EvaluationRepository(db).get_evaluation(session_id)
            assert stored is not None
            assert stored.snapshot["loadTime"] == 1234.5678

    def test_capture_failure_refunds(self, service, ledger, capturer) -> None:
        capturer.fail = True
        with pytest.raises(CollaboratorError):
            service.start_session("user-1", "https://www.example.com")
        assert ledger.balance("user-1") == Decimal("20.00")
        assert service.active_session_count() == 0

    def test_insufficient_balance_skips_capture(self, service, ledger, capturer) -> None:
        ledger.open_account("poor-user", initial_credit=Decimal("6.99"))
        with pytest.raises(InsufficientBalanceError):
            service.start_session("poor-user", "https://www.example.com")
        assert capturer.calls == []

    def test_new_url_replaces_previous_session(self, service) -> None:
        first = service.start_session("user-1", "https://www.example.com")
        service.advance_phase(first)

        second = service.start_session("user-1", "https://other.example")

        assert service.get_session_state(second).current_phase is None
        with pytest.raises(SessionNotFoundError):
            service.get_session_state(first)
        assert service.active_session_count() == 1

    def test_rate_limit_is_enforced_before_billing(self, service, ledger) -> None:
        service._rate_limiter = UserRateLimiter(max_tokens=1, window_seconds=3600)
        service.start_session("user-1", "https://www.example.com")
        with pytest.raises(RateLimitExceededError):
            service.start_session("user-1", "https://www.example.com")
        assert ledger.balance("user-1") == Decimal("13.00")


class TestSessionOperations:
    def test_unknown_session(self, service) -> None:
        with pytest.raises(SessionNotFoundError):
            service.advance_phase(uuid.uuid4())
        with pytest.raises(SessionNotFoundError):
            service.submit_chat_message(uuid.uuid4(), "hi")

    def test_advance_and_list_history(self, service) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        service.advance_phase(session_id)
        service.advance_phase(session_id)

        stored = service.list_phase_results("user-1", session_id)
        assert [result.phase for result in stored] == ["Vision", "UI"]
        assert stored[1].score == 71
        assert service.list_phase_results("someone-else") == []

    def test_chat_rejects_blank_messages(self, service) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        with pytest.raises(ValueError):
            service.submit_chat_message(session_id, "  ")

    def test_chat_reply(self, service, responder) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        service.advance_phase(session_id)
        reply = service.submit_chat_message(session_id, " What should I fix first? ")
        assert reply == "answer to: What should I fix first?"
        assert responder.calls[0][0] is Phase.VISION


class TestEviction:
    def test_idle_sessions_are_evicted(self, service) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        assert service.evict_idle_sessions(idle_ttl_seconds=3600) == 0

        assert service.evict_idle_sessions(idle_ttl_seconds=0) == 1
        with pytest.raises(SessionNotFoundError):
            service.get_session_state(session_id)

    def test_streaming_sessions_are_kept(self, service) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        while service.get_session_state(session_id).current_phase is not Phase.OVERALL:
            service.advance_phase(session_id)
        handle = service.advance_phase(session_id)

        assert service.evict_idle_sessions(idle_ttl_seconds=0) == 0
        with pytest.raises(SessionBusyError):
            service.advance_phase(handle.session_id)

    def test_unread_stream_is_reclaimed_then_evicted(self, service, evaluation_settings) -> None:
        service._settings = replace(evaluation_settings, stream_timeout_seconds=0.0)
        session_id = service.start_session("user-1", "https://www.example.com")
        while service.get_session_state(session_id).current_phase is not Phase.OVERALL:
            service.advance_phase(session_id)
        service.advance_phase(session_id)

        assert service.evict_idle_sessions(idle_ttl_seconds=0) == 1
        assert service.active_session_count() == 0


class TestReports:
    def test_generate_and_fetch_report(self, service, ledger) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        for _ in range(5):
            service.advance_phase(session_id)

        report = service.generate_report(session_id)

        assert report.evaluation_id == session_id
        assert report.overall_score == 79
        assert report.phase_scores["SEO"] == 88
        assert ledger.balance("user-1") == Decimal("10.00")
        assert service.get_report(report.id).overall_score == 79
        assert [item.id for item in service.list_reports("user-1")] == [report.id]

    def test_report_after_session_was_replaced(self, service, ledger) -> None:
        first = service.start_session("user-1", "https://www.example.com")
        for _ in range(5):
            service.advance_phase(first)
        service.start_session("user-1", "https://other.example")

        report = service.generate_report(first)

        assert report.evaluation_id == first
        assert report.overall_score == 79
        assert ledger.balance("user-1") == Decimal("3.00")

    def test_report_after_session_was_evicted(self, service) -> None:
        session_id = service.start_session("user-1", "https://www.example.com")
        service.advance_phase(session_id)
        service.evict_idle_sessions(idle_ttl_seconds=0)

        report = service.generate_report(session_id)

        assert report.phase_scores == {"Vision": 80}

    def test_report_for_unknown_evaluation(self, service, ledger) -> None:
        with pytest.raises(SessionNotFoundError):
            service.generate_report(uuid.uuid4())
        assert ledger.balance("user-1") == Decimal("20.00")
