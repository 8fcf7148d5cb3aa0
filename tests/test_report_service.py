"""
tests/test_report_service.py

Tests for ReportService: reports come from persisted phase results and
every failure refunds the report cost.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.domain.errors import InsufficientBalanceError, ReportNotFoundError
from app.domain.phases import Phase
from app.services.report_service import ReportService, essential_metrics
from db.models.ledger_transaction import LedgerAction
from db.repositories.phase_result_repository import PhaseResultRepository
from scoring.metric_projector import project


@pytest.fixture()
def report_service(session_factory, ledger, credit_settings) -> ReportService:
    return ReportService(session_factory=session_factory, ledger=ledger, credit_settings=credit_settings)


def _store_results(session_factory, state, scores: dict[Phase, int | None]) -> None:
    started = datetime.now(timezone.utc)
    with session_factory() as db:
        with db.begin():
            repository = PhaseResultRepository(db)
            for offset, (phase, score) in enumerate(scores.items()):
                repository.append_result(
                    user_id=state.user_id,
                    evaluation_id=state.session_id,
                    phase=phase.value,
                    narrative=f"{phase.value} narrative",
                    metrics_subset=project(phase, state.snapshot),
                    score=score,
                    screenshot_ref=None,
                    created_at=started + timedelta(seconds=offset),
                )


class TestGenerateReport:
    def test_report_from_persisted_results(self, report_service, session_factory, stored_evaluation, ledger) -> None:
        _store_results(
            session_factory,
            stored_evaluation,
            {Phase.VISION: 80, Phase.UI: 71, Phase.FUNCTIONALITY: 90, Phase.PERFORMANCE: 65, Phase.SEO: 88},
        )

        report = report_service.generate_report(user_id="user-1", evaluation_id=stored_evaluation.session_id)

        assert report.url == "https://www.example.com"
        assert report.overall_score == 79
        assert report.phase_scores == {"Vision": 80, "UI": 71, "Functionality": 90, "Performance": 65, "SEO": 88}
        assert report.essential_metrics["performance"]["load_ms"] == 1234.57
        assert report.essential_metrics["seo"]["score"] == 88
        assert report.validation["overall"]["is_valid"] is True
        assert report.validation["overall"]["confidence"] == 0.64
        assert ledger.balance("user-1") == Decimal("17.00")

    def test_latest_result_per_phase_wins(self, report_service, session_factory, stored_evaluation) -> None:
        _store_results(session_factory, stored_evaluation, {Phase.VISION: 40})
        _store_results(session_factory, stored_evaluation, {Phase.VISION: 60})

        report = report_service.generate_report(user_id="user-1", evaluation_id=stored_evaluation.session_id)

        assert report.phase_scores == {"Vision": 60}
        assert report.overall_score == 60

    def test_report_without_results_is_invalid_but_stored(self, report_service, stored_evaluation) -> None:
        report = report_service.generate_report(user_id="user-1", evaluation_id=stored_evaluation.session_id)
        assert report.overall_score is None
        assert report.validation["overall"]["is_valid"] is False
        assert report_service.get_report(report.id).id == report.id

    def test_missing_evaluation_refunds(self, report_service, ledger) -> None:
        ledger.open_account("user-1")
        with pytest.raises(ReportNotFoundError):
            report_service.generate_report(user_id="user-1", evaluation_id=uuid.uuid4())
        assert ledger.balance("user-1") == Decimal("20.00")

    def test_other_users_evaluation_is_not_found(self, report_service, ledger, stored_evaluation) -> None:
        ledger.open_account("user-2")
        with pytest.raises(ReportNotFoundError):
            report_service.generate_report(user_id="user-2", evaluation_id=stored_evaluation.session_id)
        assert ledger.balance("user-2") == Decimal("20.00")

    def test_insufficient_balance(self, report_service, ledger, stored_evaluation) -> None:
        ledger.reserve("user-1", Decimal("18"), action=LedgerAction.EVALUATION)
        with pytest.raises(InsufficientBalanceError):
            report_service.generate_report(user_id="user-1", evaluation_id=stored_evaluation.session_id)
        assert report_service.list_reports("user-1") == []


class TestLookup:
    def test_unknown_report(self, report_service) -> None:
        with pytest.raises(ReportNotFoundError):
            report_service.get_report(uuid.uuid4())

    def test_list_reports_is_per_user(self, report_service, stored_evaluation) -> None:
        report_service.generate_report(user_id="user-1", evaluation_id=stored_evaluation.session_id)
        assert len(report_service.list_reports("user-1")) == 1
        assert report_service.list_reports("user-2") == []


def test_essential_metrics_tolerates_missing_phases() -> None:
    summary = essential_metrics({})
    assert summary["performance"] == {"load_ms": None, "fcp": None, "tti": None}
    assert summary["accessibility"]["score"] is None
