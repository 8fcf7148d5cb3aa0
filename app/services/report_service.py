"""
Report service: builds, validates and stores evaluation reports from
the durable phase result history.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import CreditSettings, get_credit_settings
from app.domain.errors import PersistenceError, ReportNotFoundError
from app.domain.evaluation import MetricValue, overall_score
from app.domain.phases import Phase, is_scored, parse_phase
from app.logging_utils import log_event
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from db.models.ledger_transaction import LedgerAction
from db.models.phase_result import PhaseResultRecord
from db.models.report import Report
from db.repositories.evaluation_repository import EvaluationRepository
from db.repositories.phase_result_repository import PhaseResultRepository
from db.repositories.report_repository import ReportRepository
from scoring.report_validator import ReportValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportHandle:
    id: uuid.UUID
    user_id: str
    evaluation_id: uuid.UUID
    url: str
    overall_score: int | None
    phase_scores: dict[str, int]
    essential_metrics: dict[str, Any]
    validation: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_record(cls, report: Report) -> "ReportHandle":
        return cls(
            id=report.id,
            user_id=report.user_id,
            evaluation_id=report.evaluation_id,
            url=report.url,
            overall_score=report.overall_score,
            phase_scores=dict(report.phase_scores or {}),
            essential_metrics=dict(report.essential_metrics or {}),
            validation=dict(report.validation or {}),
            created_at=report.created_at,
        )


def _lookup(subset: dict[str, MetricValue] | None, *path: str) -> MetricValue:
    node: Any = subset or {}
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _latest_by_phase(records: Sequence[PhaseResultRecord]) -> dict[Phase, PhaseResultRecord]:
    latest: dict[Phase, PhaseResultRecord] = {}
    for record in records:
        phase = parse_phase(record.phase)
        if phase is not None:
            latest[phase] = record
    return latest


def essential_metrics(phase_metrics: dict[Phase, dict[str, MetricValue]]) -> dict[str, Any]:
    """Compact metric summary kept with every stored report."""
    performance = phase_metrics.get(Phase.PERFORMANCE)
    seo = phase_metrics.get(Phase.SEO)
    accessibility_source = phase_metrics.get(Phase.UI) or phase_metrics.get(Phase.FUNCTIONALITY)
    return {
        "performance": {
            "load_ms": _lookup(performance, "load_ms"),
            "fcp": _lookup(performance, "fcp"),
            "tti": _lookup(performance, "tti"),
        },
        "seo": {"score": _lookup(seo, "seo", "score")},
        "accessibility": {"score": _lookup(accessibility_source, "accessibility", "score")},
        "best_practices": {"score": _lookup(seo, "lighthouse", "best_practices")},
    }


class ReportService:
    """
    Generates reports from persisted phase results, never from live
    session state.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        ledger: CreditLedger | None = None,
        validator: ReportValidator | None = None,
        credit_settings: CreditSettings | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._ledger = ledger or get_credit_ledger()
        self._validator = validator or ReportValidator()
        self._credit_settings = credit_settings or get_credit_settings()

    def generate_report(self, *, user_id: str, evaluation_id: uuid.UUID) -> ReportHandle:
        """
        Bill, build and store a report for one evaluation.

        Raises:
            InsufficientBalanceError: The report cost cannot be reserved.
            ReportNotFoundError: The evaluation has no stored snapshot.
            PersistenceError: The report could not be stored (cost refunded).
        """

        with self._ledger.charge(
            user_id,
            self._credit_settings.report_generation_cost,
            action=LedgerAction.REPORT_GENERATION,
            evaluation_id=evaluation_id,
        ):
            try:
                with self._session_factory() as db:
                    with db.begin():
                        report = self._build_and_store(db, user_id=user_id, evaluation_id=evaluation_id)
                    handle = ReportHandle.from_record(report)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to store report for evaluation {evaluation_id}.") from exc

        log_event(
            logger,
            logging.INFO,
            "report_generated",
            report_id=handle.id,
            evaluation_id=evaluation_id,
            user_id=user_id,
            confidence=handle.validation.get("overall", {}).get("confidence"),
        )
        return handle

    def _build_and_store(self, db: Session, *, user_id: str, evaluation_id: uuid.UUID) -> Report:
        evaluation = EvaluationRepository(db).get_evaluation(evaluation_id)
        if evaluation is None or evaluation.user_id != user_id:
            raise ReportNotFoundError(f"No stored evaluation {evaluation_id} for user {user_id!r}.")

        records = PhaseResultRepository(db).list_for_evaluation(evaluation_id)
        latest = _latest_by_phase(records)
        scores = {
            phase: record.score
            for phase, record in latest.items()
            if is_scored(phase) and record.score is not None
        }
        phase_metrics = {phase: dict(record.metrics_subset or {}) for phase, record in latest.items()}
        validation = self._validator.validate_report(
            evaluation.url,
            datetime.now(timezone.utc),
            phase_metrics,
        )

        return ReportRepository(db).create_report(
            user_id=user_id,
            evaluation_id=evaluation_id,
            url=evaluation.url,
            overall_score=overall_score(scores),
            phase_scores={phase.value: score for phase, score in scores.items()},
            essential_metrics=essential_metrics(phase_metrics),
            validation=validation.to_dict(),
        )

    def get_report(self, report_id: uuid.UUID) -> ReportHandle:
        with self._session_factory() as db:
            report = ReportRepository(db).get_report(report_id)
            if report is None:
                raise ReportNotFoundError(f"Report not found: {report_id}")
            return ReportHandle.from_record(report)

    def list_reports(self, user_id: str, *, limit: int = 50) -> list[ReportHandle]:
        with self._session_factory() as db:
            return [ReportHandle.from_record(report) for report in ReportRepository(db).list_reports(user_id=user_id, limit=limit)]
