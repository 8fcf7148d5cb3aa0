"""
Repository for stored evaluation reports.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.report import Report


class ReportRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_report(
        self,
        *,
        user_id: str,
        evaluation_id: uuid.UUID,
        url: str,
        overall_score: int | None,
        phase_scores: dict[str, int],
        essential_metrics: dict[str, Any],
        validation: dict[str, Any],
    ) -> Report:
        report = Report(
            user_id=user_id,
            evaluation_id=evaluation_id,
            url=url,
            overall_score=overall_score,
            phase_scores=phase_scores,
            essential_metrics=essential_metrics,
            validation=validation,
        )
        self._session.add(report)
        self._session.flush()
        return report

    def get_report(self, report_id: uuid.UUID) -> Report | None:
        return self._session.get(Report, report_id)

    def list_reports(self, *, user_id: str, limit: int = 50) -> list[Report]:
        stmt = (
            select(Report)
            .where(Report.user_id == user_id)
            .order_by(Report.created_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())
