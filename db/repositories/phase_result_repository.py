"""
Repository for the append-only phase result history.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.phase_result import PhaseResultRecord


class PhaseResultRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def append_result(
        self,
        *,
        user_id: str,
        evaluation_id: uuid.UUID,
        phase: str,
        narrative: str,
        metrics_subset: dict[str, Any],
        score: int | None,
        screenshot_ref: str | None,
        created_at: datetime,
    ) -> PhaseResultRecord:
        record = PhaseResultRecord(
            user_id=user_id,
            evaluation_id=evaluation_id,
            phase=phase,
            narrative=narrative,
            metrics_subset=metrics_subset,
            score=score,
            screenshot_ref=screenshot_ref,
            created_at=created_at,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def list_results(
        self,
        *,
        user_id: str,
        evaluation_id: uuid.UUID | None = None,
        limit: int = 200,
    ) -> list[PhaseResultRecord]:
        stmt: Select[tuple[PhaseResultRecord]] = select(PhaseResultRecord).where(
            PhaseResultRecord.user_id == user_id
        )
        if evaluation_id is not None:
            stmt = stmt.where(PhaseResultRecord.evaluation_id == evaluation_id)
        stmt = stmt.order_by(PhaseResultRecord.created_at.asc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_for_evaluation(self, evaluation_id: uuid.UUID) -> list[PhaseResultRecord]:
        stmt = (
            select(PhaseResultRecord)
            .where(PhaseResultRecord.evaluation_id == evaluation_id)
            .order_by(PhaseResultRecord.created_at.asc())
        )
        return list(self._session.scalars(stmt).all())
