"""
Repository for captured evaluation snapshots.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.evaluation import Evaluation


class EvaluationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_evaluation(
        self,
        *,
        evaluation_id: uuid.UUID,
        user_id: str,
        url: str,
        snapshot: dict[str, Any],
        captured_at: datetime,
    ) -> Evaluation:
        evaluation = Evaluation(
            id=evaluation_id,
            user_id=user_id,
            url=url,
            snapshot=snapshot,
            captured_at=captured_at,
        )
        self._session.add(evaluation)
        self._session.flush()
        return evaluation

    def get_evaluation(self, evaluation_id: uuid.UUID) -> Evaluation | None:
        return self._session.get(Evaluation, evaluation_id)

    def list_evaluations(self, *, user_id: str, limit: int = 50) -> list[Evaluation]:
        stmt = (
            select(Evaluation)
            .where(Evaluation.user_id == user_id)
            .order_by(Evaluation.created_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())
