"""
db/models/report.py

Stored evaluation report: scores, essential metrics and the confidence
validation computed at generation time.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin, JSONType


class Report(Base, CreatedAtMixin):
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False,
    )
    url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    overall_score: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    phase_scores: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
    essential_metrics: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
    validation: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Per-section confidence, issues and warnings",
    )

    __table_args__ = (
        Index("ix_reports_user_id_created_at", "user_id", "created_at"),
    )
