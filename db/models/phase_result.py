"""
db/models/phase_result.py

Durable, append-only record of one completed phase.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin, JSONType


class PhaseResultRecord(Base, CreatedAtMixin):
    __tablename__ = "phase_results"

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
    phase: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    narrative: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    metrics_subset: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
    score: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    screenshot_ref: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_phase_results_user_id", "user_id"),
        Index("ix_phase_results_evaluation_id_created_at", "evaluation_id", "created_at"),
    )
