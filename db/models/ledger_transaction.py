"""
db/models/ledger_transaction.py

Append-only audit trail of ledger movements.
"""

from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin


class LedgerTransactionKind:
    RESERVE = "reserve"
    REFUND = "refund"
    TOP_UP = "top_up"


class LedgerAction:
    EVALUATION = "evaluation"
    CHAT_MESSAGE = "chat_message"
    REPORT_GENERATION = "report_generation"
    PHASE_ADVANCE = "phase_advance"
    TOP_UP = "top_up"

    ALL = frozenset({EVALUATION, CHAT_MESSAGE, REPORT_GENERATION, PHASE_ADVANCE, TOP_UP})


class LedgerTransaction(Base, CreatedAtMixin):
    __tablename__ = "ledger_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("ledger_accounts.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    evaluation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
    )
    kind: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="reserve, refund, top_up",
    )
    action: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    balance_after_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    outstanding_after_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        Index("ix_ledger_transactions_user_id_evaluation_id", "user_id", "evaluation_id"),
        Index("ix_ledger_transactions_created_at", "created_at"),
    )
