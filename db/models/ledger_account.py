"""
db/models/ledger_account.py

Credit ledger account, one per user.

Money is stored as integer cents. ``outstanding_cents`` is the
pay-as-you-go shortfall billed to the user's payment method; it is only
non-zero while the balance is zero.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class LedgerAccount(Base, TimestampMixin):
    __tablename__ = "ledger_accounts"

    user_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
    )
    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
    outstanding_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Pay-as-you-go charges not covered by the balance",
    )
    is_pay_as_you_go: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    has_payment_method: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    total_spent_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_ledger_accounts_balance_non_negative"),
        CheckConstraint("outstanding_cents >= 0", name="ck_ledger_accounts_outstanding_non_negative"),
    )
