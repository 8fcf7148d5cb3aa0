"""
Repository for ledger accounts and their audit trail.

Every balance mutation is a single conditional UPDATE so concurrent
writers on one account serialize in the database. The repository never
commits; the calling service owns the transaction.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Select, and_, case, or_, select, update
from sqlalchemy.orm import Session

from db.models.ledger_account import LedgerAccount
from db.models.ledger_transaction import LedgerTransaction


class LedgerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_account(self, user_id: str, *, refresh: bool = False) -> LedgerAccount | None:
        stmt = select(LedgerAccount).where(LedgerAccount.user_id == user_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self._session.scalars(stmt).one_or_none()

    def create_account(self, *, user_id: str, balance_cents: int) -> LedgerAccount:
        account = LedgerAccount(
            user_id=user_id,
            balance_cents=balance_cents,
            outstanding_cents=0,
            is_pay_as_you_go=False,
            has_payment_method=False,
            total_spent_cents=0,
        )
        self._session.add(account)
        self._session.flush()
        return account

    def debit(self, *, user_id: str, amount_cents: int) -> bool:
        """
        Debit ``amount_cents`` if the account can cover it.

        Pay-as-you-go accounts with a payment method may debit past their
        balance: the balance floors at zero and the shortfall is added to
        ``outstanding_cents``. Returns False when no row qualified.
        """

        covered = LedgerAccount.balance_cents >= amount_cents
        stmt = (
            update(LedgerAccount)
            .where(
                LedgerAccount.user_id == user_id,
                or_(
                    covered,
                    and_(
                        LedgerAccount.is_pay_as_you_go.is_(True),
                        LedgerAccount.has_payment_method.is_(True),
                    ),
                ),
            )
            .values(
                balance_cents=case(
                    (covered, LedgerAccount.balance_cents - amount_cents),
                    else_=0,
                ),
                outstanding_cents=LedgerAccount.outstanding_cents
                + case(
                    (covered, 0),
                    else_=amount_cents - LedgerAccount.balance_cents,
                ),
                total_spent_cents=LedgerAccount.total_spent_cents + amount_cents,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def credit(self, *, user_id: str, amount_cents: int) -> bool:
        """
        Reverse a debit: outstanding charges are cleared first, the
        remainder returns to the balance.
        """

        settles = LedgerAccount.outstanding_cents >= amount_cents
        stmt = (
            update(LedgerAccount)
            .where(LedgerAccount.user_id == user_id)
            .values(
                outstanding_cents=case(
                    (settles, LedgerAccount.outstanding_cents - amount_cents),
                    else_=0,
                ),
                balance_cents=LedgerAccount.balance_cents
                + case(
                    (settles, 0),
                    else_=amount_cents - LedgerAccount.outstanding_cents,
                ),
                total_spent_cents=case(
                    (
                        LedgerAccount.total_spent_cents >= amount_cents,
                        LedgerAccount.total_spent_cents - amount_cents,
                    ),
                    else_=0,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def add_funds(self, *, user_id: str, amount_cents: int) -> bool:
        """
        Apply a purchased top-up. Outstanding pay-as-you-go charges are
        settled before the balance grows.
        """

        settles = LedgerAccount.outstanding_cents >= amount_cents
        stmt = (
            update(LedgerAccount)
            .where(LedgerAccount.user_id == user_id)
            .values(
                outstanding_cents=case(
                    (settles, LedgerAccount.outstanding_cents - amount_cents),
                    else_=0,
                ),
                balance_cents=LedgerAccount.balance_cents
                + case(
                    (settles, 0),
                    else_=amount_cents - LedgerAccount.outstanding_cents,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def set_billing_flags(
        self,
        *,
        user_id: str,
        is_pay_as_you_go: bool | None = None,
        has_payment_method: bool | None = None,
    ) -> bool:
        values: dict[str, bool] = {}
        if is_pay_as_you_go is not None:
            values["is_pay_as_you_go"] = is_pay_as_you_go
        if has_payment_method is not None:
            values["has_payment_method"] = has_payment_method
        if not values:
            return self.get_account(user_id) is not None

        stmt = (
            update(LedgerAccount)
            .where(LedgerAccount.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def append_transaction(
        self,
        *,
        user_id: str,
        kind: str,
        action: str,
        amount_cents: int,
        balance_after_cents: int,
        outstanding_after_cents: int,
        evaluation_id: uuid.UUID | None = None,
    ) -> LedgerTransaction:
        transaction = LedgerTransaction(
            user_id=user_id,
            evaluation_id=evaluation_id,
            kind=kind,
            action=action,
            amount_cents=amount_cents,
            balance_after_cents=balance_after_cents,
            outstanding_after_cents=outstanding_after_cents,
        )
        self._session.add(transaction)
        self._session.flush()
        return transaction

    def list_transactions(
        self,
        *,
        user_id: str,
        evaluation_id: uuid.UUID | None = None,
        limit: int = 100,
    ) -> list[LedgerTransaction]:
        stmt: Select[tuple[LedgerTransaction]] = select(LedgerTransaction).where(
            LedgerTransaction.user_id == user_id
        )
        if evaluation_id is not None:
            stmt = stmt.where(LedgerTransaction.evaluation_id == evaluation_id)
        stmt = stmt.order_by(LedgerTransaction.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())
