"""
Credit ledger service: atomic reservations and refunds of user credit.

Every billable action reserves its cost up front and refunds it if the
action fails. Reservations are single conditional UPDATE statements, so
concurrent reservations on one account can never jointly overdraw it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import CreditSettings, get_credit_settings
from app.domain.errors import AccountNotFoundError, InsufficientBalanceError, PersistenceError
from app.logging_utils import log_event
from db.models.ledger_account import LedgerAccount
from db.models.ledger_transaction import LedgerAction, LedgerTransaction, LedgerTransactionKind
from db.repositories.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def to_cents(amount: Decimal | int | str) -> int:
    value = Decimal(amount)
    if value < 0:
        raise ValueError(f"Ledger amounts must be non-negative, got {value}.")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


@dataclass(frozen=True)
class AccountSummary:
    user_id: str
    balance: Decimal
    outstanding: Decimal
    is_pay_as_you_go: bool
    has_payment_method: bool
    total_spent: Decimal

    @classmethod
    def from_record(cls, account: LedgerAccount) -> "AccountSummary":
        return cls(
            user_id=account.user_id,
            balance=from_cents(account.balance_cents),
            outstanding=from_cents(account.outstanding_cents),
            is_pay_as_you_go=account.is_pay_as_you_go,
            has_payment_method=account.has_payment_method,
            total_spent=from_cents(account.total_spent_cents),
        )


@dataclass(frozen=True)
class TransactionSummary:
    id: uuid.UUID
    user_id: str
    evaluation_id: uuid.UUID | None
    kind: str
    action: str
    amount: Decimal
    balance_after: Decimal
    outstanding_after: Decimal
    created_at: datetime

    @classmethod
    def from_record(cls, record: LedgerTransaction) -> "TransactionSummary":
        return cls(
            id=record.id,
            user_id=record.user_id,
            evaluation_id=record.evaluation_id,
            kind=record.kind,
            action=record.action,
            amount=from_cents(record.amount_cents),
            balance_after=from_cents(record.balance_after_cents),
            outstanding_after=from_cents(record.outstanding_after_cents),
            created_at=record.created_at,
        )


class CreditLedger:
    """
    Account-scoped credit ledger backed by the relational store.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        settings: CreditSettings | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._settings = settings or get_credit_settings()

    def cost_of(self, action: str) -> Decimal:
        costs = {
            LedgerAction.EVALUATION: self._settings.evaluation_cost,
            LedgerAction.CHAT_MESSAGE: self._settings.chat_message_cost,
            LedgerAction.REPORT_GENERATION: self._settings.report_generation_cost,
            LedgerAction.PHASE_ADVANCE: self._settings.phase_advance_cost,
        }
        if action not in costs:
            raise ValueError(f"Unknown billable action: {action!r}")
        return costs[action]

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def open_account(self, account_id: str, *, initial_credit: Decimal | None = None) -> AccountSummary:
        """
        Create an account with the starting credit. Opening an existing
        account returns it unchanged.
        """

        credit = self._settings.initial_credit if initial_credit is None else initial_credit
        balance_cents = to_cents(credit)
        with self._session_factory() as db:
            repository = LedgerRepository(db)
            try:
                with db.begin():
                    existing = repository.get_account(account_id)
                    if existing is not None:
                        return AccountSummary.from_record(existing)
                    account = repository.create_account(user_id=account_id, balance_cents=balance_cents)
                    summary = AccountSummary.from_record(account)
            except IntegrityError:
                # Lost a race with a concurrent open of the same account.
                account = repository.get_account(account_id, refresh=True)
                if account is None:
                    raise PersistenceError(f"Failed to open ledger account {account_id!r}.")
                return AccountSummary.from_record(account)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to open ledger account {account_id!r}.") from exc

        log_event(logger, logging.INFO, "ledger_account_opened", user_id=account_id, balance=summary.balance)
        return summary

    def get_account(self, account_id: str) -> AccountSummary:
        with self._session_factory() as db:
            account = LedgerRepository(db).get_account(account_id)
            if account is None:
                raise AccountNotFoundError(f"Ledger account not found: {account_id}")
            return AccountSummary.from_record(account)

    def balance(self, account_id: str) -> Decimal:
        return self.get_account(account_id).balance

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(
        self,
        account_id: str,
        amount: Decimal,
        *,
        action: str,
        evaluation_id: uuid.UUID | None = None,
    ) -> AccountSummary | None:
        """
        Atomically debit ``amount`` from the account.

        Returns the post-reservation account state, or None when the
        amount is zero and the ledger was not touched.

        Raises:
            InsufficientBalanceError: The account cannot cover the amount.
            AccountNotFoundError: The account does not exist.
        """

        amount_cents = to_cents(amount)
        if amount_cents == 0:
            return None

        with self._session_factory() as db:
            repository = LedgerRepository(db)
            try:
                with db.begin():
                    if not repository.debit(user_id=account_id, amount_cents=amount_cents):
                        account = repository.get_account(account_id)
                        if account is None:
                            raise AccountNotFoundError(f"Ledger account not found: {account_id}")
                        raise InsufficientBalanceError(
                            account_id,
                            balance=from_cents(account.balance_cents),
                            required=from_cents(amount_cents),
                        )
                    account = self._record(
                        repository,
                        account_id=account_id,
                        kind=LedgerTransactionKind.RESERVE,
                        action=action,
                        amount_cents=amount_cents,
                        evaluation_id=evaluation_id,
                    )
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Ledger reservation failed for {account_id!r}.") from exc

        log_event(
            logger,
            logging.INFO,
            "ledger_reserved",
            user_id=account_id,
            action=action,
            evaluation_id=evaluation_id,
            amount=from_cents(amount_cents),
            balance=account.balance,
            outstanding=account.outstanding,
        )
        return account

    def refund(
        self,
        account_id: str,
        amount: Decimal,
        *,
        action: str,
        evaluation_id: uuid.UUID | None = None,
    ) -> AccountSummary | None:
        """
        Atomically credit ``amount`` back. Outstanding pay-as-you-go
        charges are reversed before the balance is credited.
        """

        amount_cents = to_cents(amount)
        if amount_cents == 0:
            return None

        with self._session_factory() as db:
            repository = LedgerRepository(db)
            try:
                with db.begin():
                    if not repository.credit(user_id=account_id, amount_cents=amount_cents):
                        raise AccountNotFoundError(f"Ledger account not found: {account_id}")
                    account = self._record(
                        repository,
                        account_id=account_id,
                        kind=LedgerTransactionKind.REFUND,
                        action=action,
                        amount_cents=amount_cents,
                        evaluation_id=evaluation_id,
                    )
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Ledger refund failed for {account_id!r}.") from exc

        log_event(
            logger,
            logging.INFO,
            "ledger_refunded",
            user_id=account_id,
            action=action,
            evaluation_id=evaluation_id,
            amount=from_cents(amount_cents),
            balance=account.balance,
        )
        return account

    @contextmanager
    def charge(
        self,
        account_id: str,
        amount: Decimal,
        *,
        action: str,
        evaluation_id: uuid.UUID | None = None,
    ) -> Iterator[AccountSummary | None]:
        """
        Reserve ``amount`` for the duration of the block; refund it if the
        block raises. The original exception always propagates.
        """

        reserved = self.reserve(account_id, amount, action=action, evaluation_id=evaluation_id)
        try:
            yield reserved
        except BaseException:
            if reserved is not None:
                try:
                    self.refund(account_id, amount, action=action, evaluation_id=evaluation_id)
                except Exception:
                    logger.exception(
                        "Refund after failed %s could not be applied user_id=%s amount=%s",
                        action,
                        account_id,
                        amount,
                    )
            raise

    # ------------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------------

    def top_up(self, account_id: str, amount: Decimal) -> AccountSummary:
        amount_cents = to_cents(amount)
        if amount_cents == 0:
            raise ValueError("Top-up amount must be positive.")

        with self._session_factory() as db:
            repository = LedgerRepository(db)
            try:
                with db.begin():
                    if not repository.add_funds(user_id=account_id, amount_cents=amount_cents):
                        raise AccountNotFoundError(f"Ledger account not found: {account_id}")
                    account = self._record(
                        repository,
                        account_id=account_id,
                        kind=LedgerTransactionKind.TOP_UP,
                        action=LedgerAction.TOP_UP,
                        amount_cents=amount_cents,
                    )
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Ledger top-up failed for {account_id!r}.") from exc

        log_event(logger, logging.INFO, "ledger_topped_up", user_id=account_id, amount=from_cents(amount_cents))
        return account

    def set_billing(
        self,
        account_id: str,
        *,
        is_pay_as_you_go: bool | None = None,
        has_payment_method: bool | None = None,
    ) -> AccountSummary:
        with self._session_factory() as db:
            repository = LedgerRepository(db)
            try:
                with db.begin():
                    updated = repository.set_billing_flags(
                        user_id=account_id,
                        is_pay_as_you_go=is_pay_as_you_go,
                        has_payment_method=has_payment_method,
                    )
                    if not updated:
                        raise AccountNotFoundError(f"Ledger account not found: {account_id}")
                    account = repository.get_account(account_id, refresh=True)
                    assert account is not None
                    summary = AccountSummary.from_record(account)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Ledger billing update failed for {account_id!r}.") from exc
        return summary

    def set_pay_as_you_go(self, account_id: str, enabled: bool) -> AccountSummary:
        return self.set_billing(account_id, is_pay_as_you_go=enabled)

    def set_payment_method(self, account_id: str, present: bool) -> AccountSummary:
        return self.set_billing(account_id, has_payment_method=present)

    def list_transactions(
        self,
        account_id: str,
        evaluation_id: uuid.UUID | None = None,
        *,
        limit: int = 100,
    ) -> list[TransactionSummary]:
        with self._session_factory() as db:
            records = LedgerRepository(db).list_transactions(
                user_id=account_id,
                evaluation_id=evaluation_id,
                limit=limit,
            )
            return [TransactionSummary.from_record(record) for record in records]

    def _record(
        self,
        repository: LedgerRepository,
        *,
        account_id: str,
        kind: str,
        action: str,
        amount_cents: int,
        evaluation_id: uuid.UUID | None = None,
    ) -> AccountSummary:
        account = repository.get_account(account_id, refresh=True)
        if account is None:
            raise AccountNotFoundError(f"Ledger account not found: {account_id}")
        repository.append_transaction(
            user_id=account_id,
            kind=kind,
            action=action,
            amount_cents=amount_cents,
            balance_after_cents=account.balance_cents,
            outstanding_after_cents=account.outstanding_cents,
            evaluation_id=evaluation_id,
        )
        return AccountSummary.from_record(account)


@lru_cache(maxsize=1)
def get_credit_ledger() -> CreditLedger:
    return CreditLedger()
