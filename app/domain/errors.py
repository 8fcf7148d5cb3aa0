"""
app/domain/errors.py

Exception taxonomy for evaluation sessions, billing and streaming.
"""

from __future__ import annotations

from decimal import Decimal


class EvaluationError(Exception):
    """Base exception for all evaluation-core failures."""


class MetricsValidationError(EvaluationError):
    """Raised when a metrics snapshot or subset is malformed."""


class CollaboratorError(EvaluationError):
    """
    Raised when an external collaborator (analyzer, scorer, capture
    service, screenshot service) fails or returns unusable output.
    """

    def __init__(self, collaborator: str, message: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


class InsufficientBalanceError(EvaluationError):
    """Raised when an account cannot cover a reservation."""

    def __init__(self, account_id: str, balance: Decimal, required: Decimal) -> None:
        self.account_id = account_id
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient balance for account {account_id!r}: "
            f"balance={balance} required={required}. "
            "Top up your balance or enable pay-as-you-go with a payment method."
        )


class StreamTimeoutError(EvaluationError):
    """Raised when a recommendation stream exceeds its global timeout."""


class TaskTimeoutError(EvaluationError):
    """Raised internally when one competitor fetch exceeds its own timer."""


class AccountNotFoundError(EvaluationError):
    """Raised when a ledger account does not exist."""


class SessionNotFoundError(EvaluationError):
    """Raised when a session id is unknown or has been discarded."""


class SessionBusyError(EvaluationError):
    """Raised when a session cannot be mutated because another caller holds it."""


class SessionCompleteError(EvaluationError):
    """Raised when advancing a session that has passed its terminal phase."""


class PersistenceError(EvaluationError):
    """Raised when a durable append (phase result, evaluation, report) fails."""


class RateLimitExceededError(EvaluationError):
    """Raised when a user starts evaluations faster than allowed."""


class ReportNotFoundError(EvaluationError):
    """Raised when a stored report does not exist."""
