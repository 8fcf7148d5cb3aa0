"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.evaluation import Evaluation
from db.models.ledger_account import LedgerAccount
from db.models.ledger_transaction import LedgerAction, LedgerTransaction, LedgerTransactionKind
from db.models.phase_result import PhaseResultRecord
from db.models.report import Report

__all__ = [
    "Evaluation",
    "LedgerAccount",
    "LedgerAction",
    "LedgerTransaction",
    "LedgerTransactionKind",
    "PhaseResultRecord",
    "Report",
]
