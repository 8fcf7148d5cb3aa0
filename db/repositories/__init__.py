"""
Repository layer exports.
"""

from db.repositories.evaluation_repository import EvaluationRepository
from db.repositories.ledger_repository import LedgerRepository
from db.repositories.phase_result_repository import PhaseResultRepository
from db.repositories.report_repository import ReportRepository

__all__ = [
    "EvaluationRepository",
    "LedgerRepository",
    "PhaseResultRepository",
    "ReportRepository",
]
