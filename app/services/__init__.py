"""
app/services package marker.
"""

from app.services.credit_ledger import CreditLedger, get_credit_ledger
from app.services.evaluation_service import EvaluationService, get_evaluation_service
from app.services.report_service import ReportService

__all__ = [
    "CreditLedger",
    "get_credit_ledger",
    "EvaluationService",
    "get_evaluation_service",
    "ReportService",
]
