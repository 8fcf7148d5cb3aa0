"""
app/schemas package marker.
"""

from app.schemas.evaluation import (
    ChatMessageRequest,
    ChatMessageResponse,
    PhaseResultListResponse,
    PhaseResultResponse,
    SessionStateResponse,
    StartEvaluationRequest,
    StartEvaluationResponse,
)
from app.schemas.ledger import (
    AccountResponse,
    BillingSettingsRequest,
    OpenAccountRequest,
    TopUpRequest,
    TransactionListResponse,
)
from app.schemas.report import ReportListResponse, ReportResponse

__all__ = [
    "AccountResponse",
    "BillingSettingsRequest",
    "ChatMessageRequest",
    "ChatMessageResponse",
    "OpenAccountRequest",
    "PhaseResultListResponse",
    "PhaseResultResponse",
    "ReportListResponse",
    "ReportResponse",
    "SessionStateResponse",
    "StartEvaluationRequest",
    "StartEvaluationResponse",
    "TopUpRequest",
    "TransactionListResponse",
]
