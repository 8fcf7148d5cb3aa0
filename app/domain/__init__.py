"""
app/domain package marker.
"""

from app.domain.errors import (
    AccountNotFoundError,
    CollaboratorError,
    EvaluationError,
    InsufficientBalanceError,
    MetricsValidationError,
    PersistenceError,
    RateLimitExceededError,
    ReportNotFoundError,
    SessionBusyError,
    SessionCompleteError,
    SessionNotFoundError,
    StreamTimeoutError,
    TaskTimeoutError,
)
from app.domain.evaluation import ConversationTurn, EvaluationSnapshot, PhaseResult, SessionState
from app.domain.phases import PHASE_ORDER, SCORED_PHASES, Phase

__all__ = [
    "AccountNotFoundError",
    "CollaboratorError",
    "ConversationTurn",
    "EvaluationError",
    "EvaluationSnapshot",
    "InsufficientBalanceError",
    "MetricsValidationError",
    "PHASE_ORDER",
    "PersistenceError",
    "Phase",
    "PhaseResult",
    "RateLimitExceededError",
    "ReportNotFoundError",
    "SCORED_PHASES",
    "SessionBusyError",
    "SessionCompleteError",
    "SessionNotFoundError",
    "SessionState",
    "StreamTimeoutError",
    "TaskTimeoutError",
]
