"""
app/schemas/evaluation.py

Request and response schemas for evaluation session endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.domain.evaluation import ConversationTurn, PhaseResult, SessionState


class StartEvaluationRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    url: str = Field(..., min_length=1, max_length=2048)


class StartEvaluationResponse(BaseModel):
    session_id: UUID
    user_id: str
    url: str


class PhaseResultResponse(BaseModel):
    phase: str
    narrative: str
    metrics_subset: dict[str, Any] = Field(default_factory=dict)
    score: int | None = Field(default=None, ge=0, le=100)
    screenshot_ref: str | None = None
    error: str | None = None
    created_at: datetime

    @classmethod
    def from_result(cls, result: PhaseResult) -> "PhaseResultResponse":
        return cls(
            phase=result.phase.value,
            narrative=result.narrative,
            metrics_subset=dict(result.metrics_subset),
            score=result.score,
            screenshot_ref=result.screenshot_ref,
            error=result.error,
            created_at=result.created_at,
        )


class ConversationTurnResponse(BaseModel):
    role: str
    content: str
    phase: str | None = None

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> "ConversationTurnResponse":
        return cls(role=turn.role, content=turn.content, phase=turn.phase.value if turn.phase else None)


class SessionStateResponse(BaseModel):
    """
    Read-only view of one live session.
    """

    session_id: UUID
    user_id: str
    url: str
    current_phase: str | None = None
    is_complete: bool
    phase_scores: dict[str, int] = Field(default_factory=dict)
    overall_score: int | None = None
    results: list[PhaseResultResponse] = Field(default_factory=list)
    conversation: list[ConversationTurnResponse] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: SessionState) -> "SessionStateResponse":
        return cls(
            session_id=state.session_id,
            user_id=state.user_id,
            url=state.snapshot.url,
            current_phase=state.current_phase.value if state.current_phase else None,
            is_complete=state.is_complete,
            phase_scores={phase.value: score for phase, score in state.phase_scores.items()},
            overall_score=state.overall_score,
            results=[PhaseResultResponse.from_result(result) for result in state.results],
            conversation=[ConversationTurnResponse.from_turn(turn) for turn in state.conversation],
        )


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)


class ChatMessageResponse(BaseModel):
    session_id: UUID
    phase: str | None = None
    reply: str


class StoredPhaseResultResponse(BaseModel):
    id: UUID
    evaluation_id: UUID
    phase: str
    narrative: str
    metrics_subset: dict[str, Any] = Field(default_factory=dict)
    score: int | None = None
    screenshot_ref: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PhaseResultListResponse(BaseModel):
    results: list[StoredPhaseResultResponse] = Field(default_factory=list)
