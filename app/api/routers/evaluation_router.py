"""
app/api/routers/evaluation_router.py

Evaluation session endpoints.

Advancing into the Recommendations phase answers with a newline-delimited
JSON stream (one event per line) instead of a single JSON document.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import evaluation_service, http_error
from app.domain.errors import EvaluationError, StreamTimeoutError
from app.domain.evaluation import PhaseResult
from app.schemas.evaluation import (
    ChatMessageRequest,
    ChatMessageResponse,
    PhaseResultListResponse,
    PhaseResultResponse,
    SessionStateResponse,
    StartEvaluationRequest,
    StartEvaluationResponse,
    StoredPhaseResultResponse,
)
from app.services.evaluation_service import EvaluationService
from app.services.phase_orchestrator import StreamHandle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["evaluations"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@router.post(
    "/evaluations",
    response_model=StartEvaluationResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_evaluation(
    body: StartEvaluationRequest,
    service: EvaluationService = Depends(evaluation_service),
) -> StartEvaluationResponse:
    """
    Capture the website and open a new evaluation session.

    Raises HTTP 402 when the evaluation cost cannot be covered and
    HTTP 429 when the user starts evaluations too quickly.
    """
    try:
        session_id = service.start_session(body.user_id, body.url)
        state = service.get_session_state(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return StartEvaluationResponse(session_id=session_id, user_id=state.user_id, url=state.snapshot.url)


@router.post("/evaluations/{session_id}/advance", response_model=PhaseResultResponse)
def advance_evaluation(
    session_id: UUID,
    service: EvaluationService = Depends(evaluation_service),
) -> PhaseResultResponse | StreamingResponse:
    try:
        outcome = service.advance_phase(session_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc

    if isinstance(outcome, StreamHandle):
        return StreamingResponse(_ndjson_events(outcome), media_type=NDJSON_MEDIA_TYPE)
    return _phase_response(outcome)


def _phase_response(result: PhaseResult) -> PhaseResultResponse:
    if result.is_error:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"The {result.phase.value} analysis failed and can be retried: {result.error}",
        )
    return PhaseResultResponse.from_result(result)


async def _ndjson_events(handle: StreamHandle) -> AsyncIterator[str]:
    try:
        async for event in handle.events():
            yield json.dumps(event.to_payload()) + "\n"
    except StreamTimeoutError:
        logger.warning("Recommendation stream timed out session_id=%s", handle.session_id)
        yield json.dumps({"type": "error", "reason": "stream_timeout"}) + "\n"
    except EvaluationError as exc:
        logger.warning("Recommendation stream failed session_id=%s: %s", handle.session_id, exc)
        yield json.dumps({"type": "error", "reason": type(exc).__name__, "detail": str(exc)}) + "\n"


@router.get("/evaluations/{session_id}", response_model=SessionStateResponse)
def get_evaluation(
    session_id: UUID,
    service: EvaluationService = Depends(evaluation_service),
) -> SessionStateResponse:
    try:
        state = service.get_session_state(session_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return SessionStateResponse.from_state(state)


@router.post("/evaluations/{session_id}/chat", response_model=ChatMessageResponse)
def chat_about_evaluation(
    session_id: UUID,
    body: ChatMessageRequest,
    service: EvaluationService = Depends(evaluation_service),
) -> ChatMessageResponse:
    try:
        reply = service.submit_chat_message(session_id, body.message)
        state = service.get_session_state(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EvaluationError as exc:
        raise http_error(exc) from exc
    phase = state.current_phase.value if state.current_phase else None
    return ChatMessageResponse(session_id=session_id, phase=phase, reply=reply)


@router.get("/users/{user_id}/phase-results", response_model=PhaseResultListResponse)
def list_phase_results(
    user_id: str,
    evaluation_id: UUID | None = Query(default=None, description="Optional evaluation filter"),
    service: EvaluationService = Depends(evaluation_service),
) -> PhaseResultListResponse:
    try:
        results = service.list_phase_results(user_id, evaluation_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return PhaseResultListResponse(
        results=[StoredPhaseResultResponse.model_validate(result) for result in results]
    )
