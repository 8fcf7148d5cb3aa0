"""
app/api/routers/report_router.py

Report generation and retrieval endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import evaluation_service, http_error
from app.domain.errors import EvaluationError
from app.schemas.report import ReportListResponse, ReportResponse
from app.services.evaluation_service import EvaluationService

router = APIRouter(tags=["reports"])


@router.post(
    "/evaluations/{session_id}/reports",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_report(
    session_id: UUID,
    service: EvaluationService = Depends(evaluation_service),
) -> ReportResponse:
    """
    Build a report from the stored phase results of one session.

    Raises HTTP 402 when the report cost cannot be covered.
    """
    try:
        report = service.generate_report(session_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return ReportResponse.model_validate(report)


@router.get("/reports/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: UUID,
    service: EvaluationService = Depends(evaluation_service),
) -> ReportResponse:
    try:
        report = service.get_report(report_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return ReportResponse.model_validate(report)


@router.get("/users/{user_id}/reports", response_model=ReportListResponse)
def list_reports(
    user_id: str,
    service: EvaluationService = Depends(evaluation_service),
) -> ReportListResponse:
    return ReportListResponse(
        reports=[ReportResponse.model_validate(report) for report in service.list_reports(user_id)]
    )
