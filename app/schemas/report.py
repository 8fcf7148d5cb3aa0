"""
app/schemas/report.py

Response schemas for evaluation reports.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ReportResponse(BaseModel):
    """
    API response model for one stored report.
    """

    id: UUID
    user_id: str
    evaluation_id: UUID
    url: str
    overall_score: int | None = Field(default=None, ge=0, le=100)
    phase_scores: dict[str, int] = Field(default_factory=dict)
    essential_metrics: dict[str, Any] = Field(default_factory=dict)
    validation: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class ReportListResponse(BaseModel):
    reports: list[ReportResponse] = Field(default_factory=list)
