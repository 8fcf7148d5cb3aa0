"""
app/domain/evaluation.py

Domain models for evaluation sessions: snapshots, phase results,
conversation turns and the live session state.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Literal, Mapping, Union

from app.domain.phases import Phase

MetricValue = Union[None, bool, int, float, str, list["MetricValue"], dict[str, "MetricValue"]]

TurnRole = Literal["system", "user", "assistant"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EvaluationSnapshot:
    """
    Immutable bag of raw metrics captured once for one URL.
    """

    url: str
    metrics: Mapping[str, MetricValue]
    screenshot: str | None = None
    captured_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(copy.deepcopy(dict(self.metrics))))

    def get(self, key: str) -> MetricValue:
        return self.metrics.get(key)

    def to_payload(self) -> dict[str, Any]:
        """Return a detached JSON-ready copy of the raw metrics."""
        return copy.deepcopy(dict(self.metrics))


@dataclass(frozen=True)
class PhaseResult:
    """
    Narrative and optional score produced for one phase.

    ``error`` is set only on error-tagged results, which never advance
    the session.
    """

    phase: Phase
    narrative: str
    metrics_subset: dict[str, MetricValue] = field(default_factory=dict)
    score: int | None = None
    screenshot_ref: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, phase: Phase, reason: str) -> "PhaseResult":
        return cls(
            phase=phase,
            narrative=f"An error occurred while running the {phase.value} analysis. Please try again.",
            error=reason,
        )


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: str
    phase: Phase | None = None


def overall_score(phase_scores: Mapping[Phase, int]) -> int | None:
    """
    Unweighted mean of the completed phase scores, rounded half-up.
    Returns None while no scored phase has completed.
    """

    if not phase_scores:
        return None
    total = Decimal(sum(phase_scores.values()))
    mean = total / Decimal(len(phase_scores))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class SessionState:
    """
    Live, in-memory state of one evaluation session.

    Owned by exactly one PhaseOrchestrator; callers only ever receive
    copies via ``snapshot_copy``.
    """

    user_id: str
    snapshot: EvaluationSnapshot
    session_id: uuid.UUID = field(default_factory=uuid.uuid4)
    results: list[PhaseResult] = field(default_factory=list)
    current_phase: Phase | None = None
    phase_scores: dict[Phase, int] = field(default_factory=dict)
    overall_score: int | None = None
    conversation: list[ConversationTurn] = field(default_factory=list)
    is_complete: bool = False

    def snapshot_copy(self) -> "SessionState":
        return replace(
            self,
            results=list(self.results),
            phase_scores=dict(self.phase_scores),
            conversation=list(self.conversation),
        )
