"""
app/domain/collaborators.py

Interfaces of the external collaborators consumed by the evaluation core.
Implementations raise CollaboratorError on any failure.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from app.domain.evaluation import ConversationTurn, EvaluationSnapshot, MetricValue
from app.domain.phases import Phase


class MetricsCapturer(Protocol):
    def capture(self, url: str) -> EvaluationSnapshot:
        ...


class NarrativeAnalyzer(Protocol):
    def analyze(
        self,
        url: str,
        phase: Phase,
        metrics: Mapping[str, MetricValue],
        history: Sequence[ConversationTurn],
        screenshot: str | None = None,
    ) -> str:
        ...


class PhaseScorer(Protocol):
    def score(self, phase: Phase, metrics: Mapping[str, MetricValue]) -> int:
        ...


class CompetitorDiscoverer(Protocol):
    def discover(self, url: str) -> list[str]:
        ...


class Screenshotter(Protocol):
    def capture_screenshot(self, url: str) -> bytes:
        ...


class ChatResponder(Protocol):
    def reply(
        self,
        url: str,
        phase: Phase | None,
        message: str,
        history: Sequence[ConversationTurn],
    ) -> str:
        ...
