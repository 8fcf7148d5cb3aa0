"""
tests/conftest.py

Shared fixtures: a temporary SQLite database built from the ORM metadata,
a credit ledger bound to it, and in-process collaborator fakes.

No test touches the network or a real LLM.
"""

from __future__ import annotations

import threading
import time
import uuid
from decimal import Decimal
from typing import Any, Mapping, Sequence

import pytest
from sqlalchemy import create_engine

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from app.config import CreditSettings, EvaluationSettings
from app.domain.errors import CollaboratorError
from app.domain.evaluation import ConversationTurn, EvaluationSnapshot, PhaseResult, SessionState
from app.domain.phases import Phase
from app.services.credit_ledger import CreditLedger
from db.base import Base
from db.repositories.evaluation_repository import EvaluationRepository
from db.session import build_session_factory

SAMPLE_URL = "https://www.example.com"

SAMPLE_METRICS: dict[str, Any] = {
    "loadTime": 1234.5678,
    "domContentLoaded": 640.123,
    "firstContentfulPaint": 812.3456,
    "largestContentfulPaint": 2100.0,
    "cumulativeLayoutShift": 0.0512,
    "timeToInteractive": 3000,
    "totalBlockingTime": 150.129,
    "ttfb": 200.5,
    "pageSize": {"total": 1_500_000, "document": 40_000},
    "requests": 42,
    "security": {
        "isHttps": True,
        "securityHeaders": {
            "strict-transport-security": True,
            "content-security-policy-report-only": True,
        },
    },
    "seo": {
        "title": "Example Domain | Fast, simple example pages",
        "metaDescription": "Example pages for documentation, demos and tests of website evaluation tooling.",
        "h1Count": 1,
        "score": 88,
    },
    "lighthouse": {"performance": 0.91234, "bestPractices": 0.87, "seo": 0.9},
    "colorContrast": {"lowContrastElements": 3, "ratio": 4.56789},
    "fontSizes": {"base": 16, "smallest": 11.5},
    "responsiveness": {"mobile": True, "tablet": True},
    "accessibility": {"imagesWithAltText": 8, "totalImages": 10, "ariaAttributesCount": 12, "score": 77},
    "brokenLinks": [],
    "formFunctionality": {"formsWithSubmitButton": 2, "totalForms": 2},
    "interactiveElements": 14,
}


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeCapturer:
    def __init__(self, metrics: Mapping[str, Any] | None = None) -> None:
        self.metrics = dict(metrics or SAMPLE_METRICS)
        self.fail = False
        self.calls: list[str] = []

    def capture(self, url: str) -> EvaluationSnapshot:
        self.calls.append(url)
        if self.fail:
            raise CollaboratorError("metrics_capturer", "capture service unavailable")
        return EvaluationSnapshot(url=url, metrics=self.metrics, screenshot="aGVsbG8=")


class FakeAnalyzer:
    def __init__(self) -> None:
        self.fail_on: set[Phase] = set()
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def analyze(
        self,
        url: str,
        phase: Phase,
        metrics: Mapping[str, Any],
        history: Sequence[ConversationTurn],
        screenshot: str | None = None,
    ) -> str:
        with self._lock:
            self.calls.append(
                {"url": url, "phase": phase, "metrics": dict(metrics), "history": list(history), "screenshot": screenshot}
            )
        if phase in self.fail_on:
            raise CollaboratorError("narrative_analyzer", f"{phase.value} analysis unavailable")
        return f"{phase.value} narrative for {url}"


class FakeScorer:
    def __init__(self, scores: Mapping[Phase, int] | None = None) -> None:
        self.scores = dict(scores or {})
        self.fail_on: set[Phase] = set()

    def score(self, phase: Phase, metrics: Mapping[str, Any]) -> int:
        if phase in self.fail_on:
            raise CollaboratorError("phase_scorer", f"{phase.value} scoring unavailable")
        return self.scores.get(phase, 70)


class FakeDiscoverer:
    def __init__(self, competitors: Sequence[str] | None = None) -> None:
        self.competitors = list(competitors or ["https://rival-one.example", "https://rival-two.example"])
        self.fail = False

    def discover(self, url: str) -> list[str]:
        if self.fail:
            raise CollaboratorError("competitor_discoverer", "discovery unavailable")
        return list(self.competitors)


class FakeScreenshotter:
    """
    Returns ``b"png:<url>"``. URLs in ``slow`` sleep for their bounded delay
    first; URLs in ``failing`` raise CollaboratorError.
    """

    def __init__(self) -> None:
        self.slow: dict[str, float] = {}
        self.failing: set[str] = set()

    def capture_screenshot(self, url: str) -> bytes:
        delay = self.slow.get(url)
        if delay:
            time.sleep(delay)
        if url in self.failing:
            raise CollaboratorError("screenshotter", f"could not render {url}")
        return f"png:{url}".encode()


class FakeResponder:
    def __init__(self) -> None:
        self.calls: list[tuple[Phase | None, str, int]] = []

    def reply(self, url: str, phase: Phase | None, message: str, history: Sequence[ConversationTurn]) -> str:
        self.calls.append((phase, message, len(history)))
        return f"answer to: {message}"


class RecordingWriter:
    def __init__(self) -> None:
        self.appended: list[PhaseResult] = []
        self.fail = False

    def append(self, state: SessionState, result: PhaseResult) -> None:
        from app.domain.errors import PersistenceError

        if self.fail:
            raise PersistenceError(f"storage offline while writing {result.phase.value}")
        self.appended.append(result)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'evaluator.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture()
def credit_settings() -> CreditSettings:
    return CreditSettings(
        evaluation_cost=Decimal("7"),
        chat_message_cost=Decimal("1"),
        report_generation_cost=Decimal("3"),
        phase_advance_cost=Decimal("0"),
        initial_credit=Decimal("20.00"),
    )


@pytest.fixture()
def evaluation_settings() -> EvaluationSettings:
    return EvaluationSettings(
        task_timeout_seconds=0.2,
        stream_timeout_seconds=5.0,
        max_competitors=5,
        max_concurrent_fetches=5,
        history_limit=50,
        recent_user_turns=3,
        lock_wait_seconds=0.2,
    )


@pytest.fixture()
def ledger(session_factory, credit_settings) -> CreditLedger:
    return CreditLedger(session_factory=session_factory, settings=credit_settings)


@pytest.fixture()
def snapshot() -> EvaluationSnapshot:
    return EvaluationSnapshot(url=SAMPLE_URL, metrics=SAMPLE_METRICS, screenshot="aGVsbG8=")


@pytest.fixture()
def stored_evaluation(session_factory, ledger, snapshot):
    """An opened account plus a persisted evaluation row; returns the session state."""
    ledger.open_account("user-1")
    state = SessionState(user_id="user-1", snapshot=snapshot, session_id=uuid.uuid4())
    with session_factory() as db:
        with db.begin():
            EvaluationRepository(db).create_evaluation(
                evaluation_id=state.session_id,
                user_id=state.user_id,
                url=snapshot.url,
                snapshot=snapshot.to_payload(),
                captured_at=snapshot.captured_at,
            )
    return state


@pytest.fixture()
def capturer() -> FakeCapturer:
    return FakeCapturer()


@pytest.fixture()
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture()
def scorer() -> FakeScorer:
    return FakeScorer(
        {
            Phase.VISION: 80,
            Phase.UI: 71,
            Phase.FUNCTIONALITY: 90,
            Phase.PERFORMANCE: 65,
            Phase.SEO: 88,
        }
    )


@pytest.fixture()
def discoverer() -> FakeDiscoverer:
    return FakeDiscoverer()


@pytest.fixture()
def screenshotter() -> FakeScreenshotter:
    return FakeScreenshotter()


@pytest.fixture()
def responder() -> FakeResponder:
    return FakeResponder()


@pytest.fixture()
def writer() -> RecordingWriter:
    return RecordingWriter()
