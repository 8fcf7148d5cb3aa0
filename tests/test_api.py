"""
tests/test_api.py

HTTP-level tests for the evaluation, report and account routers using
FastAPI's TestClient with the services bound to a temporary database.
"""

from __future__ import annotations

import json
import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.dependencies import credit_ledger, evaluation_service
from app.api.routers import evaluation_router, ledger_router, report_router
from app.domain.phases import Phase
from app.services.evaluation_service import EvaluationService
from app.services.phase_orchestrator import DatabasePhaseResultWriter
from app.services.rate_limiter import _NoopRateLimiter


@pytest.fixture()
def client(
    session_factory,
    ledger,
    capturer,
    analyzer,
    scorer,
    discoverer,
    screenshotter,
    responder,
    evaluation_settings,
    credit_settings,
):
    service = EvaluationService(
        capturer=capturer,
        analyzer=analyzer,
        scorer=scorer,
        discoverer=discoverer,
        screenshotter=screenshotter,
        responder=responder,
        session_factory=session_factory,
        ledger=ledger,
        writer=DatabasePhaseResultWriter(session_factory=session_factory),
        rate_limiter=_NoopRateLimiter(),
        settings=evaluation_settings,
        credit_settings=credit_settings,
    )
    application = FastAPI()
    application.include_router(evaluation_router)
    application.include_router(report_router)
    application.include_router(ledger_router)
    application.dependency_overrides[evaluation_service] = lambda: service
    application.dependency_overrides[credit_ledger] = lambda: ledger
    with TestClient(application) as test_client:
        yield test_client


def _open_account(client: TestClient, user_id: str = "api-user", credit: str = "20.00") -> None:
    response = client.post("/accounts", json={"user_id": user_id, "initial_credit": credit})
    assert response.status_code == 201


def _start(client: TestClient, user_id: str = "api-user") -> str:
    response = client.post("/evaluations", json={"user_id": user_id, "url": "www.example.com"})
    assert response.status_code == 201, response.text
    return response.json()["session_id"]


class TestAccounts:
    def test_open_and_read_account(self, client) -> None:
        _open_account(client)
        body = client.get("/accounts/api-user").json()
        assert body["balance"] == "20.00"
        assert body["is_pay_as_you_go"] is False

    def test_unknown_account_is_404(self, client) -> None:
        assert client.get("/accounts/nobody").status_code == 404

    def test_top_up_and_transactions(self, client) -> None:
        _open_account(client, credit="1.00")
        response = client.post("/accounts/api-user/top-up", json={"amount": "4.50"})
        assert response.status_code == 200
        assert response.json()["balance"] == "5.50"

        transactions = client.get("/accounts/api-user/transactions").json()["transactions"]
        assert transactions[0]["kind"] == "top_up"

    def test_non_positive_top_up_is_rejected(self, client) -> None:
        _open_account(client)
        assert client.post("/accounts/api-user/top-up", json={"amount": "0"}).status_code == 422

    def test_billing_flags(self, client) -> None:
        _open_account(client)
        response = client.put(
            "/accounts/api-user/billing",
            json={"is_pay_as_you_go": True, "has_payment_method": True},
        )
        assert response.json()["is_pay_as_you_go"] is True
        assert response.json()["has_payment_method"] is True


class TestEvaluations:
    def test_start_without_credit_is_402(self, client) -> None:
        _open_account(client, credit="2.00")
        response = client.post("/evaluations", json={"user_id": "api-user", "url": "https://www.example.com"})
        assert response.status_code == 402
        assert "Top up" in response.json()["detail"]

    def test_capture_failure_is_502_and_refunded(self, client, capturer) -> None:
        _open_account(client)
        capturer.fail = True
        response = client.post("/evaluations", json={"user_id": "api-user", "url": "https://www.example.com"})
        assert response.status_code == 502
        assert client.get("/accounts/api-user").json()["balance"] == "20.00"

    def test_blank_url_is_400(self, client) -> None:
        _open_account(client)
        response = client.post("/evaluations", json={"user_id": "api-user", "url": "   "})
        assert response.status_code == 400

    def test_advance_returns_phase_result(self, client) -> None:
        _open_account(client)
        session_id = _start(client)

        response = client.post(f"/evaluations/{session_id}/advance")

        assert response.status_code == 200
        body = response.json()
        assert body["phase"] == "Vision"
        assert body["score"] == 80
        state = client.get(f"/evaluations/{session_id}").json()
        assert state["current_phase"] == "Vision"
        assert state["overall_score"] == 80
        assert state["url"] == "https://www.example.com"

    def test_failed_phase_is_502_and_retryable(self, client, analyzer) -> None:
        _open_account(client)
        session_id = _start(client)
        analyzer.fail_on.add(Phase.VISION)

        response = client.post(f"/evaluations/{session_id}/advance")
        assert response.status_code == 502
        assert "can be retried" in response.json()["detail"]

        analyzer.fail_on.clear()
        assert client.post(f"/evaluations/{session_id}/advance").json()["phase"] == "Vision"

    def test_unknown_session_is_404(self, client) -> None:
        assert client.post(f"/evaluations/{uuid.uuid4()}/advance").status_code == 404
        assert client.get(f"/evaluations/{uuid.uuid4()}").status_code == 404

    def test_recommendations_stream_as_ndjson(self, client) -> None:
        _open_account(client)
        session_id = _start(client)
        for _ in range(6):
            assert client.post(f"/evaluations/{session_id}/advance").status_code == 200

        response = client.post(f"/evaluations/{session_id}/advance")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[0]["type"] == "update"
        assert events[-1] == {"type": "done"}
        assert {event["type"] for event in events[1:-1]} == {"screenshot"}

        state = client.get(f"/evaluations/{session_id}").json()
        assert state["is_complete"] is True
        assert client.post(f"/evaluations/{session_id}/advance").status_code == 409

    def test_chat(self, client) -> None:
        _open_account(client)
        session_id = _start(client)
        client.post(f"/evaluations/{session_id}/advance")

        response = client.post(f"/evaluations/{session_id}/chat", json={"message": "Is the logo too small?"})

        assert response.status_code == 200
        assert response.json() == {
            "session_id": session_id,
            "phase": "Vision",
            "reply": "answer to: Is the logo too small?",
        }
        assert client.get("/accounts/api-user").json()["balance"] == "12.00"

    def test_phase_result_history(self, client) -> None:
        _open_account(client)
        session_id = _start(client)
        client.post(f"/evaluations/{session_id}/advance")

        response = client.get("/users/api-user/phase-results", params={"evaluation_id": session_id})

        results = response.json()["results"]
        assert [result["phase"] for result in results] == ["Vision"]
        assert results[0]["evaluation_id"] == session_id


class TestReports:
    def test_generate_fetch_and_list(self, client) -> None:
        _open_account(client)
        session_id = _start(client)
        for _ in range(5):
            client.post(f"/evaluations/{session_id}/advance")

        created = client.post(f"/evaluations/{session_id}/reports")
        assert created.status_code == 201
        report = created.json()
        assert report["overall_score"] == 79

        assert client.get(f"/reports/{report['id']}").json()["id"] == report["id"]
        assert [item["id"] for item in client.get("/users/api-user/reports").json()["reports"]] == [report["id"]]

    def test_unknown_report_is_404(self, client) -> None:
        assert client.get(f"/reports/{uuid.uuid4()}").status_code == 404
