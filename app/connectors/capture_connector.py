"""
app/connectors/capture_connector.py

Connector for the browser-automation capture service. Supplies the raw
metrics snapshot for a URL and competitor screenshots.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any

import requests

from app.config import CaptureServiceSettings, get_capture_service_settings
from app.connectors.base import BaseHTTPConnector, ConnectorRequestError
from app.domain.errors import CollaboratorError
from app.domain.evaluation import EvaluationSnapshot

logger = logging.getLogger(__name__)

# Screenshots above this decoded size are dropped from the snapshot.
MAX_SNAPSHOT_SCREENSHOT_BYTES = 900_000

_NON_METRIC_FIELDS = ("screenshot", "htmlContent", "aiAnalysis")


class CaptureServiceConnector(BaseHTTPConnector):
    """
    Implements the metrics capturer and screenshotter collaborators over HTTP.
    """

    def __init__(
        self,
        *,
        settings: CaptureServiceSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        resolved = settings or get_capture_service_settings()
        super().__init__(
            source="capture_service",
            timeout_seconds=resolved.timeout_seconds,
            max_retries=resolved.max_retries,
            backoff_initial_seconds=resolved.backoff_initial_seconds,
            backoff_multiplier=resolved.backoff_multiplier,
            session=session,
        )
        self._base_url = resolved.base_url

    def capture(self, url: str) -> EvaluationSnapshot:
        try:
            payload = self._request_json(
                method="GET",
                url=f"{self._base_url}/api/evaluate",
                params={"url": url},
            )
        except ConnectorRequestError as exc:
            raise CollaboratorError("metrics_capturer", str(exc)) from exc

        if not isinstance(payload, dict):
            raise CollaboratorError("metrics_capturer", "capture response must be a JSON object.")

        screenshot = _bounded_screenshot(payload.get("screenshot"), url=url)
        metrics = {key: value for key, value in payload.items() if key not in _NON_METRIC_FIELDS}
        return EvaluationSnapshot(
            url=url,
            metrics=metrics,
            screenshot=screenshot,
            captured_at=datetime.now(timezone.utc),
        )

    def capture_screenshot(self, url: str) -> bytes:
        try:
            payload = self._request_json(
                method="POST",
                url=f"{self._base_url}/api/capture-screenshot",
                json_body={"url": url},
            )
        except ConnectorRequestError as exc:
            raise CollaboratorError("screenshotter", str(exc)) from exc

        encoded = payload.get("screenshot") if isinstance(payload, dict) else None
        if not isinstance(encoded, str) or not encoded:
            raise CollaboratorError("screenshotter", f"no screenshot returned for {url}.")
        try:
            return base64.b64decode(_strip_data_url(encoded), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CollaboratorError("screenshotter", f"screenshot for {url} is not valid base64.") from exc


def _strip_data_url(value: str) -> str:
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def _bounded_screenshot(value: Any, *, url: str) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    encoded = _strip_data_url(value)
    if len(encoded) * 3 // 4 > MAX_SNAPSHOT_SCREENSHOT_BYTES:
        logger.warning("Screenshot for %s exceeds %d bytes; dropping it from the snapshot", url, MAX_SNAPSHOT_SCREENSHOT_BYTES)
        return None
    return encoded
