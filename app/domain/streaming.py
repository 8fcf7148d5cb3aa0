"""
app/domain/streaming.py

Competitor fetch tasks and the tagged event union emitted by the
recommendation stream.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Union


class CompetitorTaskStatus:
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


TIMEOUT_REASON = "timeout"


class CompetitorTask:
    """
    One outbound screenshot fetch for a competitor URL.

    Transitions ``loading -> loaded | error`` exactly once; later
    resolutions are ignored and reported as not applied.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self.status = CompetitorTaskStatus.LOADING
        self.image: bytes | None = None
        self.error_reason: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status != CompetitorTaskStatus.LOADING

    def mark_loaded(self, image: bytes) -> bool:
        if self.is_resolved:
            return False
        self.status = CompetitorTaskStatus.LOADED
        self.image = image
        return True

    def mark_error(self, reason: str) -> bool:
        if self.is_resolved:
            return False
        self.status = CompetitorTaskStatus.ERROR
        self.error_reason = reason
        return True

    def to_summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {"url": self.url, "status": self.status}
        if self.error_reason is not None:
            summary["reason"] = self.error_reason
        return summary

    def __repr__(self) -> str:
        return f"<CompetitorTask url={self.url!r} status={self.status!r}>"


@dataclass(frozen=True)
class UpdateEvent:
    type: ClassVar[Literal["update"]] = "update"
    narrative: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "narrative": self.narrative}


@dataclass(frozen=True)
class ScreenshotEvent:
    type: ClassVar[Literal["screenshot"]] = "screenshot"
    url: str
    image: bytes

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "image": base64.b64encode(self.image).decode("ascii"),
        }


@dataclass(frozen=True)
class ScreenshotErrorEvent:
    type: ClassVar[Literal["screenshot_error"]] = "screenshot_error"
    url: str
    reason: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url, "reason": self.reason}


@dataclass(frozen=True)
class DoneEvent:
    type: ClassVar[Literal["done"]] = "done"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}


StreamEvent = Union[UpdateEvent, ScreenshotEvent, ScreenshotErrorEvent, DoneEvent]
