"""
Recommendation stream: fans out one screenshot fetch per competitor and
multiplexes their outcomes onto a single async event sequence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from urllib.parse import urlparse

from app.config import EvaluationSettings, get_evaluation_settings
from app.domain.collaborators import CompetitorDiscoverer, NarrativeAnalyzer, Screenshotter
from app.domain.errors import CollaboratorError, StreamTimeoutError, TaskTimeoutError
from app.domain.evaluation import ConversationTurn, MetricValue
from app.domain.phases import Phase
from app.domain.streaming import (
    TIMEOUT_REASON,
    CompetitorTask,
    DoneEvent,
    ScreenshotErrorEvent,
    ScreenshotEvent,
    StreamEvent,
    UpdateEvent,
)
from app.logging_utils import log_event

logger = logging.getLogger(__name__)


def _site_key(url: str) -> str:
    parsed = urlparse(url.strip() if "://" in url else f"https://{url.strip()}")
    host = parsed.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return f"{host}{parsed.path.rstrip('/')}"


def select_competitors(own_url: str, candidates: Sequence[str], limit: int) -> list[str]:
    """
    Deduplicate ``candidates``, drop the evaluated site itself and cap
    the list at ``limit`` entries, preserving discovery order.
    """

    own_key = _site_key(own_url)
    seen: set[str] = set()
    selected: list[str] = []
    for candidate in candidates:
        if len(selected) >= limit:
            break
        if not candidate or not candidate.strip():
            continue
        key = _site_key(candidate)
        if key == own_key or key in seen:
            continue
        seen.add(key)
        selected.append(candidate.strip())
    return selected


class RecommendationStream:
    """
    Async iterator over the Recommendations phase events.

    Emits one ``update`` with the narrative, then one ``screenshot`` or
    ``screenshot_error`` per competitor in completion order, then
    ``done``. The whole sequence is bounded by the global stream timeout.
    """

    def __init__(
        self,
        *,
        url: str,
        metrics: Mapping[str, MetricValue],
        history: Sequence[ConversationTurn],
        analyzer: NarrativeAnalyzer,
        discoverer: CompetitorDiscoverer,
        screenshotter: Screenshotter,
        settings: EvaluationSettings | None = None,
    ) -> None:
        self._url = url
        self._metrics = dict(metrics)
        self._history = list(history)
        self._analyzer = analyzer
        self._discoverer = discoverer
        self._screenshotter = screenshotter
        self._settings = settings or get_evaluation_settings()
        self.narrative: str | None = None
        self.tasks: list[CompetitorTask] = []

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Yield stream events.

        Raises:
            StreamTimeoutError: The global timeout expired before ``done``.
            CollaboratorError: The narrative or competitor discovery failed.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.stream_timeout_seconds

        try:
            narrative, competitors = await asyncio.wait_for(
                self._prepare(),
                timeout=self._settings.stream_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise self._timeout_error() from exc

        self.narrative = narrative
        self.tasks = [CompetitorTask(url) for url in competitors]
        yield UpdateEvent(narrative=narrative)

        queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_fetches)
        workers = [asyncio.create_task(self._fetch(task, semaphore, queue)) for task in self.tasks]
        try:
            for _ in workers:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._timeout_error()
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError as exc:
                    raise self._timeout_error() from exc
                yield event
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()

        log_event(
            logger,
            logging.INFO,
            "recommendation_stream_done",
            url=self._url,
            competitors=[task.to_summary() for task in self.tasks],
        )
        yield DoneEvent()

    async def _prepare(self) -> tuple[str, list[str]]:
        narrative, discovered = await asyncio.gather(
            asyncio.to_thread(
                self._analyzer.analyze,
                self._url,
                Phase.RECOMMENDATIONS,
                self._metrics,
                self._history,
            ),
            asyncio.to_thread(self._discoverer.discover, self._url),
        )
        competitors = select_competitors(self._url, discovered, self._settings.max_competitors)
        return narrative, competitors

    async def _capture_within_timer(self, url: str) -> bytes:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._screenshotter.capture_screenshot, url),
                timeout=self._settings.task_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(f"screenshot of {url} exceeded {self._settings.task_timeout_seconds}s") from exc

    async def _fetch(
        self,
        task: CompetitorTask,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue[StreamEvent],
    ) -> None:
        async with semaphore:
            try:
                image = await self._capture_within_timer(task.url)
            except TaskTimeoutError:
                if task.mark_error(TIMEOUT_REASON):
                    log_event(logger, logging.WARNING, "competitor_fetch_timeout", url=task.url)
                    queue.put_nowait(ScreenshotErrorEvent(url=task.url, reason=TIMEOUT_REASON))
                return
            except CollaboratorError as exc:
                reason = str(exc)
            except Exception as exc:
                logger.exception("Unexpected screenshot failure url=%s", task.url)
                reason = f"{type(exc).__name__}: {exc}"
            else:
                if task.mark_loaded(image):
                    queue.put_nowait(ScreenshotEvent(url=task.url, image=image))
                return

        if task.mark_error(reason):
            log_event(logger, logging.WARNING, "competitor_fetch_failed", url=task.url, reason=reason)
            queue.put_nowait(ScreenshotErrorEvent(url=task.url, reason=reason))

    def _timeout_error(self) -> StreamTimeoutError:
        unresolved = [task.url for task in self.tasks if not task.is_resolved]
        log_event(
            logger,
            logging.ERROR,
            "recommendation_stream_timeout",
            url=self._url,
            unresolved=unresolved,
        )
        return StreamTimeoutError(
            f"Recommendation stream for {self._url} exceeded {self._settings.stream_timeout_seconds}s."
        )
