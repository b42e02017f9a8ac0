"""Supervises one "start crawl" request/response cycle for a project.

idle -> running -> completed, running -> failed; dismissing a finished or
failed session returns it to idle. A project has at most one running crawl.
After completion the session waits CRAWL_REFRESH_DELAY_SECONDS and then calls
`on_complete` exactly once so the owner can refetch its links.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable
from urllib.parse import urlparse

from dotenv import load_dotenv

from errors import DashboardError
from models import CrawlState
from schemas import CrawlSnapshot, ProjectRecord

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

CRAWL_REFRESH_DELAY_SECONDS = float(os.getenv("CRAWL_REFRESH_DELAY_SECONDS", "2.0"))
STARTING_MESSAGE = "Starting crawl..."
INVALID_URL_MESSAGE = "Enter the full URL including https:// or http://"

Listener = Callable[[CrawlSnapshot], None]


def completion_message(analyzed_count: int) -> str:
    return f"Crawl completed. {analyzed_count} URLs analyzed."


class CrawlSession:
    def __init__(
        self,
        client,
        token: str,
        project: ProjectRecord,
        on_complete: Callable[[], Awaitable[None]] | None = None,
        refresh_delay: float = CRAWL_REFRESH_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.token = token
        self.project = project
        self.on_complete = on_complete
        self.refresh_delay = refresh_delay
        self._sleep = sleep
        self.state = CrawlState.IDLE
        self.url: str | None = None
        self.progress: str | None = None
        self.error: str | None = None
        self.analyzed_count: int | None = None
        self.discarded = False
        self._generation = 0
        self._listeners: list[Listener] = []

    @property
    def default_url(self) -> str:
        return f"https://{self.project.domain}"

    @property
    def is_running(self) -> bool:
        return self.state == CrawlState.RUNNING

    def snapshot(self) -> CrawlSnapshot:
        return CrawlSnapshot(
            project_id=self.project.id,
            state=self.state,
            url=self.url,
            progress=self.progress,
            error=self.error,
            analyzed_count=self.analyzed_count,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Crawl listener failed for project %s", self.project.id)

    async def start(self, url: str | None = None) -> bool:
        """Run one crawl. Returns True when it completed (and the refresh was triggered)."""
        if self.discarded or self.is_running:
            logger.warning("Crawl already running for project %s; ignoring start", self.project.id)
            return False

        target = (url or "").strip() or self.default_url
        self._generation += 1
        generation = self._generation
        self.url = target
        self.analyzed_count = None

        parsed = urlparse(target)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            self.state = CrawlState.FAILED
            self.progress = None
            self.error = INVALID_URL_MESSAGE
            self._publish()
            return False

        self.state = CrawlState.RUNNING
        self.progress = STARTING_MESSAGE
        self.error = None
        logger.info("Starting crawl of %s for project %s", target, self.project.id)
        self._publish()

        try:
            count = await self.client.start_crawl(self.token, self.project.id, target)
        except DashboardError as e:
            return self._fail(generation, e.message)
        except Exception:
            logger.exception("Unexpected error crawling %s", target)
            return self._fail(generation, "An error occurred")

        if self._is_stale(generation):
            return False
        self.state = CrawlState.COMPLETED
        self.analyzed_count = count
        self.progress = completion_message(count)
        logger.info("Crawl of %s finished: %s URLs analyzed", target, count)
        self._publish()

        await self._sleep(self.refresh_delay)
        if self._is_stale(generation):
            return False
        if self.on_complete is not None:
            await self.on_complete()
        return True

    def _fail(self, generation: int, message: str) -> bool:
        if self._is_stale(generation):
            return False
        self.state = CrawlState.FAILED
        self.progress = None
        self.error = message
        logger.warning("Crawl failed for project %s: %s", self.project.id, message)
        self._publish()
        return False

    def _is_stale(self, generation: int) -> bool:
        return self.discarded or generation != self._generation

    def dismiss(self) -> bool:
        """Return a finished or failed session to idle. A running crawl cannot be dismissed."""
        if self.is_running:
            return False
        self.state = CrawlState.IDLE
        self.progress = None
        self.error = None
        self._publish()
        return True

    def discard(self) -> None:
        self.discarded = True
        self._generation += 1
        self._listeners.clear()
