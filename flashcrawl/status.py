"""Crawl observers, process statistics and the event-loop watchdog."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol

if TYPE_CHECKING:
    from .document import CrawlResult
    from .errors import CrawlError

LOGGER = logging.getLogger(__name__)

WATCHDOG_INTERVAL_SECONDS = 10.0
WATCHDOG_THRESHOLD_SECONDS = 0.75


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CrawlObserver(Protocol):
    """Receives pipeline lifecycle events. Implementations must not raise."""

    def on_crawl_start(self, url: str) -> None: ...

    def on_crawl_success(self, url: str, result: "CrawlResult", elapsed: float) -> None: ...

    def on_crawl_failure(self, url: str, error: "CrawlError", elapsed: float) -> None: ...


class NullObserver:
    def on_crawl_start(self, url: str) -> None:
        return None

    def on_crawl_success(self, url: str, result: "CrawlResult", elapsed: float) -> None:
        return None

    def on_crawl_failure(self, url: str, error: "CrawlError", elapsed: float) -> None:
        return None


@dataclass
class CrawlStats:
    """Counters describing what this process has done since it started."""

    started_at: float = field(default_factory=time.monotonic)
    active_crawls: int = 0
    total_crawls: int = 0
    successful_crawls: int = 0
    failed_crawls: int = 0
    pdf_crawls: int = 0
    pdf_conversions: int = 0
    pdf_conversion_failures: int = 0
    last_crawl_at: Optional[str] = None
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    last_url: Optional[str] = None
    last_watchdog_warning: Optional[str] = None
    event_loop_lag_ms: int = 0

    def on_crawl_start(self, url: str) -> None:
        self.active_crawls += 1
        self.last_url = url

    def on_crawl_success(self, url: str, result: "CrawlResult", elapsed: float) -> None:
        self.active_crawls = max(0, self.active_crawls - 1)
        self.total_crawls += 1
        self.successful_crawls += 1
        if result.content_kind == "pdf":
            self.pdf_crawls += 1
        self.last_crawl_at = _utc_now()
        self.last_status_code = result.headers.get("statusCode")
        self.last_url = result.final_url or url
        self.last_error = None

    def on_crawl_failure(self, url: str, error: "CrawlError", elapsed: float) -> None:
        self.active_crawls = max(0, self.active_crawls - 1)
        self.total_crawls += 1
        self.failed_crawls += 1
        self.last_crawl_at = _utc_now()
        self.last_status_code = None
        self.last_url = url
        self.last_error = f"{error.kind}: {error.message}"

    def record_pdf_conversion(self, error: Optional[str] = None) -> None:
        self.last_crawl_at = _utc_now()
        if error:
            self.pdf_conversion_failures += 1
            self.last_error = error
        else:
            self.pdf_conversions += 1
            self.last_error = None

    def note_event_loop_lag(self, lag_seconds: float) -> None:
        self.event_loop_lag_ms = int(round(lag_seconds * 1000))
        self.last_watchdog_warning = _utc_now()

    @property
    def state(self) -> str:
        return "active" if self.active_crawls else "ready"

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "uptimeSeconds": int(round(time.monotonic() - self.started_at)),
            "activeCrawls": self.active_crawls,
            "totalCrawls": self.total_crawls,
            "successfulCrawls": self.successful_crawls,
            "failedCrawls": self.failed_crawls,
            "pdfCrawls": self.pdf_crawls,
            "pdfConversions": self.pdf_conversions,
            "pdfConversionFailures": self.pdf_conversion_failures,
            "failedTotal": self.failed_crawls + self.pdf_conversion_failures,
            "lastCrawlAt": self.last_crawl_at,
            "lastStatusCode": self.last_status_code,
            "lastError": self.last_error,
            "lastUrl": self.last_url,
            "watchdog": {
                "lastWarning": self.last_watchdog_warning,
                "eventLoopLagMs": self.event_loop_lag_ms,
            },
        }


class EventLoopWatchdog:
    """Periodic task that measures how late the event loop wakes it up."""

    def __init__(
        self,
        stats: Optional[CrawlStats] = None,
        *,
        interval: float = WATCHDOG_INTERVAL_SECONDS,
        threshold: float = WATCHDOG_THRESHOLD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stats = stats
        self._interval = interval
        self._threshold = threshold
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def check(self, elapsed: float) -> Optional[float]:
        """Record lag for one tick that took *elapsed* seconds; return the lag if flagged."""
        lag = elapsed - self._interval
        if lag <= self._threshold:
            return None
        if self._stats is not None:
            self._stats.note_event_loop_lag(lag)
        LOGGER.warning("Event loop lag detected: %dms", int(lag * 1000))
        return lag

    async def _run(self) -> None:
        last_tick = self._clock()
        while True:
            await asyncio.sleep(self._interval)
            now = self._clock()
            self.check(now - last_tick)
            last_tick = now

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
