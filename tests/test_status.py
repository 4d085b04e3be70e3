from __future__ import annotations

import asyncio

import pytest

from flashcrawl.builder import assemble_result
from flashcrawl.document import NavigationOutcome, PageMetadata
from flashcrawl.errors import NoResponse
from flashcrawl.status import CrawlStats, EventLoopWatchdog


def _result(kind: str = "html", status: int = 200):
    outcome = NavigationOutcome(
        requested_url="https://example.com/",
        final_url="https://example.com/final",
        status=status,
        headers={},
        content_kind=kind,
        redirect_chain=("https://example.com/", "https://example.com/final"),
    )
    return assemble_result("https://example.com/", outcome, PageMetadata(), "# Hi")


class TestCrawlStats:
    def test_initial_snapshot(self):
        snapshot = CrawlStats().snapshot()
        assert snapshot["state"] == "ready"
        assert snapshot["totalCrawls"] == 0
        assert snapshot["lastError"] is None
        assert snapshot["watchdog"] == {"lastWarning": None, "eventLoopLagMs": 0}

    def test_success_and_failure_counts(self):
        stats = CrawlStats()
        stats.on_crawl_start("https://example.com/")
        assert stats.state == "active"
        stats.on_crawl_success("https://example.com/", _result(), 0.5)

        stats.on_crawl_start("https://example.com/a.pdf")
        stats.on_crawl_success("https://example.com/a.pdf", _result(kind="pdf"), 0.5)

        stats.on_crawl_start("https://example.com/missing")
        stats.on_crawl_failure("https://example.com/missing", NoResponse("https://example.com/missing"), 0.1)

        snapshot = stats.snapshot()
        assert snapshot["state"] == "ready"
        assert snapshot["activeCrawls"] == 0
        assert snapshot["totalCrawls"] == 3
        assert snapshot["successfulCrawls"] == 2
        assert snapshot["failedCrawls"] == 1
        assert snapshot["pdfCrawls"] == 1
        assert snapshot["lastStatusCode"] is None
        assert snapshot["lastUrl"] == "https://example.com/missing"
        assert snapshot["lastError"] == "no_response: No response received from target URL"
        assert snapshot["lastCrawlAt"] is not None

    def test_success_clears_last_error(self):
        stats = CrawlStats()
        stats.on_crawl_start("u")
        stats.on_crawl_failure("u", NoResponse("u"), 0.1)
        stats.on_crawl_start("https://example.com/")
        stats.on_crawl_success("https://example.com/", _result(status=404), 0.2)

        assert stats.last_error is None
        assert stats.last_status_code == 200
        assert stats.last_url == "https://example.com/final"

    def test_pdf_conversions(self):
        stats = CrawlStats()
        stats.record_pdf_conversion()
        stats.record_pdf_conversion("No file provided")

        snapshot = stats.snapshot()
        assert snapshot["pdfConversions"] == 1
        assert snapshot["pdfConversionFailures"] == 1
        assert snapshot["failedTotal"] == 1
        assert snapshot["lastError"] == "No file provided"


class TestEventLoopWatchdog:
    def test_small_lag_ignored(self):
        stats = CrawlStats()
        watchdog = EventLoopWatchdog(stats, interval=10, threshold=0.75)
        assert watchdog.check(10.5) is None
        assert stats.event_loop_lag_ms == 0

    def test_large_lag_recorded(self, caplog):
        stats = CrawlStats()
        watchdog = EventLoopWatchdog(stats, interval=10, threshold=0.75)
        with caplog.at_level("WARNING"):
            lag = watchdog.check(11.5)

        assert lag == pytest.approx(1.5)
        assert stats.event_loop_lag_ms == 1500
        assert stats.snapshot()["watchdog"]["lastWarning"] is not None
        assert "Event loop lag detected: 1500ms" in caplog.text

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        watchdog = EventLoopWatchdog(CrawlStats(), interval=0.01)
        watchdog.start()
        watchdog.start()
        assert watchdog.running
        await asyncio.sleep(0.03)
        await watchdog.stop()
        assert not watchdog.running
        await watchdog.stop()
