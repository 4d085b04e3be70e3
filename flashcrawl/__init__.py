"""Single-URL crawler that returns clean Markdown plus page metadata.

A crawl validates the URL, drives a headless Chromium page to it (or fetches
the PDF directly), waits out bot-check interstitials, extracts the main
content region and converts it to normalized Markdown with a SHA-256 hash.

Example usage:

    from flashcrawl import crawl, crawl_async

    result = await crawl_async("https://example.com")
    print(result.metadata.title)
    print(result.markdown)

    # Synchronous
    payload = crawl("https://example.com/report.pdf").to_dict()

    # Custom settings
    from flashcrawl.config import CrawlSettings
    result = await crawl_async(
        "https://example.com",
        CrawlSettings(sanitize_html=False, max_redirects=3),
    )
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
import time
from typing import Any, Optional

from .browser import BrowserHandle, BrowserManager
from .builder import assemble_result, content_hash
from .config import CrawlSettings, apply_overrides, load_settings_from_env
from .document import CrawlResult, NavigationOutcome, PageMetadata
from .errors import CrawlError, PdfFetchError, VerificationTimeout
from .extract import extract_content
from .markdown import html_to_markdown, normalize_markdown
from .navigator import is_probably_pdf_url, navigate
from .pdf import PdfFetch, convert_pdf, fetch_pdf, pdf_metadata
from .status import CrawlObserver, CrawlStats, NullObserver
from .urls import validate_url
from .verification import wait_for_human_verification

__all__ = [
    # Results
    "CrawlResult",
    "PageMetadata",
    "CrawlError",
    # Settings
    "CrawlSettings",
    "apply_overrides",
    "load_settings_from_env",
    # Browser
    "BrowserManager",
    # Observers
    "CrawlObserver",
    "CrawlStats",
    # Crawling
    "crawl",
    "crawl_async",
    "content_hash",
    # MCP Server
    "mcp",
]

LOGGER = logging.getLogger(__name__)

VIEWPORT = {"width": 1366, "height": 768}
NETWORK_IDLE_TIMEOUT_MS = 10_000

_RECOVERABLE_RE = re.compile(
    r"Execution context was destroyed"
    r"|context was destroyed"
    r"|Unable to retrieve content because the page is navigating"
    r"|cannot get world"
    r"|Runtime\.addBinding"
    r"|session closed"
    r"|Protocol error"
    r"|Target page, context or browser has been closed",
    re.IGNORECASE,
)


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def is_recoverable_error(exc: BaseException) -> bool:
    """Errors worth one more attempt on a fresh browser.

    Classified crawl errors already went through their own retry policy and
    are never recoverable here.
    """
    if isinstance(exc, CrawlError):
        return False
    return bool(_RECOVERABLE_RE.search(str(exc)))


async def _open_context(handle: BrowserHandle, settings: CrawlSettings) -> Any:
    extra_headers = {"cookie": settings.session_cookie} if settings.session_cookie else {}
    context = await handle.new_context(
        user_agent=settings.user_agent,
        viewport=dict(VIEWPORT),
        extra_http_headers=extra_headers,
        ignore_https_errors=True,
    )
    context.set_default_navigation_timeout(settings.navigation_timeout_ms)
    context.set_default_timeout(settings.navigation_timeout_ms)
    return context


def _fetched_outcome(url: str, fetched: PdfFetch) -> NavigationOutcome:
    chain = (url,) if fetched.final_url == url else (url, fetched.final_url)
    return NavigationOutcome(
        requested_url=url,
        final_url=fetched.final_url,
        status=fetched.status,
        headers=fetched.headers,
        content_kind="pdf",
        redirect_chain=chain,
    )


async def _pdf_result(url: str, outcome: NavigationOutcome, body: bytes) -> CrawlResult:
    if not body:
        raise PdfFetchError("Empty PDF response", url=outcome.final_url)
    converted = await convert_pdf(body)
    markdown = normalize_markdown(converted.markdown)
    LOGGER.info("Processed PDF for %s (%d pages)", url, converted.page_count)
    return assemble_result(url, outcome, pdf_metadata(converted, markdown), markdown)


async def _crawl_once(url: str, settings: CrawlSettings, handle: BrowserHandle) -> CrawlResult:
    context = await _open_context(handle, settings)

    if is_probably_pdf_url(url):
        fetched = await fetch_pdf(context, url, settings=settings)
        if fetched.is_pdf:
            return await _pdf_result(url, _fetched_outcome(url, fetched), fetched.body)
        LOGGER.info("%s does not serve a PDF; rendering it as HTML", url)

    page = await context.new_page()
    outcome = await navigate(page, url, settings=settings)

    if outcome.content_kind == "pdf":
        fetched = await fetch_pdf(context, outcome.final_url, settings=settings, referer=url)
        if not outcome.headers:
            outcome = dataclasses.replace(
                outcome,
                status=outcome.status or fetched.status,
                headers=fetched.headers,
            )
        return await _pdf_result(url, outcome, fetched.body)

    verification = await wait_for_human_verification(
        page,
        max_wait=settings.verification_max_wait,
        poll_interval=settings.verification_poll_interval,
    )
    if not verification.cleared:
        LOGGER.warning(
            "Verification challenge did not clear for %s after %dms",
            outcome.final_url,
            verification.waited_ms,
        )
        raise VerificationTimeout(waited_ms=verification.waited_ms, url=outcome.final_url)
    if verification.challenged:
        try:
            await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
        except Exception as exc:
            LOGGER.debug("Network did not settle after verification: %s", exc)

    extracted = await extract_content(
        page,
        sanitize=settings.sanitize_html,
        timeout=settings.extraction_timeout,
    )
    markdown = html_to_markdown(extracted.root_html)
    return assemble_result(url, outcome, extracted.metadata, markdown)


async def _attempt(
    url: str, settings: CrawlSettings, manager: BrowserManager, *, isolated: bool
) -> CrawlResult:
    async with manager.session(isolated=isolated) as handle:
        return await _crawl_once(url, settings, handle)


async def _crawl_with_retry(
    url: str, settings: CrawlSettings, manager: BrowserManager
) -> CrawlResult:
    try:
        return await _attempt(url, settings, manager, isolated=False)
    except Exception as exc:
        if not is_recoverable_error(exc):
            raise
        LOGGER.warning("Recoverable error for %s, retrying with a fresh browser: %s", url, exc)
        first_error = exc

    try:
        return await _attempt(url, settings, manager, isolated=True)
    except Exception as exc:
        LOGGER.error("Retry failed for %s: %s (first attempt: %s)", url, exc, first_error)
        raise


def _log_summary(result: CrawlResult, elapsed: float) -> None:
    upstream = result.headers.get("upstreamStatusCode")
    message = "%s -> %s (%s) in %dms%s"
    args = (
        result.final_url,
        result.headers.get("statusCode"),
        result.headers.get("content-type") or "unknown content-type",
        int(elapsed * 1000),
        " [pdf]" if result.content_kind == "pdf" else "",
    )
    if upstream and upstream >= 400:
        LOGGER.warning(message + " | Upstream responded with status %s", *args, upstream)
    else:
        LOGGER.info(message, *args)


async def crawl_async(
    url: str,
    settings: Optional[CrawlSettings] = None,
    *,
    manager: Optional[BrowserManager] = None,
    observer: Optional[CrawlObserver] = None,
) -> CrawlResult:
    """
    Crawl a single URL and return its Markdown, metadata and hash.

    Args:
        url: Absolute http(s) URL.
        settings: Crawl options; read from the environment when omitted.
        manager: Browser manager to lease browsers from. A private one is
            created (and closed afterwards) when omitted.
        observer: Receives start/success/failure events.

    Returns:
        CrawlResult for the page or PDF.

    Raises:
        InvalidURL, UnsupportedScheme: Before any browser is touched.
        CrawlError: Every other failure; unexpected exceptions are wrapped
            with ``kind="crawl_failed"``.
    """
    settings = settings or load_settings_from_env()
    target = validate_url(url)
    observer = observer or NullObserver()
    owns_manager = manager is None
    manager = manager or BrowserManager(settings)

    started = time.monotonic()
    observer.on_crawl_start(target)
    try:
        result = await _crawl_with_retry(target, settings, manager)
    except Exception as exc:
        error = exc if isinstance(exc, CrawlError) else CrawlError(
            "Failed to crawl URL",
            details={"url": target, "reason": str(exc) or type(exc).__name__},
        )
        elapsed = time.monotonic() - started
        LOGGER.error(
            "Failed to crawl %s: %s (in %dms)", target, error.message, int(elapsed * 1000)
        )
        observer.on_crawl_failure(target, error, elapsed)
        if error is exc:
            raise
        raise error from exc
    finally:
        if owns_manager:
            await manager.close()

    elapsed = time.monotonic() - started
    _log_summary(result, elapsed)
    observer.on_crawl_success(target, result, elapsed)
    return result


def crawl(url: str, settings: Optional[CrawlSettings] = None) -> CrawlResult:
    """Synchronous wrapper for crawl_async."""
    return asyncio.run(crawl_async(url, settings))
