"""Drive a page from a validated URL to a :class:`NavigationOutcome`."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, Iterable, List
from urllib.parse import urlsplit

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import CrawlSettings
from .document import NavigationOutcome
from .errors import NavigationError, NavigationTimeout, NoResponse, RedirectLimitExceeded

LOGGER = logging.getLogger(__name__)

_PDF_PATH_RE = re.compile(r"\.pdf(?:$|[?#])", re.IGNORECASE)
_DOWNLOAD_RE = re.compile(r"Download is starting", re.IGNORECASE)
_TRANSIENT_RE = re.compile(
    r"net::|Navigation timeout|Timeout \d+ms exceeded|ProtocolError|Protocol error"
    r"|Target page, context or browser has been closed|Target closed",
    re.IGNORECASE,
)


def is_probably_pdf_url(url: str) -> bool:
    """Cheap heuristic: the URL path ends in ``.pdf``."""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = url
    return bool(_PDF_PATH_RE.search(path) or _PDF_PATH_RE.search(url))


def is_transient_navigation_error(exc: BaseException) -> bool:
    if isinstance(exc, PlaywrightTimeoutError):
        return True
    return bool(_TRANSIENT_RE.search(str(exc)))


def is_download_error(exc: BaseException) -> bool:
    return bool(_DOWNLOAD_RE.search(str(exc)))


def response_redirect_chain(response: Any) -> List[str]:
    """Walk the request redirect lineage back to the origin (origin first)."""
    chain: List[str] = []
    try:
        request = response.request
        while request is not None:
            chain.insert(0, request.url)
            request = request.redirected_from
    except Exception as exc:
        LOGGER.debug("Could not read redirect chain: %s", exc)
    if not chain or chain[-1] != response.url:
        chain.append(response.url)
    return chain


def _extend_chain(chain: List[str], hops: Iterable[str]) -> List[str]:
    merged = list(chain)
    for url in hops:
        if merged and merged[-1] == url:
            continue
        merged.append(url)
    return merged


def _last_known_url(page: Any, fallback: str) -> str:
    try:
        current = page.url or ""
    except Exception:
        return fallback
    if current.startswith(("http://", "https://")):
        return current
    return fallback


def _normalize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {str(key).lower(): str(value) for key, value in (headers or {}).items()}


async def navigate(page: Any, url: str, *, settings: CrawlSettings) -> NavigationOutcome:
    """Navigate *page* to *url*, retrying transient failures.

    Retries re-navigate to the last known URL so redirect progress is kept.
    A download triggered by navigation is treated as a late PDF classification.

    Raises:
        RedirectLimitExceeded: More redirects than ``settings.max_redirects``.
        NoResponse: Navigation resolved without a response object.
        NavigationError: Non-transient failure, or attempts exhausted.
    """
    max_attempts = max(1, settings.max_navigation_attempts)
    target = url
    chain: List[str] = [url]
    attempts = 0
    download_seen = False

    def _on_download(download: Any) -> None:
        nonlocal download_seen
        download_seen = True

    page.on("download", _on_download)
    try:
        while True:
            attempts += 1
            try:
                response = await page.goto(
                    target,
                    wait_until="domcontentloaded",
                    timeout=settings.navigation_timeout_ms,
                )
            except Exception as exc:
                if download_seen or is_download_error(exc):
                    final_url = _last_known_url(page, target)
                    LOGGER.info("Download started while navigating %s; switching to PDF", final_url)
                    return NavigationOutcome(
                        requested_url=url,
                        final_url=final_url,
                        status=0,
                        headers={},
                        content_kind="pdf",
                        redirect_chain=tuple(_extend_chain(chain, [final_url])),
                        attempts=attempts,
                    )
                if is_transient_navigation_error(exc) and attempts < max_attempts:
                    target = _last_known_url(page, target)
                    chain = _extend_chain(chain, [target])
                    LOGGER.warning(
                        "Navigation retry %d for %s due to error: %s", attempts, target, exc
                    )
                    await asyncio.sleep(settings.retry_backoff)
                    continue
                error_cls = (
                    NavigationTimeout if isinstance(exc, PlaywrightTimeoutError) else NavigationError
                )
                raise error_cls(str(exc), url=target, attempts=attempts) from exc

            if response is None:
                if download_seen:
                    final_url = _last_known_url(page, target)
                    return NavigationOutcome(
                        requested_url=url,
                        final_url=final_url,
                        status=0,
                        headers={},
                        content_kind="pdf",
                        redirect_chain=tuple(_extend_chain(chain, [final_url])),
                        attempts=attempts,
                    )
                LOGGER.warning("No response received from target URL: %s", target)
                raise NoResponse(target)

            chain = _extend_chain(chain, response_redirect_chain(response))
            redirects = len(chain) - 1
            if redirects > settings.max_redirects:
                LOGGER.warning(
                    "Exceeded redirect limit of %d. Observed %d redirects while fetching %s",
                    settings.max_redirects,
                    redirects,
                    url,
                )
                raise RedirectLimitExceeded(
                    redirects=redirects, limit=settings.max_redirects, url=url
                )

            final_url = response.url
            status = int(response.status or 0)
            headers = _normalize_headers(response.headers)
            is_pdf = "application/pdf" in headers.get("content-type", "").lower()

            if (
                not is_pdf
                and status >= 400
                and settings.refresh_on_error_status
                and attempts < max_attempts
            ):
                LOGGER.info("Upstream returned %d for %s; refreshing", status, final_url)
                target = final_url
                await asyncio.sleep(settings.retry_backoff)
                continue

            return NavigationOutcome(
                requested_url=url,
                final_url=final_url,
                status=status,
                headers=headers,
                content_kind="pdf" if is_pdf or download_seen else "html",
                redirect_chain=tuple(chain),
                attempts=attempts,
            )
    finally:
        try:
            page.remove_listener("download", _on_download)
        except Exception as exc:
            LOGGER.debug("Could not detach download listener: %s", exc)
