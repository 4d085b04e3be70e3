"""PDF fetching (through the browser context) and PDF to Markdown conversion."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pymupdf
import pymupdf4llm

from .config import CrawlSettings
from .document import PageMetadata
from .errors import PdfFetchError, RedirectLimitExceeded

LOGGER = logging.getLogger(__name__)

PDF_ACCEPT = "application/pdf,*/*;q=0.8"
PDF_SIGNATURE = b"%PDF-"

_HEADING_RE = re.compile(r"^(#{1,2})[ ]+(.+?)[ #]*$", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"[*_`]+")
_REDIRECT_CAP_RE = re.compile(r"max(imum)? redirect", re.IGNORECASE)


@dataclass(slots=True)
class PdfFetch:
    """Bytes and response details of a PDF request."""

    final_url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_pdf(self) -> bool:
        if self.body[:1024].lstrip().startswith(PDF_SIGNATURE):
            return True
        return "application/pdf" in self.headers.get("content-type", "").lower()


@dataclass(slots=True)
class PdfMarkdown:
    markdown: str
    title: Optional[str] = None
    page_count: int = 0


async def fetch_pdf(
    context: Any,
    url: str,
    *,
    settings: CrawlSettings,
    referer: Optional[str] = None,
) -> PdfFetch:
    """GET *url* with the context's request client so it shares cookies.

    Raises:
        PdfFetchError: Request failed or the response was not 2xx.
        RedirectLimitExceeded: The request client gave up after ``settings.max_redirects``.
    """
    headers = {
        "user-agent": settings.user_agent,
        "accept": PDF_ACCEPT,
        "referer": referer or url,
    }
    if settings.session_cookie:
        headers["cookie"] = settings.session_cookie

    try:
        response = await context.request.get(
            url,
            headers=headers,
            timeout=settings.navigation_timeout_ms,
            max_redirects=settings.max_redirects,
        )
    except Exception as exc:
        if _REDIRECT_CAP_RE.search(str(exc)):
            LOGGER.warning("Exceeded redirect limit of %d while fetching PDF %s", settings.max_redirects, url)
            raise RedirectLimitExceeded(
                redirects=settings.max_redirects + 1, limit=settings.max_redirects, url=url
            ) from exc
        raise PdfFetchError(f"PDF fetch failed: {exc}", url=url) from exc

    try:
        if not response.ok:
            raise PdfFetchError(
                f"PDF fetch failed ({response.status})", url=url, status=response.status
            )
        body = await response.body()
        return PdfFetch(
            final_url=response.url or url,
            status=int(response.status),
            headers={str(k).lower(): str(v) for k, v in (response.headers or {}).items()},
            body=bytes(body or b""),
        )
    finally:
        try:
            await response.dispose()
        except Exception as exc:
            LOGGER.debug("Could not dispose PDF response: %s", exc)


def _convert_pdf_sync(data: bytes) -> PdfMarkdown:
    doc = pymupdf.open(stream=data, filetype="pdf")
    try:
        title = ((doc.metadata or {}).get("title") or "").strip() or None
        markdown = str(pymupdf4llm.to_markdown(doc))
        return PdfMarkdown(markdown=markdown, title=title, page_count=int(doc.page_count))
    finally:
        doc.close()


async def convert_pdf(data: bytes) -> PdfMarkdown:
    """Convert PDF bytes to Markdown off the event loop."""
    return await asyncio.to_thread(_convert_pdf_sync, data)


def headings_from_markdown(markdown: str) -> Dict[str, List[str]]:
    """Collect distinct level-1 and level-2 heading texts from Markdown."""
    found: Dict[str, List[str]] = {"h1": [], "h2": []}
    for hashes, raw in _HEADING_RE.findall(markdown or ""):
        text = " ".join(_EMPHASIS_RE.sub("", raw).split())
        bucket = found["h1" if len(hashes) == 1 else "h2"]
        if text and text not in bucket:
            bucket.append(text)
    return found


def pdf_metadata(converted: PdfMarkdown, markdown: str) -> PageMetadata:
    headings = headings_from_markdown(markdown)
    title = converted.title or (headings["h1"][0] if headings["h1"] else None)
    return PageMetadata(title=title, description=None, h1=headings["h1"], h2=headings["h2"])
