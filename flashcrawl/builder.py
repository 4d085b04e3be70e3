"""Fingerprint the final Markdown and assemble the crawl result."""

from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional

from .document import CrawlResult, NavigationOutcome, PageMetadata

PDF_CONTENT_TYPE = "application/pdf"
HTML_CONTENT_TYPE = "text/html"


def content_hash(markdown: str) -> str:
    """Hex SHA-256 of the UTF-8 encoded Markdown."""
    return hashlib.sha256(markdown.encode("utf-8")).hexdigest()


def reported_status(outcome: NavigationOutcome) -> int:
    """Status code the crawl reports for itself.

    A finished crawl of an error page is still a successful crawl, so upstream
    4xx/5xx (and the status-less download case) are reported as 200; the
    upstream code travels separately as ``upstreamStatusCode``.
    """
    if outcome.content_kind == "pdf":
        return 200
    if outcome.status < 200 or outcome.status >= 400:
        return 200
    return outcome.status


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    return value if value else None


def assemble_result(
    request_url: str,
    outcome: NavigationOutcome,
    metadata: PageMetadata,
    markdown: str,
) -> CrawlResult:
    content_type = _header(outcome.headers, "content-type")
    if not content_type:
        content_type = PDF_CONTENT_TYPE if outcome.content_kind == "pdf" else HTML_CONTENT_TYPE

    headers: Dict[str, Any] = {
        "statusCode": reported_status(outcome),
        "content-type": content_type,
        "content-encoding": _header(outcome.headers, "content-encoding"),
        "expires": _header(outcome.headers, "expires"),
        "upstreamStatusCode": outcome.status or None,
    }
    return CrawlResult(
        url=request_url,
        final_url=outcome.final_url,
        headers=headers,
        metadata=metadata,
        markdown=markdown,
        hash=content_hash(markdown),
        content_kind=outcome.content_kind,
        redirect_chain=tuple(outcome.redirect_chain),
    )
