"""Structured failures raised by the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class CrawlError(Exception):
    """Base class for every failure that crosses the crawl boundary.

    ``kind`` is a short machine-matchable reason, ``message`` a human-readable
    summary and ``details`` extra context safe to expose to callers.
    """

    kind = "crawl_failed"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class InvalidURL(CrawlError):
    kind = "invalid_url"


class UnsupportedScheme(CrawlError):
    kind = "unsupported_scheme"


@dataclass(frozen=True)
class LaunchAttempt:
    """One failed browser acquisition strategy."""

    strategy: str
    error: str


class LaunchError(CrawlError):
    kind = "launch_failed"

    def __init__(self, attempts: List[LaunchAttempt]) -> None:
        self.attempts = list(attempts)
        summary = "; ".join(f"{a.strategy}: {a.error}" for a in self.attempts) or "no strategies"
        super().__init__(
            f"Failed to acquire a browser ({summary})",
            details={
                "attempts": [
                    {"strategy": a.strategy, "error": a.error} for a in self.attempts
                ]
            },
        )


class NavigationError(CrawlError):
    kind = "navigation_failed"

    def __init__(self, message: str, *, url: str, attempts: int) -> None:
        super().__init__(message, details={"url": url, "attempts": attempts})
        self.url = url
        self.attempts = attempts


class NavigationTimeout(NavigationError):
    kind = "navigation_timeout"


class RedirectLimitExceeded(CrawlError):
    kind = "redirect_limit_exceeded"

    def __init__(self, *, redirects: int, limit: int, url: str) -> None:
        super().__init__(
            f"Exceeded redirect limit of {limit}",
            details={"redirects": redirects, "limit": limit, "url": url},
        )
        self.redirects = redirects
        self.limit = limit


class NoResponse(CrawlError):
    kind = "no_response"

    def __init__(self, url: str) -> None:
        super().__init__("No response received from target URL", details={"url": url})


class VerificationTimeout(CrawlError):
    kind = "verification_timeout"

    def __init__(self, *, waited_ms: int, url: str) -> None:
        super().__init__(
            f"Verification challenge did not clear within {waited_ms}ms",
            details={"waited_ms": waited_ms, "url": url},
        )
        self.waited_ms = waited_ms


class PdfFetchError(CrawlError):
    kind = "pdf_fetch_failed"

    def __init__(self, message: str, *, url: str, status: Optional[int] = None) -> None:
        super().__init__(message, details={"url": url, "status": status})
        self.status = status


class ExtractionTimeout(CrawlError):
    kind = "extraction_timeout"


class InvalidDocument(CrawlError):
    kind = "invalid_document"
