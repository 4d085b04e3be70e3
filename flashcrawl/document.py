"""Data structures passed between the crawl stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

ContentKind = Literal["html", "pdf"]


@dataclass(frozen=True, slots=True)
class NavigationOutcome:
    """Where navigation ended up and what it found there."""

    requested_url: str
    final_url: str
    status: int
    headers: Dict[str, str]
    content_kind: ContentKind
    redirect_chain: Tuple[str, ...]
    attempts: int = 1

    @property
    def redirects(self) -> int:
        return max(0, len(self.redirect_chain) - 1)


@dataclass(slots=True)
class PageMetadata:
    """Title, description and headings collected from a page."""

    title: Optional[str] = None
    description: Optional[str] = None
    h1: List[str] = field(default_factory=list)
    h2: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "h1": list(self.h1),
            "h2": list(self.h2),
        }


@dataclass(frozen=True, slots=True)
class ExtractedContent:
    """Main-content HTML plus metadata; ``degraded`` marks the regex fallback."""

    root_html: str
    metadata: PageMetadata
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class CrawlResult:
    """Terminal artifact of a successful crawl."""

    url: str
    final_url: str
    headers: Dict[str, Any]
    metadata: PageMetadata
    markdown: str
    hash: str
    content_kind: ContentKind
    redirect_chain: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable payload returned to callers."""
        return {
            "headers": dict(self.headers),
            "metadata": self.metadata.to_dict(),
            "url": self.url,
            "finalUrl": self.final_url,
            "redirects": list(self.redirect_chain),
            "hash": self.hash,
            "markdown": self.markdown,
        }
