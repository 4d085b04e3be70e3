"""Main-content extraction from a loaded page.

The heavy lifting runs inside the page: candidates are scored by visible text
length plus a bonus per structural element, the winner (or ``<body>`` when the
score is under the floor) is cloned, and the clone is stripped of noise.
If the page navigates mid-evaluation, metadata is recovered from the raw
serialized HTML with regular expressions instead.
"""

from __future__ import annotations

import asyncio
import html as _html
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .config import (
    CANDIDATE_SELECTORS,
    GLOBAL_STRIP_SELECTORS,
    INTERNAL_STRIP_SELECTORS,
    NOISE_KEYWORDS,
    SCORE_CONTENT_FLOOR,
    STRUCTURE_BONUS,
    STRUCTURE_SELECTOR,
)
from .document import ExtractedContent, PageMetadata
from .errors import ExtractionTimeout

LOGGER = logging.getLogger(__name__)

DEGRADED_HEADING_LIMIT = 5

_CONTEXT_DESTROYED_RE = re.compile(r"context was destroyed", re.IGNORECASE)

EXTRACT_SCRIPT = """
(opts) => {
  const removeBySelectors = (root, selectors) => {
    selectors.forEach((selector) => {
      root.querySelectorAll(selector).forEach((node) => node.remove());
    });
  };
  const noisePattern = opts.noiseKeywords.length
    ? new RegExp(opts.noiseKeywords.join('|'), 'i')
    : null;

  if (opts.sanitize) {
    removeBySelectors(document, opts.globalStripSelectors);
  }

  const candidates = [];
  opts.candidateSelectors.forEach((selector) => {
    document.querySelectorAll(selector).forEach((node) => {
      if (node && !candidates.includes(node)) {
        candidates.push(node);
      }
    });
  });

  const scoreNode = (node) => {
    if (!node) {
      return 0;
    }
    const text = (node.innerText || '').replace(/\\s+/g, ' ');
    return text.length + node.querySelectorAll(opts.structureSelector).length * opts.structureBonus;
  };

  let root = document.body || document.documentElement;
  let bestScore = scoreNode(root);
  candidates.forEach((candidate) => {
    const candidateScore = scoreNode(candidate);
    if (candidateScore > bestScore) {
      bestScore = candidateScore;
      root = candidate;
    }
  });
  if (bestScore < opts.scoreFloor) {
    root = document.body || document.documentElement;
  }

  const clone = root.cloneNode(true);

  if (opts.sanitize) {
    // Visibility needs computed style, which only the live source nodes have.
    const sourceNodes = Array.from(root.querySelectorAll('*'));
    const cloneNodes = Array.from(clone.querySelectorAll('*'));
    const doomed = [];
    cloneNodes.forEach((element, index) => {
      const className = typeof element.className === 'string'
        ? element.className
        : (element.getAttribute('class') || '');
      const signature = `${className} ${element.id || ''}`.toLowerCase().trim();
      if (noisePattern && signature && noisePattern.test(signature)) {
        doomed.push(element);
        return;
      }
      const source = sourceNodes[index];
      if (!source) {
        return;
      }
      const style = window.getComputedStyle(source);
      if (style && (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0')) {
        doomed.push(element);
      }
    });
    removeBySelectors(clone, opts.internalStripSelectors);
    doomed.forEach((element) => element.remove());
  }

  const uniqueText = (selector) =>
    Array.from(clone.querySelectorAll(selector))
      .map((node) => (node.textContent || '').replace(/\\s+/g, ' ').trim())
      .filter((text) => Boolean(text))
      .filter((text, index, arr) => arr.indexOf(text) === index);

  const metaContent = (selector) => {
    const node = document.querySelector(selector);
    return node ? node.getAttribute('content') : null;
  };

  return {
    html: '<!DOCTYPE html>' + clone.outerHTML,
    metadata: {
      title: document.title || null,
      description: metaContent('meta[name="description"]') ?? metaContent('meta[property="og:description"]'),
      h1: uniqueText('h1'),
      h2: uniqueText('h2'),
    },
  };
}
"""

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_META_DESCRIPTION_RES = (
    re.compile(
        r"<meta[^>]+name=[\"']description[\"'][^>]*content=[\"']([^\"']*)[\"'][^>]*>",
        re.IGNORECASE,
    ),
    re.compile(
        r"<meta[^>]+content=[\"']([^\"']*)[\"'][^>]*name=[\"']description[\"'][^>]*>",
        re.IGNORECASE,
    ),
    re.compile(
        r"<meta[^>]+property=[\"']og:description[\"'][^>]*content=[\"']([^\"']*)[\"'][^>]*>",
        re.IGNORECASE,
    ),
)
_H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_H2_RE = re.compile(r"<h2[^>]*>(.*?)</h2>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def is_context_destroyed_error(exc: BaseException) -> bool:
    return bool(_CONTEXT_DESTROYED_RE.search(str(exc)))


def unique_texts(values: Iterable[Optional[str]]) -> List[str]:
    """Non-empty, whitespace-collapsed, first occurrence wins."""
    seen: set[str] = set()
    result: List[str] = []
    for value in values:
        text = _WS_RE.sub(" ", value or "").strip()
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


def _plain_text(fragment: str) -> str:
    return _WS_RE.sub(" ", _html.unescape(_TAG_RE.sub("", fragment or ""))).strip()


def metadata_from_raw_html(raw_html: str) -> PageMetadata:
    """Approximate metadata via pattern matching over serialized HTML."""
    title_match = _TITLE_RE.search(raw_html)
    description: Optional[str] = None
    for pattern in _META_DESCRIPTION_RES:
        match = pattern.search(raw_html)
        if match:
            description = _html.unescape(match.group(1)).strip()
            break

    return PageMetadata(
        title=_plain_text(title_match.group(1)) or None if title_match else None,
        description=description,
        h1=unique_texts(_plain_text(m) for m in _H1_RE.findall(raw_html))[:DEGRADED_HEADING_LIMIT],
        h2=unique_texts(_plain_text(m) for m in _H2_RE.findall(raw_html))[:DEGRADED_HEADING_LIMIT],
    )


def _metadata_from_payload(payload: Dict[str, Any]) -> PageMetadata:
    raw = payload.get("metadata") or {}
    return PageMetadata(
        title=raw.get("title") or None,
        description=raw.get("description") or None,
        h1=unique_texts(raw.get("h1") or []),
        h2=unique_texts(raw.get("h2") or []),
    )


async def extract_content(
    page: Any,
    *,
    sanitize: bool = True,
    timeout: float = 30.0,
) -> ExtractedContent:
    """Pick the main content region of *page* and collect its metadata.

    Raises:
        ExtractionTimeout: The in-page evaluation did not finish in time.
    """
    options = {
        "candidateSelectors": CANDIDATE_SELECTORS,
        "globalStripSelectors": GLOBAL_STRIP_SELECTORS,
        "internalStripSelectors": INTERNAL_STRIP_SELECTORS,
        "noiseKeywords": NOISE_KEYWORDS,
        "sanitize": sanitize,
        "scoreFloor": SCORE_CONTENT_FLOOR,
        "structureBonus": STRUCTURE_BONUS,
        "structureSelector": STRUCTURE_SELECTOR,
    }
    try:
        payload = await asyncio.wait_for(page.evaluate(EXTRACT_SCRIPT, options), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ExtractionTimeout(
            f"Content extraction did not finish within {timeout:g}s"
        ) from exc
    except Exception as exc:
        if not is_context_destroyed_error(exc):
            raise
        LOGGER.warning("Execution context destroyed during extraction; using raw page HTML")
        raw_html = await page.content()
        return ExtractedContent(
            root_html=raw_html,
            metadata=metadata_from_raw_html(raw_html),
            degraded=True,
        )

    return ExtractedContent(
        root_html=str(payload.get("html") or ""),
        metadata=_metadata_from_payload(payload),
    )
