"""HTML to Markdown conversion and the idempotent Markdown cleanup pass."""

from __future__ import annotations

import logging
import re
from typing import List

from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

from .urls import sanitize_link_url

LOGGER = logging.getLogger(__name__)

# Dropped from the HTML before conversion, whatever the extractor left behind.
REMOVE_SELECTORS: List[str] = [
    "script",
    "style",
    "noscript",
    "nav",
    "footer",
    "header",
    "form",
    "aside",
    ".comments",
    "#comments",
]

_PUNCTUATION_ONLY_RE = re.compile(r"^[\s\W_]*$")
_NUMERIC_ONLY_RE = re.compile(r"^[\s\d]*$")


class FlashcrawlConverter(MarkdownConverter):
    """markdownify converter with the cleanup rules applied during conversion."""

    def convert_hN(self, n, el, text, parent_tags):
        if "_inline" in parent_tags:
            return text
        text = " ".join((text or "").split())
        if _PUNCTUATION_ONLY_RE.match(text):
            return ""
        level = max(1, min(6, n))
        return f"\n\n{'#' * level} {text}\n\n"

    def convert_a(self, el, text, parent_tags):
        text = (text or "").strip()
        if not text:
            return ""
        if "_noformat" in parent_tags:
            return text
        href = sanitize_link_url((el.get("href") or "").strip())
        if not href or href.lower().startswith("javascript:"):
            return text
        title = el.get("title")
        if title:
            title = title.replace('"', '\\"')
            return f'[{text}]({href} "{title}")'
        return f"[{text}]({href})"

    def convert_img(self, el, text, parent_tags):
        src = sanitize_link_url((el.get("src") or "").strip())
        if not src:
            return ""
        alt = " ".join((el.get("alt") or "").split())
        if "_inline" in parent_tags and el.parent is not None and el.parent.name != "a":
            return alt
        return f"![{alt}]({src})"

    def convert_pre(self, el, text, parent_tags):
        code = el.get_text()
        if _NUMERIC_ONLY_RE.match(code):
            return ""
        language = ""
        inner = el.find("code")
        if inner is not None:
            for cls in inner.get("class") or []:
                if cls.startswith("language-"):
                    language = cls[len("language-"):]
                    break
        body = code.strip("\n")
        return f"\n\n```{language}\n{body}\n```\n\n"

    def convert_code(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        if _NUMERIC_ONLY_RE.match(el.get_text()):
            return ""
        return super().convert_code(el, text, parent_tags)

    def convert_table(self, el, text, parent_tags):
        return f"\n\n{el}\n\n"

    def convert_figure(self, el, text, parent_tags):
        return f"\n\n{el}\n\n"


def convert_html(html: str) -> str:
    """Convert sanitized HTML to raw (not yet normalized) Markdown."""
    soup = BeautifulSoup(html or "", "html.parser")
    for selector in REMOVE_SELECTORS:
        for node in soup.select(selector):
            node.decompose()
    converter = FlashcrawlConverter(heading_style=ATX, bullets="-", autolinks=False)
    return converter.convert_soup(soup)


# --- normalization -----------------------------------------------------------

_LINK_RE = re.compile(
    r"(?P<bang>!?)\[(?P<text>[^\[\]\n]*)\]\((?P<url>[^()\s]*)(?: +\"(?P<title>[^\"\n]*)\")?\)"
)
_RULE_LINE_RE = re.compile(r"^[ ]*(?:(?:-[ ]*){4,}|(?:\*[ ]*){3,}|(?:_[ ]*){3,})$")
_LONG_DASH_RE = re.compile(r"-{20,}")
_DOT_RUN_RE = re.compile(r"[.…]{2,}")
_BARE_NUMBER_RE = re.compile(r"^[ ]*\d{1,3}[ ]*$")
_EMPTY_HEADING_RE = re.compile(r"^[ ]*#{1,6}[ ]*$")
_INDENTED_BULLET_RE = re.compile(r"^[ ]{3,}([-*+] )")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_TAB_RUN_RE = re.compile(r"\t+")
# Form feeds, no-break spaces and other non-newline whitespace.
_ODD_SPACE_RE = re.compile(r"[^\S\n ]")


def _sanitize_link(match: "re.Match[str]") -> str:
    text = match.group("text").strip()
    url = sanitize_link_url(match.group("url"))
    title = match.group("title")
    if match.group("bang"):
        if not url:
            return ""
        return f"![{text}]({url} \"{title}\")" if title is not None else f"![{text}]({url})"
    if not text:
        return ""
    if not url:
        return text
    return f"[{text}]({url} \"{title}\")" if title is not None else f"[{text}]({url})"


def sanitize_links(markdown: str) -> str:
    """Rewrite every ``[text](url)`` and ``![alt](url)`` with a clean target.

    Dropping an inner link can expose an enclosing one, so the rewrite repeats
    until nothing changes.
    """
    previous = None
    while markdown != previous:
        previous = markdown
        markdown = _LINK_RE.sub(_sanitize_link, markdown)
    return markdown


def _collapse_dots(match: "re.Match[str]") -> str:
    run = match.group(0)
    if run.count(".") >= 4 or run.count("…") >= 2:
        return "…"
    return run


def _clean_line(line: str) -> str:
    if _RULE_LINE_RE.match(line):
        return "---"
    line = _LONG_DASH_RE.sub("—", line)
    line = _DOT_RUN_RE.sub(_collapse_dots, line)
    return _INDENTED_BULLET_RE.sub(r"\1", line)


def _drop_post_boilerplate(lines: List[str]) -> List[str]:
    changed = True
    while changed:
        changed = False
        kept: List[str] = []
        previous = ""
        for line in lines:
            stripped = line.strip()
            if stripped == "Post" and previous == "---":
                changed = True
                continue
            kept.append(line)
            if stripped:
                previous = stripped
        lines = kept
    return lines


def normalize_markdown(markdown: str) -> str:
    """Remove conversion artifacts. ``normalize_markdown`` is idempotent."""
    text = (markdown or "").replace("\r", "")
    text = _TAB_RUN_RE.sub(" ", text)
    text = _ODD_SPACE_RE.sub(" ", text)
    text = sanitize_links(text)

    lines: List[str] = []
    for raw_line in text.split("\n"):
        line = _clean_line(raw_line.rstrip())
        if _BARE_NUMBER_RE.match(line) or _EMPTY_HEADING_RE.match(line):
            continue
        lines.append(line)

    lines = _drop_post_boilerplate(lines)
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


def html_to_markdown(html: str) -> str:
    return normalize_markdown(convert_html(html))
