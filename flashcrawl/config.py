"""Crawl settings and the selector tables used for content extraction."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/141.0.0.0 Safari/537.36"
)

# Containers likely to hold the main content, in priority order.
CANDIDATE_SELECTORS: List[str] = [
    "main article",
    "article[role='article']",
    "article",
    "main",
    "[role='main']",
    "#main",
    "#content",
    ".article-content",
    ".content__body",
    ".post-content",
    ".entry-content",
]

# Removed from the whole document before scoring.
GLOBAL_STRIP_SELECTORS: List[str] = [
    "script",
    "style",
    "link[rel='stylesheet']",
    "link[rel='preload']",
    "link[rel='prefetch']",
    "link[rel='dns-prefetch']",
    "noscript",
    "iframe",
    "canvas",
    "svg",
    "object",
    "embed",
    "template",
    "meta[http-equiv='refresh']",
]

# Removed from the chosen content root.
INTERNAL_STRIP_SELECTORS: List[str] = [
    "nav",
    "footer",
    "header",
    "form",
    "aside",
    "[role='navigation']",
    ".comments",
    "#comments",
    ".comment",
    ".sso",
    ".login",
    ".subscribe",
    ".newsletter",
    ".promo",
    ".share",
    ".social",
    ".breadcrumbs",
    ".advert",
    ".ads",
]

# Matched against "class id" of every element in the content root.
NOISE_KEYWORDS: List[str] = [
    "cookie",
    "consent",
    "banner",
    "subscribe",
    "signup",
    "advert",
    "sponsor",
    "share",
    "social",
    "breadcrumb",
    "comment",
    "related",
    "gdpr",
    "tracking",
]

SCORE_CONTENT_FLOOR = 150
STRUCTURE_BONUS = 35
STRUCTURE_SELECTOR = "p,li,h1,h2,h3,figure,table"


@dataclass(frozen=True)
class CrawlSettings:
    """Options consumed by the crawl pipeline. Durations are in seconds."""

    sanitize_html: bool = True
    navigation_timeout: float = 60.0
    max_redirects: int = 5
    max_navigation_attempts: int = 3
    retry_backoff: float = 1.5
    refresh_on_error_status: bool = True
    verification_max_wait: float = 45.0
    verification_poll_interval: float = 2.0
    extraction_timeout: float = 30.0
    session_cookie: Optional[str] = None
    browser_executable: Optional[str] = None
    cdp_url: Optional[str] = None
    reuse_browser: bool = False
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def navigation_timeout_ms(self) -> float:
        return self.navigation_timeout * 1000


def apply_overrides(settings: CrawlSettings, **overrides: Any) -> CrawlSettings:
    """Return a copy of *settings* with every non-None override applied."""
    known = {f.name for f in dataclasses.fields(CrawlSettings)}
    changes = {}
    for name, value in overrides.items():
        if value is None:
            continue
        if name not in known:
            raise TypeError(f"Unknown crawl setting: {name}")
        changes[name] = value
    if not changes:
        return settings
    return dataclasses.replace(settings, **changes)


def _read(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        raw = env.get(name)
        if raw is not None and raw.strip():
            return raw.strip()
    return None


def _resolve_bool(env: Mapping[str, str], default: bool, *names: str) -> bool:
    raw = _read(env, *names)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("0", "false", "no", "off"):
        return False
    if lowered in ("1", "true", "yes", "on"):
        return True
    LOGGER.warning("Ignoring invalid boolean for %s: %r", names[0], raw)
    return default


def _resolve_float(
    env: Mapping[str, str],
    default: float,
    *names: str,
    minimum: float,
    maximum: float,
) -> float:
    raw = _read(env, *names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid number for %s: %r", names[0], raw)
        return default
    return max(minimum, min(value, maximum))


def _resolve_int(
    env: Mapping[str, str],
    default: int,
    *names: str,
    minimum: int,
    maximum: int,
) -> int:
    raw = _read(env, *names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid integer for %s: %r", names[0], raw)
        return default
    return max(minimum, min(value, maximum))


def load_settings_from_env(env: Optional[Mapping[str, str]] = None) -> CrawlSettings:
    """Build settings from environment variables.

    Supported variables:
        FLASHCRAWL_SANITIZE_HTML / CRAWL_SANITIZE_HTML
        FLASHCRAWL_NAV_TIMEOUT (seconds)
        FLASHCRAWL_MAX_REDIRECTS
        FLASHCRAWL_NAV_ATTEMPTS
        FLASHCRAWL_RETRY_BACKOFF (seconds)
        FLASHCRAWL_VERIFICATION_WAIT (seconds)
        FLASHCRAWL_VERIFICATION_INTERVAL (seconds)
        FLASHCRAWL_EXTRACTION_TIMEOUT (seconds)
        FLASHCRAWL_SESSION_COOKIE / CRAWL_SESSION_COOKIE
        FLASHCRAWL_BROWSER_EXECUTABLE / PLAYWRIGHT_CHROMIUM_EXECUTABLE
        FLASHCRAWL_CDP_URL
        FLASHCRAWL_REUSE_BROWSER
        FLASHCRAWL_HEADLESS
        FLASHCRAWL_USER_AGENT
    """
    source = os.environ if env is None else env
    defaults = CrawlSettings()
    return CrawlSettings(
        sanitize_html=_resolve_bool(
            source, defaults.sanitize_html, "FLASHCRAWL_SANITIZE_HTML", "CRAWL_SANITIZE_HTML"
        ),
        navigation_timeout=_resolve_float(
            source, defaults.navigation_timeout, "FLASHCRAWL_NAV_TIMEOUT",
            minimum=1.0, maximum=600.0,
        ),
        max_redirects=_resolve_int(
            source, defaults.max_redirects, "FLASHCRAWL_MAX_REDIRECTS",
            minimum=0, maximum=20,
        ),
        max_navigation_attempts=_resolve_int(
            source, defaults.max_navigation_attempts, "FLASHCRAWL_NAV_ATTEMPTS",
            minimum=1, maximum=10,
        ),
        retry_backoff=_resolve_float(
            source, defaults.retry_backoff, "FLASHCRAWL_RETRY_BACKOFF",
            minimum=0.0, maximum=30.0,
        ),
        verification_max_wait=_resolve_float(
            source, defaults.verification_max_wait, "FLASHCRAWL_VERIFICATION_WAIT",
            minimum=0.0, maximum=300.0,
        ),
        verification_poll_interval=_resolve_float(
            source, defaults.verification_poll_interval, "FLASHCRAWL_VERIFICATION_INTERVAL",
            minimum=0.1, maximum=30.0,
        ),
        extraction_timeout=_resolve_float(
            source, defaults.extraction_timeout, "FLASHCRAWL_EXTRACTION_TIMEOUT",
            minimum=1.0, maximum=300.0,
        ),
        session_cookie=_read(source, "FLASHCRAWL_SESSION_COOKIE", "CRAWL_SESSION_COOKIE"),
        browser_executable=_read(
            source, "FLASHCRAWL_BROWSER_EXECUTABLE", "PLAYWRIGHT_CHROMIUM_EXECUTABLE"
        ),
        cdp_url=_read(source, "FLASHCRAWL_CDP_URL"),
        reuse_browser=_resolve_bool(source, defaults.reuse_browser, "FLASHCRAWL_REUSE_BROWSER"),
        headless=_resolve_bool(source, defaults.headless, "FLASHCRAWL_HEADLESS"),
        user_agent=_read(source, "FLASHCRAWL_USER_AGENT") or defaults.user_agent,
    )
