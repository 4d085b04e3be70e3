"""URL validation for crawl requests and tracking-parameter cleanup for links."""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from .errors import InvalidURL, UnsupportedScheme

ALLOWED_SCHEMES = ("http", "https")

TRACKER_EXACT = ("gclid", "fbclid", "igshid")
TRACKER_PREFIXES = ("utm_", "ref", "mc_", "smid")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*:")


def validate_url(raw: str) -> str:
    """Return the normalized absolute URL or raise.

    Only http and https are accepted. No network access is performed.
    """
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidURL("Missing url parameter")

    try:
        parts = urlsplit(candidate)
        _ = parts.port  # raises on a malformed port
    except ValueError as exc:
        raise InvalidURL("Invalid URL", details={"url": candidate}) from exc

    if not parts.scheme:
        raise InvalidURL("Invalid URL", details={"url": candidate})

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise UnsupportedScheme(
            "Only http and https protocols are supported",
            details={"url": candidate, "scheme": scheme},
        )

    if not parts.hostname:
        raise InvalidURL("Invalid URL", details={"url": candidate})

    userinfo, at, host = parts.netloc.rpartition("@")
    netloc = userinfo + at + host.lower()
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def is_tracking_param(name: str) -> bool:
    lower = name.lower()
    return lower in TRACKER_EXACT or lower.startswith(TRACKER_PREFIXES)


def sanitize_link_url(raw: str) -> str:
    """Strip the fragment and tracking query parameters from a link target.

    Non-http(s) schemes and anything that fails to parse are returned untouched.
    The query is filtered without re-encoding so the result is stable when
    sanitized again.
    """
    if not raw:
        return raw

    has_scheme = bool(_SCHEME_RE.match(raw))
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw

    if has_scheme and parts.scheme.lower() not in ALLOWED_SCHEMES:
        return raw

    query = parts.query
    if query:
        kept = [
            pair
            for pair in query.split("&")
            if pair and not is_tracking_param(pair.split("=", 1)[0])
        ]
        query = "&".join(kept)

    if query == parts.query and "#" not in raw:
        return raw

    try:
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
    except ValueError:
        return raw
