"""Wait out bot-check interstitials ("checking your browser", ...)."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Pattern, Sequence

LOGGER = logging.getLogger(__name__)

CHALLENGE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"verify(?:ing)? you are (?:a )?human", re.IGNORECASE),
    re.compile(r"needs to review the security of your connection", re.IGNORECASE),
    re.compile(r"checking your browser before accessing", re.IGNORECASE),
    re.compile(r"checking if the site connection is secure", re.IGNORECASE),
    re.compile(r"press and hold", re.IGNORECASE),
)

BODY_TEXT_SCRIPT = "() => (document.body ? document.body.innerText : '') || ''"


@dataclass(frozen=True)
class VerificationResult:
    cleared: bool
    waited_ms: int
    challenged: bool = False


def has_challenge(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in CHALLENGE_PATTERNS)


async def _read_body_text(page: Any, timeout: float) -> Optional[str]:
    try:
        return await asyncio.wait_for(page.evaluate(BODY_TEXT_SCRIPT), timeout=timeout)
    except Exception as exc:
        # Navigation/reload in flight; try again on the next tick.
        LOGGER.debug("Challenge check failed transiently: %s", exc)
        return None


async def wait_for_human_verification(
    page: Any,
    *,
    max_wait: float,
    poll_interval: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> VerificationResult:
    """Poll the rendered text until no challenge phrase remains or *max_wait* passes.

    The page is inspected at least once, so ``max_wait=0`` still clears a page
    that never showed a challenge.
    """
    started = clock()
    read_timeout = max(poll_interval, 1.0)
    challenged = False
    while True:
        text = await _read_body_text(page, read_timeout)
        waited = clock() - started
        if text is not None and not has_challenge(text):
            if challenged:
                LOGGER.info("Verification challenge cleared after %dms", int(waited * 1000))
            return VerificationResult(
                cleared=True, waited_ms=int(waited * 1000), challenged=challenged
            )
        if text is not None and not challenged:
            challenged = True
            LOGGER.info("Verification challenge detected; waiting up to %gs", max_wait)
        if waited >= max_wait:
            return VerificationResult(
                cleared=False, waited_ms=int(waited * 1000), challenged=challenged
            )
        await sleep(min(poll_interval, max_wait - waited))
