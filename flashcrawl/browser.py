"""Browser acquisition and teardown.

A :class:`BrowserLauncher` walks an ordered list of launch strategies and
returns the first browser that comes up:

1. ``cdp`` - attach to an already-running browser (``FLASHCRAWL_CDP_URL``)
2. ``executable`` - launch an explicit binary (``FLASHCRAWL_BROWSER_EXECUTABLE``)
3. ``bundled`` - launch the Playwright-managed Chromium
4. ``channel:chrome`` / ``channel:msedge`` - launch a system-installed browser

Failures of every strategy are collected and raised together as
:class:`~flashcrawl.errors.LaunchError`.

:class:`BrowserManager` hands out :class:`BrowserHandle` objects. By default
each handle owns a fresh browser process; with ``reuse_browser`` enabled the
handles lease one shared browser, which is relaunched when it disconnects.

Example usage:

    manager = BrowserManager(settings)
    async with manager.session() as handle:
        context = await handle.new_context(user_agent=settings.user_agent)
        page = await context.new_page()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple

import httpx
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from .config import CrawlSettings
from .errors import LaunchAttempt, LaunchError

LOGGER = logging.getLogger(__name__)

CDP_PROBE_TIMEOUT_SECONDS = 2.0

LaunchStrategy = Callable[[Playwright], Awaitable[Browser]]

BROWSER_ARGS: List[str] = [
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--disable-features=Translate,BackForwardCache,AcceptCHFrame,MediaRouter,OptimizationHints",
    "--disable-hang-monitor",
    "--disable-popup-blocking",
    "--disable-renderer-backgrounding",
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--password-store=basic",
    "--use-mock-keychain",
]


async def _close_quietly(resource: Any, label: str) -> None:
    if resource is None:
        return
    try:
        await resource.close()
    except Exception as exc:
        LOGGER.debug("Ignoring error while closing %s: %s", label, exc)


@dataclass
class BrowserProcess:
    """A running (or attached) browser and the Playwright driver behind it."""

    playwright: Playwright
    browser: Browser
    strategy: str
    closed: bool = False

    def is_connected(self) -> bool:
        if self.closed:
            return False
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await _close_quietly(self.browser, "browser")
        try:
            await self.playwright.stop()
        except Exception as exc:
            LOGGER.debug("Ignoring error while stopping Playwright: %s", exc)


@dataclass
class BrowserHandle:
    """Per-request view of a browser: owns the contexts it creates.

    ``release`` is idempotent and also safe on a handle whose setup failed
    half-way.
    """

    process: BrowserProcess
    owns_process: bool = True
    contexts: List[BrowserContext] = field(default_factory=list)
    released: bool = False

    @property
    def strategy(self) -> str:
        return self.process.strategy

    async def new_context(self, **options: Any) -> BrowserContext:
        if self.released:
            raise RuntimeError("Browser handle already released")
        context = await self.process.browser.new_context(**options)
        self.contexts.append(context)
        return context

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        contexts, self.contexts = self.contexts, []
        for context in contexts:
            await _close_quietly(context, "browser context")
        if self.owns_process:
            await self.process.close()


class BrowserLauncher:
    """Ordered fallback over launch strategies; first success wins."""

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self._settings = settings
        self._playwright_factory = playwright_factory

    def strategies(self) -> List[Tuple[str, LaunchStrategy]]:
        settings = self._settings
        ordered: List[Tuple[str, LaunchStrategy]] = []
        if settings.cdp_url:
            ordered.append(("cdp", self._connect_cdp))
        if settings.browser_executable:
            ordered.append(("executable", self._launch_executable))
        ordered.append(("bundled", self._launch_bundled))
        ordered.append(("channel:chrome", self._channel_launcher("chrome")))
        ordered.append(("channel:msedge", self._channel_launcher("msedge")))
        return ordered

    def _launch_options(self, **extra: Any) -> dict:
        options = {"headless": self._settings.headless, "args": list(BROWSER_ARGS)}
        options.update(extra)
        return options

    async def _connect_cdp(self, playwright: Playwright) -> Browser:
        cdp_url = (self._settings.cdp_url or "").rstrip("/")
        async with httpx.AsyncClient(timeout=CDP_PROBE_TIMEOUT_SECONDS) as client:
            response = await client.get(f"{cdp_url}/json/version")
            response.raise_for_status()
        return await playwright.chromium.connect_over_cdp(cdp_url)

    async def _launch_executable(self, playwright: Playwright) -> Browser:
        path = Path(self._settings.browser_executable or "").expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Browser executable not found: {path}")
        return await playwright.chromium.launch(**self._launch_options(executable_path=str(path)))

    async def _launch_bundled(self, playwright: Playwright) -> Browser:
        return await playwright.chromium.launch(**self._launch_options())

    def _channel_launcher(self, channel: str) -> LaunchStrategy:
        async def _launch(playwright: Playwright) -> Browser:
            return await playwright.chromium.launch(**self._launch_options(channel=channel))

        return _launch

    async def launch(self) -> BrowserProcess:
        playwright = await self._playwright_factory().start()
        attempts: List[LaunchAttempt] = []
        for name, strategy in self.strategies():
            try:
                browser = await strategy(playwright)
            except Exception as exc:
                attempts.append(LaunchAttempt(strategy=name, error=str(exc) or type(exc).__name__))
                LOGGER.debug("Browser strategy %s failed: %s", name, exc)
                continue
            LOGGER.debug("Browser acquired via %s", name)
            return BrowserProcess(playwright=playwright, browser=browser, strategy=name)

        try:
            await playwright.stop()
        except Exception as exc:
            LOGGER.debug("Ignoring error while stopping Playwright: %s", exc)
        error = LaunchError(attempts)
        LOGGER.error("%s", error.message)
        raise error


class BrowserManager:
    """Hands out browser handles, isolated per request or leased from a shared browser."""

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        launcher: Optional[BrowserLauncher] = None,
    ) -> None:
        self._settings = settings
        self._launcher = launcher or BrowserLauncher(settings)
        self._shared: Optional[BrowserProcess] = None
        self._lock = asyncio.Lock()

    @property
    def shared(self) -> bool:
        return self._settings.reuse_browser

    async def acquire(self, *, isolated: bool = False) -> BrowserHandle:
        """Return a ready browser handle.

        ``isolated=True`` always launches a fresh browser, even in shared mode.
        """
        if self.shared and not isolated:
            process = await self._shared_process()
            return BrowserHandle(process=process, owns_process=False)
        process = await self._launcher.launch()
        return BrowserHandle(process=process, owns_process=True)

    async def _shared_process(self) -> BrowserProcess:
        async with self._lock:
            current = self._shared
            if current is not None and current.is_connected():
                return current
            if current is not None:
                LOGGER.warning("Shared browser disconnected; relaunching")
                await current.close()
            self._shared = await self._launcher.launch()
            return self._shared

    async def release(self, handle: Optional[BrowserHandle]) -> None:
        if handle is not None:
            await handle.release()

    @contextlib.asynccontextmanager
    async def session(self, *, isolated: bool = False) -> AsyncIterator[BrowserHandle]:
        handle = await self.acquire(isolated=isolated)
        try:
            yield handle
        finally:
            await self.release(handle)

    async def close(self) -> None:
        """Close the shared browser, if any."""
        async with self._lock:
            shared, self._shared = self._shared, None
        if shared is not None:
            await shared.close()
