from __future__ import annotations

import dataclasses
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from flashcrawl.errors import (
    NavigationError,
    NavigationTimeout,
    NoResponse,
    RedirectLimitExceeded,
)
from flashcrawl.navigator import (
    is_download_error,
    is_probably_pdf_url,
    is_transient_navigation_error,
    navigate,
    response_redirect_chain,
)


def _response(chain: List[str], status: int = 200, headers: Optional[dict] = None):
    request = None
    for url in chain:
        request = SimpleNamespace(url=url, redirected_from=request)
    return SimpleNamespace(
        url=chain[-1],
        status=status,
        headers=headers if headers is not None else {"Content-Type": "text/html"},
        request=request,
    )


class FakePage:
    def __init__(self, results: List[Any], url: str = "about:blank") -> None:
        self._results = list(results)
        self.url = url
        self.goto_calls: List[str] = []
        self.listeners: dict = {}

    def on(self, event, handler):
        self.listeners[event] = handler

    def remove_listener(self, event, handler):
        self.listeners.pop(event, None)

    async def goto(self, url, *, wait_until, timeout):
        assert wait_until == "domcontentloaded"
        self.goto_calls.append(url)
        result = self._results.pop(0)
        if callable(result) and not isinstance(result, SimpleNamespace):
            result = result(self)
        if isinstance(result, BaseException):
            raise result
        if result is not None:
            self.url = result.url
        return result


def _chain(hops: int) -> List[str]:
    return ["https://example.com/start"] + [f"https://example.com/hop{i}" for i in range(1, hops + 1)]


class TestHelpers:
    @pytest.mark.parametrize(
        "url",
        ["https://e.com/a.pdf", "https://e.com/A.PDF?x=1", "https://e.com/doc.pdf#page=2"],
    )
    def test_pdf_urls(self, url):
        assert is_probably_pdf_url(url)

    @pytest.mark.parametrize("url", ["https://e.com/pdf", "https://e.com/a.pdfx", "https://e.com/"])
    def test_non_pdf_urls(self, url):
        assert not is_probably_pdf_url(url)

    def test_transient_errors(self):
        assert is_transient_navigation_error(Exception("net::ERR_CONNECTION_RESET at https://e.com"))
        assert is_transient_navigation_error(Exception("Protocol error (Page.navigate): Target closed"))
        assert is_transient_navigation_error(PlaywrightTimeoutError("Timeout 5000ms exceeded."))
        assert not is_transient_navigation_error(ValueError("bad selector"))

    def test_download_error(self):
        assert is_download_error(Exception("Download is starting"))
        assert not is_download_error(Exception("net::ERR_ABORTED"))

    def test_redirect_chain_origin_first(self):
        chain = response_redirect_chain(_response(_chain(2)))
        assert chain == _chain(2)

    def test_redirect_chain_without_request(self):
        response = SimpleNamespace(url="https://e.com/", request=None)
        assert response_redirect_chain(response) == ["https://e.com/"]


class TestNavigate:
    @pytest.mark.asyncio
    async def test_plain_html(self, fast_settings):
        page = FakePage([_response(["https://example.com/"])])
        outcome = await navigate(page, "https://example.com/", settings=fast_settings)

        assert outcome.content_kind == "html"
        assert outcome.status == 200
        assert outcome.final_url == "https://example.com/"
        assert outcome.redirect_chain == ("https://example.com/",)
        assert outcome.headers == {"content-type": "text/html"}
        assert page.listeners == {}

    @pytest.mark.asyncio
    async def test_five_redirects_within_limit(self, fast_settings):
        page = FakePage([_response(_chain(5))])
        outcome = await navigate(page, _chain(5)[0], settings=fast_settings)

        assert outcome.redirects == 5
        assert outcome.redirect_chain[0] == "https://example.com/start"
        assert outcome.redirect_chain[-1] == outcome.final_url == "https://example.com/hop5"

    @pytest.mark.asyncio
    async def test_six_redirects_exceed_limit(self, fast_settings):
        page = FakePage([_response(_chain(6))])
        with pytest.raises(RedirectLimitExceeded) as excinfo:
            await navigate(page, _chain(6)[0], settings=fast_settings)

        assert excinfo.value.redirects == 6
        assert excinfo.value.to_dict()["details"]["redirects"] == 6
        assert excinfo.value.message == "Exceeded redirect limit of 5"

    @pytest.mark.asyncio
    async def test_pdf_content_type(self, fast_settings):
        response = _response(
            ["https://example.com/doc"], headers={"content-type": "application/pdf"}
        )
        outcome = await navigate(FakePage([response]), "https://example.com/doc", settings=fast_settings)
        assert outcome.content_kind == "pdf"

    @pytest.mark.asyncio
    async def test_transient_error_retries_from_last_known_url(self, fast_settings):
        def fail_midway(page):
            page.url = "https://example.com/hop1"
            return Exception("net::ERR_CONNECTION_RESET")

        page = FakePage([fail_midway, _response(["https://example.com/hop1", "https://example.com/final"])])
        outcome = await navigate(page, "https://example.com/start", settings=fast_settings)

        assert page.goto_calls == ["https://example.com/start", "https://example.com/hop1"]
        assert outcome.attempts == 2
        assert outcome.redirect_chain == (
            "https://example.com/start",
            "https://example.com/hop1",
            "https://example.com/final",
        )

    @pytest.mark.asyncio
    async def test_transient_errors_exhaust_attempts(self, fast_settings):
        page = FakePage([PlaywrightTimeoutError("Navigation timeout of 5000 ms exceeded")] * 3)
        with pytest.raises(NavigationTimeout) as excinfo:
            await navigate(page, "https://example.com/", settings=fast_settings)

        assert excinfo.value.attempts == 3
        assert excinfo.value.details["url"] == "https://example.com/"
        assert len(page.goto_calls) == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_not_retried(self, fast_settings):
        page = FakePage([Exception("Cannot navigate to invalid URL")])
        with pytest.raises(NavigationError) as excinfo:
            await navigate(page, "https://example.com/", settings=fast_settings)

        assert excinfo.value.kind == "navigation_failed"
        assert excinfo.value.attempts == 1

    @pytest.mark.asyncio
    async def test_download_switches_to_pdf(self, fast_settings):
        def start_download(page):
            page.url = "https://example.com/files/report"
            return Exception("Download is starting")

        page = FakePage([start_download])
        outcome = await navigate(page, "https://example.com/get?id=1", settings=fast_settings)

        assert outcome.content_kind == "pdf"
        assert outcome.final_url == "https://example.com/files/report"
        assert outcome.redirect_chain[-1] == outcome.final_url
        assert outcome.status == 0

    @pytest.mark.asyncio
    async def test_download_event_without_error_message(self, fast_settings):
        def emit_download(page):
            page.listeners["download"](SimpleNamespace(url="https://example.com/x"))
            return Exception("net::ERR_ABORTED")

        outcome = await navigate(FakePage([emit_download]), "https://example.com/x", settings=fast_settings)
        assert outcome.content_kind == "pdf"
        assert outcome.final_url == "https://example.com/x"

    @pytest.mark.asyncio
    async def test_no_response(self, fast_settings):
        with pytest.raises(NoResponse) as excinfo:
            await navigate(FakePage([None]), "https://example.com/", settings=fast_settings)
        assert excinfo.value.message == "No response received from target URL"

    @pytest.mark.asyncio
    async def test_error_status_is_refreshed(self, fast_settings):
        page = FakePage(
            [
                _response(["https://example.com/"], status=503),
                _response(["https://example.com/"], status=200),
            ]
        )
        outcome = await navigate(page, "https://example.com/", settings=fast_settings)

        assert len(page.goto_calls) == 2
        assert outcome.status == 200
        assert outcome.redirect_chain == ("https://example.com/",)

    @pytest.mark.asyncio
    async def test_error_status_kept_when_attempts_run_out(self, fast_settings):
        page = FakePage([_response(["https://example.com/"], status=404)] * 3)
        outcome = await navigate(page, "https://example.com/", settings=fast_settings)

        assert len(page.goto_calls) == 3
        assert outcome.status == 404
        assert outcome.content_kind == "html"

    @pytest.mark.asyncio
    async def test_error_status_refresh_can_be_disabled(self, fast_settings):
        settings = dataclasses.replace(fast_settings, refresh_on_error_status=False)
        page = FakePage([_response(["https://example.com/"], status=404)])
        outcome = await navigate(page, "https://example.com/", settings=settings)

        assert len(page.goto_calls) == 1
        assert outcome.status == 404
