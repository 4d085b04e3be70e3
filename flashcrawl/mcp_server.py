"""MCP server and HTTP routes for flashcrawl.

Provides tools for:
- Crawling a single URL into markdown + metadata + hash
- Reporting crawl statistics

With the HTTP transport the server also answers plain HTTP:
- ``GET|POST /crawl?url=...``  crawl payload, or a structured error
- ``POST /convert``            raw PDF bytes or multipart ``file`` in, ``{"markdown": ...}`` out
- ``GET /status``              statistics snapshot
- ``GET /``                    health check

Usage:
    # STDIO (for Claude Desktop, etc.)
    python -m flashcrawl.mcp_server

    # HTTP (for remote access)
    python -m flashcrawl.mcp_server --transport http --port 8000

Environment Variables:
    FLASHCRAWL_* crawl settings (see flashcrawl.config.load_settings_from_env)
    FLASHCRAWL_LOG_DIR: Optional directory for daily log files
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .browser import BrowserManager
from .builder import content_hash
from .config import CrawlSettings, apply_overrides, load_settings_from_env
from .errors import CrawlError, InvalidDocument, InvalidURL, UnsupportedScheme
from .logs import setup_logging
from .markdown import normalize_markdown
from .pdf import PDF_SIGNATURE, convert_pdf
from .status import CrawlStats, EventLoopWatchdog

LOGGER = logging.getLogger(__name__)

# Load .env before reading environment variables
load_dotenv()

_HTTP_STATUS_BY_KIND: Dict[str, int] = {
    InvalidURL.kind: 400,
    UnsupportedScheme.kind: 400,
    InvalidDocument.kind: 400,
    "redirect_limit_exceeded": 310,
    "no_response": 502,
    "verification_timeout": 524,
    "launch_failed": 503,
}

# Create the MCP server
mcp = FastMCP(
    name="Flashcrawl",
    instructions="""
    A single-URL crawler that returns clean markdown.

    Tools:
       - crawl: Fetch one http(s) URL (HTML page or PDF) and return JSON with
         headers, metadata (title, description, h1, h2), hash and markdown
       - status: Crawl statistics of this server process
    """,
)


def http_status_for(error: CrawlError) -> int:
    return _HTTP_STATUS_BY_KIND.get(error.kind, 500)


class CrawlService:
    """Settings, browser manager and statistics shared by all requests."""

    def __init__(
        self,
        settings: Optional[CrawlSettings] = None,
        *,
        manager: Optional[BrowserManager] = None,
        stats: Optional[CrawlStats] = None,
    ) -> None:
        self.settings = settings or load_settings_from_env()
        self.manager = manager or BrowserManager(self.settings)
        self.stats = stats or CrawlStats()
        self.watchdog = EventLoopWatchdog(self.stats)

    async def crawl(self, url: str, *, sanitize_html: Optional[bool] = None) -> Dict[str, Any]:
        from . import crawl_async

        self.watchdog.start()
        settings = apply_overrides(self.settings, sanitize_html=sanitize_html)
        result = await crawl_async(url, settings, manager=self.manager, observer=self.stats)
        return result.to_dict()

    async def convert(self, data: bytes) -> Dict[str, Any]:
        if not data:
            self.stats.record_pdf_conversion("No file provided")
            raise InvalidDocument("No file provided")
        if not data.lstrip().startswith(PDF_SIGNATURE):
            self.stats.record_pdf_conversion("Body is not a PDF document")
            raise InvalidDocument("Body is not a PDF document", details={"bytes": len(data)})
        try:
            converted = await convert_pdf(data)
        except Exception as exc:
            self.stats.record_pdf_conversion(str(exc))
            raise CrawlError("Failed to convert PDF", details={"reason": str(exc)}) from exc
        markdown = normalize_markdown(converted.markdown)
        self.stats.record_pdf_conversion()
        return {"markdown": markdown, "hash": content_hash(markdown)}

    def status(self) -> Dict[str, Any]:
        return self.stats.snapshot()

    async def close(self) -> None:
        await self.watchdog.stop()
        await self.manager.close()


_service: Optional[CrawlService] = None


def get_service() -> CrawlService:
    global _service
    if _service is None:
        _service = CrawlService()
    return _service


async def crawl_payload(url: str, sanitize_html: Optional[bool] = None) -> Dict[str, Any]:
    """Crawl payload on success, ``{"error", "message", "details"}`` on failure."""
    try:
        return await get_service().crawl(url, sanitize_html=sanitize_html)
    except CrawlError as exc:
        return exc.to_dict()


# =============================================================================
# MCP TOOLS
# =============================================================================


@mcp.tool
async def crawl(url: str, sanitize_html: Optional[bool] = None):
    """
    Crawl a single web page or PDF and return its content as markdown.

    Args:
        url: Absolute http or https URL
        sanitize_html: Strip navigation, banners and hidden elements before
            conversion (default: server setting, normally true)

    Returns:
        JSON string with headers (statusCode, content-type, content-encoding,
        expires, upstreamStatusCode), metadata (title, description, h1, h2),
        url, finalUrl, redirects, hash and markdown. Failures return
        {"error", "message", "details"} instead.

    Examples:
        crawl(url="https://example.com")
        crawl(url="https://example.com/paper.pdf")
        crawl(url="https://example.com", sanitize_html=False)
    """
    LOGGER.info("Crawling: %s", url)
    payload = await crawl_payload(url, sanitize_html)
    return json.dumps(payload, indent=2, ensure_ascii=False)


@mcp.tool
async def status():
    """
    Report crawl statistics for this server process.

    Returns:
        JSON string with uptime, crawl counters, the last URL, status code and
        error, and event-loop watchdog readings.
    """
    return json.dumps(get_service().status(), indent=2, ensure_ascii=False)


# =============================================================================
# HTTP ROUTES
# =============================================================================


def _parse_bool(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    return raw.strip().lower() not in ("0", "false", "no", "off")


async def _request_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update(body)
    return params


@mcp.custom_route("/crawl", methods=["GET", "POST"])
async def crawl_route(request: Request) -> JSONResponse:
    params = await _request_params(request)
    sanitize = params.get("sanitize_html")
    if isinstance(sanitize, str):
        sanitize = _parse_bool(sanitize)
    try:
        payload = await get_service().crawl(str(params.get("url") or ""), sanitize_html=sanitize)
    except CrawlError as exc:
        return JSONResponse(exc.to_dict(), status_code=http_status_for(exc))
    return JSONResponse(payload)


async def _upload_bytes(request: Request) -> bytes:
    """Raw request body, or the ``file`` part of a multipart upload."""
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("multipart/form-data"):
        return await request.body()

    form = await request.form()
    try:
        upload = form.get("file")
        if upload is None or isinstance(upload, str):
            return b""
        return await upload.read()
    finally:
        await form.close()


@mcp.custom_route("/convert", methods=["POST"])
async def convert_route(request: Request) -> JSONResponse:
    data = await _upload_bytes(request)
    try:
        payload = await get_service().convert(data)
    except CrawlError as exc:
        LOGGER.error("PDF conversion failed: %s", exc.message)
        return JSONResponse(exc.to_dict(), status_code=http_status_for(exc))
    return JSONResponse(payload)


@mcp.custom_route("/status", methods=["GET"])
async def status_route(request: Request) -> JSONResponse:
    return JSONResponse(get_service().status())


@mcp.custom_route("/", methods=["GET"])
async def health_route(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "service": "flashcrawl"})


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the flashcrawl MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # STDIO transport (default, for Claude Desktop)
    python -m flashcrawl.mcp_server

    # HTTP transport with /crawl, /convert and /status routes
    python -m flashcrawl.mcp_server --transport http --port 8000

    # Share one warm browser between requests
    FLASHCRAWL_REUSE_BROWSER=1 python -m flashcrawl.mcp_server --transport http
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()
    setup_logging(args.verbose)

    settings = get_service().settings
    LOGGER.info(
        "Browser: %s",
        "shared" if settings.reuse_browser else "fresh per request",
    )

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
