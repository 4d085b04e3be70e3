"""Command-line interface for flashcrawl."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .cli_config import CONFIG_DIR, CONFIG_ENV_FILE, load_config
from .config import CrawlSettings, apply_overrides, load_settings_from_env
from .document import CrawlResult
from .errors import CrawlError, InvalidURL, UnsupportedScheme
from .logs import setup_logging

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _load_config() -> None:
    load_config(
        config_dir=CONFIG_DIR,
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
        copy_file=shutil.copy,
    )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="flashcrawl",
        description="Crawl a single URL and print it as clean markdown.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Page to stdout
  flashcrawl https://example.com

  # PDF to file
  flashcrawl https://example.com/report.pdf -o report.md

  # Full payload (headers, metadata, hash) as JSON
  flashcrawl https://example.com --json

  # Keep the whole page, give slow sites more time
  flashcrawl https://example.com --no-sanitize --timeout 120

  # Reuse a logged-in browser
  flashcrawl https://example.com --cdp-url http://127.0.0.1:9222
""",
    )

    parser.add_argument("url", help="URL to crawl (http or https)")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write output to this file instead of stdout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the full JSON payload instead of markdown",
    )
    parser.add_argument(
        "--no-sanitize",
        action="store_false",
        dest="sanitize_html",
        default=None,
        help="Keep boilerplate regions (navigation, banners, hidden elements)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Navigation timeout per attempt in seconds (default: 60)",
    )
    parser.add_argument(
        "--max-redirects",
        type=int,
        default=None,
        help="Maximum redirects to follow (default: 5)",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=None,
        help="Maximum navigation attempts (default: 3)",
    )
    parser.add_argument(
        "--verification-wait",
        type=float,
        default=None,
        help="Seconds to wait for bot-check pages to clear (default: 45)",
    )
    parser.add_argument(
        "--cookie",
        type=str,
        default=None,
        help="Cookie header sent with every request",
    )
    parser.add_argument(
        "--browser-path",
        type=str,
        default=None,
        help="Chrome/Chromium executable to launch",
    )
    parser.add_argument(
        "--cdp-url",
        type=str,
        default=None,
        help="Attach to a running browser via its DevTools endpoint",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Also write daily log files to this directory",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> CrawlSettings:
    return apply_overrides(
        load_settings_from_env(),
        sanitize_html=args.sanitize_html,
        navigation_timeout=args.timeout,
        max_redirects=args.max_redirects,
        max_navigation_attempts=args.attempts,
        verification_max_wait=args.verification_wait,
        session_cookie=args.cookie,
        browser_executable=args.browser_path,
        cdp_url=args.cdp_url,
    )


def _render(result: CrawlResult, json_output: bool) -> str:
    if json_output:
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    return result.markdown


def _write_output(text: str, output: Optional[str]) -> None:
    if output is None:
        print(text)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n", encoding="utf-8")
    LOGGER.info("Wrote %s", path)


async def _run_async(args: argparse.Namespace) -> int:
    from . import crawl_async

    settings = _settings_from_args(args)
    LOGGER.info("Crawling: %s", args.url)
    try:
        result = await crawl_async(args.url, settings)
    except (InvalidURL, UnsupportedScheme) as exc:
        LOGGER.error("%s", exc.message)
        return EXIT_USAGE
    except CrawlError as exc:
        if args.json_output:
            _write_output(json.dumps(exc.to_dict(), indent=2, ensure_ascii=False), args.output)
        LOGGER.error("Crawl failed (%s): %s", exc.kind, exc.message)
        return EXIT_FAILURE

    _write_output(_render(result, args.json_output), args.output)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the flashcrawl command."""
    args = _parse_args(argv)
    _load_config()
    setup_logging(args.verbose, args.log_dir)

    try:
        return asyncio.run(_run_async(args))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        LOGGER.error("Error: %s", exc)
        if args.verbose:
            LOGGER.exception("Full traceback:")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
