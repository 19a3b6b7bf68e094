"""Command-line entry point: fetch URLs and print results as JSON.

Usage::

    article-harvester https://example.com/a https://example.com/b \\
        --concurrency 3 --allowed-domain example.com

Defaults come from :class:`~article_harvester.config.settings.Settings`
(``HARVESTER_*`` environment variables); flags override them.  Logs go to
stderr, the JSON document to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from pydantic import ValidationError

from article_harvester.config.settings import get_settings
from article_harvester.core.exceptions import ConfigurationError
from article_harvester.core.logging_config import configure_logging
from article_harvester.scraper.models import FetcherConfig, FetchOptions
from article_harvester.scraper.scheduler import ContentFetcher


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="article-harvester",
        description="Fetch article pages concurrently and extract their content",
    )
    parser.add_argument("urls", nargs="+", metavar="URL", help="Article URLs to fetch")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum fetches in flight (default: HARVESTER_CONCURRENCY_LIMIT or 5)",
    )
    parser.add_argument(
        "--allowed-domain",
        action="append",
        default=None,
        dest="allowed_domains",
        help="Only fetch this host and its subdomains (repeatable)",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Per-attempt timeout in seconds")
    parser.add_argument("--max-retries", type=int, default=None, help="Retries after the first attempt")
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Overall time budget in seconds; unfinished URLs are reported as CANCELED",
    )
    parser.add_argument(
        "--include-raw-html",
        action="store_true",
        help="Include the fetched HTML in each result",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    return parser


def _build_config(args: argparse.Namespace) -> FetcherConfig:
    config = get_settings().to_fetcher_config()
    overrides = {
        "timeout": args.timeout,
        "max_retries": args.max_retries,
    }
    update = {key: value for key, value in overrides.items() if value is not None}
    if not update:
        return config
    # model_copy skips validation, so rebuild through the constructor.
    return FetcherConfig(**{**config.model_dump(), **update})


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    try:
        config = _build_config(args)
    except ValidationError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)

    options = FetchOptions(
        max_concurrency=args.concurrency,
        allowed_domains=tuple(args.allowed_domains) if args.allowed_domains else None,
        include_raw_html=args.include_raw_html,
        deadline=args.deadline,
    )

    try:
        batch = asyncio.run(ContentFetcher(config).fetch_batch(args.urls, options))
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(2)

    json.dump(batch.to_dict(), sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
