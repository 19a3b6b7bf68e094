"""Bounded-concurrency batch runner: fetch, extract and aggregate many URLs.

:class:`ContentFetcher` is the public entry point of the package.  One
``asyncio`` task is created per URL and an ``asyncio.Semaphore`` keeps at
most ``concurrency_limit`` fetch-and-extract operations in flight.  Each
task writes its result into a pre-allocated slot so the output order always
matches the input order, whatever order the work completes in.

A batch can be aborted with ``FetchOptions.cancel_event`` or
``FetchOptions.deadline``.  Results that completed before the abort keep
their slots; every other URL is reported with the ``CANCELED`` code.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import time
from typing import Any, Sequence

import httpx
import structlog

from article_harvester.core.exceptions import ConfigurationError
from article_harvester.core.logging_config import batch_context
from article_harvester.scraper.aggregator import StatsAggregator
from article_harvester.scraper.content_extractor import extract_article
from article_harvester.scraper.http_fetcher import RobotsCache, build_request_headers
from article_harvester.scraper.models import (
    ArticleContentResult,
    BatchResult,
    ErrorCode,
    FetcherConfig,
    FetchFailure,
    FetchOptions,
    FetchRequest,
    FetchTiming,
    ProgressCallback,
)
from article_harvester.scraper.rate_limiter import DomainRateLimiter, RateLimitConfig
from article_harvester.scraper.retry import fetch_with_retry

logger = structlog.get_logger(__name__)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class ContentFetcher:
    """Fetch and extract article content for batches of URLs.

    Args:
        config: Closed fetcher configuration.  Defaults to
            :class:`FetcherConfig` defaults.
        http_client: Optional injected :class:`httpx.AsyncClient`, used
            as-is and never closed by the fetcher.  The configured user agent
            and ``custom_headers`` are sent with every request and
            ``follow_redirects`` and ``timeout`` are applied per request, but
            ``max_redirects`` is a client setting: an injected client keeps its
            own limit, so build it with ``max_redirects=config.max_redirects``
            if the two must agree.
    """

    def __init__(
        self,
        config: FetcherConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or FetcherConfig()
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_batch(
        self,
        urls: Sequence[str],
        options: FetchOptions | None = None,
    ) -> BatchResult:
        """Fetch and extract every URL in *urls*.

        Args:
            urls: URLs to process.  May be empty; duplicates are processed
                independently.
            options: Per-call options.

        Returns:
            A :class:`BatchResult` with one result per input URL, in input
            order, and statistics over all of them.

        Raises:
            ConfigurationError: If a per-call option is invalid.  Raised
                before any request is made.
        """
        options = options or FetchOptions()
        limit = self._resolve_concurrency(options)
        if options.deadline is not None and options.deadline <= 0:
            raise ConfigurationError("deadline must be positive", field="deadline")

        urls = list(urls)
        total = len(urls)
        aggregator = StatsAggregator(total)
        if total == 0:
            return BatchResult(results=[], stats=aggregator.snapshot())

        with batch_context():
            results = await self._run_batch(urls, options, limit, aggregator)

        stats = aggregator.snapshot()
        logger.info(
            "batch finished",
            total=stats.total_articles,
            successful=stats.successful_fetches,
            failed=stats.failed_fetches,
            failure_reasons=stats.failure_reasons,
        )
        return BatchResult(results=results, stats=stats)

    async def fetch_many(
        self,
        urls: Sequence[str],
        options: FetchOptions | None = None,
    ) -> list[ArticleContentResult]:
        """Like :meth:`fetch_batch` but return only the result list."""
        batch = await self.fetch_batch(urls, options)
        return batch.results

    async def fetch_article(
        self,
        url: str,
        options: FetchOptions | None = None,
    ) -> ArticleContentResult:
        """Fetch and extract a single URL."""
        batch = await self.fetch_batch([url], options)
        return batch.results[0]

    # ------------------------------------------------------------------
    # Option resolution
    # ------------------------------------------------------------------

    def _resolve_concurrency(self, options: FetchOptions) -> int:
        limit = options.max_concurrency
        if limit is None:
            return self.config.concurrency_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError(
                f"max_concurrency must be an integer >= 1, got {limit!r}",
                field="max_concurrency",
            )
        return limit

    def _build_request(self, url: str, options: FetchOptions) -> FetchRequest:
        allowed = (
            options.allowed_domains
            if options.allowed_domains is not None
            else self.config.allowed_domains
        )
        return FetchRequest(
            url=url,
            config=self.config,
            allowed_domains=tuple(allowed),
            skip_domains=self.config.skip_domains + tuple(options.skip_domains),
            include_raw_html=options.include_raw_html,
        )

    def _build_rate_limiter(self) -> DomainRateLimiter | None:
        limits = RateLimitConfig(
            requests_per_second=self.config.requests_per_second,
            requests_per_minute=self.config.requests_per_minute,
        )
        return DomainRateLimiter(limits) if limits.enabled else None

    # ------------------------------------------------------------------
    # HTTP client
    # ------------------------------------------------------------------

    def _build_http_client(self, limit: int) -> httpx.AsyncClient:
        """Return a client sized for *limit* concurrent requests."""
        return httpx.AsyncClient(
            headers=build_request_headers(self.config),
            follow_redirects=self.config.follow_redirects,
            max_redirects=self.config.max_redirects,
            timeout=self.config.timeout,
            limits=httpx.Limits(max_connections=limit, max_keepalive_connections=limit),
        )

    def _client_context(self, limit: int) -> Any:
        if self._http_client is not None:
            return contextlib.nullcontext(self._http_client)
        return self._build_http_client(limit)

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------

    async def _run_batch(
        self,
        urls: list[str],
        options: FetchOptions,
        limit: int,
        aggregator: StatsAggregator,
    ) -> list[ArticleContentResult]:
        total = len(urls)
        slots: list[ArticleContentResult | None] = [None] * total
        semaphore = asyncio.Semaphore(limit)
        rate_limiter = self._build_rate_limiter()
        robots_cache: RobotsCache = {}

        logger.debug("batch started", total=total, concurrency=limit)

        async def worker(index: int, url: str) -> None:
            async with semaphore:
                result = await self._process(
                    self._build_request(url, options), client, rate_limiter, robots_cache
                )
            slots[index] = result
            completed = aggregator.add(result)
            _notify(options.on_progress, completed, total, result)

        async with self._client_context(limit) as client:
            tasks = [
                asyncio.create_task(worker(index, url))
                for index, url in enumerate(urls)
            ]
            try:
                abort_reason = await _wait_for_workers(tasks, options)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        for index, slot in enumerate(slots):
            if slot is not None:
                continue
            result = ArticleContentResult.failed(
                urls[index],
                FetchFailure(
                    message=abort_reason or "batch aborted",
                    code=ErrorCode.CANCELED.value,
                ),
            )
            slots[index] = result
            aggregator.add(result)

        if abort_reason:
            logger.warning("batch aborted", reason=abort_reason, completed=aggregator.completed)
        return [slot for slot in slots if slot is not None]

    async def _process(
        self,
        request: FetchRequest,
        client: httpx.AsyncClient,
        rate_limiter: DomainRateLimiter | None,
        robots_cache: RobotsCache,
    ) -> ArticleContentResult:
        """Fetch then extract one URL.  Never raises for per-URL problems."""
        started = time.perf_counter()
        try:
            page = await fetch_with_retry(
                request,
                client,
                rate_limiter=rate_limiter,
                robots_cache=robots_cache,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("unexpected fetch error", url=request.url)
            page = FetchFailure(message=f"unexpected error: {exc}", code=ErrorCode.NETWORK_ERROR.value)

        if isinstance(page, FetchFailure):
            elapsed = _elapsed_ms(started)
            return ArticleContentResult.failed(
                request.url,
                page,
                FetchTiming(fetch_time=elapsed, parse_time=0.0, total_time=elapsed),
            )

        parse_started = time.perf_counter()
        try:
            content = await asyncio.to_thread(extract_article, page.html, page.final_url)
        except Exception as exc:  # noqa: BLE001
            logger.exception("extraction failed", url=request.url)
            return ArticleContentResult.failed(
                request.url,
                FetchFailure(
                    message=f"extraction failed: {exc}",
                    code=ErrorCode.EXTRACTION_FAILED.value,
                    status_code=page.status_code,
                    retry_count=page.retry_count,
                ),
                FetchTiming(
                    fetch_time=page.fetch_time,
                    parse_time=_elapsed_ms(parse_started),
                    total_time=_elapsed_ms(started),
                ),
            )
        parse_time = _elapsed_ms(parse_started)

        if request.include_raw_html:
            content = dataclasses.replace(content, raw_html=page.html)

        return ArticleContentResult.succeeded(
            request.url,
            content,
            FetchTiming(
                fetch_time=page.fetch_time,
                parse_time=parse_time,
                total_time=_elapsed_ms(started),
            ),
            retry_count=page.retry_count,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _notify(
    callback: ProgressCallback | None,
    completed: int,
    total: int,
    result: ArticleContentResult,
) -> None:
    if callback is None:
        return
    try:
        callback(completed, total, result)
    except Exception:  # noqa: BLE001
        logger.warning("progress callback raised", url=result.url, exc_info=True)


async def _wait_for_workers(
    tasks: list[asyncio.Task[None]],
    options: FetchOptions,
) -> str | None:
    """Wait until every task is done, the cancel event fires or the deadline passes.

    Returns:
        ``None`` when every task finished, otherwise the abort reason.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + options.deadline if options.deadline is not None else None
    pending: set[asyncio.Future[Any]] = set(tasks)

    cancel_waiter: asyncio.Task[Any] | None = None
    if options.cancel_event is not None:
        cancel_waiter = asyncio.create_task(options.cancel_event.wait())
        pending.add(cancel_waiter)

    try:
        while any(not task.done() for task in tasks):
            timeout = None if deadline is None else max(0.0, deadline - loop.time())
            done, pending = await asyncio.wait(
                pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if cancel_waiter is not None and cancel_waiter in done:
                return "batch canceled"
            if not done:
                return "batch deadline exceeded"
        return None
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()
