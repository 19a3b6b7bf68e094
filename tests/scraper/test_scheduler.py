"""Tests for ContentFetcher: ordering, concurrency cap, progress, cancellation.

HTTP is served by an ``httpx.MockTransport`` with an async handler injected
through ``ContentFetcher(http_client=...)`` so tests can count in-flight
requests and control timing.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from unittest.mock import patch

import httpx
import pytest

from article_harvester.core.exceptions import ConfigurationError
from article_harvester.scraper.models import (
    ArticleContentResult,
    BatchStats,
    ErrorCode,
    FetcherConfig,
    FetchOptions,
)
from article_harvester.scraper.scheduler import ContentFetcher
from tests.factories.pages import build_article_html

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]

_HTML = build_article_html(paragraphs=5)


def _ok(html: str = _HTML) -> httpx.Response:
    return httpx.Response(200, text=html, headers={"content-type": "text/html; charset=utf-8"})


def _fetcher(handler: Handler, **config: object) -> tuple[ContentFetcher, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    settings = {"retry_delay": 0.0, "max_retry_delay": 0.0, "timeout": 30.0}
    settings.update(config)
    return ContentFetcher(FetcherConfig(**settings), http_client=client), client


class _InFlightCounter:
    """Async handler that tracks the peak number of concurrent requests."""

    def __init__(self, delay: float = 0.02) -> None:
        self.delay = delay
        self.current = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.current -= 1
        return _ok()


# ---------------------------------------------------------------------------
# Ordering, sizing and the concurrency cap
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestFetchBatch:
    async def test_empty_batch_starts_nothing(self) -> None:
        with patch.object(ContentFetcher, "_build_http_client") as build_client:
            batch = await ContentFetcher().fetch_batch([])

        build_client.assert_not_called()
        assert batch.results == []
        assert batch.stats == BatchStats()

    @pytest.mark.parametrize("count", [1, 2, 7])
    async def test_order_preserved_regardless_of_completion(self, count: int) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            index = int(request.url.path.rsplit("/", 1)[-1])
            # Later URLs finish first.
            await asyncio.sleep(0.005 * (count - index))
            return _ok()

        fetcher, client = _fetcher(handler)
        urls = [f"https://example.com/story/{i}" for i in range(count)]
        async with client:
            batch = await fetcher.fetch_batch(urls, FetchOptions(max_concurrency=count))

        assert [r.url for r in batch.results] == urls
        assert all(r.success for r in batch.results)
        assert batch.stats.total_articles == count
        assert batch.stats.successful_fetches == count

    async def test_duplicate_urls_processed_independently(self) -> None:
        counter = _InFlightCounter(delay=0)
        fetcher, client = _fetcher(counter)
        urls = ["https://example.com/same"] * 3
        async with client:
            batch = await fetcher.fetch_batch(urls)

        assert len(batch.results) == 3
        assert counter.calls == 3

    async def test_in_flight_never_exceeds_limit(self) -> None:
        counter = _InFlightCounter()
        fetcher, client = _fetcher(counter, concurrency_limit=3)
        urls = [f"https://example.com/{i}" for i in range(12)]
        async with client:
            batch = await fetcher.fetch_batch(urls)

        assert counter.calls == 12
        assert 1 <= counter.peak <= 3
        assert len(batch.results) == 12

    async def test_per_call_concurrency_override(self) -> None:
        counter = _InFlightCounter()
        fetcher, client = _fetcher(counter, concurrency_limit=5)
        urls = [f"https://example.com/{i}" for i in range(8)]
        async with client:
            await fetcher.fetch_batch(urls, FetchOptions(max_concurrency=1))

        assert counter.peak == 1

    @pytest.mark.parametrize("bad", [0, -2])
    async def test_invalid_concurrency_raises_before_any_request(self, bad: int) -> None:
        counter = _InFlightCounter(delay=0)
        fetcher, client = _fetcher(counter)
        async with client:
            with pytest.raises(ConfigurationError) as exc_info:
                await fetcher.fetch_batch(
                    ["https://example.com/a"], FetchOptions(max_concurrency=bad)
                )

        assert exc_info.value.field == "max_concurrency"
        assert counter.calls == 0

    async def test_injected_client_left_open(self) -> None:
        fetcher, client = _fetcher(_InFlightCounter(delay=0))
        async with client:
            await fetcher.fetch_batch(["https://example.com/a"])
            assert client.is_closed is False

    async def test_injected_client_gets_configured_headers(self) -> None:
        seen: list[httpx.Headers] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers)
            return _ok()

        fetcher, client = _fetcher(
            handler, user_agent="HarbourBot/2.0", custom_headers={"X-Team": "news"}
        )
        async with client:
            await fetcher.fetch_article("https://example.com/a")

        assert seen[0]["user-agent"] == "HarbourBot/2.0"
        assert seen[0]["x-team"] == "news"

    async def test_own_client_uses_max_redirects(self) -> None:
        fetcher = ContentFetcher(FetcherConfig(max_redirects=2))
        async with fetcher._client_context(3) as client:
            assert client.max_redirects == 2


# ---------------------------------------------------------------------------
# Failures, retries and the partition invariant
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestFailures:
    async def test_domain_filter_rejects_without_network(self) -> None:
        counter = _InFlightCounter(delay=0)
        fetcher, client = _fetcher(counter)
        urls = ["https://news.example.com/a", "https://elsewhere.org/b"]
        async with client:
            batch = await fetcher.fetch_batch(
                urls, FetchOptions(allowed_domains=("example.com",))
            )

        ok, rejected = batch.results
        assert ok.success is True
        assert rejected.error is not None
        assert rejected.error.code == ErrorCode.DOMAIN_NOT_ALLOWED.value
        assert rejected.retry_count == 0
        assert counter.calls == 1

    async def test_unparseable_url_is_invalid_not_network_error(self) -> None:
        counter = _InFlightCounter(delay=0)
        fetcher, client = _fetcher(counter)
        async with client:
            result = await fetcher.fetch_article("http://[::1/story")

        assert result.error is not None
        assert result.error.code == ErrorCode.INVALID_URL.value
        assert result.retry_count == 0
        assert counter.calls == 0

    async def test_fail_fail_succeed(self) -> None:
        attempts = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                return httpx.Response(503)
            return _ok()

        fetcher, client = _fetcher(handler, max_retries=3)
        async with client:
            result = await fetcher.fetch_article("https://example.com/flaky")

        assert result.success is True
        assert result.retry_count == 2
        assert attempts == 3

    async def test_two_url_batch_statistics(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/down":
                return httpx.Response(500)
            return _ok()

        fetcher, client = _fetcher(handler, max_retries=2)
        async with client:
            batch = await fetcher.fetch_batch(
                ["https://example.com/up", "https://example.com/down"],
                FetchOptions(max_concurrency=3),
            )

        up, down = batch.results
        assert up.success and up.content is not None
        assert down.error is not None
        assert down.error.retry_count == 2
        assert batch.stats.total_articles == 2
        assert batch.stats.successful_fetches == 1
        assert batch.stats.failed_fetches == 1
        assert batch.stats.total_words == up.content.word_count
        assert batch.stats.failure_reasons == {ErrorCode.HTTP_5XX.value: 1}

    async def test_partition_invariant(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            status = {"/a": 200, "/b": 404, "/c": 200, "/d": 500}[request.url.path]
            return _ok() if status == 200 else httpx.Response(status)

        fetcher, client = _fetcher(handler, max_retries=0)
        urls = [f"https://example.com/{p}" for p in "abcd"] + ["notaurl"]
        async with client:
            batch = await fetcher.fetch_batch(urls)

        for result in batch.results:
            assert result.success == (result.content is not None and result.error is None)
        stats = batch.stats
        assert stats.successful_fetches + stats.failed_fetches == stats.total_articles == 5
        assert stats.failure_reasons == {"HTTP_4XX": 1, "HTTP_5XX": 1, "INVALID_URL": 1}

    async def test_extraction_error_becomes_failed_result(self) -> None:
        fetcher, client = _fetcher(_InFlightCounter(delay=0))
        with patch(
            "article_harvester.scraper.scheduler.extract_article",
            side_effect=RuntimeError("parser exploded"),
        ):
            async with client:
                result = await fetcher.fetch_article("https://example.com/a")

        assert result.error is not None
        assert result.error.code == ErrorCode.EXTRACTION_FAILED.value
        assert result.error.status_code == 200


# ---------------------------------------------------------------------------
# Progress, raw HTML and timing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestProgressAndOptions:
    async def test_progress_fires_once_per_url(self) -> None:
        calls: list[tuple[int, int, str]] = []

        def on_progress(completed: int, total: int, result: ArticleContentResult) -> None:
            calls.append((completed, total, result.url))

        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404) if request.url.path == "/bad" else _ok()

        fetcher, client = _fetcher(handler)
        urls = ["https://example.com/1", "https://example.com/bad", "https://example.com/3"]
        async with client:
            await fetcher.fetch_batch(urls, FetchOptions(on_progress=on_progress))

        assert sorted(c[0] for c in calls) == [1, 2, 3]
        assert {c[1] for c in calls} == {3}
        assert sorted(c[2] for c in calls) == sorted(urls)

    async def test_progress_callback_errors_do_not_abort(self) -> None:
        def on_progress(completed: int, total: int, result: ArticleContentResult) -> None:
            raise RuntimeError("observer bug")

        fetcher, client = _fetcher(_InFlightCounter(delay=0))
        async with client:
            batch = await fetcher.fetch_batch(
                ["https://example.com/1", "https://example.com/2"],
                FetchOptions(on_progress=on_progress),
            )

        assert batch.stats.successful_fetches == 2

    async def test_include_raw_html(self) -> None:
        fetcher, client = _fetcher(_InFlightCounter(delay=0))
        async with client:
            with_html = await fetcher.fetch_article(
                "https://example.com/a", FetchOptions(include_raw_html=True)
            )
            without_html = await fetcher.fetch_article("https://example.com/a")

        assert with_html.content is not None and with_html.content.raw_html == _HTML
        assert without_html.content is not None and without_html.content.raw_html is None

    async def test_timing_recorded(self) -> None:
        fetcher, client = _fetcher(_InFlightCounter(delay=0.01))
        async with client:
            result = await fetcher.fetch_article("https://example.com/a")

        timing = result.timing
        assert timing.fetch_time > 0
        assert timing.parse_time > 0
        assert timing.total_time >= timing.fetch_time

    async def test_fetch_many_returns_list(self) -> None:
        fetcher, client = _fetcher(_InFlightCounter(delay=0))
        async with client:
            results = await fetcher.fetch_many(["https://example.com/1", "https://example.com/2"])

        assert [r.url for r in results] == ["https://example.com/1", "https://example.com/2"]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def _fast_or_hang(request: httpx.Request) -> httpx.Response:
    if request.url.path.startswith("/slow"):
        await asyncio.sleep(60)
    return _ok()


@pytest.mark.asyncio
class TestCancellation:
    async def test_cancel_event_keeps_completed_results(self) -> None:
        cancel = asyncio.Event()
        fetcher, client = _fetcher(_fast_or_hang)
        urls = ["https://example.com/fast0", "https://example.com/slow1", "https://example.com/fast2"]

        def on_progress(completed: int, total: int, result: ArticleContentResult) -> None:
            if completed == 2:
                cancel.set()

        started = time.perf_counter()
        async with client:
            batch = await fetcher.fetch_batch(
                urls,
                FetchOptions(max_concurrency=3, cancel_event=cancel, on_progress=on_progress),
            )

        assert time.perf_counter() - started < 30
        fast0, slow1, fast2 = batch.results
        assert fast0.success and fast2.success
        assert slow1.error is not None
        assert slow1.error.code == ErrorCode.CANCELED.value
        assert [r.url for r in batch.results] == urls
        assert batch.stats.failure_reasons == {ErrorCode.CANCELED.value: 1}
        assert batch.stats.total_articles == 3

    async def test_deadline_cancels_pending_urls(self) -> None:
        fetcher, client = _fetcher(_fast_or_hang)
        urls = [
            "https://example.com/slow0",
            "https://example.com/slow1",
            "https://example.com/fast2",
        ]
        started = time.perf_counter()
        async with client:
            batch = await fetcher.fetch_batch(
                urls, FetchOptions(max_concurrency=2, deadline=0.2)
            )

        assert time.perf_counter() - started < 30
        codes = [r.error.code if r.error else None for r in batch.results]
        # Both slots are held by hanging URLs, so the fast one never starts.
        assert codes == [ErrorCode.CANCELED.value] * 3
        assert batch.stats.failed_fetches == 3

    async def test_invalid_deadline_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            await ContentFetcher().fetch_batch(["https://example.com"], FetchOptions(deadline=0))

    async def test_caller_cancellation_propagates(self) -> None:
        fetcher, client = _fetcher(_fast_or_hang)
        async with client:
            task = asyncio.create_task(fetcher.fetch_batch(["https://example.com/slow"]))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
