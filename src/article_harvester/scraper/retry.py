"""Per-URL fetch loop: URL and domain checks, rate limiting, retries, backoff.

:func:`fetch_with_retry` is the only entry point used by the scheduler.  It
never raises for a per-URL problem; the terminal outcome is either a
:class:`FetchedPage` or a :class:`~article_harvester.scraper.models.FetchFailure`.

Backoff
-------
The delay before retry *k* (1-based) is::

    min(max_retry_delay, retry_delay * backoff_multiplier ** (k - 1) * (1 + jitter))

where ``jitter`` is drawn from ``[0, retry_jitter)``.  Delays never decrease
from one retry to the next, even with jitter applied.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import urllib.parse
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

import httpx

from article_harvester.core.exceptions import FetchError
from article_harvester.scraper.http_fetcher import RobotsCache, fetch_url
from article_harvester.scraper.models import (
    ErrorCode,
    FetchAttempt,
    FetcherConfig,
    FetchFailure,
    FetchRequest,
)
from article_harvester.scraper.rate_limiter import DomainRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedPage:
    """A successfully fetched page.

    Attributes:
        html: Decoded response body.
        status_code: Final HTTP status.
        final_url: URL after redirects.
        fetch_time: Milliseconds spent in the retry loop, backoff included.
        retry_count: Retries performed before the successful attempt.
        attempts: One record per attempt, in order.
    """

    html: str
    status_code: int
    final_url: str
    fetch_time: float
    retry_count: int
    attempts: tuple[FetchAttempt, ...] = ()


# ---------------------------------------------------------------------------
# Pre-flight checks
# ---------------------------------------------------------------------------


def host_matches(host: str, domains: Iterable[str]) -> bool:
    """Return ``True`` if *host* equals, or is a subdomain of, any entry.

    Comparison is case-insensitive; a leading ``www.`` or ``.`` on an entry
    is not special.
    """
    host = host.lower().rstrip(".")
    for entry in domains:
        entry = entry.lower().strip().rstrip(".")
        if not entry:
            continue
        if host == entry or host.endswith("." + entry):
            return True
    return False


def check_url(request: FetchRequest) -> str:
    """Validate *request* before any network call and return its host.

    Raises:
        FetchError: ``INVALID_URL`` for a URL without an http(s) scheme or
            host; ``DOMAIN_NOT_ALLOWED`` when the host is outside a
            non-empty allow-list or inside the skip list.
    """
    try:
        parsed = urllib.parse.urlparse(request.url.strip())
        host = parsed.hostname
    except ValueError as exc:
        raise FetchError(
            f"invalid url: {request.url!r} ({exc})", ErrorCode.INVALID_URL.value
        ) from exc
    if parsed.scheme.lower() not in ("http", "https") or not host:
        raise FetchError(f"invalid url: {request.url!r}", ErrorCode.INVALID_URL.value)

    if request.allowed_domains and not host_matches(host, request.allowed_domains):
        raise FetchError(
            f"domain {host} is not in the allowed domains",
            ErrorCode.DOMAIN_NOT_ALLOWED.value,
        )
    if request.skip_domains and host_matches(host, request.skip_domains):
        raise FetchError(
            f"domain {host} is in the skip list",
            ErrorCode.DOMAIN_NOT_ALLOWED.value,
        )
    return host


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class BackoffSchedule:
    """Stateful delay generator for one URL's retry loop.

    Args:
        config: Supplies ``retry_delay``, ``backoff_multiplier``,
            ``max_retry_delay`` and ``retry_jitter``.
        rng: Returns a float in ``[0, 1)``.  Injected in tests.
    """

    def __init__(
        self,
        config: FetcherConfig,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._config = config
        self._rng = rng
        self._previous = 0.0

    def next_delay(self, retry_number: int) -> float:
        """Return the delay in seconds before retry *retry_number* (1-based)."""
        cfg = self._config
        delay = cfg.retry_delay * cfg.backoff_multiplier ** (retry_number - 1)
        if cfg.retry_jitter:
            delay *= 1 + cfg.retry_jitter * self._rng()
        delay = min(delay, cfg.max_retry_delay)
        delay = max(delay, self._previous)
        self._previous = delay
        return delay


# ---------------------------------------------------------------------------
# Retry loop
# ---------------------------------------------------------------------------


async def _attempt(
    request: FetchRequest,
    client: httpx.AsyncClient,
    robots_cache: RobotsCache | None,
) -> tuple[str, int, str]:
    result = await fetch_url(
        request.url,
        client=client,
        config=request.config,
        robots_cache=robots_cache,
    )
    if not result.ok:
        raise FetchError(
            result.error or "fetch failed",
            result.error_code or ErrorCode.NETWORK_ERROR.value,
            status_code=result.status_code,
            retryable=result.retryable,
        )
    return result.html or "", result.status_code or 200, result.final_url or request.url


async def fetch_with_retry(
    request: FetchRequest,
    client: httpx.AsyncClient,
    *,
    rate_limiter: DomainRateLimiter | None = None,
    robots_cache: RobotsCache | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> FetchedPage | FetchFailure:
    """Fetch one URL, retrying transient failures with backoff.

    Rejected URLs (invalid, outside the allow-list, skipped) fail immediately
    with ``retry_count == 0`` and no network call.  Otherwise at most
    ``config.max_retries + 1`` attempts are made; only ``TIMEOUT``,
    ``NETWORK_ERROR`` and ``HTTP_5XX`` outcomes are retried.

    Args:
        request: The URL and its resolved options.
        client: Shared HTTP client for the batch.
        rate_limiter: Optional per-domain limiter awaited before every attempt.
        robots_cache: Per-batch robots.txt cache.
        sleep: Coroutine used for backoff waits.  Injected in tests.
        rng: Jitter source.  Injected in tests.

    Returns:
        A :class:`FetchedPage` on success, otherwise a :class:`FetchFailure`.
    """
    try:
        host = check_url(request)
    except FetchError as exc:
        logger.info("harvester: rejected %s: %s", request.url, exc.message)
        return FetchFailure(message=exc.message, code=exc.code, retry_count=0)

    config = request.config
    backoff = BackoffSchedule(config, rng=rng)
    attempts: list[FetchAttempt] = []
    retries = 0
    started = time.perf_counter()

    while True:
        if rate_limiter is not None:
            await rate_limiter.wait_for_slot(host)

        attempt_started = time.perf_counter()
        try:
            html, status_code, final_url = await _attempt(request, client, robots_cache)
        except FetchError as exc:
            attempts.append(
                FetchAttempt(len(attempts) + 1, attempt_started, time.perf_counter(), exc.code)
            )
            if not exc.retryable or retries >= config.max_retries:
                logger.info(
                    "harvester: giving up on %s after %d attempt(s): %s",
                    request.url,
                    len(attempts),
                    exc.message,
                )
                return FetchFailure(
                    message=exc.message,
                    code=exc.code,
                    status_code=exc.status_code,
                    retry_count=retries,
                )

            retries += 1
            delay = backoff.next_delay(retries)
            logger.debug(
                "harvester: retry %d/%d for %s in %.2fs (%s)",
                retries,
                config.max_retries,
                request.url,
                delay,
                exc.code,
            )
            if delay > 0:
                await sleep(delay)
            continue

        attempts.append(
            FetchAttempt(len(attempts) + 1, attempt_started, time.perf_counter(), "ok")
        )
        return FetchedPage(
            html=html,
            status_code=status_code,
            final_url=final_url,
            fetch_time=(time.perf_counter() - started) * 1000,
            retry_count=retries,
            attempts=tuple(attempts),
        )
