"""Async HTTP fetcher with robots.txt support and outcome classification.

Uses ``httpx`` for all HTTP requests.  :func:`fetch_url` performs exactly one
attempt and never raises for network or HTTP failures; instead the returned
:class:`FetchResult` carries an ``error_code`` and a ``retryable`` flag that
the retry controller in :mod:`article_harvester.scraper.retry` acts on.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
import urllib.robotparser
from dataclasses import dataclass

import httpx

from article_harvester.scraper.config import (
    BINARY_CONTENT_TYPES,
    DEFAULT_HEADERS,
    ROBOTS_TIMEOUT,
    ROBOTS_USER_AGENT,
)
from article_harvester.scraper.models import ErrorCode, FetcherConfig

logger = logging.getLogger(__name__)

RobotsCache = dict[str, "urllib.robotparser.RobotFileParser | None"]
"""Per-batch cache of parsed robots.txt files keyed by origin.  ``None``
records an unreachable robots.txt (treated as allow-all)."""


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Result of a single HTTP fetch attempt.

    Attributes:
        html: Decoded response body, or ``None`` if the attempt failed.
        status_code: HTTP status code, or ``None`` on network error.
        final_url: URL after following redirects.
        error: Human-readable error description, or ``None`` on success.
        error_code: :class:`ErrorCode` value, or ``None`` on success.
        retryable: ``True`` if a later attempt could plausibly succeed.
    """

    html: str | None
    status_code: int | None
    final_url: str | None
    error: str | None = None
    error_code: str | None = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.html is not None


def _failure(
    url: str,
    error: str,
    code: ErrorCode,
    *,
    retryable: bool = False,
    status_code: int | None = None,
) -> FetchResult:
    return FetchResult(
        html=None,
        status_code=status_code,
        final_url=url,
        error=error,
        error_code=code.value,
        retryable=retryable,
    )


# ---------------------------------------------------------------------------
# Request headers
# ---------------------------------------------------------------------------


def build_request_headers(config: FetcherConfig) -> dict[str, str]:
    """Return the headers sent with every page request for *config*."""
    headers = dict(DEFAULT_HEADERS)
    headers["User-Agent"] = config.user_agent
    headers.update(config.custom_headers)
    return headers


# ---------------------------------------------------------------------------
# robots.txt helpers
# ---------------------------------------------------------------------------


async def _load_robots(
    origin: str,
    client: httpx.AsyncClient,
    user_agent: str,
) -> urllib.robotparser.RobotFileParser | None:
    """Fetch and parse ``<origin>/robots.txt``; ``None`` when unavailable."""
    robots_url = f"{origin}/robots.txt"
    try:
        response = await client.get(
            robots_url,
            timeout=ROBOTS_TIMEOUT,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )
    except httpx.HTTPError as exc:
        logger.debug("harvester: robots.txt fetch failed for %s: %s, allowing", origin, exc)
        return None

    if response.status_code >= 400:
        return None

    parser = urllib.robotparser.RobotFileParser()
    parser.set_url(robots_url)
    parser.parse(response.text.splitlines())
    return parser


async def is_allowed_by_robots(
    url: str,
    *,
    client: httpx.AsyncClient,
    robots_cache: RobotsCache,
    user_agent: str,
) -> bool:
    """Return ``True`` if the URL is allowed by the site's robots.txt.

    Results are cached in ``robots_cache`` keyed by origin (scheme + host).
    On any network error or error status the URL is considered allowed
    (fail-open).

    Args:
        url: Target URL.
        client: Client used to fetch robots.txt.
        robots_cache: Mutable per-batch cache.
        user_agent: Identity string sent when fetching robots.txt.

    Returns:
        ``True`` if allowed (or if robots.txt is unavailable), ``False`` if
        disallowed.
    """
    parsed = urllib.parse.urlparse(url)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    if origin not in robots_cache:
        robots_cache[origin] = await _load_robots(origin, client, user_agent)

    parser = robots_cache[origin]
    if parser is None:
        return True
    return parser.can_fetch(ROBOTS_USER_AGENT, url)


# ---------------------------------------------------------------------------
# Binary content-type check
# ---------------------------------------------------------------------------


def _is_binary_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type indicates a non-text binary resource."""
    ct = content_type.lower().split(";")[0].strip()
    return any(ct.startswith(prefix) for prefix in BINARY_CONTENT_TYPES)


# ---------------------------------------------------------------------------
# Public fetch function
# ---------------------------------------------------------------------------


async def fetch_url(
    url: str,
    *,
    client: httpx.AsyncClient,
    config: FetcherConfig,
    robots_cache: RobotsCache | None = None,
) -> FetchResult:
    """Perform one GET attempt for *url* and classify the outcome.

    Performs the following steps in order:

    1. **robots.txt**: when ``config.respect_robots_txt`` is set, the
       origin's robots.txt is consulted (cached per batch).
    2. **HTTP GET**: sends the configured headers, bounded by
       ``config.timeout`` for the whole attempt.
    3. **Status**: 5xx is retryable, 4xx is not.
    4. **Content checks**: binary content types and bodies above
       ``config.max_content_length`` are rejected.

    Args:
        url: Target URL to fetch.
        client: Shared :class:`httpx.AsyncClient` instance.
        config: Fetcher configuration.
        robots_cache: Per-batch robots.txt cache; required when robots.txt
            is respected.

    Returns:
        A :class:`FetchResult` instance.
    """
    # 1. robots.txt check
    if config.respect_robots_txt:
        allowed = await is_allowed_by_robots(
            url,
            client=client,
            robots_cache=robots_cache if robots_cache is not None else {},
            user_agent=config.user_agent,
        )
        if not allowed:
            logger.info("harvester: robots.txt disallows %s", url)
            return _failure(url, "robots.txt disallowed", ErrorCode.ROBOTS_DISALLOWED)

    # 2. HTTP GET
    try:
        response = await asyncio.wait_for(
            client.get(
                url,
                timeout=config.timeout,
                follow_redirects=config.follow_redirects,
                headers=build_request_headers(config),
            ),
            timeout=config.timeout,
        )
    except (httpx.TimeoutException, asyncio.TimeoutError):
        logger.warning("harvester: timeout fetching %s", url)
        return _failure(url, "timeout", ErrorCode.TIMEOUT, retryable=True)
    except httpx.TooManyRedirects:
        logger.warning("harvester: too many redirects for %s", url)
        return _failure(url, "too many redirects", ErrorCode.TOO_MANY_REDIRECTS)
    except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
        return _failure(url, f"invalid url: {exc}", ErrorCode.INVALID_URL)
    except httpx.RequestError as exc:
        logger.warning("harvester: request error for %s: %s", url, exc)
        return _failure(
            url, f"request error: {exc}", ErrorCode.NETWORK_ERROR, retryable=True
        )

    final_url = str(response.url)
    status = response.status_code

    # 3. HTTP error status
    if status >= 500:
        logger.info("harvester: HTTP %d for %s", status, url)
        return _failure(
            final_url, f"HTTP {status}", ErrorCode.HTTP_5XX,
            retryable=True, status_code=status,
        )
    if status >= 400:
        logger.info("harvester: HTTP %d for %s", status, url)
        return _failure(final_url, f"HTTP {status}", ErrorCode.HTTP_4XX, status_code=status)

    # 4. Content checks
    content_type = response.headers.get("content-type", "")
    if _is_binary_content_type(content_type):
        logger.info("harvester: skipping binary content-type '%s' for %s", content_type, url)
        return _failure(
            final_url, f"binary content-type: {content_type}",
            ErrorCode.UNSUPPORTED_CONTENT, status_code=status,
        )

    if len(response.content) > config.max_content_length:
        return _failure(
            final_url,
            f"response body of {len(response.content)} bytes exceeds "
            f"{config.max_content_length}",
            ErrorCode.CONTENT_TOO_LARGE,
            status_code=status,
        )

    try:
        html = response.text
    except (UnicodeDecodeError, LookupError) as exc:
        logger.warning("harvester: decode error for %s: %s", url, exc)
        return _failure(
            final_url, f"decode error: {exc}", ErrorCode.UNSUPPORTED_CONTENT, status_code=status
        )

    return FetchResult(html=html, status_code=status, final_url=final_url)
