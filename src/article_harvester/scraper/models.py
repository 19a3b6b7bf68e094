"""Value objects shared by the fetch, extract, schedule and aggregate stages.

Configuration is a closed pydantic model validated once at construction;
everything a batch produces is a frozen dataclass.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from article_harvester.scraper.config import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_MAX_CONTENT_LENGTH,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    USER_AGENT,
)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    """Machine-readable failure codes carried by :class:`FetchFailure`.

    Attributes:
        DOMAIN_NOT_ALLOWED: Host rejected by the allow-list or skip list.
        TIMEOUT: An attempt exceeded its timeout.  Retryable.
        NETWORK_ERROR: Connection or transport failure.  Retryable.
        HTTP_4XX: Client-error response.  Not retryable.
        HTTP_5XX: Server-error response.  Retryable.
        EXTRACTION_FAILED: Extraction raised unexpectedly.
        CANCELED: The batch was aborted before this URL finished.
        INVALID_URL: URL has no http(s) scheme or host.
        ROBOTS_DISALLOWED: robots.txt forbids the URL.
        UNSUPPORTED_CONTENT: Response is a binary resource, not a page.
        CONTENT_TOO_LARGE: Response body exceeds ``max_content_length``.
        TOO_MANY_REDIRECTS: Redirect chain longer than ``max_redirects``.
    """

    DOMAIN_NOT_ALLOWED = "DOMAIN_NOT_ALLOWED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    CANCELED = "CANCELED"
    INVALID_URL = "INVALID_URL"
    ROBOTS_DISALLOWED = "ROBOTS_DISALLOWED"
    UNSUPPORTED_CONTENT = "UNSUPPORTED_CONTENT"
    CONTENT_TOO_LARGE = "CONTENT_TOO_LARGE"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"


class ExtractionMethod(str, Enum):
    """Extraction tier that produced an :class:`ArticleContent`."""

    READABILITY = "readability"
    ARTICLE_PARSER = "article-parser"
    FALLBACK = "fallback"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class FetcherConfig(BaseModel):
    """Closed configuration for a :class:`ContentFetcher`.

    Defaults are applied once here; callers never merge option dicts.
    Invalid values raise :class:`pydantic.ValidationError` at construction,
    before any batch can start.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    concurrency_limit: int = Field(default=DEFAULT_CONCURRENCY_LIMIT, ge=1)
    user_agent: str = USER_AGENT
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=1)
    max_retry_delay: float = Field(default=DEFAULT_MAX_RETRY_DELAY, ge=0)
    retry_jitter: float = Field(default=0.0, ge=0, le=1)
    """Fraction of the computed delay added as random jitter."""

    requests_per_second: Optional[int] = Field(default=None, ge=1)
    requests_per_minute: Optional[int] = Field(default=None, ge=1)

    follow_redirects: bool = True
    max_redirects: int = Field(default=DEFAULT_MAX_REDIRECTS, ge=0)
    max_content_length: int = Field(default=DEFAULT_MAX_CONTENT_LENGTH, gt=0)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    respect_robots_txt: bool = False

    allowed_domains: tuple[str, ...] = ()
    """Default host allow-list; empty means every host is allowed."""

    skip_domains: tuple[str, ...] = ()
    """Hosts (and their subdomains) that are never fetched."""


ProgressCallback = Callable[[int, int, "ArticleContentResult"], None]
"""Observer called as ``on_progress(completed, total, result)``."""


@dataclass(frozen=True)
class FetchOptions:
    """Per-call options for a batch.

    Attributes:
        max_concurrency: Overrides ``FetcherConfig.concurrency_limit`` for
            this call.  Must be ``>= 1`` when given.
        allowed_domains: Overrides the configured allow-list when not ``None``.
        skip_domains: Added to the configured skip list.
        on_progress: Called once per completed URL.
        include_raw_html: Attach the fetched HTML to each ``ArticleContent``.
        deadline: Overall batch budget in seconds; unfinished URLs are
            reported as ``CANCELED`` when it expires.
        cancel_event: Setting this event aborts the batch the same way.
    """

    max_concurrency: Optional[int] = None
    allowed_domains: Optional[tuple[str, ...]] = None
    skip_domains: tuple[str, ...] = ()
    on_progress: Optional[ProgressCallback] = None
    include_raw_html: bool = False
    deadline: Optional[float] = None
    cancel_event: Optional[asyncio.Event] = None


@dataclass(frozen=True)
class FetchRequest:
    """One URL plus the options resolved for it at dispatch time."""

    url: str
    config: FetcherConfig
    allowed_domains: tuple[str, ...] = ()
    skip_domains: tuple[str, ...] = ()
    include_raw_html: bool = False


@dataclass(frozen=True)
class FetchAttempt:
    """Record of one attempt inside the retry loop.

    ``outcome`` is ``"ok"`` or the :class:`ErrorCode` value of the failure.
    """

    attempt_number: int
    started_at: float
    ended_at: float
    outcome: str

    @property
    def duration_ms(self) -> float:
        return (self.ended_at - self.started_at) * 1000


# ---------------------------------------------------------------------------
# Extraction output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentMetadata:
    """Head metadata scraped from the page plus extraction provenance.

    Attributes:
        open_graph: ``og:*`` properties with the prefix stripped.
        twitter_card: ``twitter:*`` names with the prefix stripped.
        article: ``article:*`` properties with the prefix stripped.
        canonical_url: Absolute ``<link rel="canonical">`` target, if any.
        extraction_method: Tier that produced the text.
        extraction_confidence: That tier's own signal strength in [0, 1].
    """

    open_graph: dict[str, str] = field(default_factory=dict)
    twitter_card: dict[str, str] = field(default_factory=dict)
    article: dict[str, str] = field(default_factory=dict)
    canonical_url: Optional[str] = None
    extraction_method: ExtractionMethod = ExtractionMethod.FALLBACK
    extraction_confidence: float = 0.0


@dataclass(frozen=True)
class ArticleContent:
    """Structured article content produced once per successful extraction."""

    text: str
    word_count: int
    metadata: ContentMetadata
    paywall_detected: bool
    quality_score: float
    title: Optional[str] = None
    author: Optional[str] = None
    publish_date: Optional[str] = None
    language: Optional[str] = None
    raw_html: Optional[str] = None


# ---------------------------------------------------------------------------
# Per-URL result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchFailure:
    """Terminal error for one URL."""

    message: str
    code: str
    status_code: Optional[int] = None
    retry_count: int = 0


@dataclass(frozen=True)
class FetchTiming:
    """Durations in milliseconds."""

    fetch_time: float = 0.0
    parse_time: float = 0.0
    total_time: float = 0.0


@dataclass(frozen=True)
class ArticleContentResult:
    """Terminal record for one URL: either content or an error, never both.

    Build instances with :meth:`succeeded` or :meth:`failed`.

    Attributes:
        url: The URL as supplied by the caller.
        timing: Fetch, parse and total durations.
        content: Extracted content (successes only).
        error: Failure details (failures only).
        retry_count: Retries performed before the terminal outcome.
    """

    url: str
    timing: FetchTiming
    content: Optional[ArticleContent] = None
    error: Optional[FetchFailure] = None
    retry_count: int = 0

    def __post_init__(self) -> None:
        if (self.content is None) == (self.error is None):
            raise ValueError(
                "ArticleContentResult needs exactly one of 'content' or 'error'"
            )

    @classmethod
    def succeeded(
        cls,
        url: str,
        content: ArticleContent,
        timing: FetchTiming,
        retry_count: int = 0,
    ) -> ArticleContentResult:
        return cls(url=url, timing=timing, content=content, retry_count=retry_count)

    @classmethod
    def failed(
        cls,
        url: str,
        error: FetchFailure,
        timing: FetchTiming | None = None,
    ) -> ArticleContentResult:
        return cls(
            url=url,
            timing=timing or FetchTiming(),
            error=error,
            retry_count=error.retry_count,
        )

    @property
    def success(self) -> bool:
        return self.content is not None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dict (enums rendered as their values)."""
        data = asdict(self)
        data["success"] = self.success
        if self.content is not None:
            data["content"]["metadata"]["extraction_method"] = (
                self.content.metadata.extraction_method.value
            )
        return data


# ---------------------------------------------------------------------------
# Batch output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchStats:
    """Statistics over every result of a batch.

    Times are milliseconds.  Averages are taken over all results, success or
    failure, and are ``0.0`` for an empty batch.
    """

    total_articles: int = 0
    successful_fetches: int = 0
    failed_fetches: int = 0
    average_fetch_time: float = 0.0
    average_parse_time: float = 0.0
    total_fetch_time: float = 0.0
    total_words: int = 0
    failure_reasons: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BatchResult:
    """What a batch call returns: results in input order plus final stats."""

    results: list[ArticleContentResult]
    stats: BatchStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "stats": self.stats.to_dict(),
        }
