"""Attach fetched content to candidate articles from a news search API.

Search APIs return article records (url, title, seen date, source country,
and so on).  :func:`enrich_articles` runs the record URLs through a
:class:`~article_harvester.scraper.scheduler.ContentFetcher` and merges each
result back onto the record it came from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from article_harvester.scraper.models import (
    ArticleContent,
    BatchStats,
    FetchFailure,
    FetchOptions,
    FetchTiming,
)
from article_harvester.scraper.scheduler import ContentFetcher


@dataclass(frozen=True)
class CandidateArticle:
    """One article record from a search API.  Only ``url`` is fetched."""

    url: str
    title: str = ""
    seen_date: str = ""
    domain: str = ""
    source_country: str = ""
    source_language: str = ""
    social_image: Optional[str] = None
    tone: Optional[float] = None

    @classmethod
    def from_api(cls, record: Mapping[str, Any]) -> CandidateArticle:
        """Build from a raw API record (``seendate``, ``sourcecountry``, ...).

        Raises:
            ValueError: If the record has no ``url``.
        """
        url = record.get("url")
        if not url:
            raise ValueError("article record has no 'url'")
        tone = record.get("tone")
        return cls(
            url=str(url),
            title=record.get("title") or "",
            seen_date=record.get("seendate") or "",
            domain=record.get("domain") or "",
            source_country=record.get("sourcecountry") or "",
            source_language=record.get("sourcelanguage") or "",
            social_image=record.get("socialimage") or None,
            tone=float(tone) if tone is not None else None,
        )


@dataclass(frozen=True)
class ArticleWithContent:
    """A candidate article plus the outcome of fetching it.

    ``content`` is ``None`` on failure, in which case ``content_error``
    explains why.
    """

    article: CandidateArticle
    content: Optional[ArticleContent]
    content_error: Optional[FetchFailure]
    content_timing: FetchTiming


@dataclass(frozen=True)
class ArticlesWithContent:
    """Enriched articles in input order plus statistics for the fetch."""

    articles: list[ArticleWithContent]
    count: int
    content_stats: BatchStats


async def enrich_articles(
    fetcher: ContentFetcher,
    articles: Sequence[CandidateArticle],
    options: FetchOptions | None = None,
) -> ArticlesWithContent:
    """Fetch content for every article and merge the results back.

    Results are matched by position, so repeated URLs each keep their own
    outcome.

    Args:
        fetcher: Configured content fetcher.
        articles: Candidate articles to enrich.
        options: Per-call fetch options.

    Returns:
        An :class:`ArticlesWithContent` with one entry per input article.
    """
    batch = await fetcher.fetch_batch([article.url for article in articles], options)
    enriched = [
        ArticleWithContent(
            article=article,
            content=result.content,
            content_error=result.error,
            content_timing=result.timing,
        )
        for article, result in zip(articles, batch.results)
    ]
    return ArticlesWithContent(
        articles=enriched,
        count=len(enriched),
        content_stats=batch.stats,
    )
