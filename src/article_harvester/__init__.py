"""Concurrent article fetching, tiered text extraction and batch statistics.

Typical usage::

    from article_harvester import ContentFetcher, FetchOptions

    batch = await ContentFetcher().fetch_batch(urls, FetchOptions(max_concurrency=3))
"""

from article_harvester.enrichment import (
    ArticlesWithContent,
    ArticleWithContent,
    CandidateArticle,
    enrich_articles,
)
from article_harvester.scraper.models import (
    ArticleContent,
    ArticleContentResult,
    BatchResult,
    BatchStats,
    ErrorCode,
    FetcherConfig,
    FetchOptions,
)
from article_harvester.scraper.scheduler import ContentFetcher

__version__ = "0.1.0"

__all__ = [
    "ArticleContent",
    "ArticleContentResult",
    "ArticlesWithContent",
    "ArticleWithContent",
    "BatchResult",
    "BatchStats",
    "CandidateArticle",
    "ContentFetcher",
    "enrich_articles",
    "ErrorCode",
    "FetcherConfig",
    "FetchOptions",
]
