"""Batch statistics over per-URL results.

:class:`StatsAggregator` is the only shared mutable state of a running
batch; workers fold their result in through :meth:`StatsAggregator.add`.
:func:`aggregate_results` computes the same figures in one pass over a
finished result list.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Iterable

from article_harvester.scraper.models import ArticleContentResult, BatchStats


class StatsAggregator:
    """Running totals for one batch.

    Args:
        total: Number of URLs in the batch.  Reported as ``total_articles``
            regardless of how many results have been added.
    """

    def __init__(self, total: int) -> None:
        self._lock = threading.Lock()
        self._total = total
        self._completed = 0
        self._successful = 0
        self._failed = 0
        self._fetch_time = 0.0
        self._parse_time = 0.0
        self._total_time = 0.0
        self._words = 0
        self._reasons: Counter[str] = Counter()

    @property
    def completed(self) -> int:
        return self._completed

    def add(self, result: ArticleContentResult) -> int:
        """Fold *result* into the totals and return the completed count."""
        with self._lock:
            self._completed += 1
            self._fetch_time += result.timing.fetch_time
            self._parse_time += result.timing.parse_time
            self._total_time += result.timing.total_time
            if result.content is not None:
                self._successful += 1
                self._words += result.content.word_count
            elif result.error is not None:
                self._failed += 1
                self._reasons[result.error.code] += 1
            return self._completed

    def snapshot(self) -> BatchStats:
        """Return a frozen :class:`BatchStats` for the results added so far."""
        with self._lock:
            count = self._completed
            return BatchStats(
                total_articles=self._total,
                successful_fetches=self._successful,
                failed_fetches=self._failed,
                average_fetch_time=self._fetch_time / count if count else 0.0,
                average_parse_time=self._parse_time / count if count else 0.0,
                total_fetch_time=self._total_time,
                total_words=self._words,
                failure_reasons=dict(self._reasons),
            )


def aggregate_results(results: Iterable[ArticleContentResult]) -> BatchStats:
    """Compute :class:`BatchStats` for a complete list of results."""
    results = list(results)
    aggregator = StatsAggregator(total=len(results))
    for result in results:
        aggregator.add(result)
    return aggregator.snapshot()
