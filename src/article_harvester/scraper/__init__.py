"""Fetch-and-extract pipeline for article URLs.

Sub-modules:
- ``config``: constants and tuning parameters
- ``models``: configuration, per-URL results and batch statistics
- ``http_fetcher``: single-attempt async httpx fetcher with robots.txt support
- ``rate_limiter``: in-process per-domain sliding window limiter
- ``retry``: URL/domain checks and the retry loop with backoff
- ``metadata``: OpenGraph, Twitter card, canonical URL, date and language
- ``scoring``: quality score and paywall detection
- ``content_extractor``: readability / trafilatura / BeautifulSoup extraction tiers
- ``aggregator``: batch statistics
- ``scheduler``: ``ContentFetcher``, the bounded-concurrency batch runner
"""
