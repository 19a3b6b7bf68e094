"""Shared pytest fixtures for Article Harvester tests.

Fixture summary
---------------
article_html: A realistic news article page (~700 words, full head metadata).
fast_config: FetcherConfig with zero retry delay so retry tests never sleep.
clear_settings: Clears the ``get_settings`` cache around a test.

No test touches the network: HTTP is mocked with ``respx`` or with an
``httpx.MockTransport`` injected through ``ContentFetcher(http_client=...)``.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from article_harvester.config.settings import get_settings
from article_harvester.scraper.models import FetcherConfig
from tests.factories.pages import build_article_html


@pytest.fixture
def article_html() -> str:
    return build_article_html()


@pytest.fixture
def fast_config() -> FetcherConfig:
    return FetcherConfig(retry_delay=0.0, max_retry_delay=0.0)


@pytest.fixture
def clear_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
