"""Factory Boy factories for search-API article records.

Usage::

    from tests.factories.articles import ApiArticleRecordFactory

    record = ApiArticleRecordFactory.build(url="https://example.com/a")
    article = CandidateArticle.from_api(record)
"""

from __future__ import annotations

import factory


class ApiArticleRecordFactory(factory.Factory):
    """Factory for raw article record dicts as returned by a news search API.

    Field names follow the API's lower-case spelling (``seendate``,
    ``sourcecountry``) which :meth:`CandidateArticle.from_api` maps.
    """

    class Meta:
        model = dict

    url = factory.Sequence(lambda n: f"https://news.example.com/story/{n}")
    title = factory.Sequence(lambda n: f"Story number {n}")
    seendate = "20240305T083000Z"
    domain = "news.example.com"
    sourcecountry = "Denmark"
    sourcelanguage = "Danish"
    socialimage = factory.Sequence(lambda n: f"https://news.example.com/img/{n}.jpg")
    tone = -1.25
