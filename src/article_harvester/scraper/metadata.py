"""Page-level metadata: OpenGraph, Twitter cards, ``article:*``, canonical URL.

Also resolves the publish date and language from the sources available for
a page, in a fixed order of preference.
"""

from __future__ import annotations

import re
import urllib.parse
from collections import Counter
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from article_harvester.scraper.config import LANGUAGE_MIN_MATCHES, LANGUAGE_STOPWORDS

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)
_LANG_RE = re.compile(r"^[a-z]{2,3}$")


@dataclass(frozen=True)
class HeadMetadata:
    """Metadata read from a page's ``<head>`` (and ``<html lang>``).

    Dict keys have their ``og:`` / ``twitter:`` / ``article:`` prefix
    stripped.  When a property repeats, the first value wins.
    """

    open_graph: dict[str, str] = field(default_factory=dict)
    twitter_card: dict[str, str] = field(default_factory=dict)
    article: dict[str, str] = field(default_factory=dict)
    canonical_url: str | None = None
    html_lang: str | None = None
    title: str | None = None
    author: str | None = None
    time_datetime: str | None = None


def parse_html(html: str) -> BeautifulSoup:
    """Parse *html* with lxml; malformed or empty input yields an empty tree."""
    return BeautifulSoup(html or "", "lxml")


def _prefixed(soup: BeautifulSoup, prefix: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        key = tag.get("property") or tag.get("name")
        content = tag.get("content")
        if not key or content is None:
            continue
        key = key.strip().lower()
        if key.startswith(prefix):
            values.setdefault(key[len(prefix):], content.strip())
    return values


def extract_head_metadata(soup: BeautifulSoup, url: str) -> HeadMetadata:
    """Collect head metadata from a parsed page.

    Args:
        soup: Parsed document.
        url: Page URL; the canonical link is resolved against it.

    Returns:
        A :class:`HeadMetadata` instance.
    """
    canonical_url: str | None = None
    link = soup.find("link", rel="canonical")
    if link is not None and link.get("href"):
        canonical_url = urllib.parse.urljoin(url, link["href"].strip())

    html_lang: str | None = None
    html_tag = soup.find("html")
    if html_tag is not None and html_tag.get("lang"):
        html_lang = normalize_language(html_tag["lang"])

    title: str | None = None
    if soup.title is not None and soup.title.string:
        title = soup.title.string.strip() or None

    article = _prefixed(soup, "article:")

    author: str | None = None
    author_tag = soup.find("meta", attrs={"name": "author"})
    if author_tag is not None and author_tag.get("content"):
        author = author_tag["content"].strip() or None
    if author is None:
        # article:author is often a profile URL rather than a name.
        candidate = article.get("author")
        if candidate and not candidate.startswith(("http://", "https://")):
            author = candidate

    time_datetime: str | None = None
    time_tag = soup.find("time", attrs={"datetime": True})
    if time_tag is not None:
        time_datetime = time_tag["datetime"].strip() or None

    return HeadMetadata(
        open_graph=_prefixed(soup, "og:"),
        twitter_card=_prefixed(soup, "twitter:"),
        article=article,
        canonical_url=canonical_url,
        html_lang=html_lang,
        title=title,
        author=author,
        time_datetime=time_datetime,
    )


def resolve_publish_date(head: HeadMetadata, extracted_date: str | None = None) -> str | None:
    """Pick the publish date in order of preference.

    ``article:published_time``, ``og:published_time``,
    ``article:modified_time``, ``og:updated_time``, then the date found by
    the extraction tier, then the first ``<time datetime>`` in the page.
    """
    candidates = (
        head.article.get("published_time"),
        head.open_graph.get("published_time"),
        head.article.get("modified_time"),
        head.open_graph.get("updated_time"),
        extracted_date,
        head.time_datetime,
    )
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def normalize_language(code: str | None) -> str | None:
    """Reduce ``en-US`` / ``EN_gb`` style tags to a lower-case primary subtag."""
    if not code:
        return None
    primary = re.split(r"[-_]", code.strip().lower(), maxsplit=1)[0]
    return primary if _LANG_RE.match(primary) else None


def guess_language(text: str) -> str | None:
    """Guess the language of *text* from common stop words.

    Returns ``None`` unless some language has at least
    ``LANGUAGE_MIN_MATCHES`` distinct stop words present.
    """
    counts = Counter(word.lower() for word in _WORD_RE.findall(text))
    if not counts:
        return None

    best: str | None = None
    best_hits = 0
    for language, stopwords in LANGUAGE_STOPWORDS.items():
        distinct = sum(1 for word in stopwords if counts[word])
        if distinct < LANGUAGE_MIN_MATCHES:
            continue
        hits = sum(counts[word] for word in stopwords)
        if hits > best_hits:
            best, best_hits = language, hits
    return best


def detect_language(
    html_lang: str | None,
    declared: str | None,
    text: str,
) -> str | None:
    """Return ``<html lang>``, else the extractor's language, else a guess."""
    return html_lang or normalize_language(declared) or guess_language(text)
