"""Article extraction from raw HTML.

Three tiers are tried in order and the first acceptable one wins:

1. ``readability`` (readability-lxml), accepted when its confidence reaches
   ``READABILITY_MIN_CONFIDENCE``.
2. ``article-parser`` (trafilatura), accepted when it yields at least
   ``MIN_PARSER_TEXT_CHARS`` characters.
3. ``fallback`` (BeautifulSoup), the longest text block left after removing
   boilerplate.  Always succeeds, also for empty or malformed markup.

:func:`extract_article` is pure and never raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import trafilatura  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from readability import Document  # type: ignore[import-untyped]

from article_harvester.scraper.config import (
    AUTHOR_SELECTORS,
    BOILERPLATE_TAGS,
    CONTENT_SELECTORS,
    FALLBACK_FULL_CONFIDENCE_CHARS,
    FALLBACK_MAX_CONFIDENCE,
    MAX_CONTENT_BYTES,
    MIN_BLOCK_CHARS,
    MIN_PARAGRAPH_CHARS,
    MIN_PARSER_TEXT_CHARS,
    PARSER_FULL_CONFIDENCE_CHARS,
    PARSER_MAX_CONFIDENCE,
    READABILITY_FULL_CONFIDENCE_CHARS,
    READABILITY_MIN_CONFIDENCE,
    READABILITY_MIN_TEXT_CHARS,
    TITLE_SELECTORS,
)
from article_harvester.scraper.metadata import (
    HeadMetadata,
    detect_language,
    extract_head_metadata,
    parse_html,
    resolve_publish_date,
)
from article_harvester.scraper.models import ArticleContent, ContentMetadata, ExtractionMethod
from article_harvester.scraper.scoring import detect_paywall, quality_score

logger = logging.getLogger(__name__)

_SPACES_RE = re.compile(r"[ \t\r\f\v\u00a0]+")


# ---------------------------------------------------------------------------
# Tier output
# ---------------------------------------------------------------------------


@dataclass
class _TierOutput:
    text: str
    method: ExtractionMethod
    confidence: float
    title: str | None = None
    author: str | None = None


def _confidence(chars: int, full_chars: int, ceiling: float) -> float:
    if full_chars <= 0:
        return ceiling
    return round(ceiling * min(1.0, chars / full_chars), 4)


def _normalise_text(text: str) -> str:
    """Collapse runs of spaces inside lines and drop empty lines."""
    lines = (_SPACES_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _clean_text(text: str, url: str) -> str:
    text = text.replace("\x00", "")
    encoded = text.encode("utf-8")
    if len(encoded) > MAX_CONTENT_BYTES:
        text = encoded[:MAX_CONTENT_BYTES].decode("utf-8", errors="ignore")
        logger.debug("harvester: truncated extracted text to %d bytes for %s", MAX_CONTENT_BYTES, url)
    return text


def _first_text(soup: BeautifulSoup, selectors: str) -> str | None:
    node = soup.select_one(selectors)
    if node is None:
        return None
    return node.get_text(" ", strip=True) or None


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


def _readability_tier(html: str, url: str) -> _TierOutput | None:
    try:
        document = Document(html, url=url)
        summary = document.summary(html_partial=True)
        title = document.short_title()
    except Exception as exc:  # noqa: BLE001
        logger.debug("harvester: readability failed for %s: %s", url, exc)
        return None

    text = _normalise_text(BeautifulSoup(summary or "", "lxml").get_text("\n"))
    if len(text) < READABILITY_MIN_TEXT_CHARS:
        return None

    confidence = _confidence(len(text), READABILITY_FULL_CONFIDENCE_CHARS, 1.0)
    if confidence < READABILITY_MIN_CONFIDENCE:
        return None
    return _TierOutput(
        text=text,
        method=ExtractionMethod.READABILITY,
        confidence=confidence,
        title=title if title and title != "[no-title]" else None,
    )


def _parser_tier(html: str, url: str, parser_meta: Any) -> _TierOutput | None:
    try:
        result = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=True,
            output_format="txt",
        )
    except Exception as exc:  # noqa: BLE001
        logger.debug("harvester: trafilatura extraction failed for %s: %s", url, exc)
        return None

    text = _normalise_text(result or "")
    if len(text) < MIN_PARSER_TEXT_CHARS:
        return None
    return _TierOutput(
        text=text,
        method=ExtractionMethod.ARTICLE_PARSER,
        confidence=_confidence(len(text), PARSER_FULL_CONFIDENCE_CHARS, PARSER_MAX_CONFIDENCE),
        title=getattr(parser_meta, "title", None) or None,
        author=getattr(parser_meta, "author", None) or None,
    )


def _fallback_tier(html: str) -> _TierOutput:
    try:
        soup = parse_html(html)
        title = _first_text(soup, TITLE_SELECTORS)
        author = _first_text(soup, AUTHOR_SELECTORS)

        for tag in soup.find_all(list(BOILERPLATE_TAGS)):
            tag.decompose()

        best = ""
        for selector in CONTENT_SELECTORS:
            for node in soup.select(selector):
                candidate = _normalise_text(node.get_text("\n"))
                if len(candidate) > len(best):
                    best = candidate

        if len(best) < MIN_BLOCK_CHARS:
            paragraphs = [
                p.get_text(" ", strip=True)
                for p in soup.find_all("p")
            ]
            joined = "\n".join(p for p in paragraphs if len(p) >= MIN_PARAGRAPH_CHARS)
            if len(joined) > len(best):
                best = joined

        if not best:
            body = soup.body or soup
            best = _normalise_text(body.get_text("\n"))
    except Exception as exc:  # noqa: BLE001
        logger.debug("harvester: fallback extraction failed: %s", exc)
        return _TierOutput(text="", method=ExtractionMethod.FALLBACK, confidence=0.0)

    return _TierOutput(
        text=best,
        method=ExtractionMethod.FALLBACK,
        confidence=_confidence(len(best), FALLBACK_FULL_CONFIDENCE_CHARS, FALLBACK_MAX_CONFIDENCE),
        title=title,
        author=author,
    )


# ---------------------------------------------------------------------------
# Helpers for the metadata sources
# ---------------------------------------------------------------------------


def _parser_metadata(html: str, url: str) -> Any:
    if not html.strip():
        return None
    try:
        return trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001
        logger.debug("harvester: trafilatura metadata failed for %s: %s", url, exc)
        return None


def _head_metadata(html: str, url: str) -> HeadMetadata:
    try:
        return extract_head_metadata(parse_html(html), url)
    except Exception as exc:  # noqa: BLE001
        logger.debug("harvester: head metadata failed for %s: %s", url, exc)
        return HeadMetadata()


# ---------------------------------------------------------------------------
# Public extraction function
# ---------------------------------------------------------------------------


def extract_article(html: str, url: str) -> ArticleContent:
    """Extract article text and metadata from raw HTML.

    Args:
        html: Raw HTML string (may be empty, partial or malformed).
        url: Page URL, used by the extractors and to resolve the canonical
            link.

    Returns:
        An :class:`ArticleContent` instance.  ``text`` may be empty when the
        page holds no readable content.
    """
    html = html or ""
    head = _head_metadata(html, url)
    parser_meta = _parser_metadata(html, url)

    tier = None
    if html.strip():
        tier = _readability_tier(html, url) or _parser_tier(html, url, parser_meta)
    if tier is None:
        tier = _fallback_tier(html)

    text = _clean_text(tier.text, url)
    word_count = len(text.split())

    title = (
        tier.title
        or head.open_graph.get("title")
        or head.twitter_card.get("title")
        or head.title
        or getattr(parser_meta, "title", None)
        or None
    )
    author = tier.author or head.author or getattr(parser_meta, "author", None) or None
    publish_date = resolve_publish_date(head, getattr(parser_meta, "date", None) or None)
    language = detect_language(head.html_lang, getattr(parser_meta, "language", None), text)

    paywall = detect_paywall(html, text, word_count)
    score = quality_score(
        word_count=word_count,
        has_title=bool(title),
        has_author=bool(author),
        has_date=bool(publish_date),
        confidence=tier.confidence,
        paywall_detected=paywall,
    )

    logger.debug(
        "harvester: extracted %d words from %s via %s (confidence %.2f)",
        word_count,
        url,
        tier.method.value,
        tier.confidence,
    )
    return ArticleContent(
        text=text,
        word_count=word_count,
        metadata=ContentMetadata(
            open_graph=head.open_graph,
            twitter_card=head.twitter_card,
            article=head.article,
            canonical_url=head.canonical_url,
            extraction_method=tier.method,
            extraction_confidence=tier.confidence,
        ),
        paywall_detected=paywall,
        quality_score=score,
        title=title,
        author=author,
        publish_date=publish_date,
        language=language,
    )
