"""Quality scoring and paywall detection for extracted articles."""

from __future__ import annotations

import re

from article_harvester.scraper.config import (
    PAYWALL_MARKUP_MARKERS,
    PAYWALL_MIN_WORDS,
    PAYWALL_PHRASES,
    PAYWALL_TEXT_RATIO,
    QUALITY_TARGET_WORDS,
    QUALITY_WEIGHT_AUTHOR,
    QUALITY_WEIGHT_CONFIDENCE,
    QUALITY_WEIGHT_DATE,
    QUALITY_WEIGHT_NO_PAYWALL,
    QUALITY_WEIGHT_TITLE,
    QUALITY_WEIGHT_WORDS,
)

_MARKUP_RE = re.compile(
    r"""\b(?:class|id)\s*=\s*["'][^"']*(?:"""
    + "|".join(re.escape(marker) for marker in PAYWALL_MARKUP_MARKERS)
    + r""")""",
    re.IGNORECASE,
)
_NOT_FREE_RE = re.compile(r"""["']?isAccessibleForFree["']?\s*:\s*["']?false""", re.IGNORECASE)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def has_paywall_markers(html: str) -> bool:
    """Return ``True`` if the raw page carries any known paywall signal."""
    if not html:
        return False
    if _MARKUP_RE.search(html) or _NOT_FREE_RE.search(html):
        return True
    lowered = html.lower()
    return any(phrase in lowered for phrase in PAYWALL_PHRASES)


def detect_paywall(html: str, text: str, word_count: int) -> bool:
    """Return ``True`` when the text looks truncated AND paywall markers exist.

    Text counts as truncated when it is shorter than ``PAYWALL_TEXT_RATIO``
    of the raw HTML and also has fewer than ``PAYWALL_MIN_WORDS`` words, so a
    short brief on a light page is never mistaken for a teaser.
    """
    truncated = len(text) < PAYWALL_TEXT_RATIO * len(html) and word_count < PAYWALL_MIN_WORDS
    return truncated and has_paywall_markers(html)


def quality_score(
    *,
    word_count: int,
    has_title: bool,
    has_author: bool,
    has_date: bool,
    confidence: float,
    paywall_detected: bool,
) -> float:
    """Blend extraction signals into a score in ``[0, 1]``.

    The score is non-decreasing in word count, in each presence flag, in
    confidence and in the absence of a paywall.
    """
    words = min(1.0, max(0, word_count) / QUALITY_TARGET_WORDS)
    score = (
        QUALITY_WEIGHT_WORDS * words
        + QUALITY_WEIGHT_TITLE * has_title
        + QUALITY_WEIGHT_AUTHOR * has_author
        + QUALITY_WEIGHT_DATE * has_date
        + QUALITY_WEIGHT_CONFIDENCE * _clamp(confidence)
        + QUALITY_WEIGHT_NO_PAYWALL * (not paywall_detected)
    )
    return round(_clamp(score), 4)
