"""Unit tests for quality scoring and paywall detection."""

from __future__ import annotations

import itertools

import pytest

from article_harvester.scraper.scoring import (
    detect_paywall,
    has_paywall_markers,
    quality_score,
)
from tests.factories.pages import build_paywalled_html


def _score(**overrides: object) -> float:
    signals: dict = {
        "word_count": 300,
        "has_title": True,
        "has_author": False,
        "has_date": True,
        "confidence": 0.5,
        "paywall_detected": False,
    }
    signals.update(overrides)
    return quality_score(**signals)


# ---------------------------------------------------------------------------
# quality_score
# ---------------------------------------------------------------------------


class TestQualityScore:
    def test_bounds_over_signal_grid(self) -> None:
        for words, title, author, date, conf, paywall in itertools.product(
            (-5, 0, 50, 600, 10_000),
            (False, True),
            (False, True),
            (False, True),
            (-1.0, 0.0, 0.4, 1.0, 7.0),
            (False, True),
        ):
            score = quality_score(
                word_count=words,
                has_title=title,
                has_author=author,
                has_date=date,
                confidence=conf,
                paywall_detected=paywall,
            )
            assert 0.0 <= score <= 1.0

    def test_perfect_article_scores_one(self) -> None:
        assert _score(word_count=1000, has_author=True, confidence=1.0) == 1.0

    def test_empty_article_scores_low(self) -> None:
        score = _score(
            word_count=0,
            has_title=False,
            has_date=False,
            confidence=0.0,
            paywall_detected=True,
        )
        assert score == 0.0

    def test_monotonic_in_word_count(self) -> None:
        assert _score(word_count=100) <= _score(word_count=200) <= _score(word_count=5000)

    def test_monotonic_in_confidence(self) -> None:
        assert _score(confidence=0.1) <= _score(confidence=0.6) <= _score(confidence=1.0)

    @pytest.mark.parametrize("flag", ["has_title", "has_author", "has_date"])
    def test_presence_flags_raise_score(self, flag: str) -> None:
        assert _score(**{flag: True}) > _score(**{flag: False})

    def test_paywall_lowers_score(self) -> None:
        assert _score(paywall_detected=True) < _score(paywall_detected=False)


# ---------------------------------------------------------------------------
# Paywall detection
# ---------------------------------------------------------------------------


class TestPaywall:
    def test_markup_marker(self) -> None:
        assert has_paywall_markers('<div class="article paywall-gate">x</div>') is True

    def test_phrase_marker(self) -> None:
        assert has_paywall_markers("<p>Subscribe to continue reading</p>") is True

    def test_accessible_for_free_false(self) -> None:
        assert has_paywall_markers('{"isAccessibleForFree": "False"}') is True

    def test_no_markers(self) -> None:
        assert has_paywall_markers("<p>Free news for everyone.</p>") is False
        assert has_paywall_markers("") is False

    def test_teaser_with_markers_detected(self) -> None:
        html = build_paywalled_html()
        assert detect_paywall(html, "Only the first lines.", 4) is True

    def test_full_text_with_marker_not_detected(self) -> None:
        text = "word " * 400
        html = f'<div class="paywall">hidden</div><p>{text}</p>'
        assert detect_paywall(html, text.strip(), 400) is False

    def test_short_text_without_markers_not_detected(self) -> None:
        html = "<script>" + "x" * 20_000 + "</script><p>Short brief.</p>"
        assert detect_paywall(html, "Short brief.", 2) is False

    def test_short_brief_on_light_page_with_markers_not_detected(self) -> None:
        text = " ".join(["Council approves the new harbour bridge budget."] * 14)
        html = (
            "<html><body><article><p>"
            + text
            + "</p></article><aside>Members only: join our club today.</aside></body></html>"
        )
        assert has_paywall_markers(html) is True
        assert detect_paywall(html, text, len(text.split())) is False

    def test_long_text_on_heavy_page_not_detected(self) -> None:
        text = "word " * 200
        html = build_paywalled_html() + "<script>" + "y" * 100_000 + "</script>"
        assert detect_paywall(html, text.strip(), 200) is False
