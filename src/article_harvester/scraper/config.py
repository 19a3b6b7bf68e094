"""Constants and tuning parameters for the fetch-and-extract pipeline."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fetch defaults
# ---------------------------------------------------------------------------

#: Default number of fetch-and-extract operations in flight per batch.
DEFAULT_CONCURRENCY_LIMIT: int = 5

#: Default per-attempt HTTP timeout in seconds.
DEFAULT_TIMEOUT: float = 10.0

#: Default number of retries after the first attempt.
DEFAULT_MAX_RETRIES: int = 2

#: Base delay (seconds) before the first retry.
DEFAULT_RETRY_DELAY: float = 1.0

#: Each subsequent retry waits ``multiplier`` times longer than the previous one.
DEFAULT_BACKOFF_MULTIPLIER: float = 2.0

#: Upper bound (seconds) on a single inter-attempt delay.
DEFAULT_MAX_RETRY_DELAY: float = 30.0

DEFAULT_MAX_REDIRECTS: int = 5

#: Responses larger than this (bytes) are rejected with ``CONTENT_TOO_LARGE``.
DEFAULT_MAX_CONTENT_LENGTH: int = 1024 * 1024  # 1 MiB

#: Timeout (seconds) for fetching robots.txt; shorter than page fetches.
ROBOTS_TIMEOUT: float = 5.0

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: User-agent string sent with every HTTP request unless overridden.
USER_AGENT: str = "ArticleHarvester/0.1 (+https://github.com/article-harvester)"

#: Headers sent with every page request; ``User-Agent`` and custom headers
#: are merged over these.
DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

#: Content-Type prefixes that indicate binary/non-text resources that should
#: be rejected without attempting extraction.
BINARY_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/octet-stream",
        "application/x-executable",
        "application/vnd.",
        "image/",
        "video/",
        "audio/",
        "font/",
    }
)

#: robots.txt user-agent token to check against.
ROBOTS_USER_AGENT: str = "ArticleHarvester"

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

#: Maximum extracted text size (bytes); longer text is truncated.
MAX_CONTENT_BYTES: int = 900 * 1024

#: Readability output is accepted only at or above this confidence.
READABILITY_MIN_CONFIDENCE: float = 0.5

#: Readability confidence saturates at this many characters of text.
READABILITY_FULL_CONFIDENCE_CHARS: int = 1000

#: Readability output shorter than this is discarded outright.
READABILITY_MIN_TEXT_CHARS: int = 200

#: The structured-parser tier is accepted when it yields at least this much text.
MIN_PARSER_TEXT_CHARS: int = 100

#: Structured-parser confidence saturates at this many characters of text.
PARSER_FULL_CONFIDENCE_CHARS: int = 800

#: Fallback confidence saturates at this many characters of text.
FALLBACK_FULL_CONFIDENCE_CHARS: int = 500

PARSER_MAX_CONFIDENCE: float = 0.75
FALLBACK_MAX_CONFIDENCE: float = 0.3

#: Elements removed before the fallback looks for the longest text block.
BOILERPLATE_TAGS: tuple[str, ...] = (
    "script", "style", "noscript", "template", "nav", "header", "footer", "aside", "form",
)

#: Containers commonly holding the article body, tried in order by the fallback.
CONTENT_SELECTORS: tuple[str, ...] = (
    "article",
    '[role="main"]',
    ".article-body",
    ".post-content",
    ".entry-content",
    ".story-body",
    ".article-content",
    ".content",
    "main",
)

#: Paragraphs shorter than this are ignored by the paragraph fallback.
MIN_PARAGRAPH_CHARS: int = 50

#: A candidate block shorter than this sends the fallback to the paragraph scan.
MIN_BLOCK_CHARS: int = 200

TITLE_SELECTORS: str = "h1, .title, .headline, .article-title"
AUTHOR_SELECTORS: str = '.author, .byline, [rel="author"], .writer'

# ---------------------------------------------------------------------------
# Quality score weights (sum to 1.0)
# ---------------------------------------------------------------------------

QUALITY_WEIGHT_WORDS: float = 0.35
QUALITY_WEIGHT_TITLE: float = 0.1
QUALITY_WEIGHT_AUTHOR: float = 0.1
QUALITY_WEIGHT_DATE: float = 0.1
QUALITY_WEIGHT_CONFIDENCE: float = 0.25
QUALITY_WEIGHT_NO_PAYWALL: float = 0.1

#: Word count at which the word-adequacy component saturates.
QUALITY_TARGET_WORDS: int = 600

# ---------------------------------------------------------------------------
# Paywall detection
# ---------------------------------------------------------------------------

#: Extracted text below this fraction of the raw HTML size counts as truncated.
PAYWALL_TEXT_RATIO: float = 0.05

#: Extracted text with at least this many words never counts as truncated.
PAYWALL_MIN_WORDS: int = 150

#: Class/id substrings used by common paywall and metering products.
PAYWALL_MARKUP_MARKERS: tuple[str, ...] = (
    "paywall",
    "regwall",
    "meteredcontent",
    "subscriber-only",
    "subscribers-only",
    "premium-content",
    "piano-offer",
    "tp-modal",
    "article-locked",
)

#: Phrases (lower-cased) shown to readers who hit a paywall.
PAYWALL_PHRASES: tuple[str, ...] = (
    "subscribe to continue",
    "subscribe to read",
    "subscription required",
    "subscribers only",
    "sign up to continue",
    "register to read",
    "log in to continue reading",
    "unlock this article",
    "subscriber exclusive",
    "already a subscriber",
    "members only",
)

# ---------------------------------------------------------------------------
# Language heuristic
# ---------------------------------------------------------------------------

#: Common function words per language, used when no declared language exists.
LANGUAGE_STOPWORDS: dict[str, tuple[str, ...]] = {
    "en": ("the", "and", "is", "in", "to", "of", "that", "it", "with", "for"),
    "es": ("el", "la", "de", "que", "y", "en", "los", "es", "se", "por"),
    "fr": ("le", "les", "et", "des", "un", "une", "il", "est", "dans", "pour"),
    "de": ("der", "die", "und", "den", "von", "zu", "das", "mit", "sich", "nicht"),
    "da": ("og", "det", "at", "er", "en", "til", "som", "af", "for", "ikke"),
}

#: Minimum distinct stop-word hits before a language is reported.
LANGUAGE_MIN_MATCHES: int = 2
