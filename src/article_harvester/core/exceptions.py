"""Application-wide exception hierarchy for Article Harvester.

All custom exceptions subclass ``HarvesterError``, enabling consistent error
handling and structured logging across the package.

Hierarchy::

    HarvesterError
    ├── ConfigurationError        (also a ValueError)
    └── FetchError                (code, status_code, retryable)

Per-URL failures never escape a batch call: the retry controller converts
every :class:`FetchError` into a failed
:class:`~article_harvester.scraper.models.ArticleContentResult`.  Only
:class:`ConfigurationError` is raised to callers, before any work starts.
"""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all Article Harvester exceptions."""


class ConfigurationError(HarvesterError, ValueError):
    """Raised when a batch is started with invalid options.

    Args:
        message: Human-readable description of the invalid setting.
        field: Name of the offending option, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class FetchError(HarvesterError):
    """Raised by the fetch client when a single attempt fails.

    The retry controller inspects ``retryable`` to decide whether another
    attempt is made.

    Args:
        message: Human-readable description of the failure.
        code: Machine-readable error code (an
            :class:`~article_harvester.scraper.models.ErrorCode` value).
        status_code: HTTP status code, when the failure came from a response.
        retryable: Whether a later attempt could plausibly succeed.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
