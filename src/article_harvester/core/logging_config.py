"""structlog setup shared by the library and the command line.

``configure_logging()`` is called once by the CLI.  Library code logs through
the stdlib (``logging.getLogger(__name__)`` with ``"harvester: ..."``
messages) or through ``structlog.get_logger(__name__)`` with key/value
fields; both end up in the same handler and renderer.

While a batch runs, :func:`batch_context` holds a short batch id in
``batch_id_var`` and every record emitted by the batch's worker tasks
carries it as ``batch_id``.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

batch_id_var: ContextVar[str | None] = ContextVar("batch_id", default=None)
"""Id of the batch currently running in this context, if any."""

#: Event-dict keys containing any of these substrings are masked.  Custom
#: request headers often carry cookies or bearer tokens.
_SENSITIVE_KEY_PARTS: tuple[str, ...] = (
    "authorization",
    "cookie",
    "password",
    "secret",
    "token",
    "api_key",
    "x-api-key",
)

_MASK = "[REDACTED]"

#: Third-party loggers that are too chatty below WARNING.
_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "trafilatura", "readability", "charset_normalizer")


@contextmanager
def batch_context(batch_id: str | None = None) -> Iterator[str]:
    """Bind a batch id for the duration of the ``with`` block.

    Tasks created inside the block copy the context, so worker log records
    are tagged too.
    """
    bid = batch_id or uuid.uuid4().hex[:12]
    token = batch_id_var.set(bid)
    try:
        yield bid
    finally:
        batch_id_var.reset(token)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _is_sensitive(key: object) -> bool:
    lowered = str(key).lower()
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _MASK if _is_sensitive(k) else _mask(v) for k, v in value.items()}
    return value


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask sensitive keys at any depth of the event dict.

    Nested dicts are copied rather than mutated, so a ``headers`` dict the
    caller still holds is left intact.
    """
    for key, value in list(event_dict.items()):
        event_dict[key] = _MASK if _is_sensitive(key) else _mask(value)
    return event_dict


def _add_batch_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    bid = batch_id_var.get()
    if bid is not None:
        event_dict.setdefault("batch_id", bid)
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_batch_id,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO", stream: IO[str] | None = None) -> None:
    """Route stdlib and structlog records through one structlog formatter.

    Records are rendered as one JSON object per line, except at ``DEBUG``
    where the coloured console renderer is used.  Every record has
    ``timestamp``, ``level``, ``logger`` and ``event``; ``batch_id`` is added
    inside a batch.  Calling this again replaces the previous handler.

    Args:
        log_level: ``"DEBUG"``, ``"INFO"``, ``"WARNING"``, ``"ERROR"`` or
            ``"CRITICAL"`` (case-insensitive).  Unknown values mean INFO.
        stream: Where to write.  Defaults to stderr so that JSON written to
            stdout by the CLI stays parseable.
    """
    level_name = log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    debug = level_name == "DEBUG"
    processors = _shared_processors()

    renderer: Processor
    if debug:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None)
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
