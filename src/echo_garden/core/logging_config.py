"""Structured logging configuration for Echo Garden using structlog.

``configure_logging()`` is called once by the API factory and once by the
Celery app.  Afterwards modules log through either API:

Stdlib::

    import logging
    logger = logging.getLogger(__name__)
    logger.info("trending_recompute_failed", extra={"clip_id": str(clip_id)})

Structlog::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("feed_assembled", returned=12, viewer="anonymous")

Device identifiers are the platform's only proof of identity, so they are
masked before any renderer sees them, alongside the usual secret-bearing keys.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

# ---------------------------------------------------------------------------
# Request correlation
# ---------------------------------------------------------------------------

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID set by the HTTP middleware in ``api/main.py``."""


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------

_MASKED_SUBSTRINGS: frozenset[str] = frozenset({
    "device_id",
    "x-device-id",
    "password",
    "secret",
    "token",
    "authorization",
    "cookie",
    "ip_address",
    "x-forwarded-for",
})
"""Lower-cased key fragments whose values are replaced before rendering."""

_MASK = "[REDACTED]"


def _is_masked(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _MASKED_SUBSTRINGS)


def _mask_identifiers(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask device ids, client addresses and secrets in the event dict.

    Top-level keys are checked, plus one level of nested dicts so that a
    ``headers={...}`` payload is covered too.
    """
    for key, value in list(event_dict.items()):
        if _is_masked(key):
            event_dict[key] = _MASK
        elif isinstance(value, dict):
            event_dict[key] = {
                k: (_MASK if _is_masked(str(k)) else v) for k, v in value.items()
            }
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Copy the request id from :data:`request_id_var` when it is not bound yet."""
    rid = request_id_var.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    return event_dict


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one structlog formatter.

    Non-DEBUG levels render newline-delimited JSON.  ``DEBUG`` switches to
    the coloured console renderer for local development.  Every record gets
    ``timestamp``, ``level``, ``logger`` and, inside a request, ``request_id``;
    fields passed through stdlib ``extra=`` are rendered alongside them.

    Safe to call repeatedly; existing root handlers are replaced.

    Args:
        log_level: ``"DEBUG"``, ``"INFO"``, ``"WARNING"``, ``"ERROR"`` or
            ``"CRITICAL"`` (case-insensitive).  Unknown values fall back to INFO.
    """
    level_name = log_level.upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    console = level_name == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.ExtraAdder(),
        _inject_request_id,
        _mask_identifiers,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if console:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not console:
        for chatty in ("uvicorn.access", "celery.app.trace", "httpx"):
            logging.getLogger(chatty).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
