"""Process logging for Tempo.

Every module logs through ``logging.getLogger(__name__)``; this module
routes those records through structlog so each line carries the owner the
current workflow acts for and the active trace/span ids.  The console
renders ``text`` (coloured, for local runs) or ``json``; the optional file
sink under ``log_root`` is always JSON.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

_owner_context: ContextVar[str | None] = ContextVar("tempo_owner", default=None)

_NOISE_LOGGERS = ("httpx", "httpcore", "asyncio")

_LOG_FILE_NAME = "tempo.log"

_NO_TRACE = "0" * 32
_NO_SPAN = "0" * 16


def set_owner_context(owner_id: str | None) -> None:
    """Attribute log lines in the current task to *owner_id*."""
    _owner_context.set(owner_id)


def get_owner_context() -> str | None:
    return _owner_context.get()


def add_owner_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    event_dict["owner"] = _owner_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Stamp ``trace_id``/``span_id``; zeroed when no span is recording."""
    ctx = trace.get_current_span().get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = _NO_TRACE
        event_dict["span_id"] = _NO_SPAN
    return event_dict


def _pre_chain(time_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_owner_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    renderer: structlog.types.Processor, time_fmt: str
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_pre_chain(time_fmt),
    )


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
    owner_id: str | None = None,
) -> None:
    """Install Tempo's handlers on the root logger.

    Safe to call more than once; earlier handlers are replaced.

    Parameters
    ----------
    level:
        Root level name, e.g. ``"DEBUG"``.  Unknown names fall back to INFO.
    fmt:
        ``"json"`` for JSON lines on stderr, anything else for console text.
    log_root:
        When set, ``{log_root}/tempo.log`` also receives JSON records at
        DEBUG and above.  The directory is created if missing.
    owner_id:
        Default owner for processes that serve a single user.
    """
    if owner_id:
        set_owner_context(owner_id)

    if fmt == "json":
        time_fmt = "iso"
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        time_fmt = "%H:%M:%S"
        renderer = structlog.dev.ConsoleRenderer()

    root = logging.getLogger()
    for old in root.handlers:
        old.close()
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(renderer, time_fmt))
    root.addHandler(console)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_root is not None:
        log_dir = Path(log_root)
        log_dir.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_dir / _LOG_FILE_NAME)
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(_formatter(structlog.processors.JSONRenderer(), "iso"))
        root.addHandler(sink)

    structlog.configure(
        processors=[
            *_pre_chain(time_fmt),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
