"""Structured logging setup using structlog.

The same shared processor chain (context vars, log level, timestamps,
stack info) feeds into either a coloured ConsoleRenderer for local
development or a JSONRenderer for production.  The renderer is selected
from the ``APP_ENV`` environment variable (default ``"development"``), or
forced via the ``json_output`` flag.

Two context layers are merged into every event:

    request_id   bound by the HTTP middleware for one API call
    build_id     bound by :func:`deck_build_context` for one deck build,
                 together with build_mode, deck_size, deck_format, colors

so interleaved concurrent builds can be told apart in the log stream.
Free-text deck requests are clipped to ``REQUEST_PREVIEW_CHARS``.

Standard-library ``logging`` is rewired through the same formatter so that
httpx, chromadb and uvicorn log lines look like ours.
"""

import logging
import os
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

import structlog

REQUEST_PREVIEW_CHARS = 200

# Client libraries that log every HTTP call at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "chromadb", "openai", "anthropic")


def _clip_request_text(
    _logger: Any, _method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    text = event_dict.get("request")
    if isinstance(text, str) and len(text) > REQUEST_PREVIEW_CHARS:
        event_dict["request"] = text[:REQUEST_PREVIEW_CHARS] + "..."
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).
        stream: Output stream, stdout by default. The CLI passes stderr so
                deck output on stdout stays clean.

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"
    out = stream or sys.stdout
    level = log_level.upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _clip_request_text,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    if level != "DEBUG":
        for noisy in _NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    # RequestLoggingMiddleware already emits one http_request event per call.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def deck_build_context(
    mode: str,
    deck_size: int,
    deck_format: str,
    colors: list[str] | None = None,
) -> Iterator[str]:
    """Bind one deck build's identity to every log event inside the block.

    Yields the generated ``build_id``.  Nested builds shadow the outer
    values and restore them on exit.
    """
    build_id = new_correlation_id()
    with structlog.contextvars.bound_contextvars(
        build_id=build_id,
        build_mode=mode,
        deck_size=deck_size,
        deck_format=deck_format,
        colors="/".join(colors) if colors else "auto",
    ):
        yield build_id
