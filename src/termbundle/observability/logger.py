"""Structured logging for termbundle.

Two level names are accepted beyond the standard ones: VERBOSE (15), between
DEBUG and INFO, and TRACE (5). httpx and httpcore are held at WARNING unless
the level is TRACE, where their per-request and connection events come through.

Events are rendered by ``structlog.stdlib.ProcessorFormatter`` so stdlib
records (httpx, tenacity) and structlog events share one format. The file
handler, when configured, always writes JSON lines.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Libraries that log every request at INFO or DEBUG
NOISY_LOGGERS = ("httpx", "httpcore")


class LogContext:
    """
    Bind key-value pairs to every event logged inside the block.

    Backed by ``structlog.contextvars``; each asyncio task runs in a copy of
    the current context, so an artifact's context never leaks into its
    siblings.

    Usage:
        with LogContext(artifact="concepts.zip"):
            logger.info("Parsing artifact")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.values = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.values)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


def clear_all_context() -> None:
    """Drop every bound context value; each CLI command starts from an empty context."""
    structlog.contextvars.clear_contextvars()


def get_log_level(level: str) -> int:
    """Numeric level for a level name; INFO for unknown names."""
    return LOG_LEVELS.get(level.upper(), logging.INFO)


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def configure_logging(
    level: str = "INFO",
    log_format: str = "console",
    log_file: str | Path | None = None,
    components: str | None = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Level name (TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)
        log_format: "console" for colored output, "json" for JSON lines on stderr
        log_file: Optional file receiving JSON lines in addition to stderr
        components: Comma-separated termbundle components to keep below WARNING
            (e.g. "resolver,client"); all other termbundle loggers are raised to WARNING
    """
    log_level = get_log_level(level)

    console_renderer: Any
    if log_format == "json":
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_formatter(console_renderer))
    handlers: list[logging.Handler] = [stderr_handler]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        quiet = log_level if log_level <= TRACE else max(log_level, logging.WARNING)
        logging.getLogger(name).setLevel(quiet)

    if components:
        wanted = [c.strip() for c in components.split(",") if c.strip()]
        for name in list(logging.root.manager.loggerDict):
            if name.startswith("termbundle") or name.startswith("src.termbundle"):
                if not any(c in name for c in wanted):
                    logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
