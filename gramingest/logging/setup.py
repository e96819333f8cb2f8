"""Structlog configuration for gramingest."""

import logging
import sys

import structlog

from gramingest.config import GramingestConfig, LogFormat

# Third-party loggers that emit one INFO line per HTTP request
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "storage3", "supabase_functions")


def _quiet_libraries(level: int) -> None:
    """Keep per-request library chatter out unless running at DEBUG."""
    floor = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)


def configure_logging(config: GramingestConfig | None = None) -> None:
    """
    Configure structlog for console or JSON output.

    Context bound with ``structlog.contextvars`` (the tracker binds
    ``run_id`` while it checks a job) is merged into every event.

    Args:
        config: GramingestConfig instance, uses defaults if None
    """
    if config is None:
        config = GramingestConfig()

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    _quiet_libraries(log_level)

    shared: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.log_format == LogFormat.JSON:
        renderer: list = [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=shared + renderer,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **context) -> structlog.BoundLogger:
    """
    Get a structlog logger bound to a component name.

    Args:
        name: Component name, rendered as ``logger_name``
        **context: Extra key/values bound to every event

    Returns:
        Bound logger
    """
    logger = structlog.get_logger()
    if name:
        context = {"logger_name": name, **context}
    return logger.bind(**context) if context else logger
