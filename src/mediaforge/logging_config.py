"""Logging configuration."""

import logging
import sys

import structlog

from mediaforge.settings import settings

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "stripe", "uvicorn.access", "httpx")


def add_app_context(logger, method_name, event_dict):
    """Tag every entry with the service name and environment."""
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.env)
    return event_dict


def setup_logging() -> None:
    """Configure structured logging.

    JSON lines in production-style deployments, a colored console
    otherwise. Request-scoped values bound with
    ``structlog.contextvars.bind_contextvars`` are merged into every entry.
    """
    level = settings.log_level.upper()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]

    if settings.log_format == "json":
        processors = shared_processors + [
            add_app_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Standard logging for third-party libraries
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    if level != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger that tags its entries with the module name."""
    return structlog.get_logger(name, module=name)
