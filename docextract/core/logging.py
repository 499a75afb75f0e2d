"""
Structured logging configuration.
Provides consistent, JSON-structured logging with the document being
extracted bound to every event.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.typing import FilteringBoundLogger


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # Native libraries can be chatty
    logging.getLogger("PIL").setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "console":
        # Human-readable console output for development
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings) -> None:
    """Configure logging from an ``ExtractionSettings`` snapshot."""
    configure_logging(settings.log_level, settings.log_format)


def get_logger(name: Optional[str] = None) -> FilteringBoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


# Resource context management
def bind_resource(resource_name: Optional[str]) -> None:
    """Bind the document being extracted to the logging context."""
    structlog.contextvars.bind_contextvars(resource_name=resource_name)


def clear_resource() -> None:
    """Remove the document from the logging context."""
    structlog.contextvars.unbind_contextvars("resource_name")
