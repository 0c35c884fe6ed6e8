"""
Market Resolver: Structured Logging Utility
Uses structlog for key-value event logging across adapters and the resolver.
"""
import structlog
import logging
import sys
from market_resolver.config.settings import get_settings


def setup_logging() -> None:
    """Configure structured logging for the entire application."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # aiohttp and uvicorn log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )
    # Per-request access lines duplicate the retry and attempt events
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))


def get_logger(name: str = None) -> structlog.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name or "market_resolver")
