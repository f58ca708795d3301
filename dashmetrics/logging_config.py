"""
Structured logging setup.

Configures structlog once at application startup. Modules only ever call
``structlog.get_logger(__name__)`` and log snake_case events with keyword
context, so the renderer can be switched without touching call sites.
"""

import logging

import structlog

from dashmetrics.config import Settings, settings as default_settings


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog processors and renderer.

    Args:
        settings: Settings to read log level and renderer from
            (defaults to the global settings instance)
    """
    settings = settings or default_settings
    level = logging.getLevelNamesMapping()[settings.log_level]

    renderer: structlog.typing.Processor
    if settings.log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
