"""structlog setup for dane.

Engines log through ``structlog.get_logger()``; this module only decides how
those events are filtered and rendered.
"""

import logging
from typing import Optional

import structlog

from .config import DaneSettings, LogFormat


def configure_logging(settings: Optional[DaneSettings] = None) -> None:
    """Configure structlog from settings (environment when omitted)."""
    settings = settings or DaneSettings()

    renderer: structlog.typing.Processor
    if settings.log_format == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        cache_logger_on_first_use=False,
    )


def mask_identifier(value: Optional[str], visible: int = 4) -> Optional[str]:
    """Mask a personal identifier for log output, keeping the last digits."""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
