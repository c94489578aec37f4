"""
Structured logging setup.

Call configure_logging() once at a process entry point (scheduler, scripts).
Library code only ever does ``structlog.get_logger(__name__)``.
"""

import logging
import sys
from typing import Optional

import structlog

from regwatch.config import Settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install the stdlib-backed structlog processor chain."""
    if settings is None:
        from regwatch.config import settings as default_settings
        settings = default_settings

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
