"""
Logging Configuration for the warehouse pipeline

Structured logging through structlog, rendered as JSON or console text.
Every event carries the application name and environment, and date or
datetime values are rendered as ISO 8601 text.
"""

import logging
import sys
from datetime import date
from typing import Any, Dict, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from warehouse.config.settings import Settings, get_settings

# Chatty third-party loggers held at WARNING unless DEBUG is requested
QUIET_LOGGERS = ("prefect", "httpx", "faker")


class AppContext:
    """Stamp each event with the application name and environment"""

    def __init__(self, settings: Settings):
        self.app = settings.app_name
        self.environment = settings.app_env

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("app", self.app)
        event_dict.setdefault("environment", self.environment)
        return event_dict


def render_temporal(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Reference times and layer dates as ISO text"""
    for key, value in event_dict.items():
        if isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structured logging for the pipeline and its CLI.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override renderer ("json" or "text")
    """
    settings = get_settings()
    level = log_level or settings.monitoring.log_level
    fmt = log_format or settings.monitoring.log_format

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        AppContext(settings),
        render_temporal,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Replace any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(
            numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
        )

    log = structlog.get_logger(__name__)
    log.info("Logging configured", level=level, format=fmt)
