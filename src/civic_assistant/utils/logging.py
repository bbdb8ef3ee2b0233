"""
Logging configuration using structlog.

Every event carries the service name and deployment environment, plus the
request id bound by the API middleware, so a conversation turn can be traced
from the HTTP request through the orchestrator and its collaborators.
"""

import logging
import sys
from typing import TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from civic_assistant.config import Settings, get_settings

SERVICE_NAME = "civic-assistant"

# Chatty third-party loggers; request logging is done by our own middleware
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def add_service_context(environment: str) -> Processor:
    """Processor stamping each event with the service and environment."""

    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def setup_logging(settings: Settings | None = None, stream: TextIO | None = None) -> None:
    """Configure structured logging."""
    settings = settings or get_settings()
    stream = stream or sys.stdout

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=log_level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_service_context(settings.environment),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.environment == "production":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=stream.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
