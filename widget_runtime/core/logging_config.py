"""
Structured logging configuration for the widget runtime.

Loguru owns the sinks (pretty console in development, JSON elsewhere) and
structlog carries the widget context (tenant, visitor, conversation) on every
event through context variables.
"""

import os
import sys
import logging
from typing import Optional

import structlog
from loguru import logger

from .config import settings


def setup_logging(log_level: Optional[str] = None, environment: Optional[str] = None) -> None:
    """Setup structured logging with Loguru + Structlog"""

    # Remove default handler
    logger.remove()

    log_level = (log_level or os.environ.get("LOG_LEVEL", settings.LOG_LEVEL)).upper()
    environment = environment or os.environ.get("ENVIRONMENT", settings.ENVIRONMENT)

    if environment == "development":
        # Pretty console logging for development
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                   "<level>{level: <8}</level> | "
                   "<cyan>widget-runtime</cyan> | "
                   "<level>{message}</level>",
            level=log_level,
            colorize=True
        )
    else:
        # JSON logging for production
        logger.add(
            sys.stderr,
            format="{message}",
            level=log_level,
            serialize=True
        )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.JSONRenderer() if environment == "production" else structlog.dev.ConsoleRenderer()
        ],
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Get a logger with the given name"""
    return structlog.get_logger(name)


def set_widget_context(
    tenant_id: Optional[str] = None,
    visitor_id: Optional[str] = None,
    conversation_id: Optional[str] = None
) -> None:
    """Bind widget identifiers so every subsequent log event carries them"""
    context = {
        "tenant_id": tenant_id,
        "visitor_id": visitor_id,
        "conversation_id": conversation_id,
    }
    structlog.contextvars.bind_contextvars(**{k: v for k, v in context.items() if v is not None})


def clear_widget_context() -> None:
    """Clear all bound widget context"""
    structlog.contextvars.clear_contextvars()


# Widget-specific logging helpers
def log_widget_request(method: str, path: str, status_code: Optional[int], duration_ms: float, **kwargs):
    """Log a call to the widget API"""
    get_logger("widget_api").info(
        "Widget API request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        **kwargs
    )


def log_conversation_event(event: str, tenant_id: str, conversation_id: Optional[str] = None, **kwargs):
    """Log a conversation lifecycle event (started, resumed, ended, reset)"""
    get_logger("conversation").info(
        "Conversation event",
        conversation_event=event,
        tenant_id=tenant_id,
        conversation_id=conversation_id,
        **kwargs
    )


def log_form_submission(form_id: str, field_count: int, valid: bool, **kwargs):
    """Log a form submission attempt"""
    get_logger("forms").info(
        "Form submission",
        form_id=form_id,
        field_count=field_count,
        valid=valid,
        **kwargs
    )
