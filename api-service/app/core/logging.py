"""
Structured Logging Configuration
"""

import structlog
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional
from app.core.simple_config import settings

# Populated by the request logging middleware
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def setup_logging():
    """Configure structured logging for the application"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_request_id,
            # JSON formatting for production, pretty for development
            structlog.processors.JSONRenderer() if settings.ENVIRONMENT == "production"
            else structlog.dev.ConsoleRenderer(colors=True)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def add_request_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request ID to log entries if available"""
    request_id = request_id_var.get()
    if request_id:
        event_dict['request_id'] = request_id
    return event_dict
