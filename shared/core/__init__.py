"""Logging and health check building blocks for the inventory service."""

from .health import HealthStatus, ServiceHealth
from .logging_config import (
    ACTOR_HEADER,
    REQUEST_ID_HEADER,
    LoggerAdapter,
    RequestLoggingMiddleware,
    current_context,
    generate_request_id,
    get_logger,
    set_request_context,
    setup_logging,
)

__all__ = [
    "HealthStatus",
    "ServiceHealth",
    "ACTOR_HEADER",
    "REQUEST_ID_HEADER",
    "LoggerAdapter",
    "RequestLoggingMiddleware",
    "current_context",
    "generate_request_id",
    "get_logger",
    "set_request_context",
    "setup_logging",
]
