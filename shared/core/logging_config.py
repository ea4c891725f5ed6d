"""
Structured logging for the inventory service

Every record is one JSON object. Stock movements, category moves and ledger
rejections put their details under ``custom`` and every record made while a
request is running carries that request's id, correlation id and actor under
``trace``, so a single stock change can be followed from the HTTP call to the
ledger entry.
"""

import json
import logging
import logging.handlers
import os
import re
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

ACTOR_HEADER = 'X-User'
REQUEST_ID_HEADER = 'X-Request-ID'
CORRELATION_ID_HEADER = 'X-Correlation-ID'

# Probe traffic is logged at DEBUG
QUIET_PATH_PREFIXES = ('/health', '/metrics')

NOISY_LOGGERS = {
    'uvicorn.access': logging.WARNING,
    'sqlalchemy.engine': logging.WARNING,
    'alembic': logging.INFO,
}

_request_context: Dict[str, ContextVar] = {
    'request_id': ContextVar('request_id', default=None),
    'correlation_id': ContextVar('correlation_id', default=None),
    'actor': ContextVar('actor', default=None),
}


def current_context() -> Dict[str, str]:
    """Request id, correlation id and actor of the request being served"""
    values = {name: var.get() for name, var in _request_context.items()}
    return {name: value for name, value in values.items() if value}


def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    actor: Optional[str] = None
) -> None:
    _request_context['request_id'].set(request_id)
    _request_context['correlation_id'].set(correlation_id)
    _request_context['actor'].set(actor)


def generate_request_id() -> str:
    return str(uuid.uuid4())


class StructuredFormatter(logging.Formatter):
    """JSON formatter with service metadata and request context"""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name
        self.environment = os.getenv('ENVIRONMENT', 'development')
        self.version = os.getenv('SERVICE_VERSION', '1.0.0')

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "version": self.version,
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = current_context()
        if context:
            entry["trace"] = context

        custom = getattr(record, 'extra_fields', None)
        if custom:
            entry["custom"] = custom

        duration_ms = getattr(record, 'duration_ms', None)
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 2)

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, _ = record.exc_info
            entry["error"] = {
                "type": error_type.__name__,
                # InventoryError subclasses carry a machine-readable kind
                "kind": getattr(error, 'kind', None),
                "message": str(error),
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class PerformanceFilter(logging.Filter):
    """Convert a `duration` (seconds) extra into `duration_ms`"""

    def filter(self, record: logging.LogRecord) -> bool:
        duration = getattr(record, 'duration', None)
        if duration is not None:
            record.duration_ms = duration * 1000
        return True


class SecurityFilter(logging.Filter):
    """Redact bearer tokens and sensitive `key=value` / `key: value` pairs"""

    SENSITIVE_FIELDS = ('password', 'token', 'access_token', 'jwt_secret', 'secret', 'authorization')
    _pair = re.compile(r'(?i)\b(' + '|'.join(SENSITIVE_FIELDS) + r')\b(\s*[=:]\s*)(\S+)')
    _bearer = re.compile(r'(?i)\bbearer\s+[\w\-.]+')

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self._bearer.sub('Bearer ***REDACTED***', message)
        redacted = self._pair.sub(r'\1\2***REDACTED***', redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(service_name: str, level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Replace the root handlers with JSON handlers

    Args:
        service_name: Name reported in every record
        level: Root log level name
        log_file: Also write to this file, rotated at 10MB
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(log_file, maxBytes=10485760, backupCount=5))

    formatter = StructuredFormatter(service_name)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(PerformanceFilter())
        handler.addFilter(SecurityFilter())
        root_logger.addHandler(handler)

    for name, logger_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level, 'file': log_file}}
    )


class LoggerAdapter(logging.LoggerAdapter):
    """Merges fields bound at creation into each record's `extra_fields`"""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault('extra', {})
        if self.extra:
            extra['extra_fields'] = {**self.extra, **extra.get('extra_fields', {})}
        return msg, kwargs


def get_logger(name: str, **bound: Any) -> LoggerAdapter:
    """
    Logger for a module, optionally bound to fixed fields

    >>> logger = get_logger(__name__, component="ledger")
    """
    return LoggerAdapter(logging.getLogger(name), bound)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request once it completes, with status and duration

    Binds `X-Request-ID` (generated when absent), `X-Correlation-ID` and the
    acting user from `X-User` to the logging context and echoes the request id.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        set_request_context(
            request_id=request_id,
            correlation_id=request.headers.get(CORRELATION_ID_HEADER),
            actor=request.headers.get(ACTOR_HEADER)
        )

        logger = get_logger(__name__)
        fields = {'method': request.method, 'path': request.url.path}
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                extra={'extra_fields': fields, 'duration': time.perf_counter() - started}
            )
            raise

        level = logging.DEBUG if request.url.path.startswith(QUIET_PATH_PREFIXES) else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                'extra_fields': {
                    **fields,
                    'status_code': response.status_code,
                    'client_host': request.client.host if request.client else None,
                },
                'duration': time.perf_counter() - started
            }
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
