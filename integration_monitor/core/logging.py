import logging
import logging.config
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar
from fastapi import Request
import structlog

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def add_request_context_processor(logger, method_name, event_dict):
    """Add request context to log entries"""
    if request_id_var.get():
        event_dict['request_id'] = request_id_var.get()
    return event_dict

# Configure structlog
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
        add_request_context_processor,
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

_RESERVED_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'taskName', 'message',
}


class CustomFormatter(logging.Formatter):
    """Custom formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class RequestContextFilter(logging.Filter):
    """Filter to add request context to log records"""

    def filter(self, record):
        record.request_id = request_id_var.get() or 'no-request'
        return True


def setup_logging(environment: str = "development", log_level: str = "INFO",
                  log_file_path: Optional[str] = None, max_bytes: int = 10485760,
                  backup_count: int = 5):
    """
    Setup structured logging configuration.
    The rotating file handler is only attached when a log file path is configured.
    """
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': log_level,
            'formatter': 'json' if environment == 'production' else 'simple',
            'filters': ['request_context'],
            'stream': sys.stdout,
        },
    }
    if log_file_path:
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': 'json',
            'filters': ['request_context'],
            'filename': log_file_path,
            'maxBytes': max_bytes,
            'backupCount': backup_count,
        }
    handler_names = list(handlers)

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'json': {
                '()': CustomFormatter,
            },
            'simple': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            }
        },
        'filters': {
            'request_context': {
                '()': RequestContextFilter,
            }
        },
        'handlers': handlers,
        'loggers': {
            '': {  # Root logger
                'handlers': handler_names,
                'level': log_level,
            },
            'uvicorn': {
                'handlers': ['console'],
                'level': 'INFO',
                'propagate': False,
            },
            'uvicorn.access': {
                'handlers': ['console'],
                'level': 'INFO',
                'propagate': False,
            },
            'aiohttp': {
                'handlers': ['console'],
                'level': 'WARNING',
                'propagate': False,
            },
        }
    }

    logging.config.dictConfig(config)

    logger = structlog.get_logger()
    logger.info("Logging setup completed", environment=environment, log_level=log_level)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)


def set_request_context(request_id: str = None):
    """Set request context for logging"""
    if request_id:
        request_id_var.set(request_id)


def clear_request_context():
    """Clear request context"""
    request_id_var.set(None)


def generate_request_id() -> str:
    """Generate a unique request ID"""
    return str(uuid.uuid4())


class LoggingMiddleware:
    """
    ASGI middleware for request logging
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("middleware")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        request_id = generate_request_id()
        set_request_context(request_id=request_id)

        self.logger.info(
            "Request started",
            method=request.method,
            url=str(request.url),
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        start_time = time.perf_counter()
        try:
            await self.app(scope, receive, send)
        except Exception as e:
            self.logger.error(
                "Request failed",
                method=request.method,
                url=str(request.url),
                error=str(e),
            )
            raise
        finally:
            self.logger.info(
                "Request completed",
                method=request.method,
                url=str(request.url),
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            clear_request_context()


# Business logic logging helpers
def log_sync_operation(operation_type: str, pipeline_id: str, status: str,
                       duration: float, records_processed: int, **kwargs):
    """Log sync operation details"""
    logger = get_logger("sync")
    logger.info(
        "Sync operation completed",
        operation_type=operation_type,
        pipeline_id=pipeline_id,
        status=status,
        duration_seconds=duration,
        records_processed=records_processed,
        **kwargs
    )


def log_classification(event_id: str, source: str, category: str, severity: str, **kwargs):
    """Log the outcome of a failure classification"""
    logger = get_logger("classification")
    logger.info(
        "Event classified",
        event_id=event_id,
        source=source,
        category=category,
        severity=severity,
        **kwargs
    )


def log_resolution_change(event_id: str, resolution_status: str, actor: Optional[str] = None, **kwargs):
    """Log a triage state transition"""
    logger = get_logger("resolution")
    logger.info(
        "Resolution updated",
        event_id=event_id,
        resolution_status=resolution_status,
        actor=actor,
        **kwargs
    )


def log_api_error(endpoint: str, error: Exception, **kwargs):
    """Log API errors"""
    logger = get_logger("api")
    logger.error(
        "API error occurred",
        endpoint=endpoint,
        error_type=type(error).__name__,
        error_message=str(error),
        **kwargs
    )
