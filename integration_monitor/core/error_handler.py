"""
Error handling for the classifier capability and the HTTP layer.

Capability failures never reach API callers (classification degrades to the
rule-based fallback), so the handler here only categorizes and logs them,
suppressing repeats of the same failure to keep logs readable during an
outage of the external classifier.
"""
import asyncio
import json
import logging
import time
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Dict, Any

import aiohttp
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from integration_monitor.core.exceptions import (
    IntegrationMonitorError,
    EventNotFoundError,
    InvalidEventStateError,
    ClassificationPreconditionError,
    ClassifierUnavailableError,
)
from integration_monitor.core.logging import log_api_error

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CapabilityFailure(Enum):
    """Ways the external classifier can fail"""
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    MALFORMED_RESPONSE = "malformed_response"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for errors"""
    operation: str
    event_id: Optional[str] = None
    integration: Optional[str] = None
    duration: Optional[float] = None


class CapabilityErrorHandler:
    """
    Categorizes classifier capability failures and logs them with reduced noise
    """

    def __init__(self,
                 suppress_common_errors: bool = True,
                 suppression_window_seconds: float = 300.0,
                 max_logged_per_window: int = 3):
        self.suppress_common_errors = suppress_common_errors
        self.suppression_window_seconds = suppression_window_seconds
        self.max_logged_per_window = max_logged_per_window
        self._error_counts: Dict[str, int] = {}
        self._last_error_time: Dict[str, float] = {}
        self._suppressed_errors: Dict[str, int] = {}
        self._failures_by_category: Dict[str, int] = {}

    def should_log_error(self, error_key: str) -> bool:
        """Determine if an error should be logged based on frequency"""
        if not self.suppress_common_errors:
            return True

        current_time = time.monotonic()
        error_count = self._error_counts.get(error_key, 0)
        last_time = self._last_error_time.get(error_key)

        # Reset counter if enough time has passed
        if last_time is not None and current_time - last_time > self.suppression_window_seconds:
            error_count = 0

        self._error_counts[error_key] = error_count + 1
        self._last_error_time[error_key] = current_time

        if error_count < self.max_logged_per_window:
            return True

        self._suppressed_errors[error_key] = self._suppressed_errors.get(error_key, 0) + 1
        if error_count == self.max_logged_per_window:
            logger.warning(f"Suppressing frequent classifier error: {error_key} (occurred {error_count + 1} times)")
        return False

    def categorize_error(self, error: Exception) -> CapabilityFailure:
        """Categorize a capability failure"""
        if isinstance(error, ClassifierUnavailableError):
            if error.context.get("reason") == "malformed_response":
                return CapabilityFailure.MALFORMED_RESPONSE
            return CapabilityFailure.UNAVAILABLE
        if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
            return CapabilityFailure.TIMEOUT
        if isinstance(error, aiohttp.ClientResponseError) and error.status in (401, 403):
            return CapabilityFailure.AUTHENTICATION
        if isinstance(error, aiohttp.ClientConnectionError):
            return CapabilityFailure.CONNECTION
        if isinstance(error, (ValidationError, json.JSONDecodeError, KeyError, aiohttp.ContentTypeError)):
            return CapabilityFailure.MALFORMED_RESPONSE
        return CapabilityFailure.UNKNOWN

    def get_error_severity(self, category: CapabilityFailure) -> ErrorSeverity:
        """Determine how loudly a failure category is logged"""
        if category == CapabilityFailure.AUTHENTICATION:
            return ErrorSeverity.HIGH
        if category in (CapabilityFailure.TIMEOUT, CapabilityFailure.CONNECTION,
                        CapabilityFailure.MALFORMED_RESPONSE, CapabilityFailure.UNKNOWN):
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.LOW

    def format_error_message(self, error: Exception, context: ErrorContext,
                             category: CapabilityFailure) -> str:
        """Format error message with context"""
        base_msg = f"{context.operation} failed"

        if context.event_id:
            base_msg += f" for event {context.event_id}"

        if context.integration:
            base_msg += f" ({context.integration})"

        if context.duration:
            base_msg += f" after {context.duration:.2f}s"

        base_msg += f" - {category.value}"

        detail = str(error)
        if detail:
            base_msg += f": {detail}"

        return base_msg + "; using rule-based fallback"

    def handle_error(self, error: Exception, context: ErrorContext) -> Dict[str, Any]:
        """Handle a capability failure with appropriate logging"""
        category = self.categorize_error(error)
        severity = self.get_error_severity(category)
        self._failures_by_category[category.value] = self._failures_by_category.get(category.value, 0) + 1

        error_key = f"{category.value}:{type(error).__name__}:{context.operation}"
        error_message = self.format_error_message(error, context, category)
        should_log = self.should_log_error(error_key)

        if should_log:
            if severity == ErrorSeverity.HIGH:
                logger.error(error_message)
            elif severity == ErrorSeverity.MEDIUM:
                logger.warning(error_message)
            else:
                logger.info(error_message)

        return {
            'error': str(error),
            'category': category.value,
            'severity': severity.value,
            'suppressed': not should_log,
            'suppressed_count': self._suppressed_errors.get(error_key, 0)
        }

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics"""
        now = time.monotonic()
        return {
            'failures_by_category': dict(self._failures_by_category),
            'suppressed_errors': dict(self._suppressed_errors),
            'seconds_since_last_error': {k: round(now - v, 2) for k, v in self._last_error_time.items()}
        }


_STATUS_BY_ERROR = {
    EventNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidEventStateError: status.HTTP_400_BAD_REQUEST,
    ClassificationPreconditionError: status.HTTP_400_BAD_REQUEST,
}


async def integration_monitor_error_handler(request: Request, exc: IntegrationMonitorError):
    """Map domain errors raised by services to JSON error responses"""
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        log_api_error(request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


def register_exception_handlers(app: FastAPI):
    """Attach domain exception handlers to the application"""
    app.add_exception_handler(IntegrationMonitorError, integration_monitor_error_handler)
