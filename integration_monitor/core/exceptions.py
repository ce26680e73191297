import logging

_logger = logging.getLogger(__name__)


class IntegrationMonitorError(Exception):
    """Base exception for integration monitor operations"""
    code = "INTEGRATION_MONITOR_ERROR"

    def __init__(self, message, context=None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class EventNotFoundError(IntegrationMonitorError):
    """Lookup or mutation referenced an unknown event id"""
    code = "EVENT_NOT_FOUND"


class InvalidEventStateError(IntegrationMonitorError):
    """Operation is only valid for failure events"""
    code = "INVALID_EVENT_STATE"


class ClassificationPreconditionError(IntegrationMonitorError):
    """Classification was requested for an event without an error object"""
    code = "NO_ERROR_TO_CLASSIFY"

    def __init__(self, message, context=None):
        super().__init__(message, context)
        _logger.error(f"Classification precondition violated: {message}", extra=self.context)


class ClassifierUnavailableError(IntegrationMonitorError):
    """External classifier is not configured, unreachable or returned garbage"""
    code = "CLASSIFIER_UNAVAILABLE"
