import asyncio
import logging
import time
from typing import Optional

from integration_monitor.core.error_handler import CapabilityErrorHandler, ErrorContext
from integration_monitor.core.exceptions import (
    ClassificationPreconditionError,
    ClassifierUnavailableError,
    EventNotFoundError,
    InvalidEventStateError,
)
from integration_monitor.core.logging import log_classification
from integration_monitor.monitoring.prometheus import PrometheusMetrics
from integration_monitor.schemas.events import (
    ClassificationResult,
    ErrorClassification,
    IntegrationEvent,
)
from integration_monitor.services.error_classifier import classify_with_rules
from integration_monitor.services.event_store import EventStore

logger = logging.getLogger(__name__)


class ClassificationService:
    """
    Memoized failure classification.

    The external classifier is asked at most once per event while its
    classification is cached on the event. Two classify calls racing on the
    same event may both reach the classifier; the store keeps the first
    result. Classifier failures fall back to the keyword rules and are never
    reported to the caller.
    """

    def __init__(self, event_store: EventStore, classifier=None, timeout_seconds: float = 10.0,
                 error_handler: Optional[CapabilityErrorHandler] = None):
        self.event_store = event_store
        self.classifier = classifier
        self.timeout_seconds = timeout_seconds
        self.error_handler = error_handler or CapabilityErrorHandler()

    async def classify(self, event_id: str) -> ClassificationResult:
        event = self.event_store.get(event_id)
        if event is None:
            raise EventNotFoundError(f"Event {event_id} not found", context={"event_id": event_id})
        if not event.is_failure:
            raise InvalidEventStateError(
                "Only failed events can be classified",
                context={"event_id": event_id, "status": event.status.value},
            )
        if event.error is None:
            raise ClassificationPreconditionError(
                "Event has no error to classify", context={"event_id": event_id}
            )

        if event.classification is not None:
            PrometheusMetrics.record_classification("cache", event.classification.category.value)
            return ClassificationResult(event=event, classification=event.classification, cached=True)

        classification, source = await self._classify_uncached(event)

        stored = self.event_store.attach_classification(event.id, classification)
        if stored is None:
            # evicted while the classifier was running
            logger.warning(f"Event {event.id} left the store during classification; result not persisted")
            stored = event.model_copy(update={"classification": event.classification or classification})

        log_classification(event.id, source, stored.classification.category.value,
                           stored.classification.severity.value, integration=event.integration.value)
        PrometheusMetrics.record_classification(source, stored.classification.category.value)
        return ClassificationResult(event=stored, classification=stored.classification, cached=False)

    async def _classify_uncached(self, event: IntegrationEvent):
        start_time = time.perf_counter()
        try:
            classification = await self._call_classifier(event)
        except Exception as e:
            duration = time.perf_counter() - start_time
            PrometheusMetrics.record_classifier_call("failed", duration)
            self.error_handler.handle_error(e, ErrorContext(
                operation="classify_failure",
                event_id=event.id,
                integration=event.integration.value,
                duration=duration,
            ))
            return classify_with_rules(event), "rules"

        PrometheusMetrics.record_classifier_call("success", time.perf_counter() - start_time)
        return classification, "llm"

    async def _call_classifier(self, event: IntegrationEvent) -> ErrorClassification:
        if self.classifier is None:
            raise ClassifierUnavailableError("No classifier configured", context={"reason": "not_configured"})

        result = await asyncio.wait_for(
            self.classifier.classify(
                integration=event.integration.value,
                event_type=event.event_type,
                error_message=event.error.message,
                error_code=event.error.code,
                context=event.error.context,
                payload=event.payload,
            ),
            timeout=self.timeout_seconds,
        )
        if not isinstance(result, ErrorClassification):
            result = ErrorClassification.model_validate(result)
        return result
