from collections import deque
import copy
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, List, Optional
import logging
import math
import uuid

from integration_monitor.core.clock import utc_now
from integration_monitor.core.logging import log_resolution_change
from integration_monitor.monitoring.prometheus import PrometheusMetrics
from integration_monitor.schemas.events import (
    CreateEventInput,
    ErrorClassification,
    EventFilters,
    EventStatus,
    IntegrationEvent,
    IntegrationType,
    PaginatedEvents,
    Resolution,
    ResolutionStatus,
    SortField,
    SortOrder,
)
from integration_monitor.schemas.integrations import EventStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 1000
DEFAULT_LIMIT = 50

_SORT_KEYS = {
    SortField.TIMESTAMP: lambda e: e.timestamp,
    SortField.INTEGRATION: lambda e: e.integration.value,
    SortField.EVENT_TYPE: lambda e: (e.event_type.casefold(), e.event_type),
    SortField.STATUS: lambda e: e.status.value,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class EventStore:
    """
    Bounded in-memory store of integration events, newest first.

    Inserting beyond ``max_events`` evicts the oldest event. Lookups and
    mutations of unknown ids, and triage mutations of non-failure events,
    return None without touching the store.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS, default_limit: int = DEFAULT_LIMIT,
                 clock: Callable[[], datetime] = utc_now):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self.default_limit = default_limit
        self._clock = clock
        self._events: Deque[IntegrationEvent] = deque(maxlen=max_events)

    def __len__(self) -> int:
        return len(self._events)

    def create(self, data: CreateEventInput) -> IntegrationEvent:
        """Insert a new event at the head of the store"""
        is_failure = data.status == EventStatus.FAILURE
        event = IntegrationEvent(
            id=str(uuid.uuid4()),
            integration=data.integration,
            event_type=data.event_type,
            status=data.status,
            timestamp=self._clock(),
            payload=copy.deepcopy(data.payload),
            error=data.error.model_copy(deep=True) if data.error else None,
            resolution=Resolution(status=ResolutionStatus.OPEN) if is_failure else None,
        )

        evicted = len(self._events) == self.max_events
        if evicted:
            logger.debug(f"Event store at capacity ({self.max_events}); evicting {self._events[-1].id}")
        self._events.appendleft(event)

        if is_failure and not event.error:
            logger.warning(f"Failure event {event.id} for {event.integration.value} was created without error details")

        PrometheusMetrics.record_event_ingested(
            integration=event.integration.value,
            status=event.status.value,
            store_size=len(self._events),
            evicted=evicted,
        )
        return event

    def get(self, event_id: str) -> Optional[IntegrationEvent]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def query(self,
              filters: Optional[EventFilters] = None,
              sort_by: SortField = SortField.TIMESTAMP,
              sort_order: SortOrder = SortOrder.DESC,
              offset: int = 0,
              limit: Optional[int] = None) -> PaginatedEvents:
        """
        Filter, then sort, then slice. ``total`` counts the filtered events
        before pagination so callers can compute page counts.
        """
        filters = filters or EventFilters()
        if filters.since and filters.since.tzinfo is None:
            filters = filters.model_copy(update={"since": filters.since.replace(tzinfo=timezone.utc)})
        matched = [e for e in self._events if self._matches(e, filters)]

        matched = sorted(
            matched,
            key=_SORT_KEYS[SortField(sort_by)],
            reverse=SortOrder(sort_order) == SortOrder.DESC,
        )

        total = len(matched)
        offset = max(offset or 0, 0)
        limit = limit or self.default_limit

        return PaginatedEvents(
            events=matched[offset:offset + limit],
            total=total,
            offset=offset,
            limit=limit,
            has_more=offset + limit < total,
        )

    def list(self, filters: Optional[EventFilters] = None, limit: Optional[int] = None,
             **kwargs) -> List[IntegrationEvent]:
        """Simple listing: the first page of a query"""
        return self.query(filters, limit=limit, **kwargs).events

    @staticmethod
    def _matches(event: IntegrationEvent, filters: EventFilters) -> bool:
        if filters.integration and event.integration != filters.integration:
            return False
        if filters.status and event.status != filters.status:
            return False
        if filters.resolution_status and event.resolution_status != filters.resolution_status:
            return False
        if filters.since and event.timestamp < filters.since:
            return False
        if filters.search:
            needle = filters.search.lower()
            haystack = [event.event_type, event.integration.value]
            if event.error:
                haystack.append(event.error.message)
                if event.error.code:
                    haystack.append(event.error.code)
            if not any(needle in field.lower() for field in haystack if field):
                return False
        return True

    def attach_classification(self, event_id: str,
                              classification: ErrorClassification) -> Optional[IntegrationEvent]:
        """
        Persist a classification on a failure event. The first classification
        wins; later attaches leave the stored one untouched.
        """
        event = self._get_failure_event(event_id)
        if event is None:
            return None
        if event.classification is None:
            event.classification = classification
        else:
            logger.info(f"Event {event_id} already classified; keeping existing classification")
        return event

    def acknowledge(self, event_id: str, acknowledged_by: str = "anonymous") -> Optional[IntegrationEvent]:
        """Mark a failure as acknowledged, replacing any prior resolution fields"""
        event = self._get_failure_event(event_id)
        if event is None:
            return None
        event.resolution = Resolution(
            status=ResolutionStatus.ACKNOWLEDGED,
            acknowledged_at=self._clock(),
            acknowledged_by=acknowledged_by,
        )
        self._record_transition(event, acknowledged_by)
        return event

    def resolve(self, event_id: str, resolved_by: str = "anonymous",
                notes: Optional[str] = None) -> Optional[IntegrationEvent]:
        """Mark a failure as resolved, keeping acknowledgement details"""
        event = self._get_failure_event(event_id)
        if event is None:
            return None
        previous = event.resolution or Resolution()
        event.resolution = previous.model_copy(update={
            "status": ResolutionStatus.RESOLVED,
            "resolved_at": self._clock(),
            "resolved_by": resolved_by,
            "notes": notes,
        })
        self._record_transition(event, resolved_by)
        return event

    def reopen(self, event_id: str) -> Optional[IntegrationEvent]:
        """Reset a failure to open from any state"""
        event = self._get_failure_event(event_id)
        if event is None:
            return None
        event.resolution = Resolution(status=ResolutionStatus.OPEN)
        self._record_transition(event, None)
        return event

    def _get_failure_event(self, event_id: str) -> Optional[IntegrationEvent]:
        event = self.get(event_id)
        if event is None:
            logger.info(f"Event {event_id} not found")
            return None
        if not event.is_failure:
            logger.info(f"Event {event_id} has status {event.status.value}; only failures can be triaged")
            return None
        return event

    @staticmethod
    def _record_transition(event: IntegrationEvent, actor: Optional[str]):
        log_resolution_change(event.id, event.resolution.status.value, actor=actor)
        PrometheusMetrics.record_resolution_transition(event.resolution.status.value)

    def get_event_stats(self, integration: IntegrationType) -> EventStats:
        """Trailing 24h totals for one integration"""
        cutoff = self._clock() - timedelta(hours=24)
        recent = [
            e for e in self._events
            if e.integration == integration and e.timestamp >= cutoff
        ]

        total = len(recent)
        failures = sum(1 for e in recent if e.is_failure)
        success_rate = _round_half_up((total - failures) / total * 100) if total else 100

        return EventStats(
            events_last_24h=total,
            errors_last_24h=failures,
            success_rate=success_rate,
            last_sync=max((e.timestamp for e in recent), default=None),
        )

    def clear(self):
        self._events.clear()
        PrometheusMetrics.update_event_store_size(0)
