from fastapi import APIRouter, Body, Depends, Query, status
from typing import Optional
from datetime import datetime
import logging

from integration_monitor.core.config import Settings
from integration_monitor.core.dependencies import (
    get_classification_service,
    get_event_store,
    get_settings,
)
from integration_monitor.core.exceptions import EventNotFoundError, InvalidEventStateError
from integration_monitor.schemas.events import (
    AcknowledgeRequest,
    ClassificationResult,
    CreateEventInput,
    EventFilters,
    EventListResponse,
    EventResponse,
    EventStatus,
    IntegrationEvent,
    IntegrationType,
    PaginatedEvents,
    ResolutionStatus,
    ResolveRequest,
    SortField,
    SortOrder,
)
from integration_monitor.services.classification_service import ClassificationService
from integration_monitor.services.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _get_failure_event(event_store: EventStore, event_id: str) -> IntegrationEvent:
    event = event_store.get(event_id)
    if event is None:
        raise EventNotFoundError(f"Event {event_id} not found", context={"event_id": event_id})
    if not event.is_failure:
        raise InvalidEventStateError(
            "Only failed events can be triaged",
            context={"event_id": event_id, "status": event.status.value},
        )
    return event


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(data: CreateEventInput, event_store: EventStore = Depends(get_event_store)):
    """Ingest a new integration event"""
    event = event_store.create(data)
    logger.info(f"Ingested {event.status.value} event {event.id} from {event.integration.value}")
    return EventResponse(event=event)


@router.get("", response_model=EventListResponse)
async def list_events(
    integration: Optional[IntegrationType] = Query(None, description="Filter by integration"),
    event_status: Optional[EventStatus] = Query(None, alias="status", description="Filter by event status"),
    since: Optional[datetime] = Query(None, description="Only events at or after this time"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of events"),
    event_store: EventStore = Depends(get_event_store),
):
    """List the newest events matching the filters"""
    events = event_store.list(
        EventFilters(integration=integration, status=event_status, since=since),
        limit=limit,
    )
    return EventListResponse(events=events, total=len(events))


@router.get("/paginated", response_model=PaginatedEvents)
async def list_events_paginated(
    integration: Optional[IntegrationType] = Query(None, description="Filter by integration"),
    event_status: Optional[EventStatus] = Query(None, alias="status", description="Filter by event status"),
    resolution_status: Optional[ResolutionStatus] = Query(None, description="Filter by triage state"),
    since: Optional[datetime] = Query(None, description="Only events at or after this time"),
    search: Optional[str] = Query(None, description="Case-insensitive text search"),
    sort_by: SortField = Query(SortField.TIMESTAMP, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    offset: int = Query(0, ge=0, description="Number of events to skip"),
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    event_store: EventStore = Depends(get_event_store),
    settings: Settings = Depends(get_settings),
):
    """Filtered, sorted and paginated event listing"""
    page_size = min(limit or settings.EVENTS_PAGE_SIZE, settings.EVENTS_MAX_PAGE_SIZE)
    filters = EventFilters(
        integration=integration,
        status=event_status,
        resolution_status=resolution_status,
        since=since,
        search=search or None,
    )
    return event_store.query(filters, sort_by=sort_by, sort_order=sort_order, offset=offset, limit=page_size)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(event_id: str, event_store: EventStore = Depends(get_event_store)):
    event = event_store.get(event_id)
    if event is None:
        raise EventNotFoundError(f"Event {event_id} not found", context={"event_id": event_id})
    return EventResponse(event=event)


@router.post("/{event_id}/classify", response_model=ClassificationResult)
async def classify_event(event_id: str,
                         classification_service: ClassificationService = Depends(get_classification_service)):
    """Classify a failure event, returning the cached classification when present"""
    return await classification_service.classify(event_id)


@router.post("/{event_id}/acknowledge", response_model=EventResponse)
async def acknowledge_event(event_id: str,
                            request: Optional[AcknowledgeRequest] = Body(None),
                            event_store: EventStore = Depends(get_event_store)):
    _get_failure_event(event_store, event_id)
    request = request or AcknowledgeRequest()
    event = event_store.acknowledge(event_id, acknowledged_by=request.acknowledged_by)
    return EventResponse(event=event)


@router.post("/{event_id}/resolve", response_model=EventResponse)
async def resolve_event(event_id: str,
                        request: Optional[ResolveRequest] = Body(None),
                        event_store: EventStore = Depends(get_event_store)):
    _get_failure_event(event_store, event_id)
    request = request or ResolveRequest()
    event = event_store.resolve(event_id, resolved_by=request.resolved_by, notes=request.notes)
    return EventResponse(event=event)


@router.post("/{event_id}/reopen", response_model=EventResponse)
async def reopen_event(event_id: str, event_store: EventStore = Depends(get_event_store)):
    _get_failure_event(event_store, event_id)
    return EventResponse(event=event_store.reopen(event_id))
