from fastapi import APIRouter, Depends, HTTPException, status

from integration_monitor.core.dependencies import get_event_store, get_health_calculator
from integration_monitor.schemas.events import EventFilters, IntegrationType
from integration_monitor.schemas.integrations import (
    IntegrationDetailResponse,
    IntegrationHealthResponse,
    IntegrationListResponse,
)
from integration_monitor.services.event_store import EventStore
from integration_monitor.services.health_calculator import HealthCalculator

router = APIRouter(prefix="/integrations", tags=["integrations"])

RECENT_EVENTS_LIMIT = 20


@router.get("/health", response_model=IntegrationHealthResponse)
async def get_integrations_health(health_calculator: HealthCalculator = Depends(get_health_calculator)):
    """Overall health summary plus per-integration health"""
    return IntegrationHealthResponse(
        health=health_calculator.get_overall_health(),
        integrations=health_calculator.get_all_integration_health(),
    )


@router.get("", response_model=IntegrationListResponse)
async def list_integrations(health_calculator: HealthCalculator = Depends(get_health_calculator)):
    return IntegrationListResponse(integrations=health_calculator.get_all_integration_health())


@router.get("/{integration_id}", response_model=IntegrationDetailResponse)
async def get_integration(integration_id: str,
                          health_calculator: HealthCalculator = Depends(get_health_calculator),
                          event_store: EventStore = Depends(get_event_store)):
    """Health and recent events for one integration"""
    try:
        integration = IntegrationType(integration_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "INTEGRATION_NOT_FOUND",
                "message": f"Integration {integration_id} not found"
            }
        )

    return IntegrationDetailResponse(
        integration=health_calculator.get_integration_health(integration),
        recent_events=event_store.list(EventFilters(integration=integration), limit=RECENT_EVENTS_LIMIT),
    )
