from fastapi import APIRouter, Depends, Query

from integration_monitor.core.dependencies import get_event_simulation_service
from integration_monitor.schemas.events import SimulationMode, SimulationResponse
from integration_monitor.services.event_simulation_service import EventSimulationService

router = APIRouter(prefix="/simulate", tags=["simulation"])


@router.post("", response_model=SimulationResponse)
async def simulate_events(
    mode: SimulationMode = Query(SimulationMode.DEMO, description="demo seeds 3-5 failures, full seeds all"),
    reset: bool = Query(False, description="Clear the event store before seeding"),
    simulation_service: EventSimulationService = Depends(get_event_simulation_service),
):
    """Seed the event store with demo success and failure events"""
    return simulation_service.seed(mode=mode, reset=reset)
