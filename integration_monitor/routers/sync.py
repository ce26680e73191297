from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from typing import Optional
import logging

from integration_monitor.core.dependencies import (
    get_sync_metrics_service,
    get_sync_service,
    get_sync_store,
)
from integration_monitor.schemas.sync import (
    ClientListResponse,
    ExecutionListResponse,
    ExecutionResponse,
    GenerateMockDataRequest,
    GenerateMockDataResponse,
    InstanceListResponse,
    InstanceResponse,
    PipelineListResponse,
    PipelineResponse,
    SyncExecutionStatus,
    SyncInstance,
    SyncInstanceStatus,
    SyncOverviewResponse,
    TriggerSyncResponse,
)
from integration_monitor.services.sync_metrics_service import SyncMetricsService
from integration_monitor.services.sync_service import SyncService
from integration_monitor.services.sync_store import SyncStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])

INSTANCE_EXECUTIONS_LIMIT = 20
EXECUTIONS_LIMIT = 50


def _not_found(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": code, "message": message}
    )


def _get_instance_or_404(sync_store: SyncStore, instance_id: str) -> SyncInstance:
    instance = sync_store.get_instance(instance_id)
    if instance is None:
        raise _not_found("INSTANCE_NOT_FOUND", f"Sync instance {instance_id} not found")
    return instance


# System overview
@router.get("/overview", response_model=SyncOverviewResponse)
async def get_overview(metrics_service: SyncMetricsService = Depends(get_sync_metrics_service)):
    """Company-wide sync overview for support and engineering"""
    return SyncOverviewResponse(overview=metrics_service.get_system_overview())


# Pipelines
@router.get("/pipelines", response_model=PipelineListResponse)
async def list_pipelines(sync_store: SyncStore = Depends(get_sync_store)):
    return PipelineListResponse(pipelines=sync_store.get_pipelines())


@router.get("/pipelines/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(pipeline_id: str, sync_store: SyncStore = Depends(get_sync_store)):
    pipeline = sync_store.get_pipeline(pipeline_id)
    if pipeline is None:
        raise _not_found("PIPELINE_NOT_FOUND", f"Pipeline {pipeline_id} not found")
    return PipelineResponse(pipeline=pipeline)


# Clients
@router.get("/clients", response_model=ClientListResponse)
async def list_clients(sync_store: SyncStore = Depends(get_sync_store)):
    return ClientListResponse(clients=sync_store.get_clients())


@router.get("/clients/{client_id}/instances", response_model=InstanceListResponse)
async def list_client_instances(client_id: str, sync_store: SyncStore = Depends(get_sync_store)):
    return InstanceListResponse(instances=sync_store.get_instances(client_id=client_id))


# Instances
@router.get("/instances", response_model=InstanceListResponse)
async def list_instances(
    client_id: Optional[str] = Query(None, description="Filter by client"),
    pipeline_id: Optional[str] = Query(None, description="Filter by pipeline"),
    instance_status: Optional[SyncInstanceStatus] = Query(None, alias="status", description="Filter by status"),
    sync_store: SyncStore = Depends(get_sync_store),
):
    return InstanceListResponse(instances=sync_store.get_instances(
        client_id=client_id, pipeline_id=pipeline_id, status=instance_status
    ))


@router.get("/instances/{instance_id}", response_model=InstanceResponse)
async def get_instance(instance_id: str, sync_store: SyncStore = Depends(get_sync_store)):
    return InstanceResponse(instance=_get_instance_or_404(sync_store, instance_id))


@router.get("/instances/{instance_id}/executions", response_model=ExecutionListResponse)
async def list_instance_executions(
    instance_id: str,
    limit: int = Query(INSTANCE_EXECUTIONS_LIMIT, ge=1, description="Maximum number of executions"),
    sync_store: SyncStore = Depends(get_sync_store),
):
    _get_instance_or_404(sync_store, instance_id)
    return ExecutionListResponse(executions=sync_store.get_executions(instance_id=instance_id, limit=limit))


@router.post("/instances/{instance_id}/sync", response_model=TriggerSyncResponse)
async def trigger_sync(instance_id: str,
                       sync_store: SyncStore = Depends(get_sync_store),
                       sync_service: SyncService = Depends(get_sync_service)):
    """Run a manual sync for one instance"""
    _get_instance_or_404(sync_store, instance_id)

    execution = sync_service.trigger_sync(instance_id)
    if execution is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "SYNC_TRIGGER_FAILED", "message": "Failed to trigger sync"}
        )
    return TriggerSyncResponse(message="Sync triggered successfully", execution=execution)


# Executions
@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    instance_id: Optional[str] = Query(None, description="Filter by instance"),
    pipeline_id: Optional[str] = Query(None, description="Filter by pipeline"),
    execution_status: Optional[SyncExecutionStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(EXECUTIONS_LIMIT, ge=1, description="Maximum number of executions"),
    sync_store: SyncStore = Depends(get_sync_store),
):
    return ExecutionListResponse(executions=sync_store.get_executions(
        instance_id=instance_id, pipeline_id=pipeline_id, status=execution_status, limit=limit
    ))


@router.get("/executions/{execution_id}", response_model=ExecutionResponse)
async def get_execution(execution_id: str, sync_store: SyncStore = Depends(get_sync_store)):
    execution = sync_store.get_execution(execution_id)
    if execution is None:
        raise _not_found("EXECUTION_NOT_FOUND", f"Execution {execution_id} not found")
    return ExecutionResponse(execution=execution)


# Simulation
@router.post("/simulate", response_model=GenerateMockDataResponse)
async def generate_mock_data(request: Optional[GenerateMockDataRequest] = Body(None),
                             sync_service: SyncService = Depends(get_sync_service),
                             metrics_service: SyncMetricsService = Depends(get_sync_metrics_service)):
    """Replace all sync data with a freshly generated mock data set"""
    request = request or GenerateMockDataRequest()
    sync_service.generate_mock_data(
        client_count=request.client_count,
        introduce_failures=request.introduce_failures,
    )

    overview = metrics_service.get_system_overview()
    return GenerateMockDataResponse(
        success=True,
        message="Mock sync data generated",
        active_clients=overview.active_clients,
        total_pipelines=len(overview.pipeline_stats),
        total_instances=sum(p.total_instances for p in overview.pipeline_stats),
        failing_instances=overview.failing_instances,
        stale_instances=overview.stale_instances,
    )
