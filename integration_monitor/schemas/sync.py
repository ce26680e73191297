from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum

from integration_monitor.schemas.events import IntegrationType
from integration_monitor.schemas.integrations import IntegrationStatus


class SyncDirection(str, Enum):
    PULL = "pull"
    PUSH = "push"


class SyncInstanceStatus(str, Enum):
    HEALTHY = "healthy"
    STALE = "stale"
    FAILING = "failing"
    DISABLED = "disabled"


class SyncExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncTrigger(str, Enum):
    SCHEDULE = "schedule"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class SyncSchedule(BaseModel):
    interval_minutes: int = Field(..., gt=0, description="How often the pipeline runs")
    stale_threshold_minutes: int = Field(..., gt=0, description="Overdue time before data counts as stale")


class SyncPipeline(BaseModel):
    """Static definition of a recurring data flow"""
    id: str
    name: str
    integration: IntegrationType
    data_type: str
    direction: SyncDirection
    description: str
    schedule: SyncSchedule


class SyncStats(BaseModel):
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    success_rate: float = 100.0
    avg_duration_ms: float = 0.0
    total_records_processed: int = 0


class SyncInstanceStats(BaseModel):
    last_24h: SyncStats
    last_7d: SyncStats


class SyncExecutionSummary(BaseModel):
    """Condensed execution record used in lists and sparklines"""
    id: str
    instance_id: str
    pipeline_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: SyncExecutionStatus
    duration_ms: int
    records_processed: int
    errors: int
    warnings: int


class SyncInstance(BaseModel):
    """One client's binding of a pipeline"""
    id: str
    client_id: str
    client_name: str
    pipeline_id: str
    pipeline: SyncPipeline
    status: SyncInstanceStatus
    enabled: bool = True
    last_sync: Optional[SyncExecutionSummary] = None
    next_scheduled_sync: datetime
    stats: SyncInstanceStats
    recent_executions: List[SyncExecutionSummary] = Field(default_factory=list)


class SyncRequestRecord(BaseModel):
    """Outbound request, sanitized of credentials"""
    url: str
    method: str
    headers: Dict[str, str]
    params: Dict[str, str]
    timestamp: datetime


class SyncResponseRecord(BaseModel):
    status_code: int
    status_text: str
    headers: Dict[str, str]
    body_preview: str
    body_size: int
    duration_ms: int
    timestamp: datetime


class SyncError(BaseModel):
    id: str
    record_id: Optional[str] = None
    record_name: Optional[str] = None
    message: str
    code: str
    context: Dict[str, Any] = Field(default_factory=dict)
    retryable: bool
    timestamp: datetime


class SyncWarning(BaseModel):
    id: str
    record_id: Optional[str] = None
    record_name: Optional[str] = None
    message: str
    code: str
    timestamp: datetime


class FieldChange(BaseModel):
    field: str
    old_value: Optional[str] = None
    new_value: str


class SyncChange(BaseModel):
    id: str
    record_id: str
    record_name: str
    change_type: ChangeType
    fields: Optional[List[FieldChange]] = None
    timestamp: datetime


class SyncResults(BaseModel):
    records_fetched: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    errors: List[SyncError] = Field(default_factory=list)
    warnings: List[SyncWarning] = Field(default_factory=list)
    changes: List[SyncChange] = Field(default_factory=list)


class SyncExecution(BaseModel):
    """One run of a pipeline for one instance"""
    id: str
    instance_id: str
    pipeline_id: str
    client_id: str
    client_name: str
    pipeline: SyncPipeline
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: SyncExecutionStatus
    triggered_by: SyncTrigger = SyncTrigger.SCHEDULE
    request: SyncRequestRecord
    response: Optional[SyncResponseRecord] = None
    results: SyncResults


class PipelineStat(BaseModel):
    pipeline: SyncPipeline
    total_instances: int
    healthy_instances: int
    stale_instances: int
    failing_instances: int
    success_rate: float
    syncs_last_24h: int
    failed_syncs_last_24h: int
    avg_duration_ms: float
    health: IntegrationStatus


class FailingInstanceSummary(BaseModel):
    instance_id: str
    client_id: str
    client_name: str
    pipeline: SyncPipeline
    last_error: str
    failing_since: datetime
    consecutive_failures: int


class SyncSystemOverview(BaseModel):
    """Company-wide sync overview for support and engineering"""
    overall_health: float
    active_clients: int
    total_syncs_last_24h: int
    syncs_per_hour: float
    healthy_instances: int
    failing_instances: int
    stale_instances: int
    pipeline_stats: List[PipelineStat]
    recent_failures: List[FailingInstanceSummary]


class ClientSummary(BaseModel):
    id: str
    name: str


class GenerateMockDataRequest(BaseModel):
    client_count: int = Field(5, ge=1, le=100, description="Number of synthetic clients")
    introduce_failures: bool = Field(True, description="Force some instances into failing/stale states")


class GenerateMockDataResponse(BaseModel):
    success: bool
    message: str
    active_clients: int
    total_pipelines: int
    total_instances: int
    failing_instances: int
    stale_instances: int


class TriggerSyncResponse(BaseModel):
    message: str
    execution: SyncExecution


class SyncOverviewResponse(BaseModel):
    overview: SyncSystemOverview


class PipelineListResponse(BaseModel):
    pipelines: List[SyncPipeline]


class PipelineResponse(BaseModel):
    pipeline: SyncPipeline


class ClientListResponse(BaseModel):
    clients: List[ClientSummary]


class InstanceListResponse(BaseModel):
    instances: List[SyncInstance]


class InstanceResponse(BaseModel):
    instance: SyncInstance


class ExecutionListResponse(BaseModel):
    executions: List[SyncExecution]


class ExecutionResponse(BaseModel):
    execution: SyncExecution
