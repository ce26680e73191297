# Pydantic schemas for domain objects and API requests/responses
from .events import (
    IntegrationType, EventStatus, ErrorCategory, ErrorSeverity, ResolutionStatus,
    SortField, SortOrder, EventError, ErrorClassification, Resolution,
    IntegrationEvent, CreateEventInput, EventFilters, PaginatedEvents, ClassificationResult,
    SimulationMode, SimulationResponse,
)
from .integrations import (
    IntegrationStatus, IntegrationInfo, INTEGRATIONS, EventStats, IntegrationHealth, HealthOverview,
)
from .sync import (
    SyncDirection, SyncInstanceStatus, SyncExecutionStatus, SyncTrigger, SyncSchedule,
    SyncPipeline, SyncStats, SyncExecutionSummary, SyncInstance, SyncExecution,
    PipelineStat, FailingInstanceSummary, SyncSystemOverview, ClientSummary,
)

__all__ = [
    "IntegrationType", "EventStatus", "ErrorCategory", "ErrorSeverity", "ResolutionStatus",
    "SortField", "SortOrder", "EventError", "ErrorClassification", "Resolution",
    "IntegrationEvent", "CreateEventInput", "EventFilters", "PaginatedEvents", "ClassificationResult",
    "SimulationMode", "SimulationResponse",
    "IntegrationStatus", "IntegrationInfo", "INTEGRATIONS", "EventStats", "IntegrationHealth", "HealthOverview",
    "SyncDirection", "SyncInstanceStatus", "SyncExecutionStatus", "SyncTrigger", "SyncSchedule",
    "SyncPipeline", "SyncStats", "SyncExecutionSummary", "SyncInstance", "SyncExecution",
    "PipelineStat", "FailingInstanceSummary", "SyncSystemOverview", "ClientSummary",
]
