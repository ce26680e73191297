from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


class IntegrationType(str, Enum):
    """External systems that produce integration events"""
    PROCORE = "procore"
    GUSTO = "gusto"
    QUICKBOOKS = "quickbooks"
    STRIPE_ISSUING = "stripe_issuing"
    CERTIFIED_PAYROLL = "certified_payroll"


class EventStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class ErrorCategory(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    DATA_VALIDATION = "data_validation"
    DATA_STATE_MISMATCH = "data_state_mismatch"
    NETWORK = "network"
    SPENDING_CONTROL = "spending_control"
    COMPLIANCE = "compliance"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolutionStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class SortField(str, Enum):
    TIMESTAMP = "timestamp"
    INTEGRATION = "integration"
    EVENT_TYPE = "event_type"
    STATUS = "status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class EventError(BaseModel):
    """Error detail attached to a failure event"""
    message: str = Field(..., description="Error message reported by the integration")
    code: Optional[str] = Field(None, description="Vendor or HTTP error code")
    context: Optional[Dict[str, Any]] = Field(None, description="Structured error context")


class ErrorClassification(BaseModel):
    """Advisory explanation of a failure's root cause and fix"""
    category: ErrorCategory
    severity: ErrorSeverity
    cause: str
    suggested_fix: str
    affected_data: Optional[List[str]] = None
    business_impact: Optional[str] = None


class Resolution(BaseModel):
    """Triage lifecycle state of a failure event"""
    status: ResolutionStatus = ResolutionStatus.OPEN
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    notes: Optional[str] = None


class IntegrationEvent(BaseModel):
    """One observed interaction with an external integration"""
    id: str
    integration: IntegrationType
    event_type: str
    status: EventStatus
    timestamp: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[EventError] = None
    classification: Optional[ErrorClassification] = None
    resolution: Optional[Resolution] = None

    @property
    def is_failure(self) -> bool:
        return self.status == EventStatus.FAILURE

    @property
    def resolution_status(self) -> Optional[ResolutionStatus]:
        """Effective resolution status; failure events without a record are open"""
        if not self.is_failure:
            return None
        return self.resolution.status if self.resolution else ResolutionStatus.OPEN


class CreateEventInput(BaseModel):
    """Schema for ingesting a new event"""
    integration: IntegrationType
    event_type: str = Field(..., min_length=1)
    status: EventStatus
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[EventError] = None


class EventFilters(BaseModel):
    """Filters applied by the event query engine"""
    integration: Optional[IntegrationType] = None
    status: Optional[EventStatus] = None
    resolution_status: Optional[ResolutionStatus] = None
    since: Optional[datetime] = None
    search: Optional[str] = None


class PaginatedEvents(BaseModel):
    """Page of events plus the post-filter total"""
    events: List[IntegrationEvent]
    total: int
    offset: int
    limit: int
    has_more: bool


class EventListResponse(BaseModel):
    events: List[IntegrationEvent]
    total: int


class EventResponse(BaseModel):
    event: IntegrationEvent


class ClassificationResult(BaseModel):
    """Outcome of a classify call"""
    event: IntegrationEvent
    classification: ErrorClassification
    cached: bool


class AcknowledgeRequest(BaseModel):
    acknowledged_by: str = Field("anonymous", description="Operator acknowledging the failure")


class ResolveRequest(BaseModel):
    resolved_by: str = Field("anonymous", description="Operator resolving the failure")
    notes: Optional[str] = Field(None, description="Resolution notes")


class SimulationResponse(BaseModel):
    """Schema for demo event seeding results"""
    success: bool
    message: str
    success_count: int
    error_count: int


class SimulationMode(str, Enum):
    DEMO = "demo"
    FULL = "full"
