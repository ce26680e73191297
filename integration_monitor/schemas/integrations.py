from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from integration_monitor.schemas.events import IntegrationType, IntegrationEvent


class IntegrationStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class IntegrationInfo(BaseModel):
    """Static catalog entry for an integration"""
    id: IntegrationType
    name: str
    description: str


INTEGRATIONS: Dict[IntegrationType, IntegrationInfo] = {
    IntegrationType.PROCORE: IntegrationInfo(
        id=IntegrationType.PROCORE,
        name="Procore",
        description="Project management - jobs, cost codes, daily logs",
    ),
    IntegrationType.GUSTO: IntegrationInfo(
        id=IntegrationType.GUSTO,
        name="Gusto",
        description="Payroll - employee data, timecards, payroll runs",
    ),
    IntegrationType.QUICKBOOKS: IntegrationInfo(
        id=IntegrationType.QUICKBOOKS,
        name="QuickBooks",
        description="Accounting - job costs, invoices, GL entries",
    ),
    IntegrationType.STRIPE_ISSUING: IntegrationInfo(
        id=IntegrationType.STRIPE_ISSUING,
        name="Stripe Issuing",
        description="Payments - virtual cards, authorizations, transactions",
    ),
    IntegrationType.CERTIFIED_PAYROLL: IntegrationInfo(
        id=IntegrationType.CERTIFIED_PAYROLL,
        name="Certified Payroll",
        description="Compliance - LCPtracker, WH-347 reports, prevailing wage",
    ),
}


class EventStats(BaseModel):
    """Trailing 24h event statistics for one integration"""
    events_last_24h: int
    errors_last_24h: int
    success_rate: int
    last_sync: Optional[datetime] = None


class IntegrationHealth(IntegrationInfo):
    """Integration catalog entry with derived health"""
    status: IntegrationStatus
    last_sync: Optional[datetime] = None
    success_rate: int
    events_last_24h: int
    errors_last_24h: int


class HealthOverview(BaseModel):
    total_integrations: int
    healthy: int
    degraded: int
    down: int


class IntegrationHealthResponse(BaseModel):
    health: HealthOverview
    integrations: List[IntegrationHealth]


class IntegrationDetailResponse(BaseModel):
    integration: IntegrationHealth
    recent_events: List[IntegrationEvent]


class IntegrationListResponse(BaseModel):
    integrations: List[IntegrationHealth]
