import logging
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from integration_monitor.core.clock import utc_now
from integration_monitor.schemas.events import (
    CreateEventInput,
    EventStatus,
    SimulationMode,
    SimulationResponse,
)
from integration_monitor.services.event_store import EventStore

logger = logging.getLogger(__name__)

MIN_SUCCESS_EVENTS = 15
MAX_SUCCESS_EVENTS = 20
MIN_DEMO_ERRORS = 3
MAX_DEMO_ERRORS = 5


def build_demo_scenarios(now: datetime) -> List[Dict[str, Any]]:
    """Canned events covering each integration; failures exercise every rule category"""
    return [
        {
            "integration": "procore",
            "event_type": "project.sync",
            "status": "success",
            "payload": {"project_id": 12847, "name": "Downtown Office Tower - Phase 2"},
        },
        {
            "integration": "procore",
            "event_type": "cost_code.updated",
            "status": "success",
            "payload": {"code": "03-100", "name": "Concrete - Formwork"},
        },
        {
            "integration": "gusto",
            "event_type": "employee.sync",
            "status": "success",
            "payload": {"employee_id": "emp_9921", "name": "Mike Torres"},
        },
        {
            "integration": "gusto",
            "event_type": "timecard.submitted",
            "status": "success",
            "payload": {"employee": "Mike Torres", "hours": 84, "job_id": "JOB-4821"},
        },
        {
            "integration": "gusto",
            "event_type": "payroll.completed",
            "status": "success",
            "payload": {"employees_paid": 47, "total_gross": 187432.5},
        },
        {
            "integration": "quickbooks",
            "event_type": "invoice.created",
            "status": "success",
            "payload": {"invoice_id": "INV-2024-042", "amount": 48750.0},
        },
        {
            "integration": "quickbooks",
            "event_type": "job_cost.sync",
            "status": "success",
            "payload": {"job_id": "JOB-4821", "total_labor": 87432.5},
        },
        {
            "integration": "stripe_issuing",
            "event_type": "issuing_authorization.created",
            "status": "success",
            "payload": {"cardholder": "Mike Torres", "merchant": "Home Depot #4521", "amount": 342.87},
        },
        {
            "integration": "stripe_issuing",
            "event_type": "issuing_transaction.created",
            "status": "success",
            "payload": {"cardholder": "Sarah Chen", "merchant": "Lowes #2234", "amount": 156.0},
        },
        {
            "integration": "certified_payroll",
            "event_type": "report.generated",
            "status": "success",
            "payload": {"report_type": "WH-347", "workers_included": 24},
        },
        {
            "integration": "certified_payroll",
            "event_type": "export.completed",
            "status": "success",
            "payload": {"report_type": "LCPtracker", "records_exported": 47},
        },
        {
            "integration": "procore",
            "event_type": "project.sync",
            "status": "failure",
            "payload": {"project_id": 12847},
            "error": {
                "message": "Entity not found: Project #12847 has been archived in Procore",
                "code": "404",
                "context": {
                    "job_id": "JOB-4821",
                    "procore_project_id": 12847,
                    "last_successful_sync": (now - timedelta(days=1)).isoformat(),
                },
            },
        },
        {
            "integration": "gusto",
            "event_type": "employee.sync",
            "status": "failure",
            "payload": {"employee_id": None},
            "error": {
                "message": "Validation failed: employee_id is required but was null",
                "code": "400",
                "context": {"missing_fields": ["employee_id"]},
            },
        },
        {
            "integration": "quickbooks",
            "event_type": "job_cost.sync",
            "status": "failure",
            "payload": {"job_id": "JOB-4821"},
            "error": {
                "message": 'GL Account mapping failed: Account "6200 - Materials" not found in QuickBooks',
                "code": "ENTITY_NOT_FOUND",
                "context": {
                    "miter_account": "6200",
                    "miter_account_name": "Materials",
                    "suggested_qb_accounts": ["6000 - Cost of Goods Sold", "6100 - Supplies"],
                },
            },
        },
        {
            "integration": "stripe_issuing",
            "event_type": "issuing_authorization.request",
            "status": "failure",
            "payload": {"cardholder": "Mike Torres", "amount": 847.32},
            "error": {
                "message": "Authorization declined: spending_limit_exceeded",
                "code": "card_declined",
                "context": {
                    "card_id": "ic_1NqJ...",
                    "cardholder": "Mike Torres",
                    "merchant": "Home Depot #4521",
                    "amount": 847.32,
                    "job_id": "JOB-4821",
                    "current_limit": 500,
                },
            },
        },
        {
            "integration": "certified_payroll",
            "event_type": "report.generation_failed",
            "status": "failure",
            "payload": {"report_type": "WH-347"},
            "error": {
                "message": "Prevailing wage rate not configured for classification: Electrician - Journeyman",
                "code": "MISSING_WAGE_RATE",
                "context": {
                    "classification": "Electrician - Journeyman",
                    "job_id": "JOB-4821",
                    "county": "Los Angeles",
                    "affected_employees": ["Mike Torres", "Sarah Chen", "James Wilson"],
                    "deadline": (now + timedelta(days=2)).isoformat(),
                },
            },
        },
    ]


class EventSimulationService:
    """Seeds the event store with demo traffic for walkthroughs and local testing"""

    def __init__(self, event_store: EventStore, rng: Optional[random.Random] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.event_store = event_store
        self.rng = rng or random.Random()
        self.clock = clock

    def seed(self, mode: SimulationMode = SimulationMode.DEMO, reset: bool = False) -> SimulationResponse:
        """
        Insert 15-20 random successful events, then a shuffled selection of
        failures: 3-5 in demo mode, every failure scenario in full mode.
        """
        if reset:
            self.event_store.clear()
            logger.info("Event store cleared before seeding")

        scenarios = [CreateEventInput.model_validate(s) for s in build_demo_scenarios(self.clock())]
        successes = [s for s in scenarios if s.status == EventStatus.SUCCESS]
        failures = [s for s in scenarios if s.status == EventStatus.FAILURE]

        success_count = self.rng.randint(MIN_SUCCESS_EVENTS, MAX_SUCCESS_EVENTS)
        for _ in range(success_count):
            self.event_store.create(self.rng.choice(successes))

        if SimulationMode(mode) == SimulationMode.DEMO:
            error_count = self.rng.randint(MIN_DEMO_ERRORS, MAX_DEMO_ERRORS)
        else:
            error_count = len(failures)
        for scenario in self.rng.sample(failures, error_count):
            self.event_store.create(scenario)

        message = f"Seeded {success_count} successful events and {error_count} error events"
        logger.info(message)
        return SimulationResponse(
            success=True,
            message=message,
            success_count=success_count,
            error_count=error_count,
        )
