from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
import logging

from integration_monitor.core.clock import utc_now
from integration_monitor.schemas.events import IntegrationType
from integration_monitor.schemas.sync import (
    ClientSummary,
    SyncDirection,
    SyncExecution,
    SyncExecutionStatus,
    SyncInstance,
    SyncInstanceStats,
    SyncInstanceStatus,
    SyncPipeline,
    SyncSchedule,
)
from integration_monitor.services.sync_analysis import (
    calculate_stats,
    derive_instance_status,
    execution_to_summary,
    executions_since,
    scale_stats,
)

logger = logging.getLogger(__name__)

RECENT_EXECUTIONS_LIMIT = 10
STATS_WINDOW = timedelta(hours=24)
WEEKLY_SCALE = 7

DEFAULT_PIPELINES = [
    {
        "name": "Procore Projects",
        "integration": IntegrationType.PROCORE,
        "data_type": "projects",
        "description": "Sync project data including budgets, status, and team assignments",
        "schedule": (15, 30),
    },
    {
        "name": "Procore Cost Codes",
        "integration": IntegrationType.PROCORE,
        "data_type": "cost_codes",
        "description": "Sync cost code structure for job costing",
        "schedule": (60, 120),
    },
    {
        "name": "Gusto Employees",
        "integration": IntegrationType.GUSTO,
        "data_type": "employees",
        "description": "Sync employee records, roles, and compensation data",
        "schedule": (30, 60),
    },
    {
        "name": "Gusto Timecards",
        "integration": IntegrationType.GUSTO,
        "data_type": "timecards",
        "description": "Sync timecard entries for payroll processing",
        "schedule": (15, 30),
    },
    {
        "name": "QuickBooks Invoices",
        "integration": IntegrationType.QUICKBOOKS,
        "data_type": "invoices",
        "description": "Sync invoice and payment data from accounting system",
        "schedule": (30, 60),
    },
    {
        "name": "QuickBooks GL Entries",
        "integration": IntegrationType.QUICKBOOKS,
        "data_type": "gl_entries",
        "description": "Sync general ledger entries for financial reporting",
        "schedule": (60, 120),
    },
    {
        "name": "Stripe Transactions",
        "integration": IntegrationType.STRIPE_ISSUING,
        "data_type": "transactions",
        "description": "Sync card transactions and authorizations",
        "schedule": (5, 15),
    },
]


def pipeline_id(integration: IntegrationType, data_type: str) -> str:
    return f"pipeline_{IntegrationType(integration).value}_{data_type}"


def build_pipeline_catalog() -> List[SyncPipeline]:
    pipelines = []
    for definition in DEFAULT_PIPELINES:
        interval, stale_threshold = definition["schedule"]
        pipelines.append(SyncPipeline(
            id=pipeline_id(definition["integration"], definition["data_type"]),
            name=definition["name"],
            integration=definition["integration"],
            data_type=definition["data_type"],
            direction=definition.get("direction", SyncDirection.PULL),
            description=definition["description"],
            schedule=SyncSchedule(interval_minutes=interval, stale_threshold_minutes=stale_threshold),
        ))
    return pipelines


class SyncStore:
    """
    In-memory sync state: the pipeline catalog, client instances and their
    execution history.

    The catalog is built on first use and never changes afterwards. Instances
    keep insertion order; executions are returned newest first.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._pipelines: Optional[List[SyncPipeline]] = None
        self._instances: Dict[str, SyncInstance] = {}
        self._executions: List[SyncExecution] = []

    # Pipelines
    def get_pipelines(self) -> List[SyncPipeline]:
        if self._pipelines is None:
            self._pipelines = build_pipeline_catalog()
            logger.debug(f"Initialized {len(self._pipelines)} sync pipelines")
        return list(self._pipelines)

    def get_pipeline(self, pipeline_id: str) -> Optional[SyncPipeline]:
        for pipeline in self.get_pipelines():
            if pipeline.id == pipeline_id:
                return pipeline
        return None

    # Instances
    def get_instances(self, client_id: Optional[str] = None, pipeline_id: Optional[str] = None,
                      status: Optional[SyncInstanceStatus] = None) -> List[SyncInstance]:
        result = list(self._instances.values())
        if client_id:
            result = [i for i in result if i.client_id == client_id]
        if pipeline_id:
            result = [i for i in result if i.pipeline_id == pipeline_id]
        if status:
            result = [i for i in result if i.status == status]
        return result

    def get_instance(self, instance_id: str) -> Optional[SyncInstance]:
        return self._instances.get(instance_id)

    def get_clients(self) -> List[ClientSummary]:
        """Distinct clients in first-seen order"""
        clients: Dict[str, str] = {}
        for instance in self._instances.values():
            clients[instance.client_id] = instance.client_name
        return [ClientSummary(id=client_id, name=name) for client_id, name in clients.items()]

    # Executions
    def get_executions(self, instance_id: Optional[str] = None, pipeline_id: Optional[str] = None,
                       status: Optional[SyncExecutionStatus] = None,
                       limit: Optional[int] = None) -> List[SyncExecution]:
        result = self._executions
        if instance_id:
            result = [e for e in result if e.instance_id == instance_id]
        if pipeline_id:
            result = [e for e in result if e.pipeline_id == pipeline_id]
        if status:
            result = [e for e in result if e.status == status]

        result = sorted(result, key=lambda e: e.started_at, reverse=True)
        if limit:
            result = result[:limit]
        return result

    def get_execution(self, execution_id: str) -> Optional[SyncExecution]:
        for execution in self._executions:
            if execution.id == execution_id:
                return execution
        return None

    def get_executions_since(self, cutoff: datetime) -> List[SyncExecution]:
        return executions_since(self._executions, cutoff)

    # Mutation
    def replace(self, instances: List[SyncInstance], executions: List[SyncExecution]):
        """Swap in a freshly generated data set"""
        self._instances = {instance.id: instance for instance in instances}
        self._executions = list(executions)
        logger.info(f"Sync store loaded {len(self._instances)} instances and {len(self._executions)} executions")

    def clear(self):
        self._instances = {}
        self._executions = []

    def record_execution(self, execution: SyncExecution) -> Optional[SyncInstance]:
        """
        Prepend a completed execution and roll it into its instance: last sync,
        recent list, next scheduled run, status and stats.
        """
        instance = self._instances.get(execution.instance_id)
        if instance is None:
            logger.warning(f"Execution {execution.id} references unknown instance {execution.instance_id}")
            return None

        now = self._clock()
        self._executions.insert(0, execution)

        summary = execution_to_summary(execution)
        instance.last_sync = summary
        instance.recent_executions = [summary] + instance.recent_executions[:RECENT_EXECUTIONS_LIMIT - 1]
        instance.next_scheduled_sync = now + timedelta(minutes=instance.pipeline.schedule.interval_minutes)
        instance.status = derive_instance_status(
            instance.recent_executions,
            instance.pipeline.schedule,
            now,
            instance.next_scheduled_sync,
            instance.enabled,
        )
        instance.stats = self.compute_instance_stats(instance.id, now)
        return instance

    def compute_instance_stats(self, instance_id: str, now: Optional[datetime] = None) -> SyncInstanceStats:
        now = now or self._clock()
        history = [e for e in self._executions if e.instance_id == instance_id]
        last_24h = calculate_stats(executions_since(history, now - STATS_WINDOW))
        return SyncInstanceStats(last_24h=last_24h, last_7d=scale_stats(last_24h, WEEKLY_SCALE))

    def count_instances_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in SyncInstanceStatus}
        for instance in self._instances.values():
            counts[instance.status.value] += 1
        return counts
