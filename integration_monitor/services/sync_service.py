import json
import logging
import random
import uuid
from datetime import datetime, timedelta
from http import HTTPStatus
from typing import Callable, List, Optional

from integration_monitor.core.clock import utc_now
from integration_monitor.core.logging import log_sync_operation
from integration_monitor.monitoring.prometheus import PrometheusMetrics
from integration_monitor.schemas.events import IntegrationType
from integration_monitor.schemas.sync import (
    ChangeType,
    FieldChange,
    SyncChange,
    SyncError,
    SyncExecution,
    SyncExecutionStatus,
    SyncInstance,
    SyncInstanceStats,
    SyncInstanceStatus,
    SyncPipeline,
    SyncRequestRecord,
    SyncResponseRecord,
    SyncResults,
    SyncTrigger,
    SyncWarning,
)
from integration_monitor.services.sync_analysis import (
    calculate_stats,
    execution_duration_ms,
    execution_to_summary,
    executions_since,
    scale_stats,
)
from integration_monitor.services.sync_store import (
    RECENT_EXECUTIONS_LIMIT,
    STATS_WINDOW,
    WEEKLY_SCALE,
    SyncStore,
)

logger = logging.getLogger(__name__)

CLIENT_NAMES = [
    "Acme Construction",
    "BuildRight Inc",
    "Metro Builders",
    "Summit Contractors",
    "Pacific Construction Co",
    "Valley Infrastructure",
    "Coastal Development",
    "Mountain View Builders",
]

API_BASE_URLS = {
    IntegrationType.PROCORE: "https://api.procore.com/rest/v1.0",
    IntegrationType.GUSTO: "https://api.gusto.com/v1",
    IntegrationType.QUICKBOOKS: "https://quickbooks.api.intuit.com/v3",
    IntegrationType.STRIPE_ISSUING: "https://api.stripe.com/v1/issuing",
    IntegrationType.CERTIFIED_PAYROLL: "https://api.lcptracker.com/v2",
}

# (code, message, response status)
SYNC_ERROR_TYPES = [
    ("AUTH_EXPIRED", "OAuth token expired. Re-authentication required.", 401),
    ("RATE_LIMITED", "API rate limit exceeded. Retry after 60 seconds.", 429),
    ("TIMEOUT", "Request timeout after 30000ms.", 504),
    ("INVALID_RESPONSE", "Unexpected response format from API.", 502),
    ("CONNECTION_ERROR", "Failed to establish connection to remote server.", 503),
]

NON_RETRYABLE_ERROR_CODES = {"AUTH_EXPIRED"}

MAX_EXECUTIONS_PER_INSTANCE = 20
FAILING_INSTANCE_THRESHOLD = 0.95
STALE_INSTANCE_THRESHOLD = 0.88
FAILED_EXECUTION_THRESHOLD = 0.97
PARTIAL_EXECUTION_THRESHOLD = 0.95
MANUAL_FAILURE_RATE = 0.1
WARNING_THRESHOLD = 0.9


class SyncService:
    """
    Simulated sync engine: builds synthetic execution histories for a set of
    demo clients and runs manual syncs against the sync store.

    Randomness and time are injected so histories are reproducible.
    """

    def __init__(self, sync_store: SyncStore, rng: Optional[random.Random] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.sync_store = sync_store
        self.rng = rng or random.Random()
        self.clock = clock

    def _new_id(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def generate_mock_data(self, client_count: int = 5, introduce_failures: bool = True):
        """
        Replace all instances and executions with a fresh synthetic data set:
        one instance per client and pipeline, each with up to a day of history.
        """
        now = self.clock()
        pipelines = self.sync_store.get_pipelines()
        instances: List[SyncInstance] = []
        executions: List[SyncExecution] = []

        logger.info(f"Generating mock sync data for {client_count} clients "
                    f"(introduce_failures={introduce_failures})")

        for i in range(client_count):
            client_id = f"client_{i + 1}"
            client_name = CLIENT_NAMES[i % len(CLIENT_NAMES)]

            for pipeline in pipelines:
                instance, history = self._generate_instance(
                    client_id, client_name, pipeline, now, introduce_failures
                )
                instances.append(instance)
                executions.extend(history)

        self.sync_store.replace(instances, executions)
        PrometheusMetrics.update_sync_instance_counts(self.sync_store.count_instances_by_status())

    def _generate_instance(self, client_id: str, client_name: str, pipeline: SyncPipeline,
                           now: datetime, introduce_failures: bool):
        instance_id = f"{client_id}_{pipeline.id}"
        schedule = pipeline.schedule

        status = SyncInstanceStatus.HEALTHY
        should_fail = False
        should_be_stale = False
        if introduce_failures:
            roll = self.rng.random()
            if roll > FAILING_INSTANCE_THRESHOLD:
                status = SyncInstanceStatus.FAILING
                should_fail = True
            elif roll > STALE_INSTANCE_THRESHOLD:
                status = SyncInstanceStatus.STALE
                should_be_stale = True

        # Newest first, spaced one interval apart
        history: List[SyncExecution] = []
        executions_per_day = (24 * 60) // schedule.interval_minutes
        for j in range(min(executions_per_day, MAX_EXECUTIONS_PER_INSTANCE)):
            started_at = now - timedelta(minutes=j * schedule.interval_minutes)
            if j == 0 and should_fail:
                exec_status = SyncExecutionStatus.FAILED
            elif self.rng.random() > FAILED_EXECUTION_THRESHOLD:
                exec_status = SyncExecutionStatus.FAILED
            elif self.rng.random() > PARTIAL_EXECUTION_THRESHOLD:
                exec_status = SyncExecutionStatus.PARTIAL
            else:
                exec_status = SyncExecutionStatus.SUCCESS

            history.append(self.generate_execution(
                instance_id, client_id, client_name, pipeline, started_at, exec_status
            ))

        stats_24h = calculate_stats(executions_since(history, now - STATS_WINDOW))

        last_execution = history[0] if history else None
        if last_execution:
            last_sync_time = last_execution.completed_at or last_execution.started_at
        else:
            last_sync_time = now
        next_sync = last_sync_time + timedelta(minutes=schedule.interval_minutes)

        if should_be_stale:
            stale_minutes = schedule.stale_threshold_minutes + self.rng.randrange(30)
            next_sync = now - timedelta(minutes=stale_minutes)

        instance = SyncInstance(
            id=instance_id,
            client_id=client_id,
            client_name=client_name,
            pipeline_id=pipeline.id,
            pipeline=pipeline,
            status=status,
            enabled=True,
            last_sync=execution_to_summary(last_execution) if last_execution else None,
            next_scheduled_sync=next_sync,
            stats=SyncInstanceStats(last_24h=stats_24h, last_7d=scale_stats(stats_24h, WEEKLY_SCALE)),
            recent_executions=[execution_to_summary(e) for e in history[:RECENT_EXECUTIONS_LIMIT]],
        )
        return instance, history

    def generate_execution(self, instance_id: str, client_id: str, client_name: str,
                           pipeline: SyncPipeline, started_at: datetime,
                           status: SyncExecutionStatus,
                           triggered_by: SyncTrigger = SyncTrigger.SCHEDULE) -> SyncExecution:
        """Synthesize one execution with plausible request, response and results"""
        rng = self.rng
        duration_ms = 500 + rng.randrange(2500)
        completed_at = started_at + timedelta(milliseconds=duration_ms)
        failed = status == SyncExecutionStatus.FAILED

        records_fetched = 10 + rng.randrange(90)
        records_created = rng.randrange(3)
        records_updated = rng.randrange(10)
        records_failed = rng.randrange(5) + 1 if failed else 0
        records_skipped = max(records_fetched - records_created - records_updated - records_failed, 0)

        errors: List[SyncError] = []
        warnings: List[SyncWarning] = []
        changes: List[SyncChange] = []
        status_code = HTTPStatus.OK

        if failed:
            code, message, status_code = rng.choice(SYNC_ERROR_TYPES)
            errors.append(SyncError(
                id=self._new_id(),
                message=message,
                code=code,
                context={"pipeline": pipeline.name, "attempt": 1},
                retryable=code not in NON_RETRYABLE_ERROR_CODES,
                timestamp=completed_at,
            ))

        if status == SyncExecutionStatus.PARTIAL or rng.random() > WARNING_THRESHOLD:
            warnings.append(SyncWarning(
                id=self._new_id(),
                message="Some records have missing optional fields",
                code="INCOMPLETE_DATA",
                timestamp=completed_at,
            ))

        record_label = pipeline.data_type.replace("_", " ")
        if records_created > 0:
            changes.append(SyncChange(
                id=self._new_id(),
                record_id=f"rec_{rng.randrange(10000)}",
                record_name=f"New {record_label} record",
                change_type=ChangeType.CREATED,
                timestamp=completed_at,
            ))
        if records_updated > 0:
            changes.append(SyncChange(
                id=self._new_id(),
                record_id=f"rec_{rng.randrange(10000)}",
                record_name=f"Updated {record_label} record",
                change_type=ChangeType.UPDATED,
                fields=[FieldChange(field="status", old_value="pending", new_value="active")],
                timestamp=completed_at,
            ))

        request = SyncRequestRecord(
            url=f"{API_BASE_URLS[pipeline.integration]}/{pipeline.data_type}",
            method="GET",
            headers={
                "Authorization": "Bearer ****redacted****",
                "Accept": "application/json",
                "X-Request-Id": self._new_id(),
            },
            params={
                "per_page": "100",
                "updated_since": (started_at - timedelta(hours=24)).isoformat(),
            },
            timestamp=started_at,
        )

        response = None
        if status != SyncExecutionStatus.RUNNING:
            if failed:
                body_preview = json.dumps({"error": errors[0].message})
            else:
                body_preview = (f'[{{"id":{rng.randrange(10000)},"name":"Sample Record",'
                                f'"updated_at":"{completed_at.isoformat()}"}},...]')
            response = SyncResponseRecord(
                status_code=int(status_code),
                status_text=HTTPStatus(status_code).phrase,
                headers={
                    "X-RateLimit-Remaining": str(rng.randrange(1000)),
                    "X-Total-Count": str(records_fetched),
                    "Content-Type": "application/json",
                },
                body_preview=body_preview,
                body_size=1024 + rng.randrange(50000),
                duration_ms=duration_ms,
                timestamp=completed_at,
            )

        return SyncExecution(
            id=self._new_id(),
            instance_id=instance_id,
            pipeline_id=pipeline.id,
            client_id=client_id,
            client_name=client_name,
            pipeline=pipeline,
            started_at=started_at,
            completed_at=None if status == SyncExecutionStatus.RUNNING else completed_at,
            status=status,
            triggered_by=triggered_by,
            request=request,
            response=response,
            results=SyncResults(
                records_fetched=records_fetched,
                records_created=records_created,
                records_updated=records_updated,
                records_skipped=records_skipped,
                records_failed=records_failed,
                errors=errors,
                warnings=warnings,
                changes=changes,
            ),
        )

    def trigger_sync(self, instance_id: str) -> Optional[SyncExecution]:
        """Run one manual sync for an instance; None when the instance is unknown"""
        instance = self.sync_store.get_instance(instance_id)
        if instance is None:
            logger.info(f"Sync instance {instance_id} not found")
            return None

        if self.rng.random() > MANUAL_FAILURE_RATE:
            status = SyncExecutionStatus.SUCCESS
        else:
            status = SyncExecutionStatus.FAILED

        execution = self.generate_execution(
            instance.id,
            instance.client_id,
            instance.client_name,
            instance.pipeline,
            self.clock(),
            status,
            triggered_by=SyncTrigger.MANUAL,
        )
        self.sync_store.record_execution(execution)

        duration = execution_duration_ms(execution) / 1000
        log_sync_operation(
            "manual",
            execution.pipeline_id,
            execution.status.value,
            duration,
            execution.results.records_fetched,
            instance_id=instance.id,
            execution_id=execution.id,
        )
        PrometheusMetrics.record_sync_execution(
            execution.pipeline_id, execution.status.value, execution.triggered_by.value, duration
        )
        PrometheusMetrics.update_sync_instance_counts(self.sync_store.count_instances_by_status())

        if status == SyncExecutionStatus.FAILED:
            logger.warning(f"Manual sync {execution.id} for {instance.id} failed: "
                           f"{execution.results.errors[0].message}")
        return execution
