from datetime import datetime
from typing import Callable, List
import logging

from integration_monitor.core.clock import utc_now
from integration_monitor.monitoring.prometheus import PrometheusMetrics
from integration_monitor.schemas.sync import (
    FailingInstanceSummary,
    PipelineStat,
    SyncExecution,
    SyncExecutionStatus,
    SyncInstance,
    SyncInstanceStatus,
    SyncSystemOverview,
)
from integration_monitor.services.health_calculator import calculate_status
from integration_monitor.services.sync_analysis import (
    calculate_stats,
    failure_streak,
)
from integration_monitor.services.sync_store import STATS_WINDOW, SyncStore

logger = logging.getLogger(__name__)

RECENT_FAILURES_LIMIT = 10
UNKNOWN_ERROR = "Unknown error"


class SyncMetricsService:
    """
    Service for rolling up sync instances and executions into the
    company-wide overview shown to support and engineering.
    """

    def __init__(self, sync_store: SyncStore, clock: Callable[[], datetime] = utc_now):
        self.sync_store = sync_store
        self.clock = clock

    def get_system_overview(self) -> SyncSystemOverview:
        """
        Trailing 24h overview: overall success rate, throughput, instance
        counts by status, per-pipeline rollups and the currently failing
        instances.
        """
        now = self.clock()
        instances = self.sync_store.get_instances()
        recent = self.sync_store.get_executions_since(now - STATS_WINDOW)
        overall = calculate_stats(recent)

        counts = self.sync_store.count_instances_by_status()
        PrometheusMetrics.update_sync_instance_counts(counts)

        overview = SyncSystemOverview(
            overall_health=overall.success_rate,
            active_clients=len({i.client_id for i in instances}),
            total_syncs_last_24h=len(recent),
            syncs_per_hour=len(recent) / 24,
            healthy_instances=counts[SyncInstanceStatus.HEALTHY.value],
            failing_instances=counts[SyncInstanceStatus.FAILING.value],
            stale_instances=counts[SyncInstanceStatus.STALE.value],
            pipeline_stats=self._pipeline_stats(instances, recent),
            recent_failures=self._recent_failures(instances, now),
        )

        logger.debug(f"Sync overview: {overview.total_syncs_last_24h} syncs, "
                     f"{overview.failing_instances} failing, {overview.stale_instances} stale")
        return overview

    def _pipeline_stats(self, instances: List[SyncInstance],
                        recent: List[SyncExecution]) -> List[PipelineStat]:
        stats = []
        for pipeline in self.sync_store.get_pipelines():
            pipeline_instances = [i for i in instances if i.pipeline_id == pipeline.id]
            window = calculate_stats([e for e in recent if e.pipeline_id == pipeline.id])

            stats.append(PipelineStat(
                pipeline=pipeline,
                total_instances=len(pipeline_instances),
                healthy_instances=sum(1 for i in pipeline_instances if i.status == SyncInstanceStatus.HEALTHY),
                stale_instances=sum(1 for i in pipeline_instances if i.status == SyncInstanceStatus.STALE),
                failing_instances=sum(1 for i in pipeline_instances if i.status == SyncInstanceStatus.FAILING),
                success_rate=window.success_rate,
                syncs_last_24h=window.total_syncs,
                failed_syncs_last_24h=window.failed_syncs,
                avg_duration_ms=window.avg_duration_ms,
                health=calculate_status(window.success_rate, window.failed_syncs),
            ))
        return stats

    def _recent_failures(self, instances: List[SyncInstance], now: datetime) -> List[FailingInstanceSummary]:
        failing = [i for i in instances if i.status == SyncInstanceStatus.FAILING]
        return [self._summarize_failure(i, now) for i in failing[:RECENT_FAILURES_LIMIT]]

    def _summarize_failure(self, instance: SyncInstance, now: datetime) -> FailingInstanceSummary:
        history = self.sync_store.get_executions(instance_id=instance.id)
        consecutive, failing_since = failure_streak(history)

        last_error = UNKNOWN_ERROR
        if instance.last_sync and instance.last_sync.status == SyncExecutionStatus.FAILED:
            execution = self.sync_store.get_execution(instance.last_sync.id)
            if execution and execution.results.errors:
                last_error = execution.results.errors[0].message

        if failing_since is None:
            failing_since = instance.last_sync.started_at if instance.last_sync else now

        return FailingInstanceSummary(
            instance_id=instance.id,
            client_id=instance.client_id,
            client_name=instance.client_name,
            pipeline=instance.pipeline,
            last_error=last_error,
            failing_since=failing_since,
            consecutive_failures=consecutive,
        )
