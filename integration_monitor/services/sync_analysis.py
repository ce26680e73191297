"""
Pure helpers for sync instance status and statistics.

Nothing here touches randomness or store state, so status derivation can be
tested deterministically against hand-built execution histories.
"""
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple, Union

from integration_monitor.schemas.sync import (
    SyncExecution,
    SyncExecutionStatus,
    SyncExecutionSummary,
    SyncInstanceStatus,
    SyncSchedule,
    SyncStats,
)

SUCCESSFUL_STATUSES = (SyncExecutionStatus.SUCCESS, SyncExecutionStatus.PARTIAL)

ExecutionLike = Union[SyncExecution, SyncExecutionSummary]


def execution_duration_ms(execution: SyncExecution) -> int:
    return execution.response.duration_ms if execution.response else 0


def execution_to_summary(execution: SyncExecution) -> SyncExecutionSummary:
    return SyncExecutionSummary(
        id=execution.id,
        instance_id=execution.instance_id,
        pipeline_id=execution.pipeline_id,
        started_at=execution.started_at,
        completed_at=execution.completed_at,
        status=execution.status,
        duration_ms=execution_duration_ms(execution),
        records_processed=execution.results.records_fetched,
        errors=len(execution.results.errors),
        warnings=len(execution.results.warnings),
    )


def executions_since(executions: Sequence[SyncExecution], cutoff: datetime):
    """Executions that started strictly after the cutoff"""
    return [e for e in executions if e.started_at > cutoff]


def calculate_stats(executions: Sequence[SyncExecution]) -> SyncStats:
    """Roll up a window of executions; partial runs count as successful"""
    if not executions:
        return SyncStats()

    total = len(executions)
    successful = sum(1 for e in executions if e.status in SUCCESSFUL_STATUSES)
    failed = sum(1 for e in executions if e.status == SyncExecutionStatus.FAILED)
    total_duration = sum(execution_duration_ms(e) for e in executions)
    total_records = sum(e.results.records_fetched for e in executions)

    return SyncStats(
        total_syncs=total,
        successful_syncs=successful,
        failed_syncs=failed,
        success_rate=successful / total * 100,
        avg_duration_ms=total_duration / total,
        total_records_processed=total_records,
    )


def scale_stats(stats: SyncStats, factor: int) -> SyncStats:
    """
    Approximate a longer window from a shorter one by scaling the counts.
    Rates and averages carry over unchanged.
    """
    return stats.model_copy(update={
        "total_syncs": stats.total_syncs * factor,
        "successful_syncs": stats.successful_syncs * factor,
        "failed_syncs": stats.failed_syncs * factor,
        "total_records_processed": stats.total_records_processed * factor,
    })


def derive_instance_status(executions: Sequence[ExecutionLike],
                           schedule: SyncSchedule,
                           now: datetime,
                           next_scheduled_sync: Optional[datetime],
                           enabled: bool = True) -> SyncInstanceStatus:
    """
    Status from the newest execution (most-recent-first sequence) and the
    schedule: a failed newest run means failing; a next run overdue by at
    least the stale threshold means stale.
    """
    if not enabled:
        return SyncInstanceStatus.DISABLED
    if executions and executions[0].status == SyncExecutionStatus.FAILED:
        return SyncInstanceStatus.FAILING
    if next_scheduled_sync is not None:
        overdue = now - next_scheduled_sync
        if overdue >= timedelta(minutes=schedule.stale_threshold_minutes):
            return SyncInstanceStatus.STALE
    return SyncInstanceStatus.HEALTHY


def failure_streak(executions: Sequence[ExecutionLike]) -> Tuple[int, Optional[datetime]]:
    """
    Count consecutive failed runs at the head of a most-recent-first history.
    Returns the count and the start time of the oldest run in the streak.
    """
    count = 0
    failing_since = None
    for execution in executions:
        if execution.status != SyncExecutionStatus.FAILED:
            break
        count += 1
        failing_since = execution.started_at
    return count, failing_since
