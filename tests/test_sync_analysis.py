from datetime import timedelta

import pytest

from integration_monitor.schemas.sync import (
    SyncExecutionStatus,
    SyncExecutionSummary,
    SyncInstanceStatus,
    SyncSchedule,
    SyncStats,
)
from integration_monitor.services.sync_analysis import (
    calculate_stats,
    derive_instance_status,
    failure_streak,
    scale_stats,
)
from integration_monitor.services.sync_store import build_pipeline_catalog

from conftest import FIXED_NOW

SCHEDULE = SyncSchedule(interval_minutes=15, stale_threshold_minutes=30)


def _summary(status, minutes_ago=0):
    return SyncExecutionSummary(
        id=f"exec_{minutes_ago}",
        instance_id="client_1_pipeline_procore_projects",
        pipeline_id="pipeline_procore_projects",
        started_at=FIXED_NOW - timedelta(minutes=minutes_ago),
        completed_at=FIXED_NOW - timedelta(minutes=minutes_ago) + timedelta(seconds=2),
        status=status,
        duration_ms=2000,
        records_processed=10,
        errors=0,
        warnings=0,
    )


def test_newest_failure_means_failing():
    history = [_summary(SyncExecutionStatus.FAILED, 0), _summary(SyncExecutionStatus.SUCCESS, 15)]
    next_sync = FIXED_NOW + timedelta(minutes=15)

    assert derive_instance_status(history, SCHEDULE, FIXED_NOW, next_sync) == SyncInstanceStatus.FAILING


def test_older_failure_does_not_matter():
    history = [_summary(SyncExecutionStatus.SUCCESS, 0), _summary(SyncExecutionStatus.FAILED, 15)]
    next_sync = FIXED_NOW + timedelta(minutes=15)

    assert derive_instance_status(history, SCHEDULE, FIXED_NOW, next_sync) == SyncInstanceStatus.HEALTHY


@pytest.mark.parametrize("overdue_minutes,expected", [
    (29, SyncInstanceStatus.HEALTHY),
    (30, SyncInstanceStatus.STALE),
    (45, SyncInstanceStatus.STALE),
])
def test_overdue_schedule_means_stale(overdue_minutes, expected):
    history = [_summary(SyncExecutionStatus.SUCCESS, 60)]
    next_sync = FIXED_NOW - timedelta(minutes=overdue_minutes)

    assert derive_instance_status(history, SCHEDULE, FIXED_NOW, next_sync) == expected


def test_failing_takes_precedence_over_stale():
    history = [_summary(SyncExecutionStatus.FAILED, 120)]
    next_sync = FIXED_NOW - timedelta(minutes=90)

    assert derive_instance_status(history, SCHEDULE, FIXED_NOW, next_sync) == SyncInstanceStatus.FAILING


def test_disabled_instance():
    history = [_summary(SyncExecutionStatus.FAILED, 0)]

    status = derive_instance_status(history, SCHEDULE, FIXED_NOW, FIXED_NOW, enabled=False)

    assert status == SyncInstanceStatus.DISABLED


def test_no_history_is_healthy():
    assert derive_instance_status([], SCHEDULE, FIXED_NOW, None) == SyncInstanceStatus.HEALTHY


def test_failure_streak_counts_leading_failures():
    history = [
        _summary(SyncExecutionStatus.FAILED, 0),
        _summary(SyncExecutionStatus.FAILED, 15),
        _summary(SyncExecutionStatus.FAILED, 30),
        _summary(SyncExecutionStatus.SUCCESS, 45),
        _summary(SyncExecutionStatus.FAILED, 60),
    ]

    count, since = failure_streak(history)

    assert count == 3
    assert since == FIXED_NOW - timedelta(minutes=30)


def test_failure_streak_without_failures():
    assert failure_streak([_summary(SyncExecutionStatus.PARTIAL, 0)]) == (0, None)
    assert failure_streak([]) == (0, None)


def test_calculate_stats_empty_window():
    stats = calculate_stats([])

    assert stats.total_syncs == 0
    assert stats.success_rate == 100
    assert stats.avg_duration_ms == 0


def test_scale_stats_multiplies_counts_only():
    stats = SyncStats(total_syncs=20, successful_syncs=19, failed_syncs=1, success_rate=95.0,
                      avg_duration_ms=1500.0, total_records_processed=1000)

    weekly = scale_stats(stats, 7)

    assert weekly.total_syncs == 140
    assert weekly.successful_syncs == 133
    assert weekly.failed_syncs == 7
    assert weekly.total_records_processed == 7000
    assert weekly.success_rate == 95.0
    assert weekly.avg_duration_ms == 1500.0


def test_pipeline_catalog():
    pipelines = build_pipeline_catalog()
    by_id = {p.id: p for p in pipelines}

    assert len(pipelines) == 7
    assert by_id["pipeline_procore_projects"].schedule == SyncSchedule(interval_minutes=15,
                                                                        stale_threshold_minutes=30)
    assert by_id["pipeline_stripe_issuing_transactions"].schedule.interval_minutes == 5
    assert by_id["pipeline_quickbooks_gl_entries"].schedule.stale_threshold_minutes == 120
    assert all(p.direction.value == "pull" for p in pipelines)
