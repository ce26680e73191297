import pytest

from integration_monitor.schemas.integrations import IntegrationStatus
from integration_monitor.schemas.sync import SyncExecutionStatus, SyncInstanceStatus
from integration_monitor.services.sync_metrics_service import SyncMetricsService
from integration_monitor.services.sync_service import SyncService

from conftest import FixedRandom


@pytest.fixture
def metrics_service(sync_store, clock):
    return SyncMetricsService(sync_store, clock=clock)


def test_empty_overview(metrics_service):
    overview = metrics_service.get_system_overview()

    assert overview.overall_health == 100
    assert overview.active_clients == 0
    assert overview.total_syncs_last_24h == 0
    assert overview.recent_failures == []
    assert len(overview.pipeline_stats) == 7
    for stat in overview.pipeline_stats:
        assert stat.total_instances == 0
        assert stat.success_rate == 100
        assert stat.health == IntegrationStatus.HEALTHY


def test_overview_after_generating_five_clients(sync_service, sync_store, metrics_service):
    sync_service.generate_mock_data(client_count=5, introduce_failures=True)

    overview = metrics_service.get_system_overview()
    instances = sync_store.get_instances()
    failing = [i for i in instances if i.status == SyncInstanceStatus.FAILING]
    stale = [i for i in instances if i.status == SyncInstanceStatus.STALE]

    assert overview.active_clients == 5
    assert overview.total_syncs_last_24h == 700
    assert overview.syncs_per_hour == pytest.approx(700 / 24)
    assert len(overview.pipeline_stats) == 7
    assert all(stat.total_instances == 5 for stat in overview.pipeline_stats)
    assert sum(stat.syncs_last_24h for stat in overview.pipeline_stats) == 700
    assert overview.failing_instances == len(failing)
    assert overview.stale_instances == len(stale)
    assert overview.healthy_instances + overview.failing_instances + overview.stale_instances == 35
    assert len(overview.recent_failures) == min(len(failing), 10)
    assert 0 <= overview.overall_health <= 100


def test_overall_health_counts_partial_as_success(sync_store, clock, metrics_service):
    rng = FixedRandom(0.96)
    service = SyncService(sync_store, rng=rng, clock=clock)
    # 0.96 is above the partial threshold but below the failure threshold
    service.generate_mock_data(client_count=1, introduce_failures=False)

    overview = metrics_service.get_system_overview()

    assert {e.status for e in sync_store.get_executions()} == {SyncExecutionStatus.PARTIAL}
    assert overview.overall_health == 100
    assert all(stat.health == IntegrationStatus.HEALTHY for stat in overview.pipeline_stats)


def test_recent_failure_reports_real_streak(sync_store, clock, metrics_service):
    rng = FixedRandom(0.5)
    service = SyncService(sync_store, rng=rng, clock=clock)
    service.generate_mock_data(client_count=1, introduce_failures=False)
    instance_id = "client_1_pipeline_gusto_employees"

    rng.value = 0.05
    failures = []
    for _ in range(3):
        clock.advance(minutes=30)
        failures.append(service.trigger_sync(instance_id))

    overview = metrics_service.get_system_overview()

    assert overview.failing_instances == 1
    summary = overview.recent_failures[0]
    assert summary.instance_id == instance_id
    assert summary.client_name == "Acme Construction"
    assert summary.consecutive_failures == 3
    assert summary.failing_since == failures[0].started_at
    assert summary.last_error == failures[-1].results.errors[0].message


def test_pipeline_health_uses_failure_counts(sync_store, clock, metrics_service):
    rng = FixedRandom(0.5)
    service = SyncService(sync_store, rng=rng, clock=clock)
    service.generate_mock_data(client_count=1, introduce_failures=False)

    rng.value = 0.05
    for _ in range(5):
        service.trigger_sync("client_1_pipeline_procore_projects")

    overview = metrics_service.get_system_overview()
    stat = next(s for s in overview.pipeline_stats if s.pipeline.id == "pipeline_procore_projects")

    assert stat.syncs_last_24h == 25
    assert stat.failed_syncs_last_24h == 5
    assert stat.success_rate == pytest.approx(80.0)
    assert stat.failing_instances == 1
    assert stat.health == IntegrationStatus.DEGRADED
