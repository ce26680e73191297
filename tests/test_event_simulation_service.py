from integration_monitor.schemas.events import EventFilters, SimulationMode
from integration_monitor.services.event_simulation_service import (
    EventSimulationService,
    build_demo_scenarios,
)

from conftest import FIXED_NOW, success_input


def test_demo_scenarios_cover_every_integration():
    scenarios = build_demo_scenarios(FIXED_NOW)
    failures = [s for s in scenarios if s["status"] == "failure"]

    assert len(scenarios) == 16
    assert len(failures) == 5
    assert {s["integration"] for s in failures} == {
        "procore", "gusto", "quickbooks", "stripe_issuing", "certified_payroll",
    }
    assert all(s["error"]["message"] for s in failures)


def test_demo_mode_seeds_a_few_failures(event_store, rng, clock):
    service = EventSimulationService(event_store, rng=rng, clock=clock)

    result = service.seed(SimulationMode.DEMO)

    assert result.success is True
    assert 15 <= result.success_count <= 20
    assert 3 <= result.error_count <= 5
    assert len(event_store) == result.success_count + result.error_count
    assert len(event_store.list(EventFilters(status="failure"))) == result.error_count
    assert result.message == (f"Seeded {result.success_count} successful events "
                              f"and {result.error_count} error events")


def test_full_mode_seeds_every_failure(event_store, rng, clock):
    service = EventSimulationService(event_store, rng=rng, clock=clock)

    result = service.seed(SimulationMode.FULL)
    failures = event_store.list(EventFilters(status="failure"))

    assert result.error_count == 5
    assert len({e.error.message for e in failures}) == 5
    assert all(e.resolution_status.value == "open" for e in failures)


def test_reset_clears_existing_events(event_store, rng, clock):
    existing = event_store.create(success_input())
    service = EventSimulationService(event_store, rng=rng, clock=clock)

    result = service.seed("demo", reset=True)

    assert event_store.get(existing.id) is None
    assert len(event_store) == result.success_count + result.error_count


def test_seeding_without_reset_appends(event_store, rng, clock):
    existing = event_store.create(success_input())
    service = EventSimulationService(event_store, rng=rng, clock=clock)

    result = service.seed()

    assert event_store.get(existing.id) is not None
    assert len(event_store) == result.success_count + result.error_count + 1
