from datetime import timedelta

import pytest

from integration_monitor.schemas.events import (
    ErrorCategory,
    ErrorClassification,
    ErrorSeverity,
    EventFilters,
    ResolutionStatus,
    SortField,
    SortOrder,
)
from integration_monitor.services.event_store import EventStore

from conftest import failure_input, success_input


def _classification(category=ErrorCategory.AUTH):
    return ErrorClassification(
        category=category,
        severity=ErrorSeverity.HIGH,
        cause="Token expired",
        suggested_fix="Reconnect",
    )


def test_create_assigns_identity_and_timestamp(event_store, clock):
    event = event_store.create(success_input(project_id=1))

    assert event.id
    assert event.timestamp == clock.now
    assert event.payload == {"project_id": 1}
    assert event.resolution is None
    assert event_store.get(event.id) is event


def test_failure_events_start_open(event_store):
    event = event_store.create(failure_input("OAuth token expired"))

    assert event.resolution is not None
    assert event.resolution.status == ResolutionStatus.OPEN
    assert event.resolution_status == ResolutionStatus.OPEN
    assert event.classification is None


def test_newest_first_and_unique_ids(event_store, clock):
    first = event_store.create(success_input())
    clock.advance(seconds=1)
    second = event_store.create(success_input())

    assert first.id != second.id
    assert [e.id for e in event_store.list()] == [second.id, first.id]


def test_store_evicts_oldest_beyond_cap(clock):
    store = EventStore(max_events=3, clock=clock)
    events = [store.create(success_input()) for _ in range(4)]

    assert len(store) == 3
    assert store.get(events[0].id) is None
    assert [e.id for e in store.list()] == [e.id for e in reversed(events[1:])]


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        EventStore(max_events=0)


def test_get_unknown_returns_none(event_store):
    assert event_store.get("missing") is None


def test_query_filters_by_integration_and_status(event_store):
    event_store.create(success_input(integration="gusto"))
    failure = event_store.create(failure_input(integration="gusto"))
    event_store.create(failure_input(integration="procore"))

    page = event_store.query(EventFilters(integration="gusto", status="failure"))

    assert page.total == 1
    assert page.events[0].id == failure.id


def test_query_filters_by_resolution_status(event_store):
    open_event = event_store.create(failure_input())
    acked = event_store.create(failure_input())
    event_store.create(success_input())
    event_store.acknowledge(acked.id)

    open_page = event_store.query(EventFilters(resolution_status="open"))
    acked_page = event_store.query(EventFilters(resolution_status="acknowledged"))

    assert [e.id for e in open_page.events] == [open_event.id]
    assert [e.id for e in acked_page.events] == [acked.id]


def test_failure_without_resolution_record_counts_as_open(event_store):
    event = event_store.create(failure_input())
    event.resolution = None

    page = event_store.query(EventFilters(resolution_status="open"))

    assert [e.id for e in page.events] == [event.id]


def test_query_search_is_case_insensitive_across_fields(event_store):
    by_message = event_store.create(failure_input("GL Account mapping failed"))
    by_code = event_store.create(failure_input("Declined", code="CARD_DECLINED"))
    by_type = event_store.create(success_input(event_type="payroll.completed"))
    event_store.create(success_input(integration="gusto", event_type="employee.sync"))

    assert [e.id for e in event_store.list(EventFilters(search="gl account"))] == [by_message.id]
    assert [e.id for e in event_store.list(EventFilters(search="card_declined"))] == [by_code.id]
    assert [e.id for e in event_store.list(EventFilters(search="PAYROLL"))] == [by_type.id]
    assert len(event_store.list(EventFilters(search="gusto"))) == 1


def test_query_since_is_inclusive(event_store, clock):
    event_store.create(success_input())
    clock.advance(minutes=5)
    boundary = event_store.create(success_input())
    clock.advance(minutes=5)
    newest = event_store.create(success_input())

    page = event_store.query(EventFilters(since=boundary.timestamp))

    assert [e.id for e in page.events] == [newest.id, boundary.id]


def test_query_accepts_naive_since(event_store, clock):
    event_store.create(success_input())
    clock.advance(hours=1)
    newest = event_store.create(success_input())

    naive = (clock.now - timedelta(minutes=1)).replace(tzinfo=None)
    page = event_store.query(EventFilters(since=naive))

    assert [e.id for e in page.events] == [newest.id]


def test_query_sort_is_stable(event_store, clock):
    a = event_store.create(success_input(integration="quickbooks"))
    clock.advance(seconds=1)
    b = event_store.create(success_input(integration="gusto"))
    clock.advance(seconds=1)
    c = event_store.create(success_input(integration="quickbooks"))

    page = event_store.query(sort_by=SortField.INTEGRATION, sort_order=SortOrder.ASC)

    # equal keys keep newest-first store order
    assert [e.id for e in page.events] == [b.id, c.id, a.id]


def test_query_sort_by_event_type_ignores_case(event_store, clock):
    for event_type in ("b.type", "a.type", "C.type"):
        event_store.create(success_input(event_type=event_type))
        clock.advance(seconds=1)

    ascending = event_store.query(sort_by=SortField.EVENT_TYPE, sort_order=SortOrder.ASC)
    descending = event_store.query(sort_by=SortField.EVENT_TYPE, sort_order=SortOrder.DESC)

    assert [e.event_type for e in ascending.events] == ["a.type", "b.type", "C.type"]
    assert [e.event_type for e in descending.events] == ["C.type", "b.type", "a.type"]


def test_query_sort_by_status(event_store, clock):
    event_store.create(success_input())
    clock.advance(seconds=1)
    event_store.create(failure_input())
    clock.advance(seconds=1)
    event_store.create(success_input())

    ascending = event_store.query(sort_by=SortField.STATUS, sort_order=SortOrder.ASC)
    descending = event_store.query(sort_by="status", sort_order="desc")

    assert [e.status.value for e in ascending.events] == ["failure", "success", "success"]
    assert [e.status.value for e in descending.events] == ["success", "success", "failure"]


def test_payload_is_copied_deeply(event_store):
    data = success_input(project={"tags": ["phase-1"]})

    first = event_store.create(data)
    second = event_store.create(data)
    first.payload["project"]["tags"].append("phase-2")

    assert second.payload == {"project": {"tags": ["phase-1"]}}
    assert data.payload == {"project": {"tags": ["phase-1"]}}


def test_query_sort_by_timestamp_ascending(event_store, clock):
    first = event_store.create(success_input())
    clock.advance(seconds=1)
    second = event_store.create(success_input())

    page = event_store.query(sort_by="timestamp", sort_order="asc")

    assert [e.id for e in page.events] == [first.id, second.id]


def test_query_pagination(event_store, clock):
    for _ in range(30):
        event_store.create(success_input())
        clock.advance(seconds=1)

    first = event_store.query(limit=25)
    last = event_store.query(offset=25, limit=25)

    assert first.total == 30
    assert len(first.events) == 25
    assert first.has_more is True
    assert len(last.events) == 5
    assert last.has_more is False
    assert first.events[-1].timestamp > last.events[0].timestamp


def test_query_uses_default_limit(event_store):
    for _ in range(60):
        event_store.create(success_input())

    page = event_store.query()

    assert page.limit == 50
    assert len(page.events) == 50
    assert page.total == 60


def test_query_has_no_side_effects(event_store):
    event_store.create(failure_input())
    before = [e.model_dump() for e in event_store.list()]

    event_store.query(EventFilters(search="nothing matches"), sort_by="status", offset=10)

    assert [e.model_dump() for e in event_store.list()] == before


def test_attach_classification_first_wins(event_store):
    event = event_store.create(failure_input())

    event_store.attach_classification(event.id, _classification(ErrorCategory.AUTH))
    result = event_store.attach_classification(event.id, _classification(ErrorCategory.NETWORK))

    assert result.classification.category == ErrorCategory.AUTH


def test_attach_classification_rejects_non_failures(event_store):
    event = event_store.create(success_input())

    assert event_store.attach_classification(event.id, _classification()) is None
    assert event_store.attach_classification("missing", _classification()) is None
    assert event.classification is None


def test_acknowledge_then_resolve_keeps_acknowledgement(event_store, clock):
    event = event_store.create(failure_input())
    event_store.acknowledge(event.id, acknowledged_by="support@acme")
    acked_at = clock.now
    clock.advance(minutes=10)

    resolved = event_store.resolve(event.id, resolved_by="eng@acme", notes="Reconnected Procore")

    assert resolved.resolution.status == ResolutionStatus.RESOLVED
    assert resolved.resolution.acknowledged_by == "support@acme"
    assert resolved.resolution.acknowledged_at == acked_at
    assert resolved.resolution.resolved_by == "eng@acme"
    assert resolved.resolution.resolved_at == clock.now
    assert resolved.resolution.notes == "Reconnected Procore"


def test_acknowledge_defaults_to_anonymous(event_store):
    event = event_store.create(failure_input())

    acked = event_store.acknowledge(event.id)

    assert acked.resolution.acknowledged_by == "anonymous"
    assert acked.resolution.resolved_at is None


def test_reacknowledging_a_resolved_event_clears_resolution(event_store):
    event = event_store.create(failure_input())
    event_store.resolve(event.id, notes="done")

    acked = event_store.acknowledge(event.id)

    assert acked.resolution.status == ResolutionStatus.ACKNOWLEDGED
    assert acked.resolution.resolved_at is None
    assert acked.resolution.notes is None


def test_reopen_resets_to_minimal_open(event_store):
    event = event_store.create(failure_input())
    event_store.acknowledge(event.id)
    event_store.resolve(event.id, notes="done")

    reopened = event_store.reopen(event.id)

    assert reopened.resolution.status == ResolutionStatus.OPEN
    assert reopened.resolution.acknowledged_by is None
    assert reopened.resolution.resolved_by is None
    assert reopened.resolution.notes is None


def test_triage_of_success_event_is_rejected(event_store):
    event = event_store.create(success_input())

    assert event_store.acknowledge(event.id) is None
    assert event_store.resolve(event.id) is None
    assert event_store.reopen(event.id) is None
    assert event.resolution is None


def test_triage_of_unknown_event_returns_none(event_store):
    assert event_store.acknowledge("missing") is None
    assert event_store.resolve("missing") is None
    assert event_store.reopen("missing") is None


def test_event_stats_rounds_half_up(event_store, clock):
    event_store.create(failure_input(integration="gusto"))
    for _ in range(7):
        event_store.create(success_input(integration="gusto"))

    stats = event_store.get_event_stats("gusto")

    # 7/8 = 87.5%
    assert stats.success_rate == 88
    assert stats.events_last_24h == 8
    assert stats.errors_last_24h == 1
    assert stats.last_sync == clock.now


def test_clear_empties_store(event_store):
    event_store.create(success_input())
    event_store.clear()

    assert len(event_store) == 0
    assert event_store.query().total == 0
