import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest

from integration_monitor.core.error_handler import CapabilityErrorHandler
from integration_monitor.core.exceptions import (
    ClassificationPreconditionError,
    ClassifierUnavailableError,
    EventNotFoundError,
    InvalidEventStateError,
)
from integration_monitor.schemas.events import (
    CreateEventInput,
    ErrorCategory,
    ErrorClassification,
    ErrorSeverity,
)
from integration_monitor.services.classification_service import ClassificationService

from conftest import failure_input, success_input

LLM_ANSWER = ErrorClassification(
    category=ErrorCategory.AUTH,
    severity=ErrorSeverity.HIGH,
    cause="The Procore token was revoked by an admin.",
    suggested_fix="Reconnect Procore from Settings > Integrations.",
    affected_data=["projects"],
    business_impact="Job costing data stops syncing.",
)


def _capability(**kwargs):
    capability = AsyncMock()
    capability.classify = AsyncMock(**kwargs)
    return capability


@pytest.mark.asyncio
async def test_capability_result_is_persisted(event_store):
    capability = _capability(return_value=LLM_ANSWER)
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(failure_input("Token revoked", code="401", context={"user": "admin"}))

    result = await service.classify(event.id)

    assert result.cached is False
    assert result.classification == LLM_ANSWER
    assert event_store.get(event.id).classification == LLM_ANSWER
    capability.classify.assert_awaited_once_with(
        integration="procore",
        event_type="project.sync",
        error_message="Token revoked",
        error_code="401",
        context={"user": "admin"},
        payload={},
    )


@pytest.mark.asyncio
async def test_capability_called_at_most_once(event_store):
    capability = _capability(return_value=LLM_ANSWER)
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(failure_input("Token revoked"))

    first = await service.classify(event.id)
    second = await service.classify(event.id)

    assert first.cached is False
    assert second.cached is True
    assert second.classification == first.classification
    assert capability.classify.await_count == 1


@pytest.mark.asyncio
async def test_capability_failure_falls_back_to_rules(event_store):
    capability = _capability(side_effect=aiohttp.ClientConnectionError("connection refused"))
    handler = CapabilityErrorHandler()
    service = ClassificationService(event_store, classifier=capability, error_handler=handler)
    event = event_store.create(failure_input("Authorization declined: spending_limit_exceeded",
                                             code="card_declined", integration="stripe_issuing"))

    result = await service.classify(event.id)

    assert result.cached is False
    assert result.classification.category == ErrorCategory.SPENDING_CONTROL
    assert event_store.get(event.id).classification.category == ErrorCategory.SPENDING_CONTROL
    assert handler.get_error_stats()["failures_by_category"] == {"connection": 1}


@pytest.mark.asyncio
async def test_malformed_answer_falls_back_to_rules(event_store):
    capability = _capability(side_effect=ClassifierUnavailableError(
        "bad json", context={"reason": "malformed_response"}))
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(failure_input("API rate limit exceeded"))

    result = await service.classify(event.id)

    assert result.classification.category == ErrorCategory.RATE_LIMIT
    assert service.error_handler.get_error_stats()["failures_by_category"] == {"malformed_response": 1}


@pytest.mark.asyncio
async def test_slow_capability_times_out(event_store):
    async def never_answers(**kwargs):
        await asyncio.sleep(5)
        return LLM_ANSWER

    capability = _capability(side_effect=never_answers)
    service = ClassificationService(event_store, classifier=capability, timeout_seconds=0.01)
    event = event_store.create(failure_input("Request timeout after 30000ms."))

    result = await service.classify(event.id)

    assert result.classification.category == ErrorCategory.NETWORK
    assert service.error_handler.get_error_stats()["failures_by_category"] == {"timeout": 1}


@pytest.mark.asyncio
async def test_missing_capability_uses_rules(event_store):
    service = ClassificationService(event_store, classifier=None)
    event = event_store.create(failure_input("Something odd happened"))

    result = await service.classify(event.id)

    assert result.classification.category == ErrorCategory.UNKNOWN
    assert result.classification.severity == ErrorSeverity.MEDIUM


@pytest.mark.asyncio
async def test_dict_answer_is_validated(event_store):
    capability = _capability(return_value=LLM_ANSWER.model_dump(mode="json"))
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(failure_input("Token revoked"))

    result = await service.classify(event.id)

    assert result.classification == LLM_ANSWER


@pytest.mark.asyncio
async def test_event_evicted_during_classification_is_not_mutated(event_store):
    async def clear_then_answer(**kwargs):
        event_store.clear()
        return LLM_ANSWER

    capability = _capability(side_effect=clear_then_answer)
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(failure_input("Token revoked"))

    result = await service.classify(event.id)

    assert result.cached is False
    assert result.classification == LLM_ANSWER
    assert result.event.classification == LLM_ANSWER
    assert event_store.get(event.id) is None
    assert event.classification is None


@pytest.mark.asyncio
async def test_unknown_event_raises(event_store):
    service = ClassificationService(event_store)

    with pytest.raises(EventNotFoundError):
        await service.classify("missing")


@pytest.mark.asyncio
async def test_success_event_cannot_be_classified(event_store):
    capability = _capability(return_value=LLM_ANSWER)
    service = ClassificationService(event_store, classifier=capability)
    event = event_store.create(success_input())

    with pytest.raises(InvalidEventStateError):
        await service.classify(event.id)

    capability.classify.assert_not_awaited()
    assert event_store.get(event.id).classification is None


@pytest.mark.asyncio
async def test_failure_without_error_is_rejected(event_store):
    service = ClassificationService(event_store)
    event = event_store.create(CreateEventInput(integration="gusto", event_type="employee.sync",
                                                status="failure"))

    with pytest.raises(ClassificationPreconditionError):
        await service.classify(event.id)
