from typing import List
import logging

from integration_monitor.schemas.events import IntegrationType
from integration_monitor.schemas.integrations import (
    INTEGRATIONS,
    IntegrationStatus,
    IntegrationHealth,
    HealthOverview,
)
from integration_monitor.services.event_store import EventStore

logger = logging.getLogger(__name__)

HEALTHY_MIN_SUCCESS_RATE = 98
HEALTHY_MAX_ERRORS_24H = 5
DEGRADED_MIN_SUCCESS_RATE = 90
DEGRADED_MAX_ERRORS_24H = 20


def calculate_status(success_rate: float, errors_last_24h: int) -> IntegrationStatus:
    """
    Map a success rate and a recent-failure count to a health level.
    The healthy check is evaluated first, then degraded, otherwise down.
    """
    if success_rate >= HEALTHY_MIN_SUCCESS_RATE and errors_last_24h < HEALTHY_MAX_ERRORS_24H:
        return IntegrationStatus.HEALTHY
    if success_rate >= DEGRADED_MIN_SUCCESS_RATE or errors_last_24h < DEGRADED_MAX_ERRORS_24H:
        return IntegrationStatus.DEGRADED
    return IntegrationStatus.DOWN


class HealthCalculator:
    """
    Derives per-integration health from the event store.
    """

    def __init__(self, event_store: EventStore):
        self.event_store = event_store

    def get_integration_health(self, integration: IntegrationType) -> IntegrationHealth:
        base = INTEGRATIONS[IntegrationType(integration)]
        stats = self.event_store.get_event_stats(base.id)
        status = calculate_status(stats.success_rate, stats.errors_last_24h)

        if status != IntegrationStatus.HEALTHY:
            logger.debug(f"Integration {base.id.value} is {status.value}: "
                         f"success_rate={stats.success_rate}, errors_last_24h={stats.errors_last_24h}")

        return IntegrationHealth(
            **base.model_dump(),
            status=status,
            last_sync=stats.last_sync,
            success_rate=stats.success_rate,
            events_last_24h=stats.events_last_24h,
            errors_last_24h=stats.errors_last_24h,
        )

    def get_all_integration_health(self) -> List[IntegrationHealth]:
        return [self.get_integration_health(integration) for integration in INTEGRATIONS]

    def get_overall_health(self) -> HealthOverview:
        """Counts of catalog integrations in each health level"""
        all_health = self.get_all_integration_health()
        return HealthOverview(
            total_integrations=len(all_health),
            healthy=sum(1 for i in all_health if i.status == IntegrationStatus.HEALTHY),
            degraded=sum(1 for i in all_health if i.status == IntegrationStatus.DEGRADED),
            down=sum(1 for i in all_health if i.status == IntegrationStatus.DOWN),
        )
