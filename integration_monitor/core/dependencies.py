"""
FastAPI dependencies resolving the services owned by the application.

Everything is created once in ``create_app`` and stored on ``app.state``;
handlers receive it through ``Depends`` so tests can build isolated apps.
"""
from fastapi import Request

from integration_monitor.core.config import Settings
from integration_monitor.services.classification_service import ClassificationService
from integration_monitor.services.event_simulation_service import EventSimulationService
from integration_monitor.services.event_store import EventStore
from integration_monitor.services.health_calculator import HealthCalculator
from integration_monitor.services.sync_metrics_service import SyncMetricsService
from integration_monitor.services.sync_service import SyncService
from integration_monitor.services.sync_store import SyncStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_event_store(request: Request) -> EventStore:
    return request.app.state.event_store


def get_sync_store(request: Request) -> SyncStore:
    return request.app.state.sync_store


def get_classification_service(request: Request) -> ClassificationService:
    return request.app.state.classification_service


def get_health_calculator(request: Request) -> HealthCalculator:
    return request.app.state.health_calculator


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def get_sync_metrics_service(request: Request) -> SyncMetricsService:
    return request.app.state.sync_metrics_service


def get_event_simulation_service(request: Request) -> EventSimulationService:
    return request.app.state.event_simulation_service
