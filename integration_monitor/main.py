from fastapi import FastAPI
from typing import Optional
import logging
import random

from integration_monitor.core.config import Settings, settings as default_settings
from integration_monitor.core.error_handler import CapabilityErrorHandler, register_exception_handlers
from integration_monitor.core.logging import setup_logging, LoggingMiddleware
from integration_monitor.monitoring.health import router as health_router
from integration_monitor.monitoring.prometheus import setup_prometheus_metrics
from integration_monitor.routers import events_router, integrations_router, sync_router, simulate_router
from integration_monitor.services.classification_service import ClassificationService
from integration_monitor.services.error_classifier import LLMClassifierClient
from integration_monitor.services.event_simulation_service import EventSimulationService
from integration_monitor.services.event_store import EventStore
from integration_monitor.services.health_calculator import HealthCalculator
from integration_monitor.services.sync_metrics_service import SyncMetricsService
from integration_monitor.services.sync_service import SyncService
from integration_monitor.services.sync_store import SyncStore


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and the services it owns. Each call produces an
    independent set of stores.
    """
    settings = settings or default_settings

    setup_logging(
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
        log_file_path=settings.LOG_FILE_PATH,
        max_bytes=settings.LOG_MAX_SIZE,
        backup_count=settings.LOG_BACKUP_COUNT,
    )
    logger = logging.getLogger(__name__)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Monitoring for third-party integration events and data sync pipelines",
        debug=settings.DEBUG
    )

    rng = random.Random(settings.SYNC_RANDOM_SEED)

    event_store = EventStore(
        max_events=settings.EVENT_STORE_MAX_EVENTS,
        default_limit=settings.EVENTS_DEFAULT_LIMIT,
    )
    sync_store = SyncStore()
    classifier = LLMClassifierClient.from_settings(settings)
    if not classifier.is_configured:
        logger.warning("OPENAI_API_KEY not set; failures will be classified by keyword rules")

    app.state.settings = settings
    app.state.event_store = event_store
    app.state.sync_store = sync_store
    app.state.classification_service = ClassificationService(
        event_store,
        classifier=classifier,
        timeout_seconds=settings.CLASSIFIER_TIMEOUT_SECONDS,
        error_handler=CapabilityErrorHandler(),
    )
    app.state.health_calculator = HealthCalculator(event_store)
    app.state.sync_service = SyncService(sync_store, rng=rng)
    app.state.sync_metrics_service = SyncMetricsService(sync_store)
    app.state.event_simulation_service = EventSimulationService(event_store, rng=rng)

    register_exception_handlers(app)

    # Include routers
    app.include_router(events_router, prefix=settings.API_V1_STR)
    app.include_router(integrations_router, prefix=settings.API_V1_STR)
    app.include_router(sync_router, prefix=settings.API_V1_STR)
    app.include_router(simulate_router, prefix=settings.API_V1_STR)
    app.include_router(health_router, prefix=settings.API_V1_STR)

    if settings.PROMETHEUS_ENABLED:
        setup_prometheus_metrics(app)

    app.add_middleware(LoggingMiddleware)

    @app.get("/")
    async def root():
        return {"message": f"{settings.APP_NAME} is running!", "version": settings.APP_VERSION}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    @app.on_event("startup")
    async def startup_event():
        """
        Handle application startup
        """
        logger.info("Application starting up...")
        if settings.SYNC_GENERATE_ON_STARTUP:
            app.state.sync_service.generate_mock_data(
                client_count=settings.SYNC_DEFAULT_CLIENT_COUNT,
                introduce_failures=settings.SYNC_INTRODUCE_FAILURES,
            )
        logger.info("Application startup completed")

    @app.on_event("shutdown")
    async def shutdown_event():
        """
        Handle application shutdown
        """
        logger.info("Application shutting down...")

    return app


app = create_app()
