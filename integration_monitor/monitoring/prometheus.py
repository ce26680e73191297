from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Request
from fastapi.responses import PlainTextResponse
import re
import time
import logging

from integration_monitor import __version__

logger = logging.getLogger(__name__)

# Event Metrics
events_ingested_total = Counter(
    'integration_events_ingested_total',
    'Total number of integration events ingested',
    ['integration', 'status']
)

events_evicted_total = Counter(
    'integration_events_evicted_total',
    'Events dropped from the bounded event store'
)

event_store_size = Gauge(
    'integration_event_store_size',
    'Number of events currently held in memory'
)

resolution_transitions_total = Counter(
    'integration_event_resolution_transitions_total',
    'Failure triage state transitions',
    ['resolution_status']
)

# Classification Metrics
classifications_total = Counter(
    'failure_classifications_total',
    'Failure classifications by source',
    ['source', 'category']
)

classifier_duration_seconds = Histogram(
    'failure_classifier_duration_seconds',
    'Time spent waiting on the external classifier',
    ['outcome'],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Sync Metrics
sync_executions_total = Counter(
    'sync_executions_total',
    'Sync executions recorded',
    ['pipeline_id', 'status', 'triggered_by']
)

sync_execution_duration_seconds = Histogram(
    'sync_execution_duration_seconds',
    'Duration of recorded sync executions',
    ['pipeline_id'],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

sync_instances = Gauge(
    'sync_instances',
    'Sync instances by derived status',
    ['status']
)

# API Metrics
api_requests_total = Counter(
    'api_requests_total',
    'Total number of API requests',
    ['method', 'endpoint', 'status_code']
)

api_request_duration_seconds = Histogram(
    'api_request_duration_seconds',
    'Time spent processing API requests',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    'integration_monitor',
    'Application information'
)

app_info.info({
    'version': __version__,
    'name': 'integration-monitor',
})


class PrometheusMetrics:
    """
    Prometheus metrics collection and management
    """

    @staticmethod
    def record_event_ingested(integration: str, status: str, store_size: int, evicted: bool):
        """Record an event insertion into the store"""
        try:
            events_ingested_total.labels(integration=integration, status=status).inc()
            if evicted:
                events_evicted_total.inc()
            event_store_size.set(store_size)
        except Exception as e:
            logger.error(f"Error recording event ingestion metrics: {e}")

    @staticmethod
    def update_event_store_size(size: int):
        try:
            event_store_size.set(size)
        except Exception as e:
            logger.error(f"Error updating event store size: {e}")

    @staticmethod
    def record_resolution_transition(resolution_status: str):
        try:
            resolution_transitions_total.labels(resolution_status=resolution_status).inc()
        except Exception as e:
            logger.error(f"Error recording resolution metrics: {e}")

    @staticmethod
    def record_classification(source: str, category: str):
        """Record a classification served from cache, the classifier or the rules"""
        try:
            classifications_total.labels(source=source, category=category).inc()
        except Exception as e:
            logger.error(f"Error recording classification metrics: {e}")

    @staticmethod
    def record_classifier_call(outcome: str, duration: float):
        try:
            classifier_duration_seconds.labels(outcome=outcome).observe(duration)
        except Exception as e:
            logger.error(f"Error recording classifier latency: {e}")

    @staticmethod
    def record_sync_execution(pipeline_id: str, status: str, triggered_by: str, duration: float):
        """Record sync execution metrics"""
        try:
            sync_executions_total.labels(
                pipeline_id=pipeline_id,
                status=status,
                triggered_by=triggered_by
            ).inc()
            sync_execution_duration_seconds.labels(pipeline_id=pipeline_id).observe(duration)
        except Exception as e:
            logger.error(f"Error recording sync execution metrics: {e}")

    @staticmethod
    def update_sync_instance_counts(counts: dict):
        """Update instance gauges from a status -> count mapping"""
        try:
            for status, count in counts.items():
                sync_instances.labels(status=status).set(count)
        except Exception as e:
            logger.error(f"Error updating sync instance counts: {e}")

    @staticmethod
    def record_api_request(method: str, endpoint: str, status_code: int, duration: float):
        """Record API request metrics"""
        try:
            api_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status_code=str(status_code)
            ).inc()

            api_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

        except Exception as e:
            logger.error(f"Error recording API request metrics: {e}")


class PrometheusMiddleware:
    """
    ASGI middleware for collecting Prometheus metrics
    """

    _UUID_RE = re.compile(r'/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}')
    _NUMERIC_RE = re.compile(r'/\d+(?=/|$)')
    _CLIENT_RE = re.compile(r'/client_\d+[^/]*')

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        start_time = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            PrometheusMetrics.record_api_request(
                method=request.method,
                endpoint=self._get_endpoint_pattern(request.url.path),
                status_code=status_code,
                duration=time.perf_counter() - start_time
            )

    def _get_endpoint_pattern(self, path: str) -> str:
        """Convert specific paths to endpoint patterns for metrics"""
        path = self._UUID_RE.sub('/{id}', path)
        path = self._CLIENT_RE.sub('/{client_id}', path)
        path = self._NUMERIC_RE.sub('/{id}', path)
        return path


async def metrics_endpoint():
    """
    Prometheus metrics endpoint
    """
    try:
        return PlainTextResponse(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )
    except Exception as e:
        logger.error(f"Error generating metrics: {e}")
        return PlainTextResponse(
            content="# Error generating metrics\n",
            media_type=CONTENT_TYPE_LATEST,
            status_code=500
        )


def setup_prometheus_metrics(app):
    """
    Setup Prometheus metrics for the FastAPI application
    """
    app.add_middleware(PrometheusMiddleware)
    app.get("/metrics", include_in_schema=False)(metrics_endpoint)
    logger.info("Prometheus metrics setup completed")
