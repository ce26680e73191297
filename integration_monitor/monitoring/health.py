from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import Dict, Any
from datetime import datetime, timezone
import asyncio
import logging

from integration_monitor.core.config import Settings
from integration_monitor.core.dependencies import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health Checks"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthChecker:
    """
    Component health checks for the in-memory stores and the classifier
    """

    def __init__(self, app_state, settings: Settings):
        self.state = app_state
        self.settings = settings

    async def check_event_store_health(self) -> Dict[str, Any]:
        """Event store occupancy against its cap"""
        try:
            store = self.state.event_store
            size = len(store)
            return {
                "status": "healthy",
                "events": size,
                "max_events": store.max_events,
                "utilization_percent": round(size / store.max_events * 100, 2),
                "checked_at": _now_iso()
            }
        except Exception as e:
            logger.error(f"Event store health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "checked_at": _now_iso()
            }

    async def check_sync_store_health(self) -> Dict[str, Any]:
        """Sync instance counts; failing instances put the component in warning"""
        try:
            sync_store = self.state.sync_store
            counts = sync_store.count_instances_by_status()
            return {
                "status": "warning" if counts.get("failing") else "healthy",
                "pipelines": len(sync_store.get_pipelines()),
                "instances": sum(counts.values()),
                "instances_by_status": counts,
                "checked_at": _now_iso()
            }
        except Exception as e:
            logger.error(f"Sync store health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "checked_at": _now_iso()
            }

    async def check_classifier_health(self) -> Dict[str, Any]:
        """
        Classifier configuration. An unconfigured classifier is a warning:
        classification still works through the rule-based fallback.
        """
        try:
            service = self.state.classification_service
            classifier = service.classifier
            configured = bool(classifier is not None and getattr(classifier, "is_configured", True))
            return {
                "status": "healthy" if configured else "warning",
                "configured": configured,
                "model": self.settings.CLASSIFIER_MODEL if configured else None,
                "timeout_seconds": service.timeout_seconds,
                "fallback": "rules",
                "failures": service.error_handler.get_error_stats()["failures_by_category"],
                "checked_at": _now_iso()
            }
        except Exception as e:
            logger.error(f"Classifier health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "checked_at": _now_iso()
            }


@router.get("/")
async def basic_health_check(settings: Settings = Depends(get_settings)):
    """
    Basic health check endpoint
    """
    return {
        "status": "healthy",
        "timestamp": _now_iso(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@router.get("/detailed")
async def detailed_health_check(request: Request, settings: Settings = Depends(get_settings)):
    """
    Detailed health check with all components
    """
    health_checker = HealthChecker(request.app.state, settings)

    checks = await asyncio.gather(
        health_checker.check_event_store_health(),
        health_checker.check_sync_store_health(),
        health_checker.check_classifier_health(),
        return_exceptions=True
    )

    overall_status = "healthy"
    unhealthy_components = []
    components = {}

    for check_name, check_result in zip(("event_store", "sync_store", "classifier"), checks):
        if isinstance(check_result, Exception):
            check_result = {"status": "unhealthy", "error": str(check_result), "checked_at": _now_iso()}
        components[check_name] = check_result

        if check_result.get("status") == "unhealthy":
            overall_status = "unhealthy"
            unhealthy_components.append(check_name)
        elif check_result.get("status") == "warning" and overall_status == "healthy":
            overall_status = "warning"

    response = {
        "status": overall_status,
        "timestamp": _now_iso(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "components": components
    }

    if unhealthy_components:
        response["unhealthy_components"] = unhealthy_components
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=response)

    return response
