# API route handlers
from .events import router as events_router
from .integrations import router as integrations_router
from .sync import router as sync_router
from .simulate import router as simulate_router

__all__ = ["events_router", "integrations_router", "sync_router", "simulate_router"]
