"""API routers."""

from buyersync.routers.buyers import router as buyers_router
from buyersync.routers.health import router as health_router
from buyersync.routers.settings import router as settings_router

__all__ = ["buyers_router", "health_router", "settings_router"]
