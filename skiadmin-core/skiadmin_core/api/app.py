"""
Application Factory
===================
FastAPI app exposing the auth router, health checks and metrics.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from skiadmin_core import __version__
from skiadmin_core.health import create_health_router
from skiadmin_core.logging_setup import RequestLoggingMiddleware, setup_logging
from .routes import create_auth_router
from .services import AuthServices


def create_app(services: AuthServices, configure_logging: Optional[bool] = None) -> FastAPI:
    """
    Build the auth service application.

    Args:
        services: Wired components, closed on shutdown
        configure_logging: Set up structlog output; defaults to on outside development
    """
    settings = services.settings
    if configure_logging is None:
        configure_logging = not settings.is_development
    if configure_logging:
        setup_logging(settings.service_name, json_output=not settings.is_development)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.close()

    app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(create_auth_router(services), prefix="/api")
    app.include_router(create_health_router(
        settings.service_name,
        version=__version__,
        engine=services.engine,
        redis_client=services.redis,
    ))
    app.state.services = services
    return app
