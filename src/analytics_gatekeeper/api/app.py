"""
Application factory for Analytics Gatekeeper.

Wires the gatekeeper configuration into a FastAPI app: token management
routes, a token-gated health probe and a Basic-auth dashboard session probe.
Downstream analytics handlers mount their own routers on the returned app.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from analytics_gatekeeper.api.admin import router as admin_router
from analytics_gatekeeper.config import GatekeeperSettings
from analytics_gatekeeper.middleware.fastapi import (
    AuthenticatedPrincipal,
    DashboardUser,
    GatekeeperConfig,
    configure_gatekeeper,
    gatekeeper_exception_handler,
)


def create_app(config: GatekeeperConfig | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Gatekeeper configuration (built from the environment if None)

    Returns:
        FastAPI app
    """
    if config is None:
        config = GatekeeperConfig.from_settings(GatekeeperSettings.from_env())
    configure_gatekeeper(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        config.close()

    app = FastAPI(title="Analytics Gatekeeper", lifespan=lifespan)
    app.add_exception_handler(StarletteHTTPException, gatekeeper_exception_handler)
    app.include_router(admin_router)

    @app.get("/api/health")
    async def health(principal: AuthenticatedPrincipal) -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/dashboard/session")
    async def dashboard_session(username: DashboardUser) -> dict[str, str]:
        return {"status": "ok", "user": username}

    return app
