"""FastAPI middleware integration."""

from analytics_gatekeeper.middleware.fastapi import (
    GatekeeperConfig,
    TokenGateMiddleware,
    configure_gatekeeper,
    gatekeeper_exception_handler,
    require_admin_token,
    require_dashboard_user,
    require_token,
)

__all__ = [
    "GatekeeperConfig",
    "TokenGateMiddleware",
    "configure_gatekeeper",
    "gatekeeper_exception_handler",
    "require_token",
    "require_admin_token",
    "require_dashboard_user",
]
