"""
FastAPI Integration for Analytics Gatekeeper.

Provides drop-in dependencies and middleware for API-token and dashboard
authentication.

Usage:
    from analytics_gatekeeper.middleware.fastapi import require_token, require_admin_token

    @app.get("/api/insights/usage")
    async def usage(principal: Principal = Depends(require_token)):
        # principal holds read:insights (or admin:all)
        ...

    @app.get("/api/admin/tokens")
    async def tokens(principal: Principal = Depends(require_admin_token)):
        ...
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, NoReturn

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasicCredentials
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from analytics_gatekeeper.audit import RequestContext, SecurityAuditor
from analytics_gatekeeper.config import GatekeeperSettings
from analytics_gatekeeper.core.principal import Principal
from analytics_gatekeeper.engines.credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    open_store,
)
from analytics_gatekeeper.engines.credentials import CredentialService
from analytics_gatekeeper.engines.dashboard import DashboardGate
from analytics_gatekeeper.engines.gate import (
    CORRELATION_HEADER,
    AdminGate,
    AuthGate,
    GateDecision,
    GateRequest,
)
from analytics_gatekeeper.engines.permissions import PermissionSet
from analytics_gatekeeper.engines.usage import UsageRecorder

DASHBOARD_REALM = "Analytics Dashboard"


@dataclass
class GatekeeperConfig:
    """
    Configuration for Gatekeeper FastAPI integration.

    Set up once at app startup and use the dependencies.
    """

    service: CredentialService = field(
        default_factory=lambda: CredentialService(InMemoryCredentialStore())
    )
    auditor: SecurityAuditor = field(default_factory=SecurityAuditor)
    permissions: PermissionSet = field(default_factory=PermissionSet)
    dashboard_gate: DashboardGate = field(default_factory=lambda: DashboardGate(None))
    usage: UsageRecorder | None = None
    store_timeout: float = 5.0

    auth_gate: AuthGate = field(init=False)
    admin_gate: AdminGate = field(init=False)

    def __post_init__(self) -> None:
        """Build gates from the shared components."""
        gate_kwargs: dict[str, Any] = {
            "permissions": self.permissions,
            "auditor": self.auditor,
            "usage": self.usage,
            "store_timeout": self.store_timeout,
        }
        self.auth_gate = AuthGate(self.service, **gate_kwargs)
        self.admin_gate = AdminGate(self.service, **gate_kwargs)

    @classmethod
    def from_settings(
        cls,
        settings: GatekeeperSettings,
        *,
        store: CredentialStore | None = None,
    ) -> GatekeeperConfig:
        """
        Build the full configuration from process settings.

        Args:
            settings: Settings loaded at startup
            store: Optional store override (defaults to settings.redis_url)
        """
        store = store if store is not None else open_store(settings.redis_url)
        return cls(
            service=CredentialService(store),
            auditor=SecurityAuditor(log_path=settings.audit_log_path),
            dashboard_gate=DashboardGate(settings.dashboard_credentials),
            usage=UsageRecorder(store),
            store_timeout=settings.store_timeout,
        )

    def close(self) -> None:
        """Drain background work and close the audit file."""
        if self.usage is not None:
            self.usage.shutdown(wait=True)
        self.auditor.close()


# Global config - set at app startup
_config: GatekeeperConfig | None = None


def configure_gatekeeper(config: GatekeeperConfig) -> None:
    """
    Configure Gatekeeper for the application.

    Call this at FastAPI app startup:

        settings = GatekeeperSettings.from_env()
        configure_gatekeeper(GatekeeperConfig.from_settings(settings))

    Args:
        config: Gatekeeper configuration
    """
    global _config
    _config = config


def get_config() -> GatekeeperConfig:
    """
    Get current configuration or create default.

    The default has an empty store and no dashboard credentials, so it
    denies everything.
    """
    global _config
    if _config is None:
        _config = GatekeeperConfig()
    return _config


def gate_request(request: Request) -> GateRequest:
    """Build the framework-neutral gate view of a Starlette request."""
    return GateRequest(
        path=str(request.url.path),
        headers=dict(request.headers),
        query=dict(request.query_params),
        client_ip=request.client.host if request.client else None,
    )


def _raise_denied(decision: GateDecision) -> NoReturn:
    headers = {"WWW-Authenticate": "Bearer"} if decision.status_code == 401 else None
    raise HTTPException(
        status_code=decision.status_code,
        detail=decision.to_body(),
        headers=headers,
    )


async def gatekeeper_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """
    Render gatekeeper errors as a flat {"error", "message"} body.

    HTTPExceptions whose detail is not a dict keep FastAPI's default shape.

    Usage:
        app.add_exception_handler(StarletteHTTPException, gatekeeper_exception_handler)
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)
    return await http_exception_handler(request, exc)


async def require_token(request: Request) -> Principal:
    """
    FastAPI dependency for token-scoped endpoints.

    The capability required is derived from the request path.

    Raises:
        HTTPException: 401 for missing/invalid credentials, 403 for
            insufficient grants
    """
    decision = await get_config().auth_gate.evaluate(gate_request(request))
    if not decision.allowed:
        _raise_denied(decision)

    request.state.principal = decision.principal
    return decision.principal


async def require_admin_token(request: Request) -> Principal:
    """
    FastAPI dependency for admin endpoints.

    Requires manage:tokens or admin:all regardless of path.
    """
    decision = await get_config().admin_gate.evaluate(gate_request(request))
    if not decision.allowed:
        _raise_denied(decision)

    request.state.principal = decision.principal
    return decision.principal


def parse_basic_authorization(value: str | None) -> HTTPBasicCredentials | None:
    """
    Decode a Basic Authorization header value.

    Args:
        value: Raw Authorization header

    Returns:
        Submitted credentials, or None if the header is absent, uses
        another scheme or cannot be decoded
    """
    scheme, _, param = (value or "").partition(" ")
    if scheme.lower() != "basic" or not param.strip():
        return None

    try:
        decoded = base64.b64decode(param.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return HTTPBasicCredentials(username=username, password=password)


def require_dashboard_user(request: Request) -> str:
    """
    FastAPI dependency for dashboard access (HTTP Basic).

    Every denial, including a malformed Authorization header, is audited
    and answered with the same 401.

    Returns:
        The operator username

    Raises:
        HTTPException: 401 with a Basic challenge on any failure
    """
    config = get_config()
    gate = config.dashboard_gate

    authorization = request.headers.get("Authorization")
    credentials = parse_basic_authorization(authorization)
    if credentials is not None and gate.check(credentials.username, credentials.password):
        return credentials.username

    if not gate.is_enabled:
        reason = "dashboard not configured"
    elif credentials is not None:
        reason = "invalid credentials"
    elif authorization:
        reason = "malformed credentials"
    else:
        reason = "missing credentials"

    config.auditor.log_dashboard_denied(
        RequestContext(
            path=str(request.url.path),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
            correlation_id=request.headers.get(CORRELATION_HEADER),
        ),
        reason=reason,
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": "authentication_required",
            "message": "Please provide valid credentials to access the analytics dashboard",
        },
        headers={"WWW-Authenticate": f'Basic realm="{DASHBOARD_REALM}"'},
    )


AuthenticatedPrincipal = Annotated[Principal, Depends(require_token)]
AdminPrincipal = Annotated[Principal, Depends(require_admin_token)]
DashboardUser = Annotated[str, Depends(require_dashboard_user)]


class TokenGateMiddleware(BaseHTTPMiddleware):
    """
    Middleware that gates whole path prefixes.

    Requests under admin_prefixes go through the AdminGate, requests under
    protected_prefixes through the AuthGate; everything else passes
    through untouched.

    Usage:
        app.add_middleware(
            TokenGateMiddleware,
            protected_prefixes=("/api/insights", "/api/health"),
            admin_prefixes=("/api/admin",),
        )
    """

    def __init__(
        self,
        app: Any,
        *,
        protected_prefixes: Sequence[str] = ("/api/insights", "/api/health"),
        admin_prefixes: Sequence[str] = ("/api/admin",),
        config: GatekeeperConfig | None = None,
    ) -> None:
        """Initialize middleware."""
        super().__init__(app)
        self._protected = tuple(protected_prefixes)
        self._admin = tuple(admin_prefixes)
        self._config = config

    def _gate_for(self, path: str) -> AuthGate | None:
        config = self._config or get_config()
        if path.startswith(self._admin):
            return config.admin_gate
        if path.startswith(self._protected):
            return config.auth_gate
        return None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Evaluate the gate for protected paths, then dispatch."""
        gate = self._gate_for(str(request.url.path))
        if gate is None:
            return await call_next(request)

        decision = await gate.evaluate(gate_request(request))
        if not decision.allowed:
            headers = {"WWW-Authenticate": "Bearer"} if decision.status_code == 401 else None
            return JSONResponse(decision.to_body(), status_code=decision.status_code, headers=headers)

        request.state.principal = decision.principal
        return await call_next(request)
