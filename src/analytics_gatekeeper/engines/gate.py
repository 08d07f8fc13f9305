"""
Request Gates for Analytics Gatekeeper.

The per-request state machine that turns a presented API secret into an
allow/deny decision:

    START -> EXTRACTING -> RESOLVING -> AUTHORIZING -> {ALLOWED, DENIED}

AuthGate maps the request path to a required capability. AdminGate
always requires the admin tier regardless of path.

Zero-trust: missing, unknown, revoked and expired credentials all collapse
into the same 401. Store failures are also a 401 to the caller but are
classified and logged separately for operators.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from analytics_gatekeeper.audit import RequestContext, SecurityAuditor
from analytics_gatekeeper.core.principal import Principal
from analytics_gatekeeper.engines.credential_store import CredentialStoreError
from analytics_gatekeeper.engines.credentials import CredentialService
from analytics_gatekeeper.engines.permissions import PermissionDecision, PermissionSet
from analytics_gatekeeper.engines.usage import UsageRecorder

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
TOKEN_QUERY_PARAM = "token"
CORRELATION_HEADER = "X-Correlation-ID"


class GateState(str, Enum):
    """States of a single request evaluation."""

    START = "start"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    AUTHORIZING = "authorizing"
    ALLOWED = "allowed"
    DENIED = "denied"


class GateErrorCode(str, Enum):
    """Client-facing error codes."""

    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    INSUFFICIENT_GRANT = "insufficient_grant"


class DenialClass(str, Enum):
    """Internal denial classification (server-side only)."""

    MISSING_CREDENTIAL = "missing_credential"
    CREDENTIAL_INVALID = "credential_invalid"
    PERSISTENCE_FAILURE = "persistence_failure"
    INSUFFICIENT_GRANT = "insufficient_grant"


class CredentialSource(str, Enum):
    """Where the candidate secret was found."""

    BEARER = "bearer"
    API_KEY = "api_key"
    QUERY = "query"


@dataclass
class GateRequest:
    """
    Framework-neutral view of the request attributes a gate needs.

    Header names are matched case-insensitively.
    """

    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    client_ip: str | None = None

    def __post_init__(self) -> None:
        """Normalize header keys to lowercase."""
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    def header(self, name: str) -> str | None:
        """Get a header value by case-insensitive name."""
        return self.headers.get(name.lower())

    @property
    def user_agent(self) -> str | None:
        return self.header("User-Agent")

    def context(self) -> RequestContext:
        """Audit context. Never includes credential material."""
        return RequestContext(
            path=self.path,
            ip_address=self.client_ip,
            user_agent=self.user_agent,
            correlation_id=self.header(CORRELATION_HEADER),
        )


@dataclass
class GateDecision:
    """
    Result of a gate evaluation.

    Contains either a resolved Principal or denial details.
    """

    state: GateState
    status_code: int = 200
    principal: Principal | None = None
    error_code: GateErrorCode | None = None
    message: str | None = None
    denial_class: DenialClass | None = None
    source: CredentialSource | None = None
    trail: list[GateState] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        """Convenience check for an ALLOWED outcome."""
        return self.state == GateState.ALLOWED

    def to_body(self) -> dict[str, str]:
        """Client-facing error body."""
        return {
            "error": self.error_code.value if self.error_code else "unknown",
            "message": self.message or "",
        }


def extract_secret(request: GateRequest) -> tuple[str | None, CredentialSource | None]:
    """
    Extract the candidate secret. First match wins:

    1. Authorization: Bearer <secret>
    2. X-API-Key: <secret>
    3. ?token=<secret>

    Args:
        request: Gate request

    Returns:
        (secret, source), or (None, None) if nothing was presented
    """
    authorization = request.header("Authorization")
    if authorization and authorization.startswith("Bearer "):
        secret = authorization[len("Bearer ") :].strip()
        if secret:
            return secret, CredentialSource.BEARER

    api_key = request.header(API_KEY_HEADER)
    if api_key:
        return api_key.strip(), CredentialSource.API_KEY

    token = request.query.get(TOKEN_QUERY_PARAM)
    if token:
        return token, CredentialSource.QUERY

    return None, None


class AuthGate:
    """
    Token-scoped request gate.

    Usage:
        gate = AuthGate(service, auditor=auditor, usage=recorder)

        decision = await gate.evaluate(GateRequest(path="/api/insights", headers=headers))
        if decision.allowed:
            principal = decision.principal
    """

    missing_message = "API token required"
    forbidden_message = "Insufficient permissions"

    def __init__(
        self,
        service: CredentialService,
        *,
        permissions: PermissionSet | None = None,
        auditor: SecurityAuditor | None = None,
        usage: UsageRecorder | None = None,
        store_timeout: float = 5.0,
    ) -> None:
        """
        Initialize gate.

        Args:
            service: Credential service used for resolution
            permissions: Capability evaluation (default path mapping if None)
            auditor: Audit sink for denials
            usage: Background last_used recorder (optional)
            store_timeout: Seconds allowed for the store lookup
        """
        self._service = service
        self._permissions = permissions or PermissionSet()
        self._auditor = auditor or SecurityAuditor()
        self._usage = usage
        self._store_timeout = store_timeout

    def authorize(self, principal: Principal, path: str) -> PermissionDecision:
        """Capability check for this gate's tier."""
        return self._permissions.evaluate(principal.grants, path)

    async def evaluate(self, request: GateRequest) -> GateDecision:
        """
        Run the gate state machine for one request.

        Args:
            request: Gate request

        Returns:
            GateDecision in state ALLOWED or DENIED
        """
        trail = [GateState.START, GateState.EXTRACTING]
        context = request.context()

        secret, source = extract_secret(request)
        if not secret:
            self._auditor.log_auth_failure(
                context,
                reason="No token provided",
                denial_class=DenialClass.MISSING_CREDENTIAL.value,
            )
            return self._deny(
                trail,
                status_code=401,
                error_code=GateErrorCode.MISSING_CREDENTIAL,
                message=f"Unauthorized: {self.missing_message}",
                denial_class=DenialClass.MISSING_CREDENTIAL,
            )

        trail.append(GateState.RESOLVING)
        try:
            principal = await asyncio.wait_for(
                asyncio.to_thread(self._service.resolve, secret),
                timeout=self._store_timeout,
            )
        except TimeoutError:
            return self._store_failure(trail, context, source, "lookup timed out")
        except CredentialStoreError as e:
            return self._store_failure(trail, context, source, str(e))
        except Exception as e:
            # Anything the backend raises fails closed
            logger.exception("Unexpected error during credential lookup")
            return self._store_failure(trail, context, source, f"{type(e).__name__}: {e}")

        if principal is None:
            self._auditor.log_auth_failure(
                context,
                reason="Invalid token: not found, revoked or expired",
                denial_class=DenialClass.CREDENTIAL_INVALID.value,
            )
            return self._deny(
                trail,
                status_code=401,
                error_code=GateErrorCode.INVALID_CREDENTIAL,
                message="Unauthorized: Invalid token",
                denial_class=DenialClass.CREDENTIAL_INVALID,
                source=source,
            )

        trail.append(GateState.AUTHORIZING)
        permission = self.authorize(principal, request.path)
        if not permission.allowed:
            self._auditor.log_authz_denied(
                principal,
                context,
                required=permission.required,
                reason=permission.reason,
            )
            return self._deny(
                trail,
                status_code=403,
                error_code=GateErrorCode.INSUFFICIENT_GRANT,
                message=f"Forbidden: {self.forbidden_message}",
                denial_class=DenialClass.INSUFFICIENT_GRANT,
                principal=principal,
                source=source,
            )

        trail.append(GateState.ALLOWED)
        self._auditor.log_auth_success(principal, context)
        if self._usage is not None:
            self._usage.submit(principal.id)

        return GateDecision(
            state=GateState.ALLOWED,
            principal=principal,
            source=source,
            trail=trail,
        )

    def _store_failure(
        self,
        trail: list[GateState],
        context: RequestContext,
        source: CredentialSource | None,
        error: str,
    ) -> GateDecision:
        # Same 401 body as an invalid credential; only the logs differ
        self._auditor.log_store_error(context, error=error)
        return self._deny(
            trail,
            status_code=401,
            error_code=GateErrorCode.INVALID_CREDENTIAL,
            message="Unauthorized: Invalid token",
            denial_class=DenialClass.PERSISTENCE_FAILURE,
            source=source,
        )

    @staticmethod
    def _deny(
        trail: list[GateState],
        *,
        status_code: int,
        error_code: GateErrorCode,
        message: str,
        denial_class: DenialClass,
        principal: Principal | None = None,
        source: CredentialSource | None = None,
    ) -> GateDecision:
        trail.append(GateState.DENIED)
        return GateDecision(
            state=GateState.DENIED,
            status_code=status_code,
            principal=principal,
            error_code=error_code,
            message=message,
            denial_class=denial_class,
            source=source,
            trail=trail,
        )


class AdminGate(AuthGate):
    """
    Admin-tier gate.

    Requires manage:tokens or admin:all regardless of the request path.
    """

    missing_message = "Admin token required"
    forbidden_message = "Admin access required"

    def authorize(self, principal: Principal, path: str) -> PermissionDecision:
        """Admin tier check; the path is ignored."""
        return self._permissions.evaluate_admin(principal.grants)
