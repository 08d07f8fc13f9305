"""
Analytics Gatekeeper - API Token Lifecycle & Capability Gating.

Issues opaque API tokens, stores only their fingerprints, and gates HTTP
requests by capability. Fails closed on missing, invalid, expired or
revoked credentials, on store failures and on missing configuration.
"""

from analytics_gatekeeper.audit import SecurityAuditor
from analytics_gatekeeper.config import GatekeeperSettings
from analytics_gatekeeper.core.principal import Capability, IssuedCredential, Principal
from analytics_gatekeeper.engines.credential_store import (
    CredentialStore,
    CredentialStoreError,
    InMemoryCredentialStore,
    RedisCredentialStore,
)
from analytics_gatekeeper.engines.credentials import CredentialService
from analytics_gatekeeper.engines.dashboard import DashboardCredentials, DashboardGate
from analytics_gatekeeper.engines.gate import AdminGate, AuthGate, GateDecision, GateRequest
from analytics_gatekeeper.engines.permissions import PermissionSet
from analytics_gatekeeper.engines.usage import UsageRecorder

__version__ = "0.1.0"

__all__ = [
    # Models
    "Capability",
    "Principal",
    "IssuedCredential",
    # Storage
    "CredentialStore",
    "CredentialStoreError",
    "InMemoryCredentialStore",
    "RedisCredentialStore",
    # Lifecycle
    "CredentialService",
    "UsageRecorder",
    # Authorization
    "PermissionSet",
    "AuthGate",
    "AdminGate",
    "GateRequest",
    "GateDecision",
    "DashboardGate",
    "DashboardCredentials",
    # Configuration and audit
    "GatekeeperSettings",
    "SecurityAuditor",
]
