"""Credential, permission and gate engines."""

from analytics_gatekeeper.engines.credential_store import (
    CorruptCredentialError,
    CredentialDraft,
    CredentialStore,
    CredentialStoreError,
    InMemoryCredentialStore,
    RedisCredentialStore,
)
from analytics_gatekeeper.engines.credentials import CredentialService, MalformedRequestError
from analytics_gatekeeper.engines.dashboard import DashboardCredentials, DashboardGate
from analytics_gatekeeper.engines.gate import (
    AdminGate,
    AuthGate,
    DenialClass,
    GateDecision,
    GateErrorCode,
    GateRequest,
    GateState,
)
from analytics_gatekeeper.engines.permissions import (
    PermissionDecision,
    PermissionSet,
    UnknownCapabilityError,
)
from analytics_gatekeeper.engines.usage import UsageRecorder

__all__ = [
    # Stores
    "CredentialStore",
    "CredentialDraft",
    "InMemoryCredentialStore",
    "RedisCredentialStore",
    "CredentialStoreError",
    "CorruptCredentialError",
    # Lifecycle
    "CredentialService",
    "MalformedRequestError",
    "UsageRecorder",
    # Permissions
    "PermissionSet",
    "PermissionDecision",
    "UnknownCapabilityError",
    # Gates
    "AuthGate",
    "AdminGate",
    "GateRequest",
    "GateDecision",
    "GateState",
    "GateErrorCode",
    "DenialClass",
    "DashboardGate",
    "DashboardCredentials",
]
