"""
Permission Set for Analytics Gatekeeper.

The "Can you do this?" logic for API credentials. Capabilities are drawn
from a fixed enumeration; one of them (admin:all) satisfies every
requirement.

Zero-trust: unmapped targets are denied, never allowed by default.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from analytics_gatekeeper.core.principal import Capability

UNIVERSAL_OVERRIDE = Capability.ADMIN_ALL

# Admin tier is satisfied by either of these
ADMIN_CAPABILITIES: frozenset[Capability] = frozenset(
    {Capability.MANAGE_TOKENS, Capability.ADMIN_ALL}
)

# Path prefix -> capability it demands. First match wins.
DEFAULT_PATH_CAPABILITIES: tuple[tuple[str, Capability], ...] = (
    ("/api/insights", Capability.READ_INSIGHTS),
    ("/api/health", Capability.READ_HEALTH),
    ("/api/admin", Capability.MANAGE_TOKENS),
)


class UnknownCapabilityError(ValueError):
    """A grant string is outside the capability enumeration."""

    def __init__(self, value: str) -> None:
        super().__init__(f"invalid permission: {value}")
        self.value = value


@dataclass
class PermissionDecision:
    """
    Result of a permission evaluation.

    Contains the decision and reasoning for audit purposes.
    """

    allowed: bool
    reason: str
    required: str | None = None


def validate(grants: Iterable[str | Capability]) -> tuple[Capability, ...]:
    """
    Validate grant strings against the capability enumeration.

    Used at issuance only. Duplicates collapse, first occurrence wins.

    Args:
        grants: Grant strings or Capability values

    Returns:
        Tuple of Capability in issuance order

    Raises:
        UnknownCapabilityError: If any grant is not a known capability
    """
    validated: list[Capability] = []
    for grant in grants:
        try:
            cap = Capability(grant)
        except ValueError:
            raise UnknownCapabilityError(str(grant)) from None
        if cap not in validated:
            validated.append(cap)
    return tuple(validated)


def satisfies(grants: Iterable[Capability], required: Capability) -> bool:
    """Check a required capability against granted ones (override included)."""
    granted = frozenset(grants)
    return required in granted or UNIVERSAL_OVERRIDE in granted


def has_admin_access(grants: Iterable[Capability]) -> bool:
    """Admin tier: manage:tokens OR admin:all."""
    return bool(ADMIN_CAPABILITIES & frozenset(grants))


class PermissionSet:
    """
    Capability evaluation against request targets.

    Usage:
        permissions = PermissionSet()

        required = permissions.required_capability_for("/api/insights/usage")
        decision = permissions.evaluate(principal.grants, "/api/insights/usage")
        if decision.allowed:
            ...
    """

    def __init__(
        self,
        path_capabilities: Iterable[tuple[str, Capability]] = DEFAULT_PATH_CAPABILITIES,
    ) -> None:
        """
        Initialize permission set.

        Args:
            path_capabilities: (path prefix, capability) pairs
        """
        self._path_capabilities = tuple(path_capabilities)

    def required_capability_for(self, path: str) -> Capability | None:
        """
        Get the capability demanded by a request path.

        Args:
            path: Request path

        Returns:
            Required capability, or None if the path is unmapped
        """
        for prefix, capability in self._path_capabilities:
            if path.startswith(prefix):
                return capability
        return None

    def evaluate(self, grants: Iterable[Capability], path: str) -> PermissionDecision:
        """
        Evaluate grants against the capability a path requires.

        Args:
            grants: Capabilities held by the principal
            path: Request path

        Returns:
            PermissionDecision with allow/deny and reasoning
        """
        required = self.required_capability_for(path)
        if required is None:
            return PermissionDecision(
                allowed=False,
                reason=f"No capability mapped for path: {path}",
            )

        if satisfies(grants, required):
            return PermissionDecision(
                allowed=True,
                reason=f"Granted {required.value}",
                required=required.value,
            )

        return PermissionDecision(
            allowed=False,
            reason=f"Missing capability: {required.value}",
            required=required.value,
        )

    def evaluate_admin(self, grants: Iterable[Capability]) -> PermissionDecision:
        """Evaluate the admin tier regardless of path."""
        required = " | ".join(sorted(c.value for c in ADMIN_CAPABILITIES))
        if has_admin_access(grants):
            return PermissionDecision(allowed=True, reason="Admin access granted", required=required)
        return PermissionDecision(
            allowed=False,
            reason="Admin access required",
            required=required,
        )

    def list_mappings(self) -> list[dict[str, str]]:
        """List path mappings (for debugging/admin)."""
        return [
            {"prefix": prefix, "capability": capability.value}
            for prefix, capability in self._path_capabilities
        ]
