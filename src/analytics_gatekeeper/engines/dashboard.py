"""
Dashboard Gate for Analytics Gatekeeper.

Single-operator Basic-auth check for the analytics dashboard. Stateless:
no store, no token lifecycle. Credentials are built once at startup and
handed to the gate.

Fail closed: if either configured value is missing, every attempt is denied.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardCredentials:
    """Configured operator username/password pair."""

    username: str | None
    password: str | None = field(default=None, repr=False)

    @property
    def is_configured(self) -> bool:
        """Both values present and non-empty."""
        return bool(self.username) and bool(self.password)


def _digest(value: str) -> bytes:
    # Fixed-length digests keep the comparison independent of input length
    return hashlib.sha256(value.encode("utf-8")).digest()


class DashboardGate:
    """
    Constant-time operator credential check.

    Usage:
        gate = DashboardGate(settings.dashboard_credentials)

        if gate.check(username, password):
            # Serve dashboard
    """

    def __init__(self, credentials: DashboardCredentials | None) -> None:
        """
        Initialize dashboard gate.

        Args:
            credentials: Configured pair, or None to disable dashboard access
        """
        self._credentials = credentials
        if not self.is_enabled:
            logger.warning("Dashboard credentials not configured - dashboard access disabled")

    @property
    def is_enabled(self) -> bool:
        """Whether the gate can ever grant access."""
        return self._credentials is not None and self._credentials.is_configured

    def check(self, username: str | None, password: str | None) -> bool:
        """
        Check a submitted Basic-auth pair.

        Both comparisons always run, so timing does not reveal which part
        mismatched.

        Args:
            username: Submitted username
            password: Submitted password

        Returns:
            True only if both values match the configured pair
        """
        creds = self._credentials
        if creds is None or not creds.is_configured:
            logger.warning("Dashboard credentials not configured - access denied")
            return False

        user_ok = hmac.compare_digest(_digest(username or ""), _digest(creds.username or ""))
        pass_ok = hmac.compare_digest(_digest(password or ""), _digest(creds.password or ""))
        return user_ok & pass_ok
