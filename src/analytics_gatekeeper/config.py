"""
Configuration for Analytics Gatekeeper.

Settings are read from the process environment once, at startup, and then
passed by reference to the components that need them. Nothing in the
request path reads the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from analytics_gatekeeper.engines.dashboard import DashboardCredentials

DEFAULT_STORE_TIMEOUT = 5.0


@dataclass(frozen=True)
class GatekeeperSettings:
    """
    Process-level settings.

    Environment variables:
        DASHBOARD_USERNAME / DASHBOARD_PASSWORD  dashboard operator pair
        GATEKEEPER_REDIS_URL                     credential store (Redis)
        GATEKEEPER_STORE_TIMEOUT                 lookup timeout in seconds
        GATEKEEPER_AUDIT_LOG                     optional JSONL audit file
    """

    dashboard_username: str | None = None
    dashboard_password: str | None = field(default=None, repr=False)
    redis_url: str | None = None
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    audit_log_path: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatekeeperSettings:
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Returns:
            GatekeeperSettings

        Raises:
            ValueError: If GATEKEEPER_STORE_TIMEOUT is not a positive number
        """
        env = os.environ if environ is None else environ

        timeout_raw = env.get("GATEKEEPER_STORE_TIMEOUT", "")
        store_timeout = float(timeout_raw) if timeout_raw else DEFAULT_STORE_TIMEOUT
        if store_timeout <= 0:
            raise ValueError("GATEKEEPER_STORE_TIMEOUT must be positive")

        audit_log = env.get("GATEKEEPER_AUDIT_LOG")

        return cls(
            dashboard_username=env.get("DASHBOARD_USERNAME") or None,
            dashboard_password=env.get("DASHBOARD_PASSWORD") or None,
            redis_url=env.get("GATEKEEPER_REDIS_URL") or None,
            store_timeout=store_timeout,
            audit_log_path=Path(audit_log) if audit_log else None,
        )

    @property
    def dashboard_credentials(self) -> DashboardCredentials | None:
        """Dashboard pair, or None when either value is unset."""
        if not self.dashboard_username or not self.dashboard_password:
            return None
        return DashboardCredentials(
            username=self.dashboard_username,
            password=self.dashboard_password,
        )
