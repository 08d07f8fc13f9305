"""
Structured Security Audit Logging for Analytics Gatekeeper.

All gate denials and credential lifecycle events are logged in structured
format. Events are JSON-structured for easy parsing and analysis.

Secrets are never part of an audit event. Only principal IDs, names and
fingerprint prefixes are recorded.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

from analytics_gatekeeper.core.principal import Principal


class AuditEventType(str, Enum):
    """Types of security audit events."""

    AUTH_SUCCESS = "auth.success"
    AUTH_FAILURE = "auth.failure"
    AUTHZ_DENIED = "authz.denied"
    STORE_ERROR = "store.error"
    CREDENTIAL_ISSUED = "credential.issued"
    CREDENTIAL_REVOKED = "credential.revoked"
    DASHBOARD_DENIED = "dashboard.denied"


@dataclass
class AuditEvent:
    """
    Structured audit event.

    All fields are designed for compliance and forensic analysis.
    """

    event_type: AuditEventType
    timestamp: float = field(default_factory=time.time)
    principal_id: str | None = None
    action: str | None = None
    resource: str | None = None
    result: str = "unknown"
    ip_address: str | None = None
    user_agent: str | None = None
    correlation_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp_iso"] = datetime.fromtimestamp(self.timestamp, UTC).isoformat()
        return data

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


@dataclass
class RequestContext:
    """Request attributes reported with every gate event."""

    path: str
    ip_address: str | None = None
    user_agent: str | None = None
    correlation_id: str | None = None


class SecurityAuditor:
    """
    Security event auditor with structured logging.

    Logs gate and lifecycle events to:
    1. Python logging (WARNING for denials, ERROR for store failures)
    2. Optional JSONL file for compliance

    Usage:
        auditor = SecurityAuditor(log_path=Path("security_audit.jsonl"))

        auditor.log_auth_failure(
            context,
            reason="No token provided",
            denial_class="missing_credential",
        )
    """

    def __init__(
        self,
        *,
        log_path: Path | None = None,
        log_level: int = logging.INFO,
        logger_name: str = "gatekeeper.audit",
    ) -> None:
        """
        Initialize security auditor.

        Args:
            log_path: Path to JSONL audit log file (optional)
            log_level: Python logging level
            logger_name: Name for the Python logger
        """
        self._logger = logging.getLogger(logger_name)
        self._logger.setLevel(log_level)
        self._log_path = log_path
        self._log_file: TextIO | None = None
        self._file_lock = threading.Lock()

        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(log_path, "a", encoding="utf-8")

    def close(self) -> None:
        """Close the audit log file."""
        with self._file_lock:
            if self._log_file:
                self._log_file.close()
                self._log_file = None

    def _emit(self, event: AuditEvent, level: int = logging.INFO) -> str:
        """
        Emit an audit event.

        Args:
            event: Event to emit
            level: Python logging level for this event

        Returns:
            Event JSON for reference
        """
        json_line = event.to_json()
        self._logger.log(level, json_line)

        with self._file_lock:
            if self._log_file:
                self._log_file.write(json_line + "\n")
                self._log_file.flush()

        return json_line

    def log_auth_success(self, principal: Principal, context: RequestContext) -> str:
        """Log an allowed request."""
        event = AuditEvent(
            event_type=AuditEventType.AUTH_SUCCESS,
            principal_id=principal.id,
            action="authenticate",
            resource=context.path,
            result="success",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
            details={"name": principal.name},
        )
        return self._emit(event, logging.DEBUG)

    def log_auth_failure(
        self,
        context: RequestContext,
        *,
        reason: str,
        denial_class: str,
    ) -> str:
        """
        Log a 401 denial (missing or invalid credential).

        Args:
            context: Request attributes
            reason: Server-side failure detail
            denial_class: Internal classification

        Returns:
            Event JSON
        """
        event = AuditEvent(
            event_type=AuditEventType.AUTH_FAILURE,
            action="authenticate",
            resource=context.path,
            result="failure",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
            details={"reason": reason, "denial_class": denial_class},
        )
        return self._emit(event, logging.WARNING)

    def log_store_error(
        self,
        context: RequestContext,
        *,
        error: str,
    ) -> str:
        """
        Log a persistence failure during credential lookup.

        Distinct from auth.failure so operators can tell "store is down"
        from "token is bad".
        """
        event = AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            action="resolve",
            resource=context.path,
            result="failure",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
            details={"error": error, "denial_class": "persistence_failure"},
        )
        return self._emit(event, logging.ERROR)

    def log_authz_denied(
        self,
        principal: Principal,
        context: RequestContext,
        *,
        required: str | None,
        reason: str,
    ) -> str:
        """Log a 403 denial (valid credential, insufficient grant)."""
        event = AuditEvent(
            event_type=AuditEventType.AUTHZ_DENIED,
            principal_id=principal.id,
            action=required,
            resource=context.path,
            result="denied",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
            details={
                "grants": principal.grant_values,
                "reason": reason,
                "denial_class": "insufficient_grant",
            },
        )
        return self._emit(event, logging.WARNING)

    def log_credential_issued(self, principal: Principal, *, operator_id: str | None = None) -> str:
        """Log credential issuance (metadata only)."""
        event = AuditEvent(
            event_type=AuditEventType.CREDENTIAL_ISSUED,
            principal_id=operator_id,
            action="issue",
            resource=principal.id,
            result="success",
            details={
                "name": principal.name,
                "grants": principal.grant_values,
                "expires_at": principal.expires_at.isoformat() if principal.expires_at else None,
                "fingerprint_prefix": principal.fingerprint[:8],
            },
        )
        return self._emit(event)

    def log_credential_revoked(
        self,
        principal_id: str,
        *,
        operator_id: str | None = None,
        found: bool = True,
    ) -> str:
        """Log a revocation attempt."""
        event = AuditEvent(
            event_type=AuditEventType.CREDENTIAL_REVOKED,
            principal_id=operator_id,
            action="revoke",
            resource=principal_id,
            result="success" if found else "not_found",
        )
        return self._emit(event)

    def log_dashboard_denied(self, context: RequestContext, *, reason: str) -> str:
        """Log a dashboard Basic-auth denial. The submitted pair is never logged."""
        event = AuditEvent(
            event_type=AuditEventType.DASHBOARD_DENIED,
            action="dashboard",
            resource=context.path,
            result="denied",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
            details={"reason": reason},
        )
        return self._emit(event, logging.WARNING)
