"""
Token Management API for Analytics Gatekeeper.

Endpoints (all behind the admin gate):
    POST   /api/admin/tokens        - Issue a token (plaintext shown once)
    GET    /api/admin/tokens        - List tokens (metadata only)
    DELETE /api/admin/tokens/{id}   - Revoke a token
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from analytics_gatekeeper.core.expiration import ExpirationParseError
from analytics_gatekeeper.engines.credential_store import CredentialStoreError
from analytics_gatekeeper.engines.credentials import MalformedRequestError
from analytics_gatekeeper.engines.permissions import UnknownCapabilityError
from analytics_gatekeeper.middleware.fastapi import AdminPrincipal, get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/tokens", tags=["tokens"])


class CreateTokenRequest(BaseModel):
    """Issue a new API token."""

    name: str = ""
    permissions: list[str] = Field(default_factory=list)
    expires_in: str | None = Field(default=None, description='e.g. "30d", "1y"; null never expires')


def _store_unavailable(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "store_unavailable", "message": f"Failed to {action}"},
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_token(body: CreateTokenRequest, admin: AdminPrincipal) -> dict[str, Any]:
    config = get_config()
    try:
        issued = config.service.issue(body.name, body.permissions, body.expires_in)
    except (MalformedRequestError, UnknownCapabilityError, ExpirationParseError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "malformed_request", "message": str(e)},
        ) from None
    except CredentialStoreError:
        logger.exception("Failed to persist new token")
        raise _store_unavailable("create token") from None

    config.auditor.log_credential_issued(issued.principal, operator_id=admin.id)
    return {
        "token": issued.secret,
        "token_id": issued.principal.id,
        **issued.principal.public_view(),
    }


@router.get("")
def list_tokens(admin: AdminPrincipal) -> list[dict[str, Any]]:
    try:
        principals = get_config().service.list_credentials()
    except CredentialStoreError:
        logger.exception("Failed to list tokens")
        raise _store_unavailable("fetch tokens") from None
    return [p.public_view() for p in principals]


@router.delete("/{token_id}")
def revoke_token(token_id: str, admin: AdminPrincipal) -> dict[str, str]:
    """Revoke a token. Irreversible."""
    config = get_config()
    try:
        found = config.service.revoke(token_id)
    except CredentialStoreError:
        logger.exception("Failed to revoke token %s", token_id)
        raise _store_unavailable("revoke token") from None

    config.auditor.log_credential_revoked(token_id, operator_id=admin.id, found=found)
    if not found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "Token not found"},
        )
    return {"status": "success", "message": "Token revoked successfully"}
