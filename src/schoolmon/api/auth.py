"""
Authentication dependencies for the HTTP adapter.

Supports:
- Device authentication by bearer token (IoT endpoints)
- Admin API key authentication (settings and overview)

Role-based permissions live in the school back office; this module only
decides whether a caller holds the configured admin key.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)


# ============================================================================
# Security Schemes
# ============================================================================


admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)
device_bearer = HTTPBearer(auto_error=False)


class AdminKeyStore:
    """Holds the configured admin API key."""

    def __init__(self) -> None:
        self._key: str | None = None

    def set_key(self, key: str | None) -> None:
        self._key = key or None

    @property
    def configured(self) -> bool:
        return self._key is not None

    def verify(self, provided: str) -> bool:
        """
        Check a provided key against the configured one.

        Uses constant-time comparison to prevent timing attacks.
        """
        if self._key is None:
            return False
        return hmac.compare_digest(provided.encode(), self._key.encode())


# Global admin key store
admin_keys = AdminKeyStore()


def init_auth(admin_api_key: str | None = None) -> None:
    """
    Initialize authentication.

    Args:
        admin_api_key: Key required on admin endpoints
    """
    admin_keys.set_key(admin_api_key)
    if not admin_keys.configured:
        logger.warning("No admin API key configured; admin endpoints are disabled")


# ============================================================================
# Authentication Dependencies
# ============================================================================


async def require_admin(
    header_key: str | None = Security(admin_key_header),
) -> None:
    """
    FastAPI dependency guarding admin endpoints.

    Raises:
        HTTPException: 503 if no admin key is configured, 401 if the key is
            missing or wrong
    """
    if not admin_keys.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured",
        )
    if header_key is None or not admin_keys.verify(header_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


async def get_device_token(
    credentials: HTTPAuthorizationCredentials | None = Security(device_bearer),
) -> str:
    """
    FastAPI dependency extracting the device bearer token.

    Raises:
        HTTPException: 401 if no bearer token was sent
    """
    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Device token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials.strip()
