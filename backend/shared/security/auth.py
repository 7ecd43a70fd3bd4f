"""
Authentication and authorization utilities for staff endpoints.

Tokens are issued by the external auth service; this module only signs
development tokens (CLI) and verifies incoming ones.

Claims: sub (user id), company_id, outlet_ids, roles, email.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Iterable

import jwt
from fastapi import Header, HTTPException, status

from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE, settings
from shared.config.logging import get_logger
from shared.utils.exceptions import InsufficientRoleError, OutletAccessError

logger = get_logger(__name__)


# =============================================================================
# JWT Functions
# =============================================================================


def sign_jwt(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    """
    Sign an access token with the given claims.

    Args:
        payload: Claims (sub, company_id, outlet_ids, roles, email).
        ttl_seconds: Token lifetime. Defaults to the access token expiry.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        HTTPException(401): If the token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the real reason, return a generic message
        logger.warning("JWT validation failed", error=str(e))
        raise _unauthorized("Invalid token")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token: invalid type claim")

    try:
        int(payload["sub"])
    except (KeyError, ValueError, TypeError):
        raise _unauthorized("Invalid token: malformed subject claim")

    outlet_ids = payload.get("outlet_ids", [])
    if not isinstance(outlet_ids, list) or not all(isinstance(o, int) for o in outlet_ids):
        raise _unauthorized("Invalid token: malformed outlet_ids claim")

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency returning the verified staff claims.

    Usage:
        @router.get("/orders")
        def list_orders(ctx: dict = Depends(current_user_context)):
            user_id = int(ctx["sub"])
    """
    token = get_bearer_token(authorization)
    return verify_jwt(token)


def require_roles(ctx: dict[str, Any], allowed: Iterable[str]) -> None:
    """Raise 403 unless the user holds at least one of ``allowed`` roles."""
    allowed_set = set(allowed)
    if not set(ctx.get("roles", [])) & allowed_set:
        raise InsufficientRoleError(list(allowed_set), user_id=ctx.get("sub"))


def require_outlet(ctx: dict[str, Any], outlet_id: int) -> None:
    """Raise 403 unless the user's token covers ``outlet_id``."""
    if outlet_id not in set(ctx.get("outlet_ids", [])):
        raise OutletAccessError(outlet_id, user_id=ctx.get("sub"))


def actor_from_context(ctx: dict[str, Any]) -> dict[str, Any]:
    """Compact actor reference used in audit entries and events."""
    roles = ctx.get("roles", [])
    return {
        "user_id": int(ctx["sub"]),
        "role": roles[0] if roles else None,
    }
