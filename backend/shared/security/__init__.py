"""
Security module: staff JWT verification, role/outlet checks, rate limiting.
"""

from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_user_context,
    require_roles,
    require_outlet,
    actor_from_context,
)
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_user_context",
    "require_roles",
    "require_outlet",
    "actor_from_context",
    # rate_limit
    "limiter",
    "rate_limit_exceeded_handler",
]
