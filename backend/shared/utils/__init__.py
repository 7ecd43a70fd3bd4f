"""
Utilities module: HTTP exceptions and API schemas.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
)

__all__ = [
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
]
