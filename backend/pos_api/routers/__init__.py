"""
API routers.
"""

from .health import router as health_router
from .public import router as public_router
from .pos import router as pos_router
from .kds import router as kds_router
from .payments import router as payments_router
from .reports import router as reports_router

__all__ = [
    "health_router",
    "public_router",
    "pos_router",
    "kds_router",
    "payments_router",
    "reports_router",
]
