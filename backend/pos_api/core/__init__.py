"""
Application wiring: lifespan, middlewares and CORS.
"""

from .lifespan import lifespan
from .middlewares import register_middlewares
from .cors import configure_cors

__all__ = ["lifespan", "register_middlewares", "configure_cors"]
