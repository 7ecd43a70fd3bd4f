"""
POS API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from pos_api.core import configure_cors, lifespan, register_middlewares
from pos_api.routers import (
    health_router,
    kds_router,
    payments_router,
    pos_router,
    public_router,
    reports_router,
)


app = FastAPI(
    title="Orixa POS API",
    description="Order lifecycle and payment confirmation for QR and POS ordering",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_middlewares(app)
configure_cors(app)

app.include_router(health_router)
app.include_router(public_router)
app.include_router(pos_router)
app.include_router(kds_router)
app.include_router(payments_router)
app.include_router(reports_router)
