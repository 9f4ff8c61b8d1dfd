import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from marketplace.api import admin, contracts, health, offers, reviews, withdrawals
from marketplace.core.config import settings
from marketplace.core.errors import MarketplaceError
from marketplace.core.logging_config import setup_logging
from marketplace.core.middleware import RequestLoggingMiddleware
from marketplace.core.rate_limit import limiter
from marketplace.core.redis import close_redis
from marketplace.db.session import engine

# Configure structured JSON logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Verify the database on startup; release pools on shutdown."""
    try:
        async with engine.begin():
            pass
        logger.info("Database connection established")
    except Exception as exc:
        logger.warning("Database connection not available at startup: %s", exc)
    if not settings.gateway_configured:
        logger.warning("Payment gateway mode is 'http' but no API key is configured")
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Creator Marketplace API",
    description="Offers, contracts, escrow payments, reviews and creator withdrawals.",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
    debug=settings.debug,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------
app.add_middleware(RequestLoggingMiddleware)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------
@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Domain error on %s %s: %s", request.method, request.url.path, exc.detail,
            extra={"code": exc.code},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": exc.code, "detail": exc.detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "internal_error", "detail": "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(health.router, prefix="/api")
app.include_router(offers.router, prefix="/api")
app.include_router(contracts.router, prefix="/api")
app.include_router(reviews.router, prefix="/api")
app.include_router(withdrawals.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
