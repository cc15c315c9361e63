"""
Dealer Lead Marketplace API - Main Application.

FastAPI application with CORS enabled for frontend communication.
Domain errors raised by the services are translated to HTTP responses here.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from config import get_settings
from domain.errors import (
    AlreadyLockedByOther,
    ApplicationNotFound,
    ConfigurationError,
    DuplicateTemporaryLock,
    InvalidPricingConfig,
    MarketplaceError,
    NotLockOwner,
    PaymentNotConfirmed,
    PurchaseNotFound,
    StoreConflict,
)

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Most specific first: InvalidPricingConfig is a ConfigurationError.
ERROR_STATUS_CODES = (
    (AlreadyLockedByOther, 409),
    (DuplicateTemporaryLock, 409),
    (NotLockOwner, 403),
    (InvalidPricingConfig, 422),
    (ConfigurationError, 503),
    (PaymentNotConfirmed, 402),
    (ApplicationNotFound, 404),
    (PurchaseNotFound, 404),
    (StoreConflict, 503),
)


def status_code_for(error: MarketplaceError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


# Create FastAPI application
app = FastAPI(
    title="Dealer Lead Marketplace API",
    description="REST API for locking, pricing and purchasing vehicle-loan applications",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the dealer portal domain once it is deployed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "detail": str(exc),
            "status_code": status_code,
        },
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "dealer-lead-marketplace-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Dealer Lead Marketplace API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import applications, locks, purchases, quotes, settings, webhooks  # noqa: E402

app.include_router(applications.router, prefix="/api/v1", tags=["Applications"])
app.include_router(locks.router, prefix="/api/v1", tags=["Locks"])
app.include_router(quotes.router, prefix="/api/v1", tags=["Quotes"])
app.include_router(purchases.router, prefix="/api/v1", tags=["Purchases"])
app.include_router(settings.router, prefix="/api/v1", tags=["Settings"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
