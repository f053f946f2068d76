"""
Point-of-Sale Cart API - Main Application.

FastAPI application with CORS enabled for till frontends.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.dependencies import get_settings
from domain.errors import (
    ConflictError,
    ContextMissingError,
    InvalidFieldError,
    LineItemNotFoundError,
    PosError,
    SaleNotFoundError,
    UnitUnavailableError,
    UnpaidSaleError,
)

logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Point-of-Sale Cart API",
    description="REST API for building, pricing and checking out retail sales",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the till frontends' hosts in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_STATUS = {
    ConflictError: (409, "Conflict"),
    SaleNotFoundError: (404, "Not found"),
    LineItemNotFoundError: (404, "Not found"),
    ContextMissingError: (422, "Till context missing"),
    InvalidFieldError: (400, "Invalid field"),
    UnpaidSaleError: (422, "Sale not paid"),
    UnitUnavailableError: (409, "Unit unavailable"),
}


@app.exception_handler(PosError)
def handle_pos_error(request: Request, exc: PosError):
    """Map domain errors onto the standard error response."""
    status_code, error = _ERROR_STATUS.get(type(exc), (400, "Invalid request"))
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc), "status_code": status_code},
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
        "service": "pos-sale-cart-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Point-of-Sale Cart API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import catalog, sales

app.include_router(catalog.router, prefix="/api/v1", tags=["Catalog"])
app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
