"""Entry point for the FastAPI application.

This module constructs the FastAPI app, includes the receipt router
and sets up startup and shutdown events. Run it with
``uvicorn kakeibo.api.main:app``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exception_handlers import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from kakeibo.api.error_handlers import generic_exception_handler, validation_exception_handler
from kakeibo.api.routes.receipts import router as receipts_router
from kakeibo.core.config import settings
from kakeibo.core.observability import init_sentry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting up...")
    if init_sentry("api"):
        logger.info("Sentry SDK initialized (api)")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Kakeibo API",
    version="1.0.0",
    lifespan=lifespan,
)

# Development allows every origin; elsewhere only the configured ones
env_is_dev = (settings.ENVIRONMENT or "development").lower() == "development"
allow_origins = ["*"] if env_is_dev else list(settings.BACKEND_CORS_ORIGINS or [])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(receipts_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}


@app.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """Health check endpoint (supports GET & HEAD)."""
    return {"status": "healthy"}
