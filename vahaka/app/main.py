"""
FastAPI Application Entry Point.

This is the main application file for the Vahaka dispatch backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from vahaka.app.core.config import settings
from vahaka.app.api.v1.router import router as api_v1_router
from vahaka.app.core.observability import ObservabilityMiddleware
from vahaka.app.store.factory import build_store
from vahaka.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Builds the document store and prepares its storage on startup.
    2. Closes its connections on shutdown.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    store = build_store(settings)
    await store.initialize()
    app.state.store = store
    logger.info("Document store ready (%s backend)", settings.store_backend)

    yield

    await store.close()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Driver state and trip assignment backend for ride hailing",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and store reachability
    """
    store_ok = await app.state.store.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "store": settings.store_backend if store_ok else "unreachable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Vahaka Dispatch API",
        "docs": "/docs",
        "health": "/health",
    }
