"""
Main FastAPI application entry point.
Provisions PersistentVolumeClaims for PostgreSQL clusters.
"""
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pgstorage.config.logging import configure_logging, get_logger
from pgstorage.config.settings import settings
from pgstorage.exceptions import PgStorageException
from pgstorage.api.v1 import health, volumes

# Configure logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment,
        echo_manifests=settings.echo_manifests,
    )

    yield

    logger.info("application_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="PersistentVolumeClaim provisioning for PostgreSQL clusters",
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)


# Exception handlers
@app.exception_handler(PgStorageException)
async def pgstorage_exception_handler(request: Request, exc: PgStorageException) -> JSONResponse:
    """Handle custom provisioner exceptions."""
    logger.error(
        "pgstorage_exception",
        path=request.url.path,
        method=request.method,
        error=exc.message,
        status_code=exc.status_code,
        failed_volume=exc.details.get("failed_volume"),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "details": exc.details,
                "status_code": exc.status_code,
            }
        },
    )


def _sanitize_errors(errors):
    """Sanitize Pydantic validation errors to be JSON serializable."""
    sanitized = []
    for error in errors:
        sanitized_error = {}
        for key, value in error.items():
            if key == 'ctx' and isinstance(value, dict):
                sanitized_error[key] = {k: str(v) for k, v in value.items()}
            elif isinstance(value, (str, int, float, bool, type(None))):
                sanitized_error[key] = value
            elif isinstance(value, (list, tuple)):
                sanitized_error[key] = list(value)
            else:
                sanitized_error[key] = str(value)
        sanitized.append(sanitized_error)
    return sanitized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = _sanitize_errors(exc.errors())

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=errors,
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "details": errors,
                "status_code": 422,
            }
        },
    )


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else None,
    )

    response = await call_next(request)

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )

    return response


# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(
    volumes.router,
    prefix="/api/v1/namespaces/{namespace}",
    tags=["Volumes"],
)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "status": "running",
        "docs": "/docs" if not settings.is_production else "disabled",
    }


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    try:
        uvicorn.run(
            "pgstorage.main:app",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except (KeyboardInterrupt, SystemExit):
        logger.info("application_stopped")
    finally:
        sys.exit(0)


if __name__ == "__main__":
    run()
