from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

# Import core components
from waiver_app.core.logging_config import setup_logging
from waiver_app.core.settings import settings
from waiver_app.middleware.logging import LoggingMiddleware

# Import route modules
from waiver_app.routes import health, merge_fields, waivers
from waiver_app.exceptions import (
    WaiverAppException, NotFoundException, ValidationException, PersistenceException,
)

# Set up logging first
logger = setup_logging()

_docs_enabled = settings.is_development or os.getenv("SHOW_DOCS", "").lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("=" * 50)
    logger.info("Waiver API starting up")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS origins: {settings.cors_origins}")
    logger.info(f"SQL Debug: {'enabled' if settings.sql_debug else 'disabled'}")
    logger.info(f"Unresolved placeholder policy: {settings.unresolved_placeholder_policy}")
    logger.info(f"Guardian required when DOB unknown: {settings.guardian_required_when_dob_unknown}")
    logger.info("=" * 50)
    yield
    # Shutdown logic
    logger.info("Waiver API shutting down gracefully")

app = FastAPI(
    title="Waiver API",
    description="Liability waiver templates, signing and PDF documents",
    version="1.0.0",
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    lifespan=lifespan,
)

# Add middleware in correct order (last added = first executed)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_origins != ["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Correlation-ID"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(merge_fields.router)
app.include_router(waivers.router)


# Exception handlers
@app.exception_handler(ValidationException)
async def validation_exception_handler(request: Request, exc: ValidationException):
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    logger.warning(f"[{correlation_id}] Validation error on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "errors": exc.errors, "correlation_id": correlation_id}
    )


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    logger.warning(f"[{correlation_id}] Not found error on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "correlation_id": correlation_id}
    )


@app.exception_handler(PersistenceException)
async def persistence_exception_handler(request: Request, exc: PersistenceException):
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    logger.error(f"[{correlation_id}] Persistence error on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "correlation_id": correlation_id},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(WaiverAppException)
async def waiver_app_exception_handler(request: Request, exc: WaiverAppException):
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    logger.error(f"[{correlation_id}] {type(exc).__name__} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "correlation_id": correlation_id}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    logger.error(f"[{correlation_id}] Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": str(exc),
                "correlation_id": correlation_id,
                "type": type(exc).__name__
            }
        )
    else:
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "correlation_id": correlation_id
            }
        )


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Waiver API",
        "version": "1.0.0",
        "environment": settings.environment,
        "docs_url": "/docs" if _docs_enabled else None,
        "health_check": "/health",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info" if settings.is_development else "warning"
    )
