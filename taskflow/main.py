# taskflow/main.py - Application assembly: tracing, middleware, handlers and routes
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from prometheus_fastapi_instrumentator import Instrumentator
import time

# Core imports
from taskflow.core.config import settings
from taskflow.db.database import get_db, init_db, engine

# Import tracing
from taskflow.core import tracing

# Import API routes
from taskflow.api.v1 import api_router

# Import middleware
from taskflow.middleware.security import SecurityHeadersMiddleware
from taskflow.middleware.cors import setup_cors_middleware
from taskflow.middleware.rate_limiting import setup_rate_limiting

# Import exception handlers
from taskflow.exceptions.handlers import (
    http_exception_handler,
    validation_exception_handler,
    global_exception_handler,
    starlette_http_exception_handler
)

tracing_enabled = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan with database initialization
    """
    tracing.info("Taskflow API startup initiated")

    try:
        await init_db()
        tracing.info("Database initialized successfully")
    except Exception as e:
        tracing.error(f"Database initialization failed: {e}")
        raise

    tracing.info(f"Environment: {settings.ENVIRONMENT}")
    tracing.info(f"Log Level: {settings.LOG_LEVEL}")
    tracing.info(f"Tracing: {'Enabled' if tracing_enabled else 'Disabled'}")
    tracing.info(f"Rate Limiting: {'Enabled' if settings.RATE_LIMIT_ENABLED else 'Disabled'}")
    tracing.info(f"CORS Origins: {len(settings.cors_origins_list)} configured")

    yield

    tracing.info("Taskflow API shutdown complete")


app = FastAPI(
    title="Taskflow API",
    description="Kanban task management with subtasks, time tracking and dependencies",
    version=tracing.VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT == "development" else None
)

# =============================================================================
# TRACING SETUP
# =============================================================================

try:
    tracing_enabled = tracing.setup_tracing(app, engine)
except Exception as e:
    tracing.error(f"Failed to initialize tracing: {e}")
    tracing_enabled = False

# =============================================================================
# MIDDLEWARE SETUP (last added runs first)
# =============================================================================

app.add_middleware(SecurityHeadersMiddleware)
setup_cors_middleware(app)
setup_rate_limiting(app)

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_labels=True
)
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# =============================================================================
# API ROUTES
# =============================================================================

app.include_router(api_router, prefix="/api/v1")


# =============================================================================
# SYSTEM ENDPOINTS
# =============================================================================

@app.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check with a database round trip
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        tracing.error(f"Health check failed: {e}", endpoint="/health", error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy - database connection failed"
        )

    return {
        "status": "healthy",
        "service": "Taskflow API",
        "version": tracing.VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": time.time(),
        "trace_id": tracing.get_current_trace_id(),
        "checks": {
            "database": "connected",
            "tracing": "enabled" if tracing_enabled else "disabled",
            "rate_limiting": "enabled" if settings.RATE_LIMIT_ENABLED else "disabled"
        }
    }


@app.get("/", tags=["System"])
async def api_information():
    """API information endpoint"""
    return {
        "message": "Taskflow API",
        "version": tracing.VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational",
        "trace_id": tracing.get_current_trace_id(),
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "projects": "/api/v1/projects",
            "tasks": "/api/v1/tasks",
            "invitations": "/api/v1/invitations",
            "documentation": "/docs" if settings.ENVIRONMENT == "development" else "Contact administrator"
        },
        "timestamp": time.time()
    }
