"""
Main FastAPI application definitions, middleware, and request handlers.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from api.exceptions import add_exception_handlers
from api.routes import generation, system
from config.settings import settings
from container import container_manager
from infrastructure.monitoring import configure_structlog, get_logger
from security import SESSION_HEADER, get_security_headers

# Configure structlog for the application
configure_structlog(settings.monitoring.log_level)
logger = get_logger(__name__)

# ============================================================================
# MIDDLEWARE STACK (Cross-Cutting Concerns)
# ============================================================================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach environment-aware security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for k, v in get_security_headers().items():
            if k not in response.headers:
                response.headers[k] = v
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for correlation across logs and error bodies."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class HostValidationMiddleware(BaseHTTPMiddleware):
    """Validate Host header against settings.allowed_hosts."""

    async def dispatch(self, request: Request, call_next):
        host = request.headers.get("host", "").split(":")[0].lower()
        if (
            settings.allowed_hosts
            and host
            and host not in [h.lower() for h in settings.allowed_hosts]
        ):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid Host header"}
            )
        return await call_next(request)


# ============================================================================
# FASTAPI APPLICATION INITIALIZATION
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup connects configured backends; shutdown drains and releases them."""
    logger.info("Validating environment configuration...")
    if settings.llm.openai_api_key is None and settings.llm.anthropic_api_key is None:
        # Every generation will be fallback content until a key is set
        logger.warning("no_llm_provider_configured")
    if settings.is_production and not settings.redis.enabled:
        logger.warning("usage_store_in_memory", detail="quota counters are not shared across workers")

    await container_manager.initialize()
    logger.info("application_startup_complete", environment=settings.environment)

    yield  # Application runs here

    await container_manager.cleanup()
    logger.info("application_shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Multi-platform social media content generation with usage-based admission",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

add_exception_handlers(app)

app.include_router(generation.router)
app.include_router(system.router)


@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/docs")


# Middleware stack (order matters: last added = first executed)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Type",
        "Authorization",
        "X-Request-ID",
        SESSION_HEADER,
    ],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(HostValidationMiddleware)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info", access_log=True
    )
