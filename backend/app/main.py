"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import cases, disclosures, documents, health
from app.core.config import get_settings
from app.core.correlation import CorrelationMiddleware, get_correlation_id
from app.core.exceptions import InternalError
from app.core.logging import configure_logging
from app.core.rate_limit import limiter, rate_limit_exceeded_handler

# Configure structured logging on module load
configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", app_name=app.title)

    settings = get_settings()
    if not settings.is_configured:
        logger.warning(
            "application_not_fully_configured",
            message="Supabase credentials not set. Some features will be unavailable.",
        )

    if not settings.is_openai_configured:
        logger.warning(
            "openai_not_configured",
            message="OPENAI_API_KEY not set. Banking details must be entered manually.",
            hint="Set OPENAI_API_KEY in .env file",
        )

    yield

    logger.info("application_shutting_down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Case document disclosure manager - Backend API",
        version=settings.api_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Custom OpenAPI schema with Bearer token auth
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title=settings.app_name,
            version=settings.api_version,
            description="Case document disclosure manager - Backend API",
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Enter your Supabase JWT token",
            }
        }
        openapi_schema["security"] = [{"BearerAuth": []}]
        for path in openapi_schema.get("paths", {}).values():
            for operation in path.values():
                if isinstance(operation, dict) and "security" in operation:
                    operation["security"] = [{"BearerAuth": []}]
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    # Middleware execution order is LIFO: CORS is added last so it also
    # decorates 401/403/500 responses
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle HTTP exceptions with structured error response."""
        correlation_id = get_correlation_id()

        if isinstance(exc.detail, dict) and "error" in exc.detail:
            content = exc.detail
            if correlation_id:
                content["error"]["details"] = content["error"].get("details") or {}
                content["error"]["details"]["correlationId"] = correlation_id
        else:
            content = {
                "error": {
                    "code": f"HTTP_{exc.status_code}",
                    "message": str(exc.detail) if exc.detail else "An error occurred",
                    "details": {"correlationId": correlation_id} if correlation_id else {},
                }
            }

        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        correlation_id = get_correlation_id()

        field_errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]

        content = {
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {"fields": field_errors},
            }
        }
        if correlation_id:
            content["error"]["details"]["correlationId"] = correlation_id

        logger.warning(
            "validation_error",
            path=str(request.url.path),
            errors=field_errors,
        )

        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all handler; internals are logged, never returned."""
        correlation_id = get_correlation_id()

        logger.exception(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )

        error = InternalError(correlation_id=correlation_id)
        return JSONResponse(status_code=error.status_code, content=error.detail)

    app.include_router(health.router, prefix="/api")
    app.include_router(cases.router, prefix="/api")
    app.include_router(cases.invitations_router, prefix="/api")
    app.include_router(documents.case_documents_router, prefix="/api")
    app.include_router(documents.router, prefix="/api")
    app.include_router(disclosures.router, prefix="/api")

    return app


# Create the application instance
app = create_app()


@app.get("/")
async def root() -> dict[str, str]:
    payload: dict[str, str] = {
        "message": "Disclosure Manager Backend API",
        "health": "/api/health",
    }

    if get_settings().debug:
        payload["docs"] = "/docs"

    return payload
