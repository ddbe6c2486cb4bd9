"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from crm.api import contact_lists, contacts, events, groups, teams
from crm.config import get_settings
from crm.core.exceptions import CrmError, FilterValidationError
from crm.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    request_id_ctx,
)
from crm.core.rate_limit import limiter

settings = get_settings()

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
    )

    yield

    logger.info("application_shutdown")


app = FastAPI(
    title="CRM Contacts API",
    description=(
        "Team-scoped contact management: group-based visibility, smart and "
        "manual contact lists, and composable contact filters."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["X-Request-ID"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(CrmError)
async def crm_error_handler(request: Request, exc: CrmError) -> JSONResponse:
    """Render domain errors with the status code of their category."""
    content: dict[str, object] = {"error": exc.code, "message": exc.message}
    if isinstance(exc, FilterValidationError) and exc.index is not None:
        content["index"] = exc.index

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        error=exc.code,
        message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=content)


# Request correlation ID middleware
@app.middleware("http")
async def add_request_id_middleware(request, call_next):
    """Add correlation ID to each request."""
    request_id = generate_request_id()
    request_id_ctx.set(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(contacts.router, prefix="/api/v1")
app.include_router(contact_lists.router, prefix="/api/v1")
app.include_router(groups.router, prefix="/api/v1")
app.include_router(events.router, prefix="/api/v1")
app.include_router(events.roles_router, prefix="/api/v1")
app.include_router(teams.router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "CRM Contacts API",
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "disabled",
    }
