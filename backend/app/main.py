"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- App-scoped services (settings, token service, session service, DB sessions)
- Exception handlers mapping errors to the response envelope
- API router mounting under settings.api_prefix
- Health check endpoint
"""

import logging

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.routes.router import router as api_router
from app.core.config import Settings
from app.core.database import (
    STORE_UNAVAILABLE_ERRORS,
    build_engine,
    build_session_factory,
)
from app.core.errors import APIError, StoreUnavailableError
from app.core.rate_limiting import limiter, rate_limit_exceeded_handler
from app.core.responses import ErrorResponse
from app.core.tokens import TokenConfig, TokenService
from app.services.session_service import SessionService

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Prevents caching of API responses (they carry tokens)
    - Content-Security-Policy: Restricts resource loading (API returns no HTML)
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    def __init__(self, app, *, api_prefix: str, production: bool) -> None:
        super().__init__(app)
        self._api_prefix = api_prefix.rstrip("/") + "/"
        self._production = production

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        # Clickjacking protection
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Control referrer information leakage
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith(self._api_prefix):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        # default-src 'none': API responses should not load any resources
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if self._production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def _error_response(
    status_code: int,
    *,
    code: str,
    message: str,
    details: list[dict] | None = None,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=ErrorResponse(
            code=code,
            message=message,
            details=details,
            detail=detail,
        ).model_dump(exclude_none=True),
    )


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    return _error_response(
        exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's validation errors to our standard format.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return _error_response(
        400,
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=[
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ],
    )


# Framework-level HTTP errors (unmatched route, wrong method) by status
_HTTP_ERROR_CODES: dict[int, tuple[str, str]] = {
    404: ("NOT_FOUND", "Route not found"),
    405: ("METHOD_NOT_ALLOWED", "Method not allowed"),
}


def http_exception_handler(
    _request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Wrap Starlette HTTP errors (unknown route, wrong method) in the envelope.

    Allow and other headers set by the router are preserved.
    """
    code, message = _HTTP_ERROR_CODES.get(
        exc.status_code, ("HTTP_ERROR", str(exc.detail))
    )
    return _error_response(
        exc.status_code,
        code=code,
        message=message,
        headers=exc.headers,
    )


def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map raw database connectivity failures to 503 STORE_UNAVAILABLE."""
    logger.warning(
        "Identity store unavailable",
        path=str(request.url.path),
        method=request.method,
        error_type=type(exc).__name__,
    )
    error = StoreUnavailableError()
    return _error_response(error.status_code, code=error.code, message=error.message)


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces. The exception
    text is included as `detail` only in development.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception(
        "Unhandled exception",
        exc_info=exc,
        path=str(request.url.path),
        method=request.method,
    )

    settings: Settings | None = getattr(request.app.state, "settings", None)
    detail = str(exc) if settings is not None and settings.is_development else None
    return _error_response(
        500,
        code="INTERNAL_ERROR",
        message="An unexpected error occurred",
        detail=detail,
    )


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. Loaded from the environment when
            omitted.
        session_factory: Session factory for request-scoped DB sessions.
            Built from settings when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="TFT Arena API",
        version="1.0.0",
        description="OAuth sign-in and account linking for TFT Arena",
    )

    # App-scoped services
    token_service = TokenService(TokenConfig.from_settings(settings))
    if session_factory is None:
        session_factory = build_session_factory(build_engine(settings))
    app.state.settings = settings
    app.state.token_service = token_service
    app.state.session_service = SessionService(token_service)
    app.state.session_factory = session_factory

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(
        SecurityHeadersMiddleware,
        api_prefix=settings.api_prefix,
        production=settings.environment == "production",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    for error_class in STORE_UNAVAILABLE_ERRORS:
        app.add_exception_handler(error_class, store_unavailable_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Rate limiting (Security)
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    app.include_router(api_router, prefix=settings.api_prefix)

    # Health check endpoint (outside the API prefix)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn app.main:app
app = create_app()
