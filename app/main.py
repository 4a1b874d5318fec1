"""
Main FastAPI application for the CyberShield incident API.
Reporter submissions and the administrator review console share one
lifecycle manager; identity comes from the external auth provider.
"""
import os
import logging
import logging.handlers
import time
from contextlib import asynccontextmanager
from typing import Optional
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import routes
from app.config import Settings, get_settings
from app.database import create_engine, create_session_factory, init_db
from app.errors import CyberShieldError
from app.models import ErrorResponse, ValidationErrorResponse
from app.security import SecurityHeaders, RateLimitConfig, limiter

VERSION = "1.0.0"

logger = logging.getLogger(__name__)
log_formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _attach_file_logging(settings: Settings) -> logging.Handler:
    """Rotate app.log under LOG_DIR for every logger in the app package."""
    os.makedirs(settings.log_dir, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(settings.log_dir, "app.log"),
        maxBytes=10485760,  # 10MB
        backupCount=10,
    )
    handler.setFormatter(log_formatter)
    app_logger = logging.getLogger("app")
    app_logger.addHandler(handler)
    app_logger.setLevel(settings.log_level)
    return handler


def _error_response(request: Request, status_code: int, error: str, detail: Optional[str] = None):
    body = ErrorResponse(
        error=error,
        detail=detail,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application for the given settings (environment by default)."""
    settings = settings or get_settings()
    if not settings.secret_key:
        raise ValueError(
            "SECRET_KEY environment variable must be set to the auth provider's signing secret."
        )

    engine = create_engine(settings.database_url, echo=settings.debug)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        # Startup
        handler = _attach_file_logging(settings)
        logger.info("Starting CyberShield API")

        await init_db(engine)
        logger.info("Database initialized")

        yield

        # Shutdown
        logger.info("Shutting down CyberShield API")
        await engine.dispose()
        logging.getLogger("app").removeHandler(handler)
        handler.close()

    app = FastAPI(
        title="CyberShield API",
        description="Cybercrime incident reporting and review",
        version=VERSION,
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db_session = session_factory

    # Route decorators bind to the module-level limiter, so the most recently
    # built app owns its switch; counters start fresh with every app.
    limiter.enabled = settings.rate_limit_enabled
    limiter.reset()
    app.state.limiter = limiter

    # ============= Middleware =============

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Trusted hosts - prevent host header attacks
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.allowed_hosts,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers and request tracking."""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        client_ip = request.client.host if request.client else None
        request.state.client_ip = client_ip

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if response.status_code >= 500:
            level = logging.ERROR
        logger.log(
            level,
            "[%s] %s %s -> %s from %s in %sms",
            request_id, request.method, request.url.path,
            response.status_code, client_ip, duration_ms,
        )

        for header_name, header_value in SecurityHeaders.get_headers().items():
            response.headers[header_name] = header_value

        response.headers["X-Request-ID"] = request_id

        return response

    # ============= Error Handlers =============

    @app.exception_handler(CyberShieldError)
    async def lifecycle_error_handler(request: Request, exc: CyberShieldError):
        logger.warning(
            "[%s] %s: %s",
            getattr(request.state, "request_id", "-"), exc.code, exc.detail,
        )
        response = _error_response(request, exc.status_code, exc.code, exc.detail)
        if exc.status_code == 401:
            response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Custom HTTP exception handler with request ID."""
        return _error_response(request, exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        body = ValidationErrorResponse(
            errors=jsonable_encoder(exc.errors()),
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(status_code=422, content=body.model_dump())

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return _error_response(request, 429, "rate_limit_exceeded", f"Rate limit exceeded: {exc.detail}")

    # ============= Health Check =============

    @app.get("/health", tags=["Health"])
    @limiter.limit(RateLimitConfig.HEALTH_LIMIT)
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": VERSION,
            "request_id": request.state.request_id,
        }

    # ============= Include Routes =============

    app.include_router(routes.auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(routes.incidents.router, prefix="/api/incidents", tags=["Incidents"])
    app.include_router(routes.admin.router, prefix="/api/admin", tags=["Administration"])
    app.include_router(routes.users.router, prefix="/api/users", tags=["Users"])
    app.include_router(routes.notifications.router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(routes.audit.router, prefix="/api/audit", tags=["Audit"])

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level="info",
    )
