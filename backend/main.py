"""
Module: main.py
Description: FastAPI application factory for the PiggyBank personal-finance API.

This module provides:
    - Application assembly from an explicit Settings object
    - Global rate limiting, CORS and request logging middleware
    - Uniform {success, data | error} JSON envelope for every error
    - System endpoints (/health, /api, /metrics)

Resource endpoints live in routers/ (auth, payments, expenses, savings,
goals, insights, dashboard, chat).

Usage:
    uvicorn main:create_app --factory --reload --host 0.0.0.0 --port 8000
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional, Dict
from collections import defaultdict

from fastapi import APIRouter, FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, load_settings
from database import configure_database, get_db, init_db
from dependencies import get_ai_service
from routers import accounts, payments, expenses, savings, goals, insights, dashboard, chat
from schemas import HealthResponse, error_envelope
from services.ai_service import AIService
from services.observability import logger, metrics, configure_logging, log_request


# =============================================================================
# Rate Limiting
# =============================================================================

class RateLimiter:
    """
    Simple in-memory rate limiter to prevent API abuse.

    Limits requests per identifier to prevent:
        - OpenAI budget drain from chat spam
        - Denial of service attacks
        - Runaway clients

    Uses sliding window algorithm with configurable limits.
    """

    def __init__(self, max_requests: int = 30, window_seconds: int = 60):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per window.
            window_seconds: Time window in seconds.
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, list] = defaultdict(list)

    def is_allowed(self, identifier: str) -> bool:
        """
        Check if request is allowed for given identifier.

        Args:
            identifier: User ID or client IP address.

        Returns:
            True if request is allowed, False if rate limited.
        """
        now = time.time()
        window_start = now - self.window_seconds

        # Clean old requests
        self.requests[identifier] = [
            t for t in self.requests[identifier]
            if t > window_start
        ]

        # Check limit
        if len(self.requests[identifier]) >= self.max_requests:
            return False

        # Record request
        self.requests[identifier].append(now)
        return True

    def get_remaining(self, identifier: str) -> int:
        """Get remaining requests for identifier."""
        now = time.time()
        window_start = now - self.window_seconds
        current_requests = [
            t for t in self.requests.get(identifier, [])
            if t > window_start
        ]
        return max(0, self.max_requests - len(current_requests))

    def get_reset_time(self, identifier: str) -> float:
        """Get seconds until rate limit resets."""
        if identifier not in self.requests or not self.requests[identifier]:
            return 0
        oldest = min(self.requests[identifier])
        return max(0, oldest + self.window_seconds - time.time())


# Paths exempt from the global per-IP limit
RATE_LIMIT_EXEMPT = {"/health"}


# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.

    On startup:
        - Create database tables
    """
    settings: Settings = app.state.settings
    logger.info("Starting PiggyBank API", environment=settings.environment)
    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down PiggyBank API")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Explicit configuration. Loaded from the environment when omitted.

    Returns:
        FastAPI: The configured application. Collaborators built from
        settings are stored on app.state.
    """
    settings = settings or load_settings()

    configure_logging(
        settings.log_level,
        None if settings.environment == "test" else settings.log_dir,
    )
    configure_database(settings.database_url)

    app = FastAPI(
        title="PiggyBank API",
        description="""
    Personal-finance API: accounts, wallet and transfers, expenses, savings,
    goals, AI-generated insights and a finance chat assistant.
    """,
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.ai_service = AIService(settings)
    app.state.api_rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.chat_rate_limiter = RateLimiter(
        max_requests=settings.chat_rate_limit_per_minute,
        window_seconds=60,
    )

    _register_middleware(app)
    _register_exception_handlers(app)

    # CORS Configuration - added last so it wraps the other middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system_router)
    for module in (accounts, payments, expenses, savings, goals, insights, dashboard, chat):
        app.include_router(module.router)

    return app


# =============================================================================
# Middleware
# =============================================================================

def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _register_middleware(app: FastAPI) -> None:

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if request.url.path in RATE_LIMIT_EXEMPT:
            return await call_next(request)

        limiter: RateLimiter = request.app.state.api_rate_limiter
        ip = _client_ip(request)
        if not limiter.is_allowed(ip):
            metrics.increment("http.rate_limited")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_envelope("Too many requests from this IP, please try again later."),
                headers={
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(limiter.get_reset_time(ip))),
                },
            )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = uuid.uuid4().hex[:12]
        logger.set_context(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log_request(request.method, request.url.path, 500,
                        (time.perf_counter() - start) * 1000, ip=_client_ip(request))
            raise
        finally:
            logger.clear_context()

        log_request(request.method, request.url.path, response.status_code,
                    (time.perf_counter() - start) * 1000, ip=_client_ip(request),
                    request_id=request_id)
        response.headers["X-Request-ID"] = request_id
        return response


# =============================================================================
# Error Envelope
# =============================================================================

def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and "endpoint" not in request.scope:
            body = error_envelope("Route not found", path=request.url.path)
        else:
            body = error_envelope(str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=body,
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        sources = {(err.get("loc") or ("body",))[0] for err in exc.errors()}
        if sources == {"query"}:
            message = "Invalid query parameters"
        elif sources == {"path"}:
            message = "Invalid route parameters"
        else:
            message = "Invalid request body"

        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_envelope(message, details=details),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Unhandled database error", path=request.url.path, error=str(exc))
        metrics.increment("errors.database")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_envelope("Database error"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path, error=str(exc))
        metrics.increment("errors.unhandled")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_envelope("Internal server error"),
        )


# =============================================================================
# System Endpoints
# =============================================================================

system_router = APIRouter(tags=["System"])


@system_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Check the health status of the API, database, and OpenAI connection."
)
async def health_check(
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
) -> HealthResponse:
    """
    Perform health check on all system components.

    Returns:
        HealthResponse: Status of API, database, and OpenAI connection.

    Example:
        GET /health
        Response: {"status": "healthy", "database": "connected", "openai": "disconnected"}
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        logger.error("Health check database failure", error=str(e))
        db_status = "error"

    openai_connected = await ai_service.check_connection()
    openai_status = "connected" if openai_connected else "disconnected"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return HealthResponse(
        status=overall_status,
        database=db_status,
        openai=openai_status
    )


@system_router.get("/api", summary="Endpoint index")
async def api_index():
    return {
        "success": True,
        "data": {
            "name": "PiggyBank API",
            "version": "1.0.0",
            "endpoints": {
                "auth": "/api/auth",
                "payments": "/api/payments",
                "expenses": "/api/expenses",
                "savings": "/api/savings",
                "goals": "/api/goals",
                "insights": "/api/insights",
                "dashboard": "/api/dashboard",
                "chat": "/api/chat",
                "health": "/health",
                "metrics": "/metrics",
            },
        },
    }


@system_router.get(
    "/metrics",
    summary="Get application metrics",
    description="Returns request counts, timing data, ledger and OpenAI usage statistics."
)
async def get_metrics(ai_service: AIService = Depends(get_ai_service)):
    """
    Get application metrics for monitoring and debugging.

    Example:
        GET /metrics
        Response: {
            "uptime_seconds": 3600,
            "counters": {"ledger.transfer.success": 15, "chat.requests": 42},
            "timings": {"ledger.transfer": {"avg_ms": 12.5, ...}}
        }
    """
    return {**metrics.get_summary(), "openai": ai_service.get_usage_stats()}


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True
    )
