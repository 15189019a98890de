"""
HTTP middleware and error handlers for Progress Service

- Request ID tracking (X-Request-ID)
- Request logging with masking of sensitive headers
- ProgressServiceError -> JSON error response
- Catch-all 500 handler

Usage:
    from progress_service.middleware import setup_middleware

    app = FastAPI()
    setup_middleware(app, settings)
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from progress_service.config import Settings
from progress_service.errors import ProgressServiceError

logger = logging.getLogger(__name__)


# ============================================================================
# Request ID Middleware
# ============================================================================

class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a request id to every request.

    Taken from the client's X-Request-ID header when present, generated
    otherwise, stored on request.state and echoed in the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================================
# Request Logging Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, user, status and duration of each request"""

    SENSITIVE_HEADERS = {
        "authorization",
        "x-api-key",
        "x-auth-token",
        "cookie",
    }

    def _mask_headers(self, headers: dict) -> dict:
        masked = {}
        for key, value in headers.items():
            if key.lower() in self.SENSITIVE_HEADERS:
                masked[key] = "***MASKED***"
            else:
                masked[key] = value
        return masked

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        request_id = getattr(request.state, "request_id", "unknown")

        logger.debug(
            "Request headers",
            extra={
                "request_id": request_id,
                "headers": self._mask_headers(dict(request.headers)),
            }
        )
        logger.info(
            "Request started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "user_id": request.headers.get("X-User-ID", "anonymous"),
            }
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "exception": str(exc),
                },
                exc_info=True
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )
        return response


# ============================================================================
# Exception Handlers
# ============================================================================

async def progress_error_handler(request: Request, exc: ProgressServiceError) -> JSONResponse:
    """Render engine errors as {error, message, request_id}"""
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": exc.status_code,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "message": exc.message,
            "request_id": request_id,
        }
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected exceptions: logged with traceback, rendered as 500"""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception occurred",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "exception": str(exc),
        },
        exc_info=exc
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request_id,
        }
    )


# ============================================================================
# Setup
# ============================================================================

def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """
    Register CORS, request id, request logging and the error handlers.

    Middleware added last runs first, so RequestIDMiddleware is added after
    RequestLoggingMiddleware to have the id available when logging.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(ProgressServiceError, progress_error_handler)
    app.add_exception_handler(Exception, http_exception_handler)
    logger.info(f"Middleware configured for environment: {settings.ENVIRONMENT}")


def add_health_endpoint(app: FastAPI, settings: Settings) -> None:
    """GET /health for load balancer checks (no user header required)"""

    @app.get("/health", tags=["Health"], status_code=status.HTTP_200_OK)
    async def health_check():
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
