"""
Security Module for the Tourism Hub API

Implements the HTTP hardening shared by every router:
- Rate limiting (IP-based using slowapi)
- Security headers middleware
- Request ID generation for audit logging
- Request size validation
- Domain error, HTTP error and unhandled error responses

Configuration via environment variables:
- RATE_LIMIT_PER_MINUTE: Requests per minute per IP (default: 100)
- MAX_REQUEST_SIZE_MB: Maximum request body size in MB (default: 30)
- ENVIRONMENT: 'production' or 'development' (affects error detail exposure)
- TRUSTED_PROXY_COUNT: Proxies in front of the app (default: 1)
"""

import ipaddress
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tourism_hub.errors import DomainError

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "100"))
DEFAULT_RATE_LIMIT = f"{RATE_LIMIT_PER_MINUTE}/minute"

# Report uploads may be up to 25MB plus multipart overhead
MAX_REQUEST_SIZE_MB = int(os.getenv("MAX_REQUEST_SIZE_MB", "30"))
MAX_REQUEST_SIZE_BYTES = MAX_REQUEST_SIZE_MB * 1024 * 1024

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT.lower() == "production"

TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))


# =============================================================================
# Rate Limiter Setup
# =============================================================================

def _is_valid_ip(ip_str: str) -> bool:
    """Validate that a string is a valid IP address (IPv4 or IPv6)."""
    if not ip_str or len(ip_str) > 45:
        return False
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address with anti-spoofing protection.

    Uses the "rightmost non-trusted" entry of X-Forwarded-For: proxies
    append the connecting IP, so anything left of the trusted chain may
    be forged by the client.

    Returns:
        The client IP address, or "unknown" if not determinable
    """
    direct_ip = request.client.host if request.client else None

    if forwarded_for := request.headers.get("X-Forwarded-For"):
        if ips := [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]:
            if len(ips) > TRUSTED_PROXY_COUNT:
                client_ip = ips[-(TRUSTED_PROXY_COUNT + 1)]
            else:
                client_ip = ips[0]

            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning(
                f"Invalid IP in X-Forwarded-For header: {client_ip[:50]!r}",
                extra={"direct_ip": direct_ip},
            )

    if real_ip := request.headers.get("X-Real-IP"):
        real_ip = real_ip.strip()
        if _is_valid_ip(real_ip):
            return real_ip
        logger.warning(
            f"Invalid X-Real-IP header: {real_ip[:50]!r}",
            extra={"direct_ip": direct_ip},
        )

    return direct_ip if direct_ip and _is_valid_ip(direct_ip) else "unknown"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri="memory://",  # In-memory storage (use Redis for multi-instance)
    strategy="fixed-window",
)


def get_rate_limiter() -> Limiter:
    """Get the configured rate limiter instance."""
    return limiter


# =============================================================================
# Security Headers Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers and an X-Request-ID to every response, and log
    one line per completed request.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.start_time = time.time()

        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )
        response.headers["X-Request-ID"] = request_id
        if not response.headers.get("Cache-Control"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"

        duration = time.time() - request.state.start_time
        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s "
            f"request_id={request_id} client_ip={get_client_ip(request)}"
        )
        return response


# =============================================================================
# Request Size Limit Middleware
# =============================================================================

class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above MAX_REQUEST_SIZE_MB using Content-Length."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if content_length := request.headers.get("content-length"):
            try:
                size = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={
                        "detail": "Invalid Content-Length header",
                        "code": "INVALID_CONTENT_LENGTH",
                    },
                )
            if size > MAX_REQUEST_SIZE_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={
                        "detail": f"Request body too large. Maximum size is {MAX_REQUEST_SIZE_MB}MB.",
                        "code": "REQUEST_TOO_LARGE",
                    },
                )
        return await call_next(request)


# =============================================================================
# Exception Handlers
# =============================================================================

def _response_headers(request: Request, allowed_origins: list[str]) -> dict:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    headers = {"X-Request-ID": request_id}
    origin = request.headers.get("origin", "")
    if origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def create_domain_error_handler(allowed_origins: list[str]) -> Callable:
    """
    Render DomainError subclasses as ``{detail, code, action, request_id}``
    with the status code the error class declares.
    """

    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        if exc.status_code == 403:
            log_security_event(
                "permission_denied", request, {"action": exc.action, "detail": exc.message}
            )
        elif exc.status_code >= 500:
            logger.error(
                f"Upstream failure: {exc.message} action={exc.action} "
                f"path={request.url.path} request_id={headers['X-Request-ID']}"
            )
        else:
            logger.info(
                f"{type(exc).__name__}: {exc.message} action={exc.action} "
                f"path={request.url.path}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={**exc.to_dict(), "request_id": headers["X-Request-ID"]},
            headers=headers,
        )

    return domain_error_handler


def create_secure_exception_handler(allowed_origins: list[str]) -> Callable:
    """
    Handle unhandled exceptions.  Production responses never carry
    exception text; development responses include it for debugging.
    """

    async def secure_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        request_id = headers["X-Request-ID"]
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)} "
            f"request_id={request_id} path={request.url.path} "
            f"method={request.method} client_ip={get_client_ip(request)}",
            exc_info=True,
        )
        if IS_PRODUCTION:
            content = {
                "detail": "An internal server error occurred. Please try again later.",
                "code": "INTERNAL_ERROR",
                "request_id": request_id,
            }
        else:
            content = {
                "detail": str(exc),
                "error_type": type(exc).__name__,
                "request_id": request_id,
            }
        return JSONResponse(status_code=500, content=content, headers=headers)

    return secure_exception_handler


def create_rate_limit_exceeded_handler(allowed_origins: list[str]) -> Callable:
    """Custom rate limit exceeded handler with CORS support."""

    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        headers["Retry-After"] = "60"
        logger.warning(
            f"Rate limit exceeded: client_ip={get_client_ip(request)} "
            f"path={request.url.path} request_id={headers['X-Request-ID']}"
        )
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Rate limit exceeded. Please slow down your requests.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after_seconds": 60,
                "request_id": headers["X-Request-ID"],
            },
            headers=headers,
        )

    return rate_limit_handler


def create_http_exception_handler(allowed_origins: list[str]) -> Callable:
    """HTTP exception handler that keeps CORS headers and logs auth failures."""

    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        if exc.headers:
            headers.update(exc.headers)
        if exc.status_code == 401:
            logger.warning(
                f"Authentication failed: client_ip={get_client_ip(request)} "
                f"path={request.url.path} request_id={headers['X-Request-ID']}"
            )
        elif exc.status_code == 403:
            logger.warning(
                f"Authorization denied: client_ip={get_client_ip(request)} "
                f"path={request.url.path} request_id={headers['X-Request-ID']}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "request_id": headers["X-Request-ID"]},
            headers=headers,
        )

    return http_exception_handler


# =============================================================================
# Security Setup Function
# =============================================================================

def setup_security(app: FastAPI, allowed_origins: list[str]) -> None:
    """
    Configure rate limiting, security headers, request size limits and the
    error handlers for *app*.
    """
    app.state.limiter = limiter

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.add_exception_handler(
        RateLimitExceeded, create_rate_limit_exceeded_handler(allowed_origins)
    )
    app.add_exception_handler(DomainError, create_domain_error_handler(allowed_origins))
    app.add_exception_handler(Exception, create_secure_exception_handler(allowed_origins))
    app.add_exception_handler(HTTPException, create_http_exception_handler(allowed_origins))

    logger.info(
        f"Security middleware configured: "
        f"rate_limit={RATE_LIMIT_PER_MINUTE}/min, "
        f"max_request_size={MAX_REQUEST_SIZE_MB}MB, "
        f"environment={ENVIRONMENT}"
    )


# =============================================================================
# Rate Limit Decorators for Sensitive Endpoints
# =============================================================================

AUTH_RATE_LIMIT = "5/minute"
AI_RATE_LIMIT = "10/minute"


def rate_limit_auth():
    """Decorator for authentication endpoints with strict rate limiting."""
    return limiter.limit(AUTH_RATE_LIMIT)


def rate_limit_ai():
    """Decorator for completion-backed endpoints."""
    return limiter.limit(AI_RATE_LIMIT)


# =============================================================================
# Audit Logging Utilities
# =============================================================================

def log_security_event(
    event_type: str,
    request: Request,
    details: Optional[dict] = None,
) -> None:
    """Log a security-relevant event (auth failures, denied actions)."""
    log_data = {
        "event_type": event_type,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "client_ip": get_client_ip(request),
        "path": request.url.path,
        "method": request.method,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        log_data |= details
    logger.warning(f"SECURITY_EVENT: {log_data}")
