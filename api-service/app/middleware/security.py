"""
Security Middleware
Security headers, request-rate tracking and request validation
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog

from app.core.rate_tracker import RequestRateTracker
from app.core.simple_config import settings

logger = structlog.get_logger()

RATE_LIMIT_EXEMPT_PATHS = {"/health", "/", "/docs", "/redoc", "/openapi.json"}

SUSPICIOUS_PATTERNS = (
    "../", "..\\", "/etc/passwd", "/proc/", "cmd.exe",
    "<script", "javascript:", "vbscript:", "onload=",
    "union select", "drop table", "insert into",
)

BLOCKED_USER_AGENTS = {"sqlmap", "nikto", "nmap", "masscan", "nessus"}


def client_address(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return getattr(request.client, "host", None) or "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses
    """

    async def dispatch(self, request: Request, call_next):
        # Skip security headers for preflight CORS requests
        if request.method == "OPTIONS":
            return await call_next(request)

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # HSTS only in production with HTTPS
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        response.headers["API-Version"] = "v1"

        if "server" in response.headers:
            del response.headers["server"]

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-address rate limiting backed by the process-local request tracker.

    The tracker lives on ``app.state.rate_tracker``; one can also be passed in
    directly for tests.
    """

    def __init__(self, app, tracker: RequestRateTracker = None):
        super().__init__(app)
        self._tracker = tracker

    def _get_tracker(self, request: Request) -> RequestRateTracker:
        return self._tracker or getattr(request.app.state, "rate_tracker", None)

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        tracker = self._get_tracker(request)
        if tracker is None:
            return await call_next(request)

        address = client_address(request)
        decision = tracker.record(address)

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                address=address,
                requests_count=decision.count,
                limit=decision.limit,
                path=request.url.path,
                anomalous=decision.anomalous,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": {
                        "code": "RATE_LIMITED",
                        "message": f"Maximum {decision.limit} requests per {tracker.window_seconds} seconds allowed",
                        "retry_after": decision.retry_after,
                    }
                },
                headers={"Retry-After": str(decision.retry_after)},
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, decision.limit - decision.count))
        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """
    Request size limits and blocking of obviously malicious requests
    """

    def __init__(self, app, max_request_size: int = None):
        super().__init__(app)
        self.max_request_size = max_request_size or settings.MAX_REQUEST_SIZE

    def _is_suspicious_request(self, request: Request) -> bool:
        user_agent = request.headers.get("User-Agent", "").lower()
        if any(blocked in user_agent for blocked in BLOCKED_USER_AGENTS):
            return True

        url_path = str(request.url.path).lower()
        query_string = str(request.url.query).lower()
        return any(pattern in url_path or pattern in query_string for pattern in SUSPICIOUS_PATTERNS)

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_request_size:
            logger.warning(
                "Request too large",
                content_length=content_length,
                max_size=self.max_request_size,
                path=request.url.path
            )
            return JSONResponse(
                status_code=413,
                content={
                    "detail": {
                        "code": "REQUEST_TOO_LARGE",
                        "message": f"Maximum request size is {self.max_request_size} bytes",
                    }
                }
            )

        if self._is_suspicious_request(request):
            logger.warning(
                "Suspicious request blocked",
                address=client_address(request),
                path=request.url.path,
                user_agent=request.headers.get("User-Agent", "")
            )
            return JSONResponse(
                status_code=400,
                content={
                    "detail": {
                        "code": "BAD_REQUEST",
                        "message": "Request contains invalid content",
                    }
                }
            )

        return await call_next(request)
