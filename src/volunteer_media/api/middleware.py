import time
import uuid
import logging
import hashlib
from typing import Dict, Optional
from collections import defaultdict, deque
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from volunteer_media.config import config

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_JSON_BODY_BYTES = 10 * 1024 * 1024
MAX_MULTIPART_BODY_BYTES = 25 * 1024 * 1024

AUTH_PATHS = (
    "/api/login",
    "/api/request-password-reset",
    "/api/reset-password",
    "/api/setup-password",
)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        # Log request
        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        # Log response
        process_time = time.time() - start_time
        logger.info(f"Response: {response.status_code} in {process_time:.3f}s")

        response.headers["X-Process-Time"] = str(process_time)
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Echo the caller's X-Request-ID or assign a new one."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: blob: https:; "
            "font-src 'self' data:; "
            "connect-src 'self'; "
            "frame-ancestors 'none';"
        )
        if config.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Remove server information
        response.headers["Server"] = "VolunteerMedia"

        return response


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """Reject oversized request bodies before they reach a handler."""

    def __init__(self, app, max_json: int = MAX_JSON_BODY_BYTES, max_multipart: int = MAX_MULTIPART_BODY_BYTES):
        super().__init__(app)
        self.max_json = max_json
        self.max_multipart = max_multipart

    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            limit = self.max_multipart if content_type.startswith("multipart/") else self.max_json
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > limit:
                logger.warning(f"Rejected {content_length}-byte body on {request.url.path}")
                return JSONResponse(status_code=413, content={"error": "Request entity too large"})

        return await call_next(request)


class AdvancedRateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiting with per-path limits."""

    def __init__(self, app, auth_calls: Optional[int] = None, default_calls: Optional[int] = None,
                 default_period: int = 60):
        super().__init__(app)
        auth_calls = auth_calls or config.auth_rate_limit_per_minute
        self.default_calls = default_calls
        self.default_period = default_period
        self.limits = {path: {"calls": auth_calls, "period": 60} for path in AUTH_PATHS}
        self.clients: Dict[str, deque] = defaultdict(deque)
        self.sweep_interval = 60
        self._last_sweep = 0.0

    def _get_limit(self, path: str) -> Optional[Dict[str, int]]:
        """Get rate limit for specific path, or None when it is unlimited."""
        for limit_path, limit_config in self.limits.items():
            if path == limit_path:
                return limit_config
        if self.default_calls:
            return {"calls": self.default_calls, "period": self.default_period}
        return None

    def _get_client_key(self, request: Request, path: str) -> str:
        """Generate client key for rate limiting."""
        # Client-controlled headers stay out of the key
        ip = request.client.host if request.client else "unknown"
        scope = path if path in self.limits else "*"
        client_string = f"{ip}:{scope}"
        return hashlib.sha256(client_string.encode()).hexdigest()[:16]

    def _evict_stale(self, now: float):
        """Drop clients whose newest request is older than the longest window."""
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        window = max([self.default_period] + [limit["period"] for limit in self.limits.values()])
        stale = [key for key, requests in self.clients.items() if not requests or now - requests[-1] > window]
        for key in stale:
            del self.clients[key]
        if stale:
            logger.debug(f"Evicted {len(stale)} idle rate limit clients")

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        limit_config = self._get_limit(path)
        if limit_config is None:
            return await call_next(request)

        client_key = self._get_client_key(request, path)
        now = time.time()

        self._evict_stale(now)

        # Clean old entries
        client_requests = self.clients[client_key]
        while client_requests and now - client_requests[0] > limit_config["period"]:
            client_requests.popleft()

        # Check rate limit
        if len(client_requests) >= limit_config["calls"]:
            logger.warning(f"Rate limit exceeded for {client_key} on {path}")
            retry_after = max(1, int(limit_config["period"] - (now - client_requests[0])))
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "limit": limit_config["calls"],
                    "period": limit_config["period"],
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        # Add current request
        client_requests.append(now)

        # Add rate limit headers
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit_config["calls"])
        response.headers["X-RateLimit-Remaining"] = str(
            max(0, limit_config["calls"] - len(client_requests))
        )
        response.headers["X-RateLimit-Reset"] = str(
            int(client_requests[0] + limit_config["period"]) if client_requests else int(now + limit_config["period"])
        )

        return response
