# FILE: portrait_backend/middleware/rate_limit.py
"""
Rate limiting middleware for the generation endpoints

Runs before the body is parsed, so denied clients never reach validation
or the provider.
"""
import logging
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from portrait_backend.constants import ERROR_MESSAGES
from portrait_backend.services.rate_limiter import (
    RateLimiter,
    RateLimitResult,
    get_client_identity,
    get_rate_limiter,
)
from portrait_backend.services.telemetry import record_event

logger = logging.getLogger(__name__)


def rate_limit_headers(limiter: RateLimiter, result: RateLimitResult) -> dict:
    headers = {
        "X-RateLimit-Limit": str(limiter.max_attempts),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time_ms),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client admission control on POSTs to the configured paths"""

    def __init__(self, app, paths: Iterable[str], limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.paths = {p.rstrip("/") for p in paths}
        self._limiter = limiter

    @property
    def limiter(self) -> RateLimiter:
        # Resolved per request so tests can swap the process-wide limiter
        return self._limiter or get_rate_limiter()

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path.rstrip("/") not in self.paths:
            return await call_next(request)

        limiter = self.limiter
        identity = get_client_identity(request.headers)
        result = limiter.check_rate_limit(identity)
        headers = rate_limit_headers(limiter, result)

        if not result.allowed:
            record_event(
                "rate_limit_denied",
                path=request.url.path,
                retry_after=result.retry_after,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": ERROR_MESSAGES["RATE_LIMIT_EXCEEDED"],
                    "retryAfter": result.retry_after,
                    "resetTime": result.reset_time_ms,
                },
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
