"""Rate limiting for the dashboard control endpoints."""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from limits import parse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

REFRESH_RATE_LIMIT = "10/minute"

# Seconds until a refresh window opens again
REFRESH_RETRY_AFTER = parse(REFRESH_RATE_LIMIT).get_expiry()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Reject a throttled manual refresh and tell the client when to retry."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "detail": f"Too many refresh requests. Limit: {exc.detail}",
            "retry_after": REFRESH_RETRY_AFTER,
        },
        headers={"Retry-After": str(REFRESH_RETRY_AFTER)},
    )
