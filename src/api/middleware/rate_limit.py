"""Rate limiting setup shared by all routers."""

import os

from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Per-client limits, overridable per deployment
WRITE_LIMIT = os.getenv("CATCHTRACK_WRITE_RATE_LIMIT", "120/minute")
REPORT_LIMIT = os.getenv("CATCHTRACK_REPORT_RATE_LIMIT", "30/minute")
LOGIN_LIMIT = "5/minute"

limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded ({exc.detail}). Please try again later.",
            "error_code": "rate_limited",
        },
    )


def setup_rate_limiting(app):
    """Attach the shared limiter and its 429 handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    return limiter
