# taskflow/middleware/rate_limiting.py - Rate limiting setup
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from loguru import logger

from taskflow.core.config import settings
from taskflow.core.tracing import get_current_trace_id

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.DEFAULT_RATE_LIMIT],
    enabled=settings.RATE_LIMIT_ENABLED
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    trace_id = get_current_trace_id()
    logger.warning(f"Rate limit exceeded | ip={get_remote_address(request)} | path={request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "status_code": 429,
            "trace_id": trace_id
        },
        headers={"Retry-After": "60", "X-Trace-ID": trace_id}
    )


def setup_rate_limiting(app: FastAPI) -> None:
    """Apply the default limits to every route"""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info(f"Rate limiting {'enabled' if settings.RATE_LIMIT_ENABLED else 'disabled'}: {settings.DEFAULT_RATE_LIMIT}")
