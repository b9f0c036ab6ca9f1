from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import CoordinationStoreError
from app.services.rate_limit import FixedWindowRateLimiter


log = logging.getLogger(__name__)


def client_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """
    Admit or reject every inbound request by client address.

    This is the only place the fail-open policy lives: if the counter cannot
    be incremented the request goes through unthrottled and without
    X-RateLimit-* headers.
    """
    if not settings.rate_limit_enabled:
        return await call_next(request)

    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    identity = client_identity(request)

    try:
        decision = await limiter.admit(identity)
    except CoordinationStoreError as e:
        log.warning("rate limiter unavailable, admitting %s unthrottled: %s", identity, e)
        return await call_next(request)

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }

    if not decision.allowed:
        log.info("rate limit exceeded for %s (limit=%d)", identity, decision.limit)
        return JSONResponse(
            status_code=429,
            content={"message": "Too many requests. Try again later."},
            headers=headers,
        )

    response = await call_next(request)
    response.headers.update(headers)
    return response
