"""HTTP request logging middleware."""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from wallet.core.logging import get_logger

logger = get_logger("wallet.http")


async def log_requests(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Log method, path, status and latency for every request."""
    start = time.perf_counter()
    client = request.client.host if request.client else ""
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http_request_failed",
            method=request.method,
            path=request.url.path,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            client=client,
        )
        raise

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    log = logger.error if response.status_code >= 500 else logger.info
    log(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=duration_ms,
        client=client,
    )
    return response
