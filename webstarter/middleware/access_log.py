"""Access log middleware.

Emits one structured line per request in the compact "tiny" shape:
method, url, status, response content length and response time.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from webstarter.utils.logger import get_logger

logger = get_logger("webstarter.access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        logger.info(
            f"{request.method} {url} {response.status_code}",
            method=request.method,
            url=url,
            status=response.status_code,
            content_length=response.headers.get("content-length", "-"),
            response_time_ms=round(duration_ms, 3),
        )
        return response
