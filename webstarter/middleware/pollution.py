"""HTTP parameter pollution guard.

A query string such as ``?role=user&role=admin`` reaches handlers as a list in
some frameworks and as a scalar in others, which makes type confusion bugs
easy to trigger. This middleware collapses every repeated query key to its
LAST value before any downstream stage sees the request, and keeps the full
list in ``request.state.query_polluted`` for handlers that want it.

Keys named in ``whitelist`` are left multi-valued.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from webstarter.utils.logger import get_logger

logger = get_logger(__name__)


def collapse_query(
    items: Iterable[tuple[str, str]],
    whitelist: frozenset[str] = frozenset(),
) -> tuple[list[tuple[str, str]], dict[str, list[str]]]:
    """Collapse repeated query keys to their last value.

    Args:
        items:     (key, value) pairs in request order.
        whitelist: Keys allowed to keep multiple values.

    Returns:
        (kept, polluted): ``kept`` is the pair list downstream stages should see,
        keys in first-appearance order; ``polluted`` maps each collapsed key to
        every value that was sent.
    """
    grouped: dict[str, list[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)

    kept: list[tuple[str, str]] = []
    polluted: dict[str, list[str]] = {}
    for key, values in grouped.items():
        if len(values) > 1 and key not in whitelist:
            polluted[key] = values
            kept.append((key, values[-1]))
        else:
            kept.extend((key, value) for value in values)
    return kept, polluted


class ParameterPollutionMiddleware(BaseHTTPMiddleware):
    """Rewrite the request query string so every non-whitelisted key appears once.

    Registration: first (outermost) stage of the pipeline, so the access log and
    every later stage see the normalized query string.
    """

    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = ()) -> None:
        super().__init__(app)
        self.whitelist = frozenset(whitelist)

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        kept, polluted = collapse_query(request.query_params.multi_items(), self.whitelist)
        request.state.query_polluted = polluted

        if polluted:
            logger.debug(
                "Collapsed polluted query parameters",
                keys=sorted(polluted),
                path=request.url.path,
            )
            # Downstream stages build their own Request objects from this scope.
            request.scope["query_string"] = urlencode(kept).encode("latin-1")

        return await call_next(request)
