"""Request body parsing middleware — JSON and URL-encoded forms.

Both parsers follow the same contract:
  - Only requests whose Content-Type matches the parser are touched; all others
    pass through with the body unread.
  - Bodies larger than ``limit`` bytes get HTTP 413. A declared Content-Length
    is checked first; otherwise the stream is read with a rolling cap.
  - A body that does not parse gets HTTP 400.
  - The parsed value is stored in ``request.state.body``. The raw bytes stay
    readable downstream through ``await request.body()``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional
from urllib.parse import parse_qsl

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from webstarter.constants import DEFAULT_BODY_LIMIT_BYTES
from webstarter.utils.logger import get_logger

logger = get_logger(__name__)

_KEY_PART = re.compile(r"\[([^\[\]]*)\]")


class BodyParseError(ValueError):
    """Raised by a parser when the body is not valid for its content type."""


def _error_body(message: str, code: str) -> dict:
    return {"error": {"message": message, "code": code}}


class _BodyParserMiddleware(BaseHTTPMiddleware):
    """Shared size-limit and dispatch logic for the body parsers."""

    #: Name used in log lines and error messages.
    kind: str = "body"

    def __init__(self, app: ASGIApp, limit: int = DEFAULT_BODY_LIMIT_BYTES) -> None:
        super().__init__(app)
        self.limit = limit

    def matches(self, content_type: str) -> bool:
        raise NotImplementedError

    def parse(self, body: bytes, charset: str) -> Any:
        raise NotImplementedError

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        content_type = request.headers.get("content-type", "")
        media_type, charset = _split_content_type(content_type)
        if not self.matches(media_type):
            return await call_next(request)

        content_length_header = request.headers.get("content-length")
        if content_length_header is not None:
            try:
                declared_size = int(content_length_header)
            except ValueError:
                logger.warning(
                    "Invalid Content-Length header",
                    value=content_length_header,
                    path=request.url.path,
                )
                return JSONResponse(
                    status_code=400,
                    content=_error_body("Invalid Content-Length header", "bad_request"),
                )
            if declared_size > self.limit:
                return self._too_large(request, declared_size)

        body_chunks: list[bytes] = []
        total_size = 0
        async for chunk in request.stream():
            total_size += len(chunk)
            if total_size > self.limit:
                return self._too_large(request, total_size)
            body_chunks.append(chunk)
        body = b"".join(body_chunks)

        # Starlette replays request._body to downstream handlers.
        request._body = body  # type: ignore[attr-defined]

        if not body:
            request.state.body = {}
            return await call_next(request)

        try:
            request.state.body = self.parse(body, charset or "utf-8")
        except BodyParseError as exc:
            logger.warning(
                f"Malformed {self.kind} body",
                error=str(exc),
                path=request.url.path,
            )
            return JSONResponse(
                status_code=400,
                content=_error_body(f"Malformed {self.kind} body: {exc}", f"invalid_{self.kind}"),
            )

        return await call_next(request)

    def _too_large(self, request: Request, size: int) -> Response:
        logger.warning(
            f"Request {self.kind} body too large",
            size=size,
            limit=self.limit,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=413,
            content=_error_body(
                f"Request body too large. Maximum size: {self.limit} bytes",
                "payload_too_large",
            ),
        )


class JSONBodyMiddleware(_BodyParserMiddleware):
    """Parse ``application/json`` and ``application/*+json`` bodies."""

    kind = "json"

    def matches(self, content_type: str) -> bool:
        return content_type == "application/json" or (
            content_type.startswith("application/") and content_type.endswith("+json")
        )

    def parse(self, body: bytes, charset: str) -> Any:
        try:
            return json.loads(body.decode(charset))
        except (UnicodeDecodeError, LookupError, json.JSONDecodeError) as exc:
            raise BodyParseError(str(exc)) from exc


class URLEncodedBodyMiddleware(_BodyParserMiddleware):
    """Parse ``application/x-www-form-urlencoded`` bodies with nested keys."""

    kind = "urlencoded"

    def matches(self, content_type: str) -> bool:
        return content_type == "application/x-www-form-urlencoded"

    def parse(self, body: bytes, charset: str) -> Any:
        try:
            text = body.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise BodyParseError(str(exc)) from exc
        return parse_urlencoded(text)


def parse_urlencoded(text: str) -> dict[str, Any]:
    """Parse a form body, expanding bracketed keys into lists and dicts.

    ``a=1&a=2`` → ``{"a": ["1", "2"]}``
    ``tags[]=x&tags[]=y`` → ``{"tags": ["x", "y"]}``
    ``user[name]=ann&user[age]=3`` → ``{"user": {"name": "ann", "age": "3"}}``
    """
    result: dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(result, _split_key(key), value)
    return result


def _split_key(key: str) -> list[str]:
    bracket = key.find("[")
    if bracket <= 0 or not key.endswith("]"):
        return [key]
    head, tail = key[:bracket], key[bracket:]
    parts = _KEY_PART.findall(tail)
    # Reject malformed tails such as "a[b]c]"; the whole key stays literal.
    if "".join(f"[{part}]" for part in parts) != tail:
        return [key]
    return [head, *parts]


def _assign(target: dict[str, Any], parts: list[str], value: str) -> None:
    head, rest = parts[0], parts[1:]

    if not rest:
        if head not in target:
            target[head] = value
        elif isinstance(target[head], list):
            target[head].append(value)
        else:
            target[head] = [target[head], value]
        return

    if rest == [""]:
        existing = target.get(head)
        if existing is None:
            target[head] = [value]
        elif isinstance(existing, list):
            existing.append(value)
        else:
            target[head] = [existing, value]
        return

    child = target.get(head)
    if not isinstance(child, dict):
        child = target[head] = {}
    _assign(child, rest, value)


def _split_content_type(header: str) -> tuple[str, Optional[str]]:
    """Return (media type, charset) from a Content-Type header value."""
    media_type, _, params = header.partition(";")
    charset: Optional[str] = None
    for param in params.split(";"):
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            charset = value.strip('"').lower()
    return media_type.strip().lower(), charset
