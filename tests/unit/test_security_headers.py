"""Unit tests for webstarter.middleware.security_headers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from httpx import ASGITransport, AsyncClient

from webstarter.middleware.security_headers import (
    DEFAULT_SECURITY_HEADERS,
    SecurityHeadersMiddleware,
)

pytestmark = pytest.mark.asyncio


def _make_app(**options) -> FastAPI:
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, **options)

    @app.get("/plain")
    async def plain() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/framed")
    async def framed() -> PlainTextResponse:
        return PlainTextResponse("ok", headers={"X-Frame-Options": "DENY"})

    @app.get("/powered")
    async def powered() -> PlainTextResponse:
        return PlainTextResponse("ok", headers={"X-Powered-By": "something"})

    return app


async def _get(app: FastAPI, path: str):
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


class TestSecurityHeadersMiddleware:

    async def test_all_default_headers_present(self) -> None:
        response = await _get(_make_app(), "/plain")
        for name, value in DEFAULT_SECURITY_HEADERS.items():
            assert response.headers[name] == value

    async def test_csp_allows_inline_styles(self) -> None:
        response = await _get(_make_app(), "/plain")
        assert "style-src 'self' https: 'unsafe-inline'" in response.headers[
            "content-security-policy"
        ]

    async def test_handler_value_is_not_overwritten(self) -> None:
        response = await _get(_make_app(), "/framed")
        assert response.headers["x-frame-options"] == "DENY"

    async def test_x_powered_by_removed(self) -> None:
        response = await _get(_make_app(), "/powered")
        assert "x-powered-by" not in response.headers

    async def test_custom_header_map_replaces_defaults(self) -> None:
        response = await _get(_make_app(headers={"X-Custom": "1"}), "/plain")
        assert response.headers["x-custom"] == "1"
        assert "strict-transport-security" not in response.headers

    async def test_headers_on_404(self) -> None:
        response = await _get(_make_app(), "/missing")
        assert response.status_code == 404
        assert response.headers["x-content-type-options"] == "nosniff"
