"""Unit tests for webstarter.middleware.body — JSON and URL-encoded parsers.

Tests the parsers in isolation using a minimal Starlette app, the same way the
pipeline installs them (JSON outside, URL-encoded inside).
"""

from __future__ import annotations

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.testclient import TestClient

from webstarter.middleware.body import (
    JSONBodyMiddleware,
    URLEncodedBodyMiddleware,
    parse_urlencoded,
)

LIMIT = 64


async def _echo(request: Request) -> Response:
    raw = await request.body()
    return JSONResponse(
        {
            "parsed": getattr(request.state, "body", None),
            "raw_length": len(raw),
        }
    )


def _make_app() -> Starlette:
    app = Starlette(routes=[Route("/echo", _echo, methods=["POST"])])
    app.add_middleware(URLEncodedBodyMiddleware, limit=LIMIT)
    app.add_middleware(JSONBodyMiddleware, limit=LIMIT)
    return app


@pytest.fixture()
def client() -> TestClient:
    return TestClient(_make_app())


# ─── JSON ─────────────────────────────────────────────────────────────────────


class TestJSONBody:

    def test_json_object_parsed(self, client: TestClient) -> None:
        response = client.post("/echo", json={"a": 1})
        assert response.status_code == 200
        assert response.json()["parsed"] == {"a": 1}

    def test_raw_body_still_readable_downstream(self, client: TestClient) -> None:
        payload = b'{"a": 1}'
        response = client.post(
            "/echo", content=payload, headers={"content-type": "application/json"}
        )
        assert response.json() == {"parsed": {"a": 1}, "raw_length": len(payload)}

    def test_json_array_parsed(self, client: TestClient) -> None:
        response = client.post("/echo", json=[1, 2, 3])
        assert response.json()["parsed"] == [1, 2, 3]

    def test_vendor_json_content_type(self, client: TestClient) -> None:
        response = client.post(
            "/echo",
            content=b'{"ok": true}',
            headers={"content-type": "application/vnd.api+json"},
        )
        assert response.json()["parsed"] == {"ok": True}

    def test_content_type_with_charset(self, client: TestClient) -> None:
        response = client.post(
            "/echo",
            content=b'{"ok": true}',
            headers={"content-type": "application/json; charset=utf-8"},
        )
        assert response.json()["parsed"] == {"ok": True}

    def test_malformed_json_returns_400(self, client: TestClient) -> None:
        response = client.post(
            "/echo",
            content=b'{"a": ',
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_json"

    def test_empty_json_body_is_empty_dict(self, client: TestClient) -> None:
        response = client.post(
            "/echo", content=b"", headers={"content-type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json()["parsed"] == {}

    def test_oversized_json_returns_413(self, client: TestClient) -> None:
        response = client.post("/echo", json={"data": "x" * (LIMIT * 2)})
        assert response.status_code == 413
        assert response.json()["error"]["code"] == "payload_too_large"

    def test_body_exactly_at_limit_is_accepted(self, client: TestClient) -> None:
        payload = b'"' + b"x" * (LIMIT - 2) + b'"'
        assert len(payload) == LIMIT
        response = client.post(
            "/echo", content=payload, headers={"content-type": "application/json"}
        )
        assert response.status_code == 200

    def test_invalid_content_length_returns_400(self, client: TestClient) -> None:
        response = client.post(
            "/echo",
            content=b"{}",
            headers={"content-type": "application/json", "content-length": "nope"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "bad_request"

    def test_other_content_types_pass_through(self, client: TestClient) -> None:
        response = client.post(
            "/echo", content=b"x" * (LIMIT * 4), headers={"content-type": "text/plain"}
        )
        assert response.status_code == 200
        assert response.json() == {"parsed": None, "raw_length": LIMIT * 4}


# ─── URL-encoded ──────────────────────────────────────────────────────────────


class TestURLEncodedBody:

    def test_form_parsed(self, client: TestClient) -> None:
        response = client.post("/echo", data={"name": "ann", "age": "3"})
        assert response.json()["parsed"] == {"name": "ann", "age": "3"}

    def test_nested_form_keys(self, client: TestClient) -> None:
        response = client.post(
            "/echo",
            content=b"user%5Bname%5D=ann&tags%5B%5D=a&tags%5B%5D=b",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        assert response.json()["parsed"] == {"user": {"name": "ann"}, "tags": ["a", "b"]}

    def test_oversized_form_returns_413(self, client: TestClient) -> None:
        response = client.post("/echo", data={"data": "x" * (LIMIT * 2)})
        assert response.status_code == 413


class TestParseURLEncoded:

    def test_flat_pairs(self) -> None:
        assert parse_urlencoded("a=1&b=2") == {"a": "1", "b": "2"}

    def test_repeated_keys_become_list(self) -> None:
        assert parse_urlencoded("a=1&a=2&a=3") == {"a": ["1", "2", "3"]}

    def test_array_brackets(self) -> None:
        assert parse_urlencoded("a[]=1&a[]=2") == {"a": ["1", "2"]}

    def test_single_array_bracket_is_still_a_list(self) -> None:
        assert parse_urlencoded("a[]=1") == {"a": ["1"]}

    def test_nested_objects(self) -> None:
        assert parse_urlencoded("u[name]=ann&u[address][city]=oslo") == {
            "u": {"name": "ann", "address": {"city": "oslo"}}
        }

    def test_blank_values_kept(self) -> None:
        assert parse_urlencoded("a=&b=1") == {"a": "", "b": "1"}

    def test_malformed_bracket_key_is_literal(self) -> None:
        assert parse_urlencoded("a[b]c]=1") == {"a[b]c]": "1"}

    def test_plus_and_percent_decoding(self) -> None:
        assert parse_urlencoded("q=hello+world&r=%C3%A9") == {"q": "hello world", "r": "é"}
