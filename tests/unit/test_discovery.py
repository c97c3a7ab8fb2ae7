"""Unit tests for webstarter.routing.discovery — file-based route discovery.

Route trees are written to tmp_path for each test; nothing outside the temp
directory is scanned.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient

from webstarter.errors import RouteDiscoveryError
from webstarter.routing.discovery import (
    FileRouteDiscovery,
    collect_routes,
    explicit_routes,
    path_for,
)


def _write(root: Path, relative: str, source: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source))


GET_ONLY = """
async def get():
    return {"ok": True}
"""


# ─── path_for() ───────────────────────────────────────────────────────────────


class TestPathFor:

    @pytest.mark.parametrize(
        ("relative", "expected"),
        [
            ("index.py", "/"),
            ("about.py", "/about"),
            ("users/index.py", "/users"),
            ("users/[user_id].py", "/users/{user_id}"),
            ("users/[user_id]/posts.py", "/users/{user_id}/posts"),
            ("files/[...rest].py", "/files/{rest:path}"),
        ],
    )
    def test_mapping(self, relative: str, expected: str) -> None:
        assert path_for(Path(relative)) == expected

    def test_catch_all_must_be_last(self) -> None:
        with pytest.raises(RouteDiscoveryError):
            path_for(Path("[...rest]/more.py"))

    def test_invalid_bracket_segment(self) -> None:
        with pytest.raises(RouteDiscoveryError):
            path_for(Path("users/[bad-name].py"))


# ─── collect_routes() ─────────────────────────────────────────────────────────


class TestCollectRoutes:

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(RouteDiscoveryError, match="not found"):
            collect_routes(tmp_path / "nope")

    def test_empty_directory_has_no_routes(self, tmp_path: Path) -> None:
        assert collect_routes(tmp_path) == []

    def test_method_functions_become_routes(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "items.py",
            """
            async def get():
                return []

            async def post():
                return {}
            """,
        )
        found = collect_routes(tmp_path)
        assert sorted((d.path, d.methods[0]) for d in found) == [
            ("/items", "GET"),
            ("/items", "POST"),
        ]

    def test_handler_takes_remaining_methods(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "thing.py",
            """
            async def get():
                return "get"

            async def handler():
                return "any"
            """,
        )
        found = {d.endpoint.__name__: d.methods for d in collect_routes(tmp_path)}
        assert found["get"] == ["GET"]
        assert "GET" not in found["handler"]
        assert {"POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"} == set(found["handler"])

    def test_private_files_and_directories_ignored(self, tmp_path: Path) -> None:
        _write(tmp_path, "_helpers.py", "VALUE = 1\n")
        _write(tmp_path, "_internal/secret.py", GET_ONLY)
        _write(tmp_path, ".hidden/x.py", GET_ONLY)
        _write(tmp_path, "notes.txt", "not python")
        _write(tmp_path, "public.py", GET_ONLY)
        assert [d.path for d in collect_routes(tmp_path)] == ["/public"]

    def test_static_routes_before_dynamic(self, tmp_path: Path) -> None:
        _write(tmp_path, "users/[user_id].py", GET_ONLY)
        _write(tmp_path, "users/me.py", GET_ONLY)
        _write(tmp_path, "[...rest].py", GET_ONLY)
        _write(tmp_path, "index.py", GET_ONLY)
        paths = [d.path for d in collect_routes(tmp_path)]
        assert paths.index("/users/me") < paths.index("/users/{user_id}")
        assert paths[-1] == "/{rest:path}"
        assert paths[0] == "/"

    def test_module_without_handlers_fails(self, tmp_path: Path) -> None:
        _write(tmp_path, "empty.py", "VALUE = 1\n")
        with pytest.raises(RouteDiscoveryError, match="exports no handlers"):
            collect_routes(tmp_path)

    def test_import_error_fails_with_cause(self, tmp_path: Path) -> None:
        _write(tmp_path, "broken.py", "raise OSError('disk error')\n")
        with pytest.raises(RouteDiscoveryError) as exc_info:
            collect_routes(tmp_path)
        assert isinstance(exc_info.value.error, OSError)
        assert "disk error" in str(exc_info.value)

    def test_duplicate_route_fails(self, tmp_path: Path) -> None:
        _write(tmp_path, "users.py", GET_ONLY)
        _write(tmp_path, "users/index.py", GET_ONLY)
        with pytest.raises(RouteDiscoveryError, match="defined by both"):
            collect_routes(tmp_path)

    def test_module_dependencies_attached(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "guarded.py",
            """
            from fastapi import Depends

            def check():
                return None

            dependencies = [Depends(check)]

            async def get():
                return {}
            """,
        )
        (definition,) = collect_routes(tmp_path)
        assert len(definition.dependencies) == 1


# ─── FileRouteDiscovery ───────────────────────────────────────────────────────


class TestFileRouteDiscovery:

    @pytest.mark.asyncio
    async def test_routes_registered_and_served(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "index.py",
            """
            async def get():
                return {"page": "home"}
            """,
        )
        _write(
            tmp_path,
            "users/[user_id].py",
            """
            async def get(user_id: int):
                return {"user_id": user_id}

            async def delete(user_id: int):
                return {"deleted": user_id}
            """,
        )
        _write(
            tmp_path,
            "files/[...rest].py",
            """
            async def get(rest: str):
                return {"rest": rest}
            """,
        )

        app = FastAPI()
        returned = await FileRouteDiscovery(tmp_path)(app)
        assert returned is app

        transport = ASGITransport(app=app)  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/")).json() == {"page": "home"}
            assert (await client.get("/users/7")).json() == {"user_id": 7}
            assert (await client.delete("/users/7")).json() == {"deleted": 7}
            assert (await client.get("/files/a/b.txt")).json() == {"rest": "a/b.txt"}

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(RouteDiscoveryError):
            await FileRouteDiscovery(tmp_path / "routes")(FastAPI())

    @pytest.mark.asyncio
    async def test_timeout_raises(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "slow.py",
            """
            import time

            time.sleep(0.5)

            async def get():
                return {}
            """,
        )
        with pytest.raises(RouteDiscoveryError, match="timed out"):
            await FileRouteDiscovery(tmp_path, timeout=0.05)(FastAPI())

    def test_repr(self, tmp_path: Path) -> None:
        assert "timeout=None" in repr(FileRouteDiscovery(tmp_path))


class TestExplicitRoutes:

    @pytest.mark.asyncio
    async def test_routers_included(self) -> None:
        router = APIRouter()

        @router.get("/ping")
        async def ping() -> dict:
            return {"pong": True}

        app = FastAPI()
        returned = await explicit_routes(router)(app)
        assert returned is app

        transport = ASGITransport(app=app)  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/ping")).json() == {"pong": True}

    @pytest.mark.asyncio
    async def test_no_routers_is_a_no_op(self) -> None:
        app = FastAPI()
        before = len(app.routes)
        await explicit_routes()(app)
        assert len(app.routes) == before
