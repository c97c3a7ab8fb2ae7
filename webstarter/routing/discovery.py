"""Route discovery — map a directory of Python modules to URL routes.

A route discovery collaborator is any ``async (app) -> app`` callable that
registers routes on the FastAPI app it is given and returns it. The server
awaits it once during ``Server.start()``.

``FileRouteDiscovery`` implements the file-based convention:

    routes/
      index.py            → /
      about.py            → /about
      users/index.py      → /users
      users/[user_id].py  → /users/{user_id}
      files/[...rest].py  → /files/{rest:path}
      _helpers.py         → ignored (leading "_" or ".")

Each module exports plain functions named after HTTP methods (``get``,
``post``, ``put``, ``patch``, ``delete``, ``head``, ``options``) and/or a
``handler`` function answering every method it does not export explicitly.
An optional module-level ``dependencies`` list (FastAPI ``Depends(...)``
objects) applies to every route in that file.

Routes are registered most specific first: static segments beat parameters,
and catch-all parameters come last.

``explicit_routes()`` builds a collaborator from ready-made APIRouters, for
tests and for embedding without a routes directory.
"""

from __future__ import annotations

import asyncio
import importlib.util
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import APIRouter, FastAPI

from webstarter.constants import ROUTE_ALL_METHODS_HANDLER, ROUTE_METHODS
from webstarter.errors import RouteDiscoveryError
from webstarter.utils.logger import get_logger

logger = get_logger(__name__)

RouteDiscovery = Callable[[FastAPI], Awaitable[FastAPI]]

_PARAM_SEGMENT = re.compile(r"^\[([A-Za-z_][A-Za-z0-9_]*)\]$")
_CATCH_ALL_SEGMENT = re.compile(r"^\[\.\.\.([A-Za-z_][A-Za-z0-9_]*)\]$")

_STATIC, _PARAM, _CATCH_ALL = 0, 1, 2


@dataclass(frozen=True)
class RouteDefinition:
    """One (path, methods) → endpoint binding found in a route module."""

    path: str
    endpoint: Callable[..., Any]
    methods: list[str]
    source: Path
    dependencies: list[Any] = field(default_factory=list)


# ─── Path mapping ─────────────────────────────────────────────────────────────


def path_for(relative: Path) -> str:
    """Return the URL path template for a route file relative to the routes root.

    Raises:
        RouteDiscoveryError: If a bracketed segment is not a valid parameter name.
    """
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "index":
        parts.pop()

    segments: list[str] = []
    for index, part in enumerate(parts):
        catch_all = _CATCH_ALL_SEGMENT.match(part)
        if catch_all:
            if index != len(parts) - 1:
                raise RouteDiscoveryError(
                    f"Catch-all segment '{part}' must be the last segment in {relative}"
                )
            segments.append(f"{{{catch_all.group(1)}:path}}")
            continue
        param = _PARAM_SEGMENT.match(part)
        if param:
            segments.append(f"{{{param.group(1)}}}")
            continue
        if "[" in part or "]" in part:
            raise RouteDiscoveryError(f"Invalid route segment '{part}' in {relative}")
        segments.append(part)

    return "/" + "/".join(segments)


def _specificity(path: str) -> list[tuple[int, str]]:
    ranked: list[tuple[int, str]] = []
    for segment in path.strip("/").split("/"):
        if not segment:
            continue
        if segment.endswith(":path}"):
            ranked.append((_CATCH_ALL, segment))
        elif segment.startswith("{"):
            ranked.append((_PARAM, segment))
        else:
            ranked.append((_STATIC, segment))
    return ranked


# ─── Module loading ───────────────────────────────────────────────────────────


def _load_module(file: Path, relative: Path) -> ModuleType:
    module_name = "webstarter_routes." + re.sub(r"\W", "_", relative.with_suffix("").as_posix())
    spec = importlib.util.spec_from_file_location(module_name, file)
    if spec is None or spec.loader is None:
        raise RouteDiscoveryError(f"Cannot load route module {relative}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise RouteDiscoveryError(
            f"Failed to import route module {relative}: {exc}", exc
        ) from exc
    return module


def _definitions_for(module: ModuleType, path: str, source: Path) -> list[RouteDefinition]:
    dependencies = list(getattr(module, "dependencies", None) or [])
    definitions: list[RouteDefinition] = []

    exported: list[str] = []
    for method in ROUTE_METHODS:
        endpoint = getattr(module, method, None)
        if callable(endpoint):
            exported.append(method)
            definitions.append(
                RouteDefinition(path, endpoint, [method.upper()], source, dependencies)
            )

    handler = getattr(module, ROUTE_ALL_METHODS_HANDLER, None)
    if callable(handler):
        remaining = [method.upper() for method in ROUTE_METHODS if method not in exported]
        if remaining:
            definitions.append(RouteDefinition(path, handler, remaining, source, dependencies))

    return definitions


def collect_routes(directory: Union[str, Path]) -> list[RouteDefinition]:
    """Walk ``directory`` and return every route definition, most specific first.

    Blocking (filesystem walk + imports); call through ``asyncio.to_thread``.

    Raises:
        RouteDiscoveryError: Missing directory, unimportable module, module with
                             no handlers, or two files claiming the same route.
    """
    root = Path(directory)
    if not root.is_dir():
        raise RouteDiscoveryError(f"Routes directory not found: {root}")

    definitions: list[RouteDefinition] = []
    claimed: dict[tuple[str, str], Path] = {}

    for file in sorted(root.rglob("*.py")):
        relative = file.relative_to(root)
        if any(part.startswith(("_", ".")) for part in relative.parts):
            continue

        path = path_for(relative)
        module = _load_module(file, relative)
        found = _definitions_for(module, path, relative)
        if not found:
            raise RouteDiscoveryError(
                f"Route module {relative} exports no handlers "
                f"(expected one of {', '.join(ROUTE_METHODS)} or {ROUTE_ALL_METHODS_HANDLER})"
            )

        for definition in found:
            for method in definition.methods:
                previous = claimed.get((path, method))
                if previous is not None:
                    raise RouteDiscoveryError(
                        f"Route {method} {path} is defined by both {previous} and {relative}"
                    )
                claimed[(path, method)] = relative
        definitions.extend(found)

    definitions.sort(key=lambda definition: _specificity(definition.path))
    return definitions


def register_routes(app: FastAPI, definitions: list[RouteDefinition]) -> None:
    for definition in definitions:
        app.add_api_route(
            definition.path,
            definition.endpoint,
            methods=definition.methods,
            dependencies=definition.dependencies or None,
        )


# ─── Collaborators ────────────────────────────────────────────────────────────


class FileRouteDiscovery:
    """Discover routes from a directory of Python modules.

    Args:
        directory: Root of the routes tree.
        timeout:   Seconds to wait for the walk + imports; None waits indefinitely.
    """

    def __init__(self, directory: Union[str, Path], timeout: Optional[float] = None) -> None:
        self.directory = Path(directory)
        self.timeout = timeout

    async def __call__(self, app: FastAPI) -> FastAPI:
        walk = asyncio.to_thread(collect_routes, self.directory)
        try:
            if self.timeout is None:
                definitions = await walk
            else:
                definitions = await asyncio.wait_for(walk, self.timeout)
        except asyncio.TimeoutError as exc:
            raise RouteDiscoveryError(
                f"Route discovery in {self.directory} timed out after {self.timeout}s", exc
            ) from exc

        register_routes(app, definitions)
        logger.info(
            "Routes discovered",
            directory=str(self.directory),
            count=len(definitions),
            paths=sorted({definition.path for definition in definitions}),
        )
        return app

    def __repr__(self) -> str:
        return f"FileRouteDiscovery({str(self.directory)!r}, timeout={self.timeout!r})"


def explicit_routes(*routers: APIRouter) -> RouteDiscovery:
    """Return a collaborator that includes ``routers`` without touching the filesystem."""

    async def discover(app: FastAPI) -> FastAPI:
        for router in routers:
            app.include_router(router)
        return app

    return discover
