"""webstarter server bootstrap.

``Server`` builds a FastAPI application with the fixed middleware pipeline,
discovers routes, installs the 404 fallback and serves the app with uvicorn.

Lifecycle:

    CREATED ──start()──▶ STARTING ──▶ LISTENING ──stop()──▶ STOPPED
                             │
                             └──────▶ FAILED

Startup sequence (``start()``):
  0. Report a configuration error found at construction → ConfigurationError
  1. Refuse to start without a session signing key     → MissingSigningKeyError
  2. await route discovery(app)                         → RouteDiscoveryError
  3. install the catch-all 404 route (last route)
  4. bind the listening socket on (host, port)          → ListenError
  5. start uvicorn on that socket, wait for "started"   → ListenError
  6. on_listen()

Every failure is reported exactly once through ``on_error`` (default: error
log); nothing is retried and nothing is raised out of ``start()``.
``on_error`` receives the underlying exception (what discovery raised, the
bind error) when there is one. ``StartResult.error`` always holds the typed
StartupError wrapping it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from webstarter.config import ServerConfig, resolve_config, validate_port
from webstarter.constants import STARTUP_POLL_INTERVAL_S
from webstarter.errors import (
    ConfigurationError,
    ListenError,
    MissingSigningKeyError,
    RouteDiscoveryError,
    StartupError,
)
from webstarter.fallback import install_fallback
from webstarter.middleware import PipelineStage, build_pipeline
from webstarter.routing.discovery import FileRouteDiscovery, RouteDiscovery
from webstarter.utils.logger import get_logger

OnListen = Callable[[], None]
OnError = Callable[[BaseException], None]


class ServerState(str, Enum):
    CREATED = "created"
    STARTING = "starting"
    LISTENING = "listening"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class StartResult:
    """Outcome of ``Server.start()``.

    address: (host, port) actually bound. The port is the OS-assigned one when
             the server was configured with port 0.
    error:   The StartupError that was reported, if startup failed.
    """

    address: Optional[tuple[str, int]] = None
    error: Optional[StartupError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.address is not None


class Server:
    """Configure and run a webstarter HTTP server.

    Args:
        port:      Port to listen on. Wins over the config file and PORT.
        host:      Host/interface to bind. Wins over the config file and HOST.
        on_listen: Called with no arguments once the server is accepting connections.
        on_error:  Called once with the failure when startup (or serving) fails.
        config:    Pre-built ServerConfig. Resolved with ``resolve_config()`` when omitted.
        discover:  Route discovery collaborator, ``async (app) -> app``. Defaults to
                   file-based discovery of ``config.routes.directory``.

    Construction never starts anything and never raises. An invalid port, a
    broken config file or a missing signing key is reported by ``start()``.
    """

    def __init__(
        self,
        port: Optional[int] = None,
        host: Optional[str] = None,
        on_listen: Optional[OnListen] = None,
        on_error: Optional[OnError] = None,
        *,
        config: Optional[ServerConfig] = None,
        discover: Optional[RouteDiscovery] = None,
    ) -> None:
        overrides: dict[str, Any] = {}
        if port is not None:
            overrides["port"] = port
        if host is not None:
            overrides["host"] = host

        self._config_error: Optional[ConfigurationError] = None
        try:
            if config is None:
                config = resolve_config(port=port, host=host)
            elif overrides:
                if port is not None:
                    validate_port(port, source="port argument")
                config = dataclasses.replace(config, **overrides)
        except ConfigurationError as exc:
            # Reported by start(). Until then the properties show the
            # values the caller asked for.
            self._config_error = exc
            config = dataclasses.replace(config or ServerConfig.defaults(), **overrides)

        self._config = config
        self._logger = get_logger(__name__).bind(host=config.host, port=config.port)
        self._on_listen: OnListen = on_listen or self._default_on_listen
        self._on_error: OnError = on_error or self._default_on_error
        self._discover: RouteDiscovery = discover or FileRouteDiscovery(
            config.routes.directory, timeout=config.routes.discovery_timeout
        )

        self._state = ServerState.CREATED
        self._address: Optional[tuple[str, int]] = None
        self._uvicorn: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task[None]] = None

        self._stages: list[PipelineStage] = build_pipeline(config)
        self._app = self._create_app()

    # ─── Properties ───────────────────────────────────────────────────────────

    @property
    def app(self) -> FastAPI:
        return self._app

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def host(self) -> str:
        return self._config.host

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Optional[tuple[str, int]]:
        return self._address

    @property
    def pipeline(self) -> list[str]:
        """Stage names in installed order, outermost first."""
        return [stage.name for stage in self._stages]

    # ─── Application ──────────────────────────────────────────────────────────

    def _create_app(self) -> FastAPI:
        application = FastAPI(
            title="webstarter",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        # NOTE: In Starlette, the LAST-added middleware is OUTERMOST (runs first).
        # Adding in reverse keeps the first pipeline stage outermost.
        for stage in reversed(self._stages):
            application.add_middleware(stage.cls, **stage.options)

        logger = self._logger

        @application.exception_handler(HTTPException)
        async def http_exception_handler(
            request: Request, exc: HTTPException
        ) -> JSONResponse:
            logger.warning(
                "HTTP exception",
                status_code=exc.status_code,
                detail=exc.detail,
                path=str(request.url.path),
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.detail},
                headers=getattr(exc, "headers", None),
            )

        @application.exception_handler(Exception)
        async def unhandled_exception_handler(
            request: Request, exc: Exception
        ) -> JSONResponse:
            logger.error(
                "Unhandled exception",
                error=str(exc),
                error_type=type(exc).__name__,
                path=str(request.url.path),
            )
            return JSONResponse(
                status_code=500, content={"error": "Internal server error"}
            )

        return application

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> StartResult:
        """Discover routes, install the fallback and begin listening.

        Returns:
            StartResult with the bound address, or with the reported error.

        Raises:
            RuntimeError: If called more than once on the same Server.
        """
        if self._state is not ServerState.CREATED:
            raise RuntimeError(
                f"Server.start() called in state '{self._state.value}'; "
                "a Server can only be started once"
            )
        self._state = ServerState.STARTING

        if self._config_error is not None:
            return self._fail(self._config_error)

        if not self._config.session.secret_key:
            return self._fail(
                MissingSigningKeyError(
                    "No session signing key configured. "
                    "Set COOKIEKEY or session.secret_key in the config file."
                )
            )

        try:
            app = await self._discover(self._app)
        except RouteDiscoveryError as exc:
            return self._fail(exc)
        except Exception as exc:  # noqa: BLE001
            return self._fail(RouteDiscoveryError(f"Route discovery failed: {exc}", exc), exc)

        self._app = app
        install_fallback(app)

        try:
            sock = self._bind_socket()
        except (OSError, OverflowError, TypeError) as exc:
            return self._fail(
                ListenError(f"Could not listen on {self.host}:{self.port}: {exc}", exc), exc
            )

        uvicorn_server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.host,
                port=self.port,
                # Logging is configured by webstarter; access lines come from
                # the access_log pipeline stage.
                log_config=None,
                access_log=False,
                server_header=False,
            )
        )
        self._uvicorn = uvicorn_server
        self._serve_task = asyncio.create_task(uvicorn_server.serve(sockets=[sock]))

        while not uvicorn_server.started and not self._serve_task.done():
            await asyncio.sleep(STARTUP_POLL_INTERVAL_S)

        if not uvicorn_server.started:
            sock.close()
            cause = _task_exception(self._serve_task)
            return self._fail(
                ListenError(f"Server exited before listening on {self.host}:{self.port}", cause),
                cause,
            )

        self._address = (self.host, sock.getsockname()[1])
        self._state = ServerState.LISTENING
        self._serve_task.add_done_callback(self._on_serve_done)

        self._on_listen()
        return StartResult(address=self._address)

    async def stop(self) -> None:
        """Stop serving and wait for uvicorn to shut down. No-op unless listening."""
        if self._state is not ServerState.LISTENING:
            return
        self._state = ServerState.STOPPED

        if self._uvicorn is not None:
            self._uvicorn.should_exit = True
        if self._serve_task is not None:
            await asyncio.wait({self._serve_task})
        self._logger.info("Server stopped")

    async def serve_forever(self) -> StartResult:
        """Start, then block until the server stops (signal or ``stop()``)."""
        result = await self.start()
        if result.ok and self._serve_task is not None:
            await asyncio.wait({self._serve_task})
        return result

    # ─── Internals ────────────────────────────────────────────────────────────

    def _bind_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        return socket.create_server((self.host, self.port), family=family)

    def _on_serve_done(self, task: asyncio.Task[None]) -> None:
        if self._state is not ServerState.LISTENING:
            return
        cause = _task_exception(task)
        if cause is None:
            # uvicorn exited on its own (e.g. SIGINT/SIGTERM).
            self._state = ServerState.STOPPED
            self._logger.info("Server stopped")
            return
        self._state = ServerState.FAILED
        self._on_error(cause)

    def _fail(
        self, error: StartupError, cause: Optional[BaseException] = None
    ) -> StartResult:
        """Mark the server failed and report ``cause`` (or ``error`` when there is none)."""
        self._state = ServerState.FAILED
        self._on_error(cause if cause is not None else error)
        return StartResult(error=error)

    def _default_on_listen(self) -> None:
        host, port = self._address or (self.host, self.port)
        self._logger.info(f"Server is running on {host}:{port}")

    def _default_on_error(self, error: BaseException) -> None:
        self._logger.error(
            "Server error",
            error=str(error),
            error_type=type(error).__name__,
            cause=repr(getattr(error, "error", None)),
        )


def _task_exception(task: asyncio.Task[None]) -> Optional[BaseException]:
    if not task.done() or task.cancelled():
        return None
    return task.exception()
