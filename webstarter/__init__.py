"""webstarter — a configured FastAPI/uvicorn server with file-based routes."""

from webstarter.config import ServerConfig, load_config, resolve_config
from webstarter.errors import (
    ConfigurationError,
    ListenError,
    MissingSigningKeyError,
    RouteDiscoveryError,
    StartupError,
)
from webstarter.routing import FileRouteDiscovery, explicit_routes
from webstarter.server import Server, ServerState, StartResult

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "FileRouteDiscovery",
    "ListenError",
    "MissingSigningKeyError",
    "RouteDiscoveryError",
    "Server",
    "ServerConfig",
    "ServerState",
    "StartResult",
    "StartupError",
    "explicit_routes",
    "load_config",
    "resolve_config",
]
