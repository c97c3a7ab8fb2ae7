"""Config loading for webstarter.

Values are merged in this order, later sources winning:

  1. Coded defaults (``webstarter.constants``)
  2. Optional YAML config file
  3. Environment variables
  4. Explicit arguments to ``load_config()`` / ``Server()``

Config file search order:
  1. ``config_path`` argument (if provided, for testing or explicit override)
  2. WEBSTARTER_CONFIG environment variable (if set)
  3. ``webstarter.yaml`` in the working directory

A missing config file is not an error. A file that exists but cannot be parsed,
lacks a supported ``version`` field, or holds an invalid value raises
ConfigurationError from ``resolve_config()``. ``load_config()`` is the process
entry point's wrapper: it prints ``CONFIG ERROR: ...`` and exits with status 1.
``Server`` uses ``resolve_config()`` and reports the error from ``start()``.

Environment variable overrides:
  PORT       — server port (integer, 0-65535)
  HOST       — bind address
  COOKIEKEY  — session cookie signing key
  LOG_LEVEL  — structlog level name
  JSON_LOGS  — "true"/"false", JSON vs console log rendering
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from webstarter.constants import (
    DEFAULT_BODY_LIMIT_BYTES,
    DEFAULT_CORS_HEADERS,
    DEFAULT_CORS_METHODS,
    DEFAULT_CORS_ORIGINS,
    DEFAULT_GZIP_MINIMUM_SIZE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_ROUTES_DIRECTORY,
    DEFAULT_SAME_SITE,
    SESSION_COOKIE_NAME,
)
from webstarter.errors import ConfigurationError
from webstarter.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

VALID_SAME_SITE: frozenset[str] = frozenset({"lax", "strict", "none"})

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_CONFIG_PATHS = [
    "webstarter.yaml",
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionConfig:
    """Signed session cookie settings.

    max_age=None makes the cookie last for the browser session only.
    """

    name: str = SESSION_COOKIE_NAME
    secret_key: Optional[str] = None
    max_age: Optional[int] = None
    same_site: str = DEFAULT_SAME_SITE
    https_only: bool = False


@dataclass(frozen=True)
class CorsConfig:
    """CORS settings. The defaults allow any origin."""

    allow_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    allow_methods: tuple[str, ...] = DEFAULT_CORS_METHODS
    allow_headers: tuple[str, ...] = DEFAULT_CORS_HEADERS
    allow_credentials: bool = False


@dataclass(frozen=True)
class CompressionConfig:
    minimum_size: int = DEFAULT_GZIP_MINIMUM_SIZE


@dataclass(frozen=True)
class BodyConfig:
    limit: int = DEFAULT_BODY_LIMIT_BYTES


@dataclass(frozen=True)
class RoutesConfig:
    """File-based route discovery settings.

    discovery_timeout: seconds to wait for discovery; None waits indefinitely.
    """

    directory: str = DEFAULT_ROUTES_DIRECTORY
    discovery_timeout: Optional[float] = None


@dataclass(frozen=True)
class ServerConfig:
    """Root configuration object.

    All fields have safe defaults except ``session.secret_key``, which must come
    from COOKIEKEY or the config file before the server will start.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    session: SessionConfig = field(default_factory=SessionConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    body: BodyConfig = field(default_factory=BodyConfig)
    routes: RoutesConfig = field(default_factory=RoutesConfig)
    log_level: str = "INFO"
    json_logs: bool = True
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "ServerConfig":
        """Return a fully-default ServerConfig (no file, no environment)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "ServerConfig":
        """Construct a ServerConfig from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            ConfigurationError: On an invalid port, log level or session.same_site value.
        """
        server_raw = raw.get("server") or {}
        host = server_raw.get("host", DEFAULT_HOST)
        port = validate_port(server_raw.get("port", DEFAULT_PORT), source="server.port")

        session_raw = raw.get("session") or {}
        same_site = str(session_raw.get("same_site", DEFAULT_SAME_SITE)).lower()
        if same_site not in VALID_SAME_SITE:
            _config_error(
                f"Invalid session.same_site: '{same_site}'. "
                f"Supported values: {sorted(VALID_SAME_SITE)}."
            )
        session = SessionConfig(
            name=session_raw.get("name", SESSION_COOKIE_NAME),
            secret_key=session_raw.get("secret_key"),
            max_age=session_raw.get("max_age"),
            same_site=same_site,
            https_only=bool(session_raw.get("https_only", False)),
        )

        cors_raw = raw.get("cors") or {}
        cors = CorsConfig(
            allow_origins=tuple(cors_raw.get("allow_origins", DEFAULT_CORS_ORIGINS)),
            allow_methods=tuple(cors_raw.get("allow_methods", DEFAULT_CORS_METHODS)),
            allow_headers=tuple(cors_raw.get("allow_headers", DEFAULT_CORS_HEADERS)),
            allow_credentials=bool(cors_raw.get("allow_credentials", False)),
        )

        compression_raw = raw.get("compression") or {}
        compression = CompressionConfig(
            minimum_size=int(compression_raw.get("minimum_size", DEFAULT_GZIP_MINIMUM_SIZE)),
        )

        body_raw = raw.get("body") or {}
        body = BodyConfig(limit=int(body_raw.get("limit", DEFAULT_BODY_LIMIT_BYTES)))

        routes_raw = raw.get("routes") or {}
        routes = RoutesConfig(
            directory=routes_raw.get("directory", DEFAULT_ROUTES_DIRECTORY),
            discovery_timeout=routes_raw.get("discovery_timeout"),
        )

        logging_raw = raw.get("logging") or {}

        return cls(
            host=host,
            port=port,
            session=session,
            cors=cors,
            compression=compression,
            body=body,
            routes=routes,
            log_level=_validate_log_level(logging_raw.get("level", "INFO"), source="logging.level"),
            json_logs=bool(logging_raw.get("json", True)),
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(
    config_path: Optional[str] = None,
    *,
    port: Optional[int] = None,
    host: Optional[str] = None,
) -> ServerConfig:
    """Load webstarter configuration for the process entry point.

    Same arguments as ``resolve_config()``.

    Raises:
        SystemExit(1): On any ConfigurationError, after printing it to stderr.
    """
    try:
        return resolve_config(config_path, port=port, host=host)
    except ConfigurationError as exc:
        print(f"CONFIG ERROR: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


def resolve_config(
    config_path: Optional[str] = None,
    *,
    port: Optional[int] = None,
    host: Optional[str] = None,
) -> ServerConfig:
    """Merge defaults, the config file, the environment and explicit arguments.

    Args:
        config_path: Explicit YAML file to try first.
        port:        Explicit port; wins over the file and PORT.
        host:        Explicit host; wins over the file and HOST.

    Returns:
        A frozen ServerConfig.

    Raises:
        ConfigurationError: On YAML parse error, missing or unsupported ``version``,
                            invalid values, or an invalid PORT environment variable.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("WEBSTARTER_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.debug("No config file found, using defaults", searched=search_paths)
        config = ServerConfig.defaults()
    else:
        config = ServerConfig.from_dict(_read_config_file(found_path), path=found_path)
        logger.info("Config file loaded", path=found_path)

    config = _apply_env_overrides(config)

    overrides: dict[str, Any] = {}
    if port is not None:
        overrides["port"] = validate_port(port, source="port argument")
    if host is not None:
        overrides["host"] = host
    if overrides:
        config = dataclasses.replace(config, **overrides)

    if config.host == "0.0.0.0":
        logger.warning(
            "Binding on 0.0.0.0 (all interfaces): the server is reachable "
            "from the network."
        )

    return config


def _read_config_file(found_path: str) -> dict:
    """Parse the YAML file at ``found_path`` and validate its version field."""
    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {found_path}: {exc}", exc) from exc
    except OSError as exc:
        raise ConfigurationError(f"Could not read {found_path}: {exc}", exc) from exc

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
    return raw


def _apply_env_overrides(config: ServerConfig) -> ServerConfig:
    """Return ``config`` with PORT, HOST, COOKIEKEY, LOG_LEVEL and JSON_LOGS applied.

    Raises:
        ConfigurationError: If PORT is not a valid port number or LOG_LEVEL is unknown.
    """
    overrides: dict[str, Any] = {}

    env_port = os.environ.get("PORT")
    if env_port:
        try:
            parsed_port = int(env_port)
        except ValueError:
            _config_error(f"PORT environment variable is not a valid integer: '{env_port}'")
        overrides["port"] = validate_port(parsed_port, source="PORT")

    env_host = os.environ.get("HOST")
    if env_host:
        overrides["host"] = env_host

    env_cookie_key = os.environ.get("COOKIEKEY")
    if env_cookie_key:
        overrides["session"] = dataclasses.replace(config.session, secret_key=env_cookie_key)

    env_log_level = os.environ.get("LOG_LEVEL")
    if env_log_level:
        overrides["log_level"] = _validate_log_level(env_log_level, source="LOG_LEVEL")

    env_json_logs = os.environ.get("JSON_LOGS")
    if env_json_logs:
        overrides["json_logs"] = env_json_logs.lower() == "true"

    if not overrides:
        return config
    return dataclasses.replace(config, **overrides)


def validate_port(value: Any, source: str) -> int:
    """Return ``value`` as a port number.

    Raises:
        ConfigurationError: Unless ``value`` is an int between 0 and 65535.
    """
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 65535:
        _config_error(f"Invalid {source}: {value!r}. Expected an integer between 0 and 65535.")
    return value


def _validate_log_level(value: Any, source: str) -> str:
    level = str(value).upper()
    if level not in VALID_LOG_LEVELS:
        _config_error(f"Invalid {source}: {value!r}. Supported values: {sorted(VALID_LOG_LEVELS)}.")
    return level


def _config_error(message: str) -> NoReturn:
    raise ConfigurationError(message)
