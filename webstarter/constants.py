"""Shared constants for webstarter.

Defaults for the server binding, the session cookie and the middleware
stages live here. Other modules import from here rather than repeating the
numbers.
"""

# ─── Binding ─────────────────────────────────────────────────────────────────

DEFAULT_PORT: int = 3000
DEFAULT_HOST: str = "localhost"

# ─── Session cookie ──────────────────────────────────────────────────────────

SESSION_COOKIE_NAME: str = "session"
DEFAULT_SAME_SITE: str = "lax"

# ─── Body parsers ────────────────────────────────────────────────────────────

# Maximum request body accepted by the JSON and URL-encoded parsers.
# Larger bodies get HTTP 413 before any route handler runs.
DEFAULT_BODY_LIMIT_BYTES: int = 102_400  # 100 kB

# ─── Compression ─────────────────────────────────────────────────────────────

# Responses smaller than this are sent uncompressed.
DEFAULT_GZIP_MINIMUM_SIZE: int = 1_024  # 1 kB

# ─── CORS ────────────────────────────────────────────────────────────────────

DEFAULT_CORS_ORIGINS: tuple[str, ...] = ("*",)
DEFAULT_CORS_METHODS: tuple[str, ...] = ("GET", "HEAD", "PUT", "PATCH", "POST", "DELETE")
DEFAULT_CORS_HEADERS: tuple[str, ...] = ("*",)

# ─── Routes ──────────────────────────────────────────────────────────────────

DEFAULT_ROUTES_DIRECTORY: str = "routes"

# HTTP methods a route module may export as plain function names.
ROUTE_METHODS: tuple[str, ...] = ("get", "post", "put", "patch", "delete", "head", "options")

# Module attribute that handles every method.
ROUTE_ALL_METHODS_HANDLER: str = "handler"

# ─── Startup ─────────────────────────────────────────────────────────────────

# Poll interval while waiting for uvicorn to report that it is serving.
STARTUP_POLL_INTERVAL_S: float = 0.01
