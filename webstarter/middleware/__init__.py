"""The request-processing pipeline installed on every webstarter application.

``build_pipeline()`` returns the stages outermost first. The order is fixed:

  1. parameter_pollution  — collapse repeated query keys
  2. access_log           — one log line per request
  3. cors                 — CORS response headers / preflight
  4. security_headers     — secure default response headers
  5. compression          — gzip responses
  6. json_body            — parse JSON bodies
  7. urlencoded_body      — parse form bodies
  8. session              — signed "session" cookie

Response-mutating stages (security headers, compression) wrap everything
after them; body parsers run only after the query string is normalized.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.sessions import SessionMiddleware

from webstarter.config import ServerConfig
from webstarter.middleware.access_log import AccessLogMiddleware
from webstarter.middleware.body import JSONBodyMiddleware, URLEncodedBodyMiddleware
from webstarter.middleware.pollution import ParameterPollutionMiddleware
from webstarter.middleware.security_headers import SecurityHeadersMiddleware

PIPELINE_ORDER: tuple[str, ...] = (
    "parameter_pollution",
    "access_log",
    "cors",
    "security_headers",
    "compression",
    "json_body",
    "urlencoded_body",
    "session",
)


class PipelineStage(NamedTuple):
    name: str
    cls: type
    options: dict[str, Any]


def build_pipeline(config: ServerConfig) -> list[PipelineStage]:
    """Return the middleware stages for ``config``, outermost first."""
    stages = [
        PipelineStage("parameter_pollution", ParameterPollutionMiddleware, {}),
        PipelineStage("access_log", AccessLogMiddleware, {}),
        PipelineStage(
            "cors",
            CORSMiddleware,
            {
                "allow_origins": list(config.cors.allow_origins),
                "allow_methods": list(config.cors.allow_methods),
                "allow_headers": list(config.cors.allow_headers),
                "allow_credentials": config.cors.allow_credentials,
            },
        ),
        PipelineStage("security_headers", SecurityHeadersMiddleware, {}),
        PipelineStage(
            "compression",
            GZipMiddleware,
            {"minimum_size": config.compression.minimum_size},
        ),
        PipelineStage("json_body", JSONBodyMiddleware, {"limit": config.body.limit}),
        PipelineStage("urlencoded_body", URLEncodedBodyMiddleware, {"limit": config.body.limit}),
        PipelineStage(
            "session",
            SessionMiddleware,
            {
                # A missing key is rejected by Server.start() before the
                # middleware stack is ever built.
                "secret_key": config.session.secret_key or "",
                "session_cookie": config.session.name,
                "max_age": config.session.max_age,
                "same_site": config.session.same_site,
                "https_only": config.session.https_only,
            },
        ),
    ]
    return stages


__all__ = [
    "PIPELINE_ORDER",
    "PipelineStage",
    "build_pipeline",
    "AccessLogMiddleware",
    "JSONBodyMiddleware",
    "ParameterPollutionMiddleware",
    "SecurityHeadersMiddleware",
    "URLEncodedBodyMiddleware",
]
