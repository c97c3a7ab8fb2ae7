"""Startup error types for webstarter.

Every failure that keeps a ``Server`` from reaching the listening state is a
``StartupError``. They are never raised out of ``Server.start()``; they are
handed to the ``on_error`` callback (or logged) and returned inside the
``StartResult``.
"""

from __future__ import annotations

from typing import Optional


class StartupError(Exception):
    """Base class for failures while starting the server.

    Attributes:
        error: The underlying exception, when there is one.
    """

    def __init__(self, message: str, error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.error = error


class RouteDiscoveryError(StartupError):
    """The route discovery collaborator failed (missing directory, bad module, timeout)."""


class ListenError(StartupError):
    """Binding or serving on the configured host/port failed."""


class MissingSigningKeyError(StartupError):
    """No session cookie signing key is configured (COOKIEKEY unset)."""


class ConfigurationError(StartupError):
    """A config file, environment variable or argument holds an invalid value."""
