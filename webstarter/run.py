"""Process entry point for webstarter.

Loads ``.env`` (python-dotenv), reads the configuration, configures logging
and serves until interrupted.

Usage:
    python -m webstarter.run
    webstarter                 # via pyproject.toml [project.scripts]

Exits with status 1 when the server fails to start, so a supervisor sees a
bind or discovery failure instead of an idle process.
"""

from __future__ import annotations

import asyncio

from dotenv import load_dotenv

from webstarter.config import load_config
from webstarter.server import Server
from webstarter.utils.logger import configure_logging


def main() -> None:
    """Start the webstarter server with configuration from the environment.

    Raises:
        SystemExit: From load_config() on config errors, or 1 when start fails.
    """
    load_dotenv()
    config = load_config()
    configure_logging(log_level=config.log_level, json_output=config.json_logs)

    server = Server(config=config)
    result = asyncio.run(server.serve_forever())
    if not result.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
