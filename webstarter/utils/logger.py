"""structlog setup for webstarter.

Every module gets its logger from ``get_logger(__name__)``; each event carries
the module name under ``logger``. Output goes to stdout, one JSON object per
line unless console rendering is asked for. ``run.main()`` reconfigures from
``ServerConfig.log_level`` and ``ServerConfig.json_logs``; until then the
defaults at the bottom of this module apply.
"""

import logging
import sys

import structlog
from structlog.types import Processor


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Install the webstarter processor chain.

    Events below ``log_level`` are dropped by the bound logger before any
    processor runs. ``json_output=False`` swaps the JSON renderer for
    structlog's coloured console renderer.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        # Loggers stay lazy so reconfiguration (and structlog.testing.capture_logs)
        # reaches loggers created at import time.
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = "webstarter") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(logger=name)


configure_logging()
