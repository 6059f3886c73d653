"""
Logging setup. structlog on top of stdlib logging, so uvicorn's own
loggers go through the same renderer.

LOG_FORMAT=text: human-readable console lines (journald, terminals)
LOG_FORMAT=json: one JSON object per line
"""

import logging
import sys

import structlog

from deployhook.config import Config


SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _renderers(log_format: str) -> list:
    if log_format == "json":
        return [structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging(config: Config) -> None:
    """Route structlog and stdlib logging to stdout in the configured format."""
    structlog.configure(
        processors=[
            *SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(config.log_format),
        ],
        foreign_pre_chain=SHARED_PROCESSORS,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.log_level)

    # Request lines are logged by the app itself
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
