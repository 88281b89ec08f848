"""Logging setup for the service."""

import logging
import sys

from pydantic import BaseModel

# Streaming responses make these very chatty at INFO
QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "uvicorn.access")


class LogConfig(BaseModel):
    """Where and how the service writes its logs."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    quiet_loggers: tuple[str, ...] = QUIET_LOGGERS


def setup_logging(config: LogConfig) -> None:
    """Configure the root handler at startup.

    Module loggers carry no level of their own, so they all follow
    ``config.level``. Third-party loggers listed in ``config.quiet_loggers``
    only report warnings and above.
    """
    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, typically called with ``__name__``."""
    return logging.getLogger(name)
