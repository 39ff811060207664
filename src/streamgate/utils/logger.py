"""
Logging setup for StreamGate.

All modules log through loguru:

    from streamgate.utils.logger import get_logger

    logger = get_logger(__name__)

Standard library logging (uvicorn, websockets) is routed into loguru by
configure_logging(), so a single sink decides format and verbosity.
"""

import logging
import sys

from loguru import logger as _logger

from streamgate.models.enums import LogLevel

# Loguru level names for each configured verbosity
_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# Default so records emitted before configure_logging() still format
_logger.configure(extra={"name": "streamgate"})


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        _logger.bind(name=record.name).opt(exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Configure the loguru sinks.

    Args:
        level: Verbosity level.
        log_file: Optional path of an additional rotating log file.
    """
    loguru_level = _LEVEL_MAP.get(level, "INFO")
    backtrace = level == LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=_FORMAT,
        backtrace=backtrace,
        diagnose=backtrace,
    )
    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "websockets"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def get_logger(name: str):
    """Get a loguru logger bound to a module name."""
    return _logger.bind(name=name)
