"""
Logging setup for atptunnel.

All modules log through loguru. Call configure_logging() once at process
start; afterwards get_logger(__name__) returns a logger bound to the module.
"""

import sys
import traceback

from loguru import logger

from atptunnel.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

FILE_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]} - {message}"

logger.configure(extra={"name": "atptunnel"})


def _loguru_level(level: LogLevel) -> str:
    match level:
        case LogLevel.FULL:
            return "TRACE"
        case LogLevel.DEBUG:
            return "DEBUG"
        case LogLevel.INFO:
            return "INFO"
        case LogLevel.WARNING:
            return "WARNING"
    return "INFO"


def configure_logging(
    level: LogLevel | str = LogLevel.INFO, log_file: str | None = None
) -> None:
    """
    Configure loguru sinks for the process.

    Args:
        level: Verbosity level. FULL also enables loguru backtraces and
            variable diagnostics in exception output.
        log_file: Optional file to log to in addition to stderr.
    """
    level = LogLevel(level)
    full = level == LogLevel.FULL
    loguru_level = _loguru_level(level)

    logger.remove()
    logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )
    if log_file:
        logger.add(
            log_file,
            level=loguru_level,
            format=FILE_LOG_FORMAT,
            backtrace=full,
            diagnose=full,
            enqueue=True,
        )


def get_logger(name: str):
    """Return a loguru logger bound to the given module name."""
    return logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Format an exception as a single line: 'Type: message (file:line)'."""
    tb = traceback.extract_tb(exc.__traceback__)
    location = ""
    if tb:
        last = tb[-1]
        location = f" ({last.filename}:{last.lineno})"
    return f"{type(exc).__name__}: {exc}{location}"
