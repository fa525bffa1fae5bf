"""Logging configuration for danmux."""

import shlex
import sys
from collections.abc import Collection

from loguru import logger

# Remove default handler
logger.remove()

_info_format = "<level>{level: <7}</level> | {message}"
# Batch items are finished on worker threads; the thread name tells them apart
_debug_format = (
    "<dim>{time:HH:mm:ss}</dim> | <dim>{thread.name: <12}</dim> | "
    "<level>{level: <7}</level> | {message}"
)

HIDDEN = "<hidden>"


def configure_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity.

    Args:
        verbose: If True, show DEBUG level (external commands, yt-dlp options)
            with timestamps and thread names. If False, show INFO and above.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, format=_debug_format, level="DEBUG")
    else:
        logger.add(sys.stderr, format=_info_format, level="INFO", backtrace=False, diagnose=False)


def redact_command(command: list[str], secret_flags: Collection[str] = ()) -> str:
    """Shell-quoted command line with the value after each secret flag hidden."""
    shown: list[str] = []
    hide_next = False
    for arg in command:
        shown.append(HIDDEN if hide_next else arg)
        hide_next = arg in secret_flags
    return shlex.join(shown)


__all__ = ["logger", "configure_logging", "redact_command"]
