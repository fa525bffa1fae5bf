"""Runner for external commands (ffmpeg, ffprobe, danmaku2ass, yutto)."""

import subprocess
from pathlib import Path

from danmux.logging import logger, redact_command
from danmux.models import ToolError, UsageError

FFMPEG = "ffmpeg"
FFPROBE = "ffprobe"

# Flags whose value is a credential, per program
SECRET_FLAGS: dict[str, tuple[str, ...]] = {"yutto": ("-c", "--sessdata")}


def run_tool(command: list[str], cwd: Path | None = None) -> str:
    """Run an external command to completion and return its stdout.

    The child never inherits stdin, so batch runs cannot block on a prompt.

    Args:
        command: Program and arguments.
        cwd: Working directory for the child.

    Returns:
        Captured stdout.

    Raises:
        ToolError: If the command exits non-zero.
        UsageError: If the program is not installed.
    """
    logger.debug("Running: {}", redact_command(command, SECRET_FLAGS.get(command[0], ())))
    try:
        result = subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            cwd=cwd,
            check=False,
        )
    except FileNotFoundError as e:
        raise UsageError(f"{command[0]} not found. Install it or add it to PATH.") from e

    if result.returncode != 0:
        raise ToolError(command, result.returncode, result.stderr or "")
    if result.stderr:
        for line in result.stderr.strip().split("\n")[-5:]:
            if line:
                logger.debug("  {}", line)
    return result.stdout


def ffmpeg_command(*args: str) -> list[str]:
    """ffmpeg argv with the flags every invocation needs."""
    return [FFMPEG, "-nostdin", "-hide_banner", "-loglevel", "error", "-y", *args]
