"""danmux CLI - media downloads with danmaku overlay tracks."""

import json
import sys
from pathlib import Path
from typing import Any

import fire
from fire.core import FireExit
from rich.console import Console
from rich.table import Table

from danmux import __version__, pipeline
from danmux.config import Settings, load_settings
from danmux.logging import configure_logging, logger
from danmux.models import EXIT_OK, EXIT_USAGE, DanmuxError, UsageError
from danmux.supervisor import supervise

console = Console()


class DanmuxCLI:
    """Download videos with their danmaku (scrolling comments) muxed in as subtitle tracks.

    Examples:
        danmux video "https://www.bilibili.com/video/BV1xx411c7mD" --dest ~/Videos
        danmux audio "https://music.youtube.com/watch?v=xxxx"
        danmux comments "~/Videos/Title [BV1xx411c7mD].mkv"
        danmux refetch "~/Videos/Title [BV1xx411c7mD].mkv"
        danmux --verbose config
    """

    def __init__(self, verbose: bool = False, json_output: bool = False) -> None:
        """Initialize CLI with options.

        Args:
            verbose: Enable debug logging (external commands, yt-dlp options)
            json_output: Output results as JSON instead of human-readable text
        """
        configure_logging(verbose)
        self._json = json_output
        self._settings: Settings = load_settings()
        logger.debug("danmux initialized with verbose={}, json={}", verbose, json_output)

    def _output(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Output result as JSON or print nothing (human output already printed)."""
        if self._json:
            print(json.dumps(data, indent=2))
        return None

    def _report(self, paths: list[Path]) -> dict[str, Any] | None:
        if self._json:
            return self._output({"files": [str(p) for p in paths]})
        for path in paths:
            console.print(f"[green]Done:[/green] {path}")
        return None

    def version(self) -> None:
        """Show danmux version."""
        if self._json:
            self._output({"version": __version__})
        else:
            console.print(f"danmux {__version__}")

    def config(self) -> dict[str, Any] | None:
        """Show the effective configuration (from DANMUX_* environment variables).

        Example:
            danmux config
        """
        values = self._settings.model_dump(mode="json")
        if self._json:
            return self._output(values)

        table = Table(title="danmux settings")
        table.add_column("Variable")
        table.add_column("Value")
        for name, value in values.items():
            table.add_row(f"DANMUX_{name.upper()}", str(value))
        console.print(table)
        if not self._settings.cookie_file.is_file():
            console.print(f"[yellow]No cookie file at {self._settings.cookie_file}[/yellow]")
        return None

    def video(self, url: str, dest: str = ".") -> dict[str, Any] | None:
        """Download a video (or playlist) with danmaku tracks embedded.

        Args:
            url: Source page URL
            dest: Destination directory (default: current directory)

        Example:
            danmux video "https://www.bilibili.com/video/BV1xx411c7mD" --dest ~/Videos
        """
        paths = pipeline.download_video(str(url), Path(str(dest)).expanduser(), self._settings)
        return self._report(paths)

    def audio(self, url: str, dest: str = ".") -> dict[str, Any] | None:
        """Download audio only, with thumbnail, chapters and tags embedded.

        Args:
            url: Source page URL
            dest: Destination directory (default: current directory)

        Example:
            danmux audio "https://music.youtube.com/watch?v=xxxx"
        """
        paths = pipeline.download_audio(str(url), Path(str(dest)).expanduser(), self._settings)
        return self._report(paths)

    def comments(self, path: str) -> dict[str, Any] | None:
        """Replace the danmaku tracks of a file produced by danmux with fresh ones.

        Args:
            path: Existing .mkv produced by `danmux video`

        Example:
            danmux comments "Title [BV1xx411c7mD].mkv"
        """
        result = pipeline.refresh_comments(Path(str(path)), self._settings)
        return self._report([result])

    def refetch(self, path: str) -> dict[str, Any] | None:
        """Download the source of a file produced by danmux again, into the same directory.

        Args:
            path: Existing .mkv produced by `danmux video`

        Example:
            danmux refetch "Title [BV1xx411c7mD].mkv"
        """
        paths = pipeline.refetch_video(Path(str(path)), self._settings)
        return self._report(paths)


def run_invocation(argv: list[str]) -> int:
    """Run one complete CLI invocation and return its exit code."""
    try:
        fire.Fire(DanmuxCLI, command=argv, name="danmux")
    except FireExit as e:
        return int(e.code or EXIT_OK)
    except DanmuxError as e:
        logger.error("{}", e)
        return e.exit_code
    return EXIT_OK


def main() -> None:
    """CLI entry point: runs the invocation under the retry supervisor."""
    argv = sys.argv[1:]
    configure_logging(verbose="--verbose" in argv)
    try:
        settings = load_settings()
    except UsageError as e:
        logger.error("{}", e)
        sys.exit(EXIT_USAGE)
    sys.exit(
        supervise(
            lambda: run_invocation(argv),
            max_attempts=settings.retry_attempts,
            delay=settings.retry_delay,
        )
    )


if __name__ == "__main__":
    main()
