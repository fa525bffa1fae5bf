"""Tests for danmux.tools."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from danmux.models import ToolError, UsageError
from danmux.tools import ffmpeg_command, run_tool


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestRunTool:
    """Tests for run_tool."""

    def test_returns_stdout(self) -> None:
        with patch("danmux.tools.subprocess.run", return_value=_completed(stdout="{}")) as run:
            assert run_tool(["ffprobe", "x.mkv"]) == "{}"

        kwargs = run.call_args.kwargs
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["capture_output"] is True

    def test_nonzero_exit_raises(self) -> None:
        failed = _completed(returncode=1, stderr="x.ass: Invalid data found when processing input")
        with (
            patch("danmux.tools.subprocess.run", return_value=failed),
            pytest.raises(ToolError, match="Invalid data") as exc,
        ):
            run_tool(["ffmpeg", "-i", "x.ass"])

        assert exc.value.returncode == 1
        assert exc.value.command == ["ffmpeg", "-i", "x.ass"]

    def test_missing_program_is_usage_error(self) -> None:
        with (
            patch("danmux.tools.subprocess.run", side_effect=FileNotFoundError("yutto")),
            pytest.raises(UsageError, match="yutto not found"),
        ):
            run_tool(["yutto", "https://www.bilibili.com/video/x"])


def test_ffmpeg_command_never_reads_stdin() -> None:
    command = ffmpeg_command("-i", "a.mkv", "b.mkv")
    assert command[0] == "ffmpeg"
    assert "-nostdin" in command
    assert "-y" in command
    assert command[-3:] == ["-i", "a.mkv", "b.mkv"]


def test_session_cookie_not_logged(log_messages: list[str]) -> None:
    """The yutto credential never reaches the debug log."""
    with patch("danmux.tools.subprocess.run", return_value=_completed()):
        run_tool(["yutto", "https://www.bilibili.com/video/x", "-c", "secret123"])

    assert any("Running: yutto" in m for m in log_messages)
    assert not any("secret123" in m for m in log_messages)
