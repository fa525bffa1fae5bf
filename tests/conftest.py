"""Shared pytest fixtures for danmux tests."""

import copy
import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from danmux.config import Settings
from danmux.logging import logger
from danmux.models import OVERLAY_TITLE, PROVENANCE_ATTACHMENT, ToolError
from danmux.workspace import ScratchWorkspace

# --- Fake media containers ---
#
# A "container" in these tests is a JSON file holding a list of stream dicts
# (codec_type, codec_name, tags, and for attachments a "data" payload).
# FakeMediaTools interprets the ffmpeg/ffprobe command lines danmux builds
# against such files, so remux behaviour can be checked without ffmpeg.


def video_stream() -> dict[str, Any]:
    return {"codec_type": "video", "codec_name": "av1", "tags": {}}


def audio_stream() -> dict[str, Any]:
    return {"codec_type": "audio", "codec_name": "opus", "tags": {"language": "chi"}}


def subtitle_stream(title: str | None = None, lang: str = "eng") -> dict[str, Any]:
    tags = {"language": lang}
    if title is not None:
        tags["title"] = title
    return {"codec_type": "subtitle", "codec_name": "ass", "tags": tags}


def overlay_stream() -> dict[str, Any]:
    return subtitle_stream(title=OVERLAY_TITLE, lang="chi")


def provenance_stream(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "codec_type": "attachment",
        "codec_name": "",
        "tags": {"filename": PROVENANCE_ATTACHMENT, "mimetype": "application/json"},
        "data": data,
    }


def write_container(path: Path, streams: list[dict[str, Any]]) -> Path:
    path.write_text(json.dumps(streams))
    return path


def read_container(path: Path) -> list[dict[str, Any]]:
    result: list[dict[str, Any]] = json.loads(path.read_text())
    return result


def write_overlay(path: Path, content: str = "[Script Info]\n") -> Path:
    path.write_text(content)
    return path


class FakeMediaTools:
    """Stand-in for danmux.tools.run_tool that understands ffmpeg and ffprobe."""

    def __init__(self) -> None:
        self.commands: list[list[str]] = []

    def __call__(self, command: list[str], cwd: Path | None = None) -> str:
        self.commands.append(command)
        if command[0] == "ffprobe":
            streams = read_container(Path(command[-1]))
            probed = []
            for i, s in enumerate(streams):
                entry = {k: v for k, v in s.items() if k != "data"}
                probed.append({"index": i, **entry})
            return json.dumps({"streams": probed})
        return self._ffmpeg(command)

    def _load(self, command: list[str], path: Path) -> list[dict[str, Any]]:
        if not path.is_file():
            raise ToolError(command, 1, f"{path}: No such file or directory")
        if path.suffix == ".ass":
            if path.read_text().startswith("BROKEN"):
                raise ToolError(command, 1, f"{path}: Invalid data found when processing input")
            return [{"codec_type": "subtitle", "codec_name": "ass", "tags": {}}]
        return read_container(path)

    def _ffmpeg(self, command: list[str]) -> str:
        args = command[1:]
        inputs: list[Path] = []
        maps: list[str] = []
        metadata: dict[int, dict[str, str]] = {}
        dumps: list[tuple[int, Path]] = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == "-i":
                inputs.append(Path(args[i + 1]))
                i += 2
            elif arg == "-map":
                maps.append(args[i + 1])
                i += 2
            elif arg.startswith("-metadata:s:"):
                key, value = args[i + 1].split("=", 1)
                metadata.setdefault(int(arg.split(":")[2]), {})[key] = value
                i += 2
            elif arg.startswith("-dump_attachment:"):
                dumps.append((int(arg.split(":")[1]), Path(args[i + 1])))
                i += 2
            else:
                i += 1

        sources = [self._load(command, p) for p in inputs]
        if dumps:
            for index, out in dumps:
                out.write_text(json.dumps(sources[0][index]["data"]))
            return ""

        streams: list[dict[str, Any]] = []
        for spec in maps:
            if ":" in spec:
                file_index, stream_index = (int(x) for x in spec.split(":"))
                if stream_index >= len(sources[file_index]):
                    raise ToolError(command, 1, f"Stream map '{spec}' matches no streams.")
                streams.append(copy.deepcopy(sources[file_index][stream_index]))
            else:
                streams.extend(copy.deepcopy(sources[int(spec)]))
        for index, tags in metadata.items():
            streams[index].setdefault("tags", {}).update(tags)
        write_container(Path(args[-1]), streams)
        return ""


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch) -> FakeMediaTools:
    """Route ffmpeg/ffprobe calls of correlate, merge and provenance to the fake."""
    tools = FakeMediaTools()
    monkeypatch.setattr("danmux.correlate.run_tool", tools)
    monkeypatch.setattr("danmux.merge.run_tool", tools)
    monkeypatch.setattr("danmux.provenance.run_tool", tools)
    return tools


# --- Settings and workspace fixtures ---


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the real environment and cookie store."""
    return Settings(cookie_file=tmp_path / "cookies.txt")


@pytest.fixture
def workspace(tmp_path: Path) -> ScratchWorkspace:
    """A workspace layout under tmp_path (not auto-removed)."""
    root = tmp_path / "ws"
    root.mkdir()
    return ScratchWorkspace.create(root)


@pytest.fixture
def log_messages() -> Any:
    """Capture loguru output as plain "LEVEL | message" strings."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda m: messages.append(str(m).rstrip("\n")), level="DEBUG", format="{level} | {message}"
    )
    yield messages
    logger.remove(handler_id)


# --- yt-dlp fixtures ---


def mock_ydl(return_value: dict[str, Any] | None) -> MagicMock:
    """Create a mock YoutubeDL context manager whose extract_info returns given data."""
    ydl = MagicMock()
    ydl.extract_info.return_value = return_value
    ydl.__enter__ = MagicMock(return_value=ydl)
    ydl.__exit__ = MagicMock(return_value=False)
    return ydl


@pytest.fixture
def bilibili_info() -> dict[str, Any]:
    """Mock yt-dlp info dict for a Bilibili video part."""
    return {
        "id": "BV1xx411c7mD_p1",
        "title": "Test Video",
        "webpage_url": "https://www.bilibili.com/video/BV1xx411c7mD?p=1",
        "extractor_key": "BiliBili",
        "duration": 120,
    }
