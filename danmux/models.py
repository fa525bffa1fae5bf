"""Data models and error types for danmux."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Title tag written on every embedded danmaku track and matched when stripping them.
OVERLAY_TITLE = "danmaku"
OVERLAY_LANGUAGE = "chi"

# Attachment written by yt-dlp's FFmpegMetadata postprocessor (add_infojson)
PROVENANCE_ATTACHMENT = "info.json"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class DanmuxError(Exception):
    """Base class for all danmux errors."""

    exit_code = EXIT_FAILURE


class UsageError(DanmuxError):
    """Raised for invalid arguments, configuration or URLs. Never retried."""

    exit_code = EXIT_USAGE


class PreconditionError(DanmuxError):
    """Raised when a workflow input is missing or unusable."""

    pass


class NotFoundError(PreconditionError):
    """Raised when a provenance attachment or field is missing."""

    pass


class OperationalError(DanmuxError):
    """Raised when an external capability (fetch, convert, merge) fails."""

    pass


class ToolError(OperationalError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{command[0]} exited with status {returncode}: {tail}")


@dataclass
class MediaItem:
    """One downloadable unit (episode, part or track)."""

    id: str
    title: str
    source_url: str
    output_dir: Path | None = None

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> "MediaItem":
        """Build from a yt-dlp info dict."""
        return cls(
            id=str(info["id"]),
            title=info.get("title") or "",
            source_url=info.get("webpage_url") or info.get("original_url") or "",
        )


@dataclass
class OverlayFile:
    """A converted danmaku overlay (.ass) on disk."""

    path: Path
    item_id: str
    part: str | None = None

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class StreamInfo:
    """A single stream as reported by ffprobe."""

    index: int
    codec_type: str
    codec_name: str = ""
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_probe(cls, data: dict[str, Any]) -> "StreamInfo":
        """Deserialize from an ffprobe stream entry."""
        return cls(
            index=int(data["index"]),
            codec_type=data.get("codec_type", ""),
            codec_name=data.get("codec_name", ""),
            tags={str(k).lower(): str(v) for k, v in (data.get("tags") or {}).items()},
        )

    @property
    def title(self) -> str | None:
        return self.tags.get("title")

    @property
    def filename(self) -> str | None:
        return self.tags.get("filename")

    @property
    def is_overlay(self) -> bool:
        """True for subtitle streams carrying the danmaku title marker."""
        return self.codec_type == "subtitle" and self.title == OVERLAY_TITLE


@dataclass
class ProvenanceRecord:
    """Source identity embedded in a produced container."""

    id: str
    source_url: str
    title: str = ""
    extractor: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProvenanceRecord":
        """Deserialize from yt-dlp info.json content."""
        return cls(
            id=str(data.get("id") or ""),
            source_url=data.get("webpage_url") or data.get("original_url") or "",
            title=data.get("title") or "",
            extractor=data.get("extractor_key") or data.get("extractor") or "",
            raw=data,
        )

    def to_item(self, output_dir: Path | None = None) -> MediaItem:
        """Reconstruct the MediaItem this record describes."""
        return MediaItem(
            id=self.id, title=self.title, source_url=self.source_url, output_dir=output_dir
        )
