"""yt-dlp adapter: option profiles per fetch mode and per site."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from functools import cache
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yt_dlp
from yt_dlp import YoutubeDL
from yt_dlp.postprocessor import PostProcessor
from yt_dlp.utils import DownloadError

from danmux.config import Settings
from danmux.logging import logger
from danmux.models import MediaItem, OperationalError, UsageError

OUTPUT_TEMPLATE = "%(title).150B [%(id)s].%(ext)s"
COMMENT_TEMPLATE = "%(id)s.%(ext)s"
CONTAINER_FORMAT = "mkv"
AUDIO_CODEC = "opus"
AUDIO_CONTAINER = "mka"
# yt-dlp parallelizes fragment transfers within one download
FRAGMENT_CONCURRENCY = 4


class FetchMode(str, Enum):
    """What a fetch produces."""

    VIDEO = "video"
    AUDIO = "audio"
    COMMENTS = "comments"


@dataclass(frozen=True)
class SiteProfile:
    """Per-site fetch behaviour, selected by host pattern.

    Attributes:
        name: Short label used in logs.
        host_pattern: Regex matched against the URL host.
        comment_langs: yt-dlp subtitle languages that carry danmaku. They are
            excluded from media fetches and are the only ones fetched in
            COMMENTS mode.
        native_comments: Site is supported by the yutto comment backend.
        extra_args: yt-dlp CLI arguments added per mode.
    """

    name: str
    host_pattern: str
    comment_langs: tuple[str, ...] = ()
    native_comments: bool = False
    extra_args: dict[FetchMode, tuple[str, ...]] = field(default_factory=dict)

    def matches(self, host: str) -> bool:
        return re.search(self.host_pattern, host) is not None


# First match wins, so more specific hosts go first.
SITE_PROFILES: list[SiteProfile] = [
    SiteProfile(
        name="bilibili",
        host_pattern=r"(^|\.)(bilibili\.com|b23\.tv)$",
        comment_langs=("danmaku",),
        native_comments=True,
    ),
    SiteProfile(
        name="youtube-music",
        host_pattern=r"^music\.youtube\.com$",
        extra_args={
            FetchMode.AUDIO: ("--parse-metadata", "description:(?s)(?P<meta_lyrics>.+)"),
        },
    ),
    SiteProfile(
        name="youtube",
        host_pattern=r"(^|\.)(youtube\.com|youtu\.be)$",
        extra_args={
            FetchMode.VIDEO: ("--write-auto-subs", "--sub-langs", "en.*,ja.*,zh.*,-live_chat"),
        },
    ),
]


@dataclass
class FetchResult:
    """A finished file and the item it belongs to."""

    item: MediaItem
    path: Path


def validate_url(url: str) -> str:
    """Return the stripped URL or raise UsageError if it is not http(s)."""
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise UsageError(f"Not a valid http(s) URL: {url!r}")
    return url


def site_for(url: str) -> SiteProfile | None:
    """Find the site profile whose host pattern matches url."""
    host = (urlparse(url).hostname or "").lower()
    for profile in SITE_PROFILES:
        if profile.matches(host):
            return profile
    return None


def _parse_cli(args: list[str]) -> dict[str, Any]:
    try:
        opts: dict[str, Any] = yt_dlp.parse_options(["--ignore-config", *args]).ydl_opts
    except SystemExit as e:
        raise UsageError(f"Invalid yt-dlp options: {shlex.join(args)}") from e
    return opts


@cache
def _default_options() -> dict[str, Any]:
    return _parse_cli([])


def cli_to_options(args: list[str] | str) -> dict[str, Any]:
    """Translate yt-dlp command line options into YoutubeDL params.

    Only options that differ from yt-dlp's defaults are returned, so the
    result can be layered over a profile without resetting it.
    """
    if isinstance(args, str):
        args = shlex.split(args)
    if not args:
        return {}
    defaults = _default_options()
    opts = _parse_cli(args)
    diff = {k: v for k, v in opts.items() if defaults.get(k) != v}
    if "postprocessors" in diff:
        diff["postprocessors"] = [
            pp for pp in diff["postprocessors"] if pp not in defaults.get("postprocessors", [])
        ]
    return diff


def _layer(opts: dict[str, Any], extra: dict[str, Any]) -> None:
    """Apply extra over opts; postprocessor lists are concatenated."""
    for key, value in extra.items():
        if key == "postprocessors":
            opts["postprocessors"] = [*opts.get("postprocessors", []), *value]
        else:
            opts[key] = value


def _metadata_postprocessors() -> list[dict[str, Any]]:
    return [
        {"key": "FFmpegMetadata", "add_chapters": True, "add_metadata": True, "add_infojson": True},
        {"key": "EmbedThumbnail", "already_have_thumbnail": False},
    ]


def build_options(
    mode: FetchMode, target_dir: Path, settings: Settings, url: str = ""
) -> dict[str, Any]:
    """Build YoutubeDL params for a fetch.

    Args:
        mode: VIDEO, AUDIO or COMMENTS.
        target_dir: Directory receiving the output files.
        settings: Effective configuration.
        url: Source URL, used to pick the site profile.

    Returns:
        Dict ready for YoutubeDL().
    """
    site = site_for(url) if url else None
    comment_langs = list(site.comment_langs) if site else []

    opts: dict[str, Any] = {
        "quiet": True,
        "no_warnings": True,
        "noprogress": True,
        "concurrent_fragment_downloads": FRAGMENT_CONCURRENCY,
    }
    if settings.cookie_file.is_file():
        opts["cookiefile"] = str(settings.cookie_file)

    if mode is FetchMode.COMMENTS:
        opts.update(
            {
                "outtmpl": str(target_dir / COMMENT_TEMPLATE),
                "skip_download": True,
                "writesubtitles": True,
                "subtitleslangs": comment_langs,
                "subtitlesformat": "xml",
            }
        )
    else:
        opts["outtmpl"] = str(target_dir / OUTPUT_TEMPLATE)
        opts["writethumbnail"] = True
        opts["writeinfojson"] = True
        if settings.external_downloader:
            opts["external_downloader"] = {"default": "aria2c"}
            opts["external_downloader_args"] = {
                "aria2c": shlex.split(settings.external_downloader_args)
            }

    if mode is FetchMode.VIDEO:
        opts.update(
            {
                "format": "bv*+ba/b",
                "prefer_free_formats": True,
                "merge_output_format": CONTAINER_FORMAT,
                "writesubtitles": True,
                "subtitleslangs": ["all", *(f"-{lang}" for lang in comment_langs)],
                "postprocessors": [
                    {"key": "FFmpegVideoRemuxer", "preferedformat": CONTAINER_FORMAT},
                    {"key": "FFmpegEmbedSubtitle", "already_have_subtitle": False},
                    *_metadata_postprocessors(),
                ],
            }
        )
    elif mode is FetchMode.AUDIO:
        opts.update(
            {
                "format": "ba/b",
                "postprocessors": [
                    {
                        "key": "FFmpegExtractAudio",
                        "preferredcodec": AUDIO_CODEC,
                        "preferredquality": settings.audio_quality,
                    },
                    {"key": "FFmpegVideoRemuxer", "preferedformat": AUDIO_CONTAINER},
                    *_metadata_postprocessors(),
                ],
            }
        )
        if settings.audio_ffmpeg_args:
            opts["postprocessor_args"] = {"extractaudio": shlex.split(settings.audio_ffmpeg_args)}

    if site and mode in site.extra_args:
        _layer(opts, cli_to_options(list(site.extra_args[mode])))
    _layer(opts, cli_to_options(settings.ytdlp_args))
    return opts


class _CollectFiles(PostProcessor):  # type: ignore[misc]
    """Records each finished file with its item once yt-dlp has moved it."""

    def __init__(self) -> None:
        super().__init__()
        self.results: list[FetchResult] = []

    def run(self, info: dict[str, Any]) -> tuple[list[str], dict[str, Any]]:
        filepath = info.get("filepath")
        if filepath:
            self.results.append(FetchResult(item=MediaItem.from_info(info), path=Path(filepath)))
        return [], info


def _is_unsupported_error(exc: BaseException) -> bool:
    return "unsupported url" in str(exc).lower()


def fetch(url: str, mode: FetchMode, target_dir: Path, settings: Settings) -> list[FetchResult]:
    """Run yt-dlp for url in the given mode.

    Returns:
        Finished media files with their items (empty in COMMENTS mode, where
        nothing is downloaded; the raw comment files are in target_dir).

    Raises:
        UsageError: Malformed URL or site not supported by yt-dlp.
        OperationalError: Network or postprocessing failure.
    """
    url = validate_url(url)
    opts = build_options(mode, target_dir, settings, url)
    logger.debug("yt-dlp {} options: {}", mode.value, opts)

    collector = _CollectFiles()
    try:
        with YoutubeDL(opts) as ydl:  # pyright: ignore[reportArgumentType]
            ydl.add_post_processor(collector, when="after_move")
            info = ydl.extract_info(url, download=True)
            if info is None:
                raise OperationalError(f"yt-dlp returned no info for {url}")
    except DownloadError as e:
        if _is_unsupported_error(e):
            raise UsageError(f"Unsupported URL: {url}") from e
        raise OperationalError(f"Fetch failed for {url}: {e}") from e

    logger.debug("Fetched {} file(s) for {}", len(collector.results), url)
    return collector.results
