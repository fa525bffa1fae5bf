"""Danmaku acquisition: two interchangeable backends producing ASS overlays.

Both backends leave their output in the workspace's overlays directory,
named through correlate.overlay_name(), so the rest of the pipeline does not
care which one ran.
"""

import http.cookiejar
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from yt_dlp.cookies import YoutubeDLCookieJar

from danmux.config import Settings
from danmux.correlate import overlay_name
from danmux.fetcher import FetchMode, fetch, site_for
from danmux.logging import logger
from danmux.models import MediaItem, OperationalError, OverlayFile, UsageError
from danmux.tools import run_tool
from danmux.workspace import ScratchWorkspace

YUTTO = "yutto"
SESSION_COOKIE = "SESSDATA"


@dataclass(frozen=True)
class RenderProfile:
    """Fixed rendering parameters for converted overlays."""

    width: int = 1920
    height: int = 1080
    font_size: float = 48.0
    opacity: float = 0.8
    outline: float = 1.0
    duration_marquee: float = 12.0
    duration_still: float = 6.0


RENDER_PROFILE = RenderProfile()


class CommentBackend(Protocol):
    """Produces overlay files for a set of items."""

    name: str

    def acquire(self, items: list[MediaItem], workspace: ScratchWorkspace) -> list[OverlayFile]:
        """Fetch and convert danmaku for items into workspace.overlays."""
        ...


def read_session_cookie(cookie_file: Path) -> str | None:
    """Bilibili SESSDATA value from a Netscape cookie file, if present."""
    if not cookie_file.is_file():
        return None
    jar = YoutubeDLCookieJar(str(cookie_file))
    try:
        jar.load(ignore_discard=True, ignore_expires=True)
    except (OSError, http.cookiejar.LoadError) as e:
        logger.warning("Could not read cookies from {}: {}", cookie_file, e)
        return None
    for cookie in jar:
        if cookie.name == SESSION_COOKIE and "bilibili" in cookie.domain:
            return str(cookie.value)
    return None


def _report(backend: str, done: int, failed: list[str]) -> None:
    """Warn about items left without danmaku; the media is still kept."""
    if not failed:
        return
    logger.warning(
        "{}: danmaku failed for {} of {} item(s): {}",
        backend,
        len(failed),
        done + len(failed),
        ", ".join(failed),
    )


class YuttoBackend:
    """Native Bilibili downloader producing ASS danmaku directly."""

    name = "yutto"

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def acquire(self, items: list[MediaItem], workspace: ScratchWorkspace) -> list[OverlayFile]:
        sessdata = read_session_cookie(self._settings.cookie_file)
        overlays: list[OverlayFile] = []
        failed: list[str] = []

        for item in items:
            out_dir = workspace.comments / item.id
            out_dir.mkdir(parents=True, exist_ok=True)
            command = [
                YUTTO,
                item.source_url,
                "--danmaku-only",
                "--danmaku-format",
                "ass",
                "-d",
                str(out_dir),
            ]
            if sessdata:
                command += ["-c", sessdata]
            try:
                run_tool(command)
            except OperationalError as e:
                logger.warning("yutto failed for {}: {}", item.id, e)
                failed.append(item.id)
                continue

            produced = sorted(out_dir.rglob("*.ass"))
            if not produced:
                logger.warning("yutto produced no danmaku for {}", item.id)
                failed.append(item.id)
                continue
            target = workspace.overlays / overlay_name(item.id)
            shutil.move(produced[0], target)
            overlays.append(OverlayFile(path=target, item_id=item.id))

        _report(self.name, len(overlays), failed)
        return overlays


def apply_outline(ass_file: Path, outline: float) -> None:
    """Set the Outline field of every style in an ASS file."""
    text = ass_file.read_text(encoding="utf-8-sig")
    lines = text.splitlines()
    fields: list[str] = []
    in_styles = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("["):
            in_styles = stripped.lower() in ("[v4+ styles]", "[v4 styles]")
            continue
        if not in_styles:
            continue
        if stripped.startswith("Format:"):
            fields = [f.strip() for f in stripped[len("Format:") :].split(",")]
        elif stripped.startswith("Style:") and "Outline" in fields:
            values = stripped[len("Style:") :].split(",")
            pos = fields.index("Outline")
            if pos < len(values):
                values[pos] = f"{outline:g}"
                lines[i] = "Style:" + ",".join(values)
    ass_file.write_text("\n".join(lines) + "\n", encoding="utf-8-sig")


_CONVERSION_ERRORS = (OperationalError, OSError, UnicodeDecodeError)


def _raw_item_id(raw: Path) -> str:
    # "<id>.<lang>.xml" as written by yt-dlp
    return Path(raw.stem).stem


class ConvertBackend:
    """yt-dlp fetches the raw comment stream, the converter renders it."""

    name = "convert"

    def __init__(self, settings: Settings, profile: RenderProfile = RENDER_PROFILE) -> None:
        self._settings = settings
        self._profile = profile

    def convert(self, raw: Path, dest: Path) -> Path:
        """Render one raw danmaku file to an ASS overlay."""
        p = self._profile
        run_tool(
            [
                self._settings.converter,
                "-s",
                f"{p.width}x{p.height}",
                "-fs",
                f"{p.font_size:g}",
                "-a",
                f"{p.opacity:g}",
                "-dm",
                f"{p.duration_marquee:g}",
                "-ds",
                f"{p.duration_still:g}",
                "-o",
                str(dest),
                str(raw),
            ]
        )
        if not dest.is_file():
            raise OperationalError(f"{self._settings.converter} produced no output for {raw.name}")
        apply_outline(dest, p.outline)
        return dest

    def acquire(self, items: list[MediaItem], workspace: ScratchWorkspace) -> list[OverlayFile]:
        failed: list[str] = []
        for item in items:
            site = site_for(item.source_url)
            if site is None or not site.comment_langs:
                logger.info("No danmaku source known for {}", item.source_url)
                continue
            try:
                fetch(item.source_url, FetchMode.COMMENTS, workspace.comments, self._settings)
            except OperationalError as e:
                logger.warning("Danmaku fetch failed for {}: {}", item.id, e)
                failed.append(item.id)

        overlays: list[OverlayFile] = []
        for raw in sorted(workspace.comments.glob("*.xml")):
            item_id = _raw_item_id(raw)
            dest = workspace.overlays / overlay_name(item_id)
            try:
                self.convert(raw, dest)
            except _CONVERSION_ERRORS as e:
                logger.warning("Danmaku conversion failed for {}: {}", raw.name, e)
                dest.unlink(missing_ok=True)
                failed.append(raw.name)
                continue
            overlays.append(OverlayFile(path=dest, item_id=item_id))

        _report(self.name, len(overlays), failed)
        return overlays


def select_backend(settings: Settings, url: str) -> CommentBackend:
    """Pick the comment backend for url according to settings.

    "auto" prefers yutto when the site supports it and yutto is installed.

    Raises:
        UsageError: If yutto is forced but unavailable or unsupported for url.
    """
    if settings.comment_backend == "convert":
        return ConvertBackend(settings)

    site = site_for(url)
    native_ok = site is not None and site.native_comments
    has_yutto = shutil.which(YUTTO) is not None

    if settings.comment_backend == "yutto":
        if not has_yutto:
            raise UsageError("Comment backend 'yutto' selected but yutto is not installed")
        if not native_ok:
            raise UsageError(f"Comment backend 'yutto' does not support {url}")
        return YuttoBackend(settings)

    if native_ok and has_yutto:
        return YuttoBackend(settings)
    return ConvertBackend(settings)

