"""Stream-copy remuxing: strip old overlay tracks and embed new ones.

Nothing here re-encodes. Every write goes to a temporary file next to the
target and is renamed over it only after ffmpeg succeeds, so a failed or
interrupted merge leaves the target byte-for-byte unchanged.
"""

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from danmux.correlate import probe_streams
from danmux.logging import logger
from danmux.models import OVERLAY_LANGUAGE, OVERLAY_TITLE, OverlayFile, PreconditionError
from danmux.tools import ffmpeg_command, run_tool


@contextmanager
def atomic_output(target: Path) -> Iterator[Path]:
    """Yield a temporary path that replaces target when the block succeeds.

    The temporary file lives in target's directory so the final rename is
    atomic. On any exception it is deleted and target is not touched.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f".{target.stem}.", suffix=target.suffix, dir=target.parent)
    os.close(fd)
    tmp = Path(name)
    try:
        yield tmp
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _check_input(path: Path) -> None:
    if not path.is_file():
        raise PreconditionError(f"File not found: {path}")


def rebuild(base: Path, keep: list[int], dest: Path) -> Path:
    """Copy only the streams in keep (plus global metadata and chapters) to dest.

    Args:
        base: Source container.
        keep: Stream indices to copy, in output order.
        dest: Output path (may equal base).

    Returns:
        dest
    """
    _check_input(base)
    if not keep:
        raise PreconditionError(f"No streams selected to keep from {base}")

    maps: list[str] = []
    for index in keep:
        maps += ["-map", f"0:{index}"]

    with atomic_output(dest) as tmp:
        run_tool(
            ffmpeg_command(
                "-i",
                str(base),
                *maps,
                "-c",
                "copy",
                "-map_metadata",
                "0",
                "-map_chapters",
                "0",
                "-f",
                "matroska",
                str(tmp),
            )
        )
    logger.debug("Rebuilt {} with streams {}", dest.name, keep)
    return dest


def embed(base: Path, overlays: list[OverlayFile], target: Path | None = None) -> Path:
    """Add each overlay as a danmaku subtitle track after all of base's streams.

    Args:
        base: Container whose streams are all carried over unchanged.
        overlays: Overlay files, embedded in the given order.
        target: Output path (default: base, replaced in place).

    Returns:
        The target path. With no overlays nothing is remuxed; target is left
        as is (or receives a copy of base when it is a different path).
    """
    target = target or base
    _check_input(base)

    if not overlays:
        logger.warning("No danmaku overlays for {}; container left unchanged", base.name)
        if target != base:
            with atomic_output(target) as tmp:
                shutil.copy2(base, tmp)
        return target

    for overlay in overlays:
        _check_input(overlay.path)

    base_count = len(probe_streams(base))
    inputs: list[str] = ["-i", str(base)]
    maps: list[str] = ["-map", "0"]
    tags: list[str] = []
    for n, overlay in enumerate(overlays, start=1):
        out_index = base_count + n - 1
        inputs += ["-i", str(overlay.path)]
        maps += ["-map", str(n)]
        tags += [
            f"-metadata:s:{out_index}",
            f"language={OVERLAY_LANGUAGE}",
            f"-metadata:s:{out_index}",
            f"title={OVERLAY_TITLE}",
        ]

    with atomic_output(target) as tmp:
        run_tool(
            ffmpeg_command(
                *inputs,
                *maps,
                "-c",
                "copy",
                "-map_metadata",
                "0",
                "-map_chapters",
                "0",
                *tags,
                "-f",
                "matroska",
                str(tmp),
            )
        )
    logger.info("Embedded {} danmaku track(s) into {}", len(overlays), target.name)
    return target
