"""Match overlay files to containers and pick the streams to keep.

Overlay files carry no metadata of their own: the item id in the filename is
the only link to their container. Every producer of overlay files
(danmux.comments) names them through overlay_name(), and every consumer
matches them through overlay_candidates(), so the convention lives here only.
"""

import json
from pathlib import Path

from danmux.logging import logger
from danmux.models import OverlayFile, StreamInfo
from danmux.tools import FFPROBE, run_tool

OVERLAY_EXT = ".ass"
# Converters that keep the raw "<id>.danmaku.xml" stem produce "<id>.danmaku.ass"
_EXT_VARIANTS = (OVERLAY_EXT, ".danmaku" + OVERLAY_EXT)
_FIRST_PART = "_p1"


def overlay_name(item_id: str, part: str | None = None) -> str:
    """Canonical overlay filename for an item (and optional part like "p2")."""
    suffix = f"_{part}" if part else ""
    return f"{item_id}{suffix}{OVERLAY_EXT}"


def overlay_candidates(item_id: str) -> dict[str, str | None]:
    """Filenames that belong to item_id, mapped to their part suffix.

    Covers the plain id, the first-part suffix and the converted-extension
    variants. An id that already ends in "_p1" also accepts the bare base id,
    since single-part items are named either way.
    """
    ids: list[tuple[str, str | None]] = [(item_id, None), (item_id + _FIRST_PART, "p1")]
    if item_id.endswith(_FIRST_PART):
        ids.append((item_id[: -len(_FIRST_PART)], None))

    candidates: dict[str, str | None] = {}
    for stem, part in ids:
        for ext in _EXT_VARIANTS:
            candidates[stem + ext] = part
    return candidates


def select_overlays_for(item_id: str, overlay_dir: Path) -> list[OverlayFile]:
    """Overlay files in overlay_dir that belong to item_id, in discovery order.

    Discovery order is the sorted directory listing, so the result is stable.
    Returns an empty list when nothing matches.
    """
    if not overlay_dir.is_dir():
        return []
    candidates = overlay_candidates(item_id)
    found = [
        OverlayFile(path=path, item_id=item_id, part=candidates[path.name])
        for path in sorted(overlay_dir.iterdir())
        if path.is_file() and path.name in candidates
    ]
    logger.debug("Overlays for {}: {}", item_id, [o.name for o in found])
    return found


def probe_streams(container: Path) -> list[StreamInfo]:
    """List all streams of a container via ffprobe."""
    output = run_tool(
        [
            FFPROBE,
            "-v",
            "error",
            "-show_entries",
            "stream=index,codec_type,codec_name:stream_tags",
            "-of",
            "json",
            str(container),
        ]
    )
    data = json.loads(output or "{}")
    return [StreamInfo.from_probe(s) for s in data.get("streams", [])]


def non_overlay_stream_indices(container: Path | list[StreamInfo]) -> list[int]:
    """Indices of every stream except embedded danmaku overlay tracks.

    A stream is dropped only if it is a subtitle stream whose title equals the
    overlay marker; other subtitles are kept. If that would drop every stream,
    all indices are returned instead.
    """
    streams = probe_streams(container) if isinstance(container, Path) else container
    keep = [s.index for s in streams if not s.is_overlay]
    if not keep and streams:
        logger.warning(
            "Every stream in {} is tagged as danmaku; keeping all {} streams",
            container if isinstance(container, Path) else "container",
            len(streams),
        )
        return [s.index for s in streams]
    return keep
