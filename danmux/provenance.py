"""Read the info.json provenance attachment embedded in produced containers.

yt-dlp's FFmpegMetadata postprocessor attaches the item's info dict to every
Matroska file it writes. That record is what lets refresh and refetch
recover the source URL from the file alone. There is no write path here:
a container's provenance only changes when the container is rebuilt by a
new fetch.
"""

import json
import tempfile
from pathlib import Path
from typing import Any

from danmux.correlate import probe_streams
from danmux.logging import logger
from danmux.models import (
    PROVENANCE_ATTACHMENT,
    NotFoundError,
    OperationalError,
    PreconditionError,
    ProvenanceRecord,
    StreamInfo,
)
from danmux.tools import ffmpeg_command, run_tool


def find_attachment(container: Path, streams: list[StreamInfo] | None = None) -> StreamInfo:
    """Locate the provenance attachment stream.

    Raises:
        NotFoundError: If the container has no info.json attachment.
    """
    streams = probe_streams(container) if streams is None else streams
    for stream in streams:
        if stream.codec_type == "attachment" and stream.filename == PROVENANCE_ATTACHMENT:
            return stream
    raise NotFoundError(f"No {PROVENANCE_ATTACHMENT} attachment in {container}")


def _load_attachment(container: Path) -> dict[str, Any]:
    if not container.is_file():
        raise PreconditionError(f"File not found: {container}")
    stream = find_attachment(container)

    with tempfile.TemporaryDirectory(prefix="danmux-prov-") as tmpdir:
        out = Path(tmpdir) / PROVENANCE_ATTACHMENT
        # -dump_attachment is an input option; "-t 0 -f null -" gives ffmpeg an output
        run_tool(
            ffmpeg_command(
                f"-dump_attachment:{stream.index}",
                str(out),
                "-i",
                str(container),
                "-t",
                "0",
                "-f",
                "null",
                "-",
            )
        )
        if not out.is_file():
            raise NotFoundError(f"Could not extract {PROVENANCE_ATTACHMENT} from {container}")
        try:
            data = json.loads(out.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise OperationalError(f"Corrupt {PROVENANCE_ATTACHMENT} in {container}: {e}") from e

    if not isinstance(data, dict):
        raise OperationalError(f"Unexpected {PROVENANCE_ATTACHMENT} content in {container}")
    return data


def extract(container: Path, key: str) -> str:
    """Return one field of the provenance record, e.g. "id" or "webpage_url".

    Raises:
        NotFoundError: If the attachment is missing or the field is absent/empty.
    """
    value = _load_attachment(container).get(key)
    if value is None or value == "":
        raise NotFoundError(f"Field '{key}' missing from provenance of {container}")
    return value if isinstance(value, str) else str(value)


def read_record(container: Path) -> ProvenanceRecord:
    """Read the full provenance record; id and source URL must be present.

    Raises:
        NotFoundError: If the attachment, the id or the source URL is missing.
    """
    record = ProvenanceRecord.from_dict(_load_attachment(container))
    if not record.id:
        raise NotFoundError(f"Field 'id' missing from provenance of {container}")
    if not record.source_url:
        raise NotFoundError(f"Field 'webpage_url' missing from provenance of {container}")
    logger.debug("Provenance of {}: {} ({})", container.name, record.id, record.source_url)
    return record
