"""Top-level workflows: download video/audio, refresh danmaku, re-fetch.

Each workflow owns one scratch workspace for its whole run. Steps within an
item are strictly sequential (fetch, comments, correlate, embed, commit);
independent items of one batch run in a bounded thread pool.
"""

import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from danmux import correlate, merge, provenance
from danmux.comments import select_backend
from danmux.config import Settings
from danmux.fetcher import FetchMode, FetchResult, fetch
from danmux.logging import logger
from danmux.models import DanmuxError, OperationalError, PreconditionError
from danmux.workspace import ScratchWorkspace, scratch_workspace


def _commit(path: Path, dest: Path) -> Path:
    """Move a finished file into dest, replacing any file of the same name.

    Across filesystems the move is a copy; it always lands on a temporary
    name in dest and is renamed over the final path only once complete.
    """
    final = dest / path.name
    try:
        with merge.atomic_output(final) as tmp:
            shutil.move(path, tmp)
    except OSError as e:
        raise OperationalError(f"Could not save {final}: {e}") from e
    logger.info("Saved {}", final)
    return final


def _finish_item(result: FetchResult, workspace: ScratchWorkspace, dest: Path) -> Path:
    """Correlate, embed and commit one fetched container."""
    overlays = correlate.select_overlays_for(result.item.id, workspace.overlays)
    merge.embed(result.path, overlays)
    return _commit(result.path, dest)


def _finish_batch(
    results: list[FetchResult], workspace: ScratchWorkspace, dest: Path, settings: Settings
) -> list[Path]:
    """Finish every item; a failed item does not stop its siblings."""
    finished: list[Path] = []
    failed: list[str] = []

    if len(results) == 1:
        return [_finish_item(results[0], workspace, dest)]

    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        futures = {
            executor.submit(_finish_item, result, workspace, dest): result for result in results
        }
        for future in as_completed(futures):
            item = futures[future].item
            try:
                finished.append(future.result())
            except DanmuxError as e:
                logger.error("Failed to finish {}: {}", item.id, e)
                failed.append(item.id)

    if failed:
        raise OperationalError(
            f"{len(failed)} of {len(results)} item(s) failed: {', '.join(sorted(failed))}"
        )
    return sorted(finished)


def download_video(url: str, dest: Path, settings: Settings) -> list[Path]:
    """Download url as mkv with danmaku overlays embedded, into dest.

    Returns:
        Paths of the finished containers.
    """
    with scratch_workspace() as workspace:
        results = fetch(url, FetchMode.VIDEO, workspace.video, settings)
        if not results:
            raise OperationalError(f"No media downloaded for {url}")

        backend = select_backend(settings, url)
        logger.info("Fetching danmaku with the {} backend", backend.name)
        backend.acquire([r.item for r in results], workspace)

        return _finish_batch(results, workspace, dest, settings)


def download_audio(url: str, dest: Path, settings: Settings) -> list[Path]:
    """Download url as audio (opus in mka) into dest."""
    with scratch_workspace() as workspace:
        results = fetch(url, FetchMode.AUDIO, workspace.video, settings)
        if not results:
            raise OperationalError(f"No audio downloaded for {url}")
        return [_commit(r.path, dest) for r in results]


def refresh_comments(path: Path, settings: Settings) -> Path:
    """Replace the danmaku tracks of an existing container with fresh ones.

    Old overlay tracks are stripped and the fresh ones embedded; every other
    stream is kept. If no fresh danmaku is found the file is left as it is.
    The original is only ever replaced by a complete new file.
    """
    path = path.expanduser()
    if not path.is_file():
        raise PreconditionError(f"File not found: {path}")

    record = provenance.read_record(path)
    item = record.to_item(output_dir=path.parent)
    logger.info("Refreshing danmaku for {} ({})", item.id, item.source_url)

    with scratch_workspace() as workspace:
        backend = select_backend(settings, item.source_url)
        backend.acquire([item], workspace)

        overlays = correlate.select_overlays_for(item.id, workspace.overlays)
        if not overlays:
            logger.warning("No fresh danmaku for {}; {} left unchanged", item.id, path.name)
            return path

        keep = correlate.non_overlay_stream_indices(path)
        stripped = merge.rebuild(path, keep, workspace.work / path.name)
        merge.embed(stripped, overlays, target=path)

    logger.info("Updated {}", path)
    return path


def refetch_video(path: Path, settings: Settings) -> list[Path]:
    """Download the source of an existing container again, next to it."""
    path = path.expanduser()
    if not path.is_file():
        raise PreconditionError(f"File not found: {path}")
    source_url = provenance.extract(path, "webpage_url")
    logger.info("Re-fetching {} from {}", path.name, source_url)
    return download_video(source_url, path.parent, settings)
