"""Private scratch directories for one pipeline invocation."""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from danmux.logging import logger


@dataclass
class ScratchWorkspace:
    """Per-stage directories under one private root.

    Attributes:
        root: Unique 0700 directory owned by a single invocation.
        video: Media as produced by the fetcher.
        comments: Raw comment streams (danmaku XML).
        overlays: Converted overlay files, named by item id.
        work: Working copies (stripped containers, dumped attachments).
    """

    root: Path
    video: Path
    comments: Path
    overlays: Path
    work: Path

    @classmethod
    def create(cls, root: Path) -> "ScratchWorkspace":
        dirs = {name: root / name for name in ("video", "comments", "overlays", "work")}
        for path in dirs.values():
            path.mkdir(mode=0o700)
        return cls(root=root, **dirs)


@contextmanager
def scratch_workspace(base_dir: Path | None = None) -> Iterator[ScratchWorkspace]:
    """Create a workspace and remove it on every exit path.

    Args:
        base_dir: Parent for the workspace (default: system temp dir).
    """
    # mkdtemp creates the directory with mode 0700
    root = Path(tempfile.mkdtemp(prefix="danmux-", dir=base_dir))
    logger.debug("Created workspace {}", root)
    try:
        yield ScratchWorkspace.create(root)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        logger.debug("Removed workspace {}", root)
