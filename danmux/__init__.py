"""danmux - media downloads with danmaku overlay tracks."""

from danmux.models import (
    DanmuxError,
    MediaItem,
    NotFoundError,
    OperationalError,
    OverlayFile,
    PreconditionError,
    ProvenanceRecord,
    UsageError,
)

try:
    from danmux._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = [
    "DanmuxError",
    "MediaItem",
    "NotFoundError",
    "OperationalError",
    "OverlayFile",
    "PreconditionError",
    "ProvenanceRecord",
    "UsageError",
    "__version__",
]
