"""Snapshot and document models"""

from civstats.models.document import FreshImage, StatsDocument, TrackedImage
from civstats.models.snapshot import (
    Counters,
    DeltaSnapshot,
    EncodedSnapshot,
    Snapshot,
    TotalCounters,
)

__all__ = [
    "Counters",
    "TotalCounters",
    "Snapshot",
    "DeltaSnapshot",
    "EncodedSnapshot",
    "FreshImage",
    "TrackedImage",
    "StatsDocument",
]
