"""Snapshot history services: codec, retention, guard, merge and integrity gate."""

from civstats.services.history.codec import encode, latest, resolve, resolve_one
from civstats.services.history.guard import GuardResult, guard
from civstats.services.history.integrity import IntegrityCheck, check_document_integrity
from civstats.services.history.merge import MergeResult, SnapshotMergeEngine
from civstats.services.history.retention import RetentionPolicy, apply_retention

__all__ = [
    "resolve",
    "resolve_one",
    "encode",
    "latest",
    "RetentionPolicy",
    "apply_retention",
    "GuardResult",
    "guard",
    "SnapshotMergeEngine",
    "MergeResult",
    "IntegrityCheck",
    "check_document_integrity",
]
