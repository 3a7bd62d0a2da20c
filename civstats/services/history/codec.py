"""Delta encoding and resolution of snapshot histories."""

from __future__ import annotations

from typing import Optional, Sequence

from civstats.models.snapshot import (
    Counters,
    DeltaSnapshot,
    EncodedSnapshot,
    Snapshot,
    apply_deltas,
    diff_counters,
)


def resolve(history: Sequence[EncodedSnapshot], counters_type: type[Counters] = Counters) -> list[Snapshot]:
    """Replay an encoded history into absolute snapshots, one per entry."""

    current = counters_type()
    resolved: list[Snapshot] = []
    for entry in history:
        if isinstance(entry, DeltaSnapshot):
            current = apply_deltas(current, entry.deltas)
        else:
            current = entry.counters
        resolved.append(Snapshot(timestamp=entry.timestamp, counters=current))
    return resolved


def resolve_one(history: Sequence[EncodedSnapshot], index: int, counters_type: type[Counters] = Counters) -> Snapshot:
    """Resolve a single entry from the nearest preceding absolute snapshot."""

    size = len(history)
    position = index + size if index < 0 else index
    if position < 0 or position >= size:
        raise IndexError(f"History index {index} out of range for {size} entries")

    start = 0
    current = counters_type()
    for cursor in range(position, -1, -1):
        entry = history[cursor]
        if isinstance(entry, Snapshot):
            current = entry.counters
            start = cursor + 1
            break

    for cursor in range(start, position + 1):
        current = apply_deltas(current, history[cursor].deltas)
    return Snapshot(timestamp=history[position].timestamp, counters=current)


def encode(snapshots: Sequence[Snapshot]) -> list[EncodedSnapshot]:
    """Keep the first snapshot absolute and store the rest as changed-field deltas."""

    encoded: list[EncodedSnapshot] = []
    previous: Optional[Snapshot] = None
    for snapshot in snapshots:
        if previous is None:
            encoded.append(snapshot)
        else:
            encoded.append(
                DeltaSnapshot(
                    timestamp=snapshot.timestamp,
                    deltas=diff_counters(snapshot.counters, previous.counters),
                )
            )
        previous = snapshot
    return encoded


def latest(history: Sequence[EncodedSnapshot], counters_type: type[Counters] = Counters) -> Optional[Snapshot]:
    if not history:
        return None
    return resolve_one(history, len(history) - 1, counters_type)
