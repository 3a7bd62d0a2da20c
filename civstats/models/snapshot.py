"""Counter records and absolute/delta snapshot variants."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Mapping, TypeVar, Union

from dateutil import parser as date_parser


@dataclass(frozen=True, slots=True)
class Counters:
    """Reaction counters of one image at one point in time."""

    likes: int = 0
    hearts: int = 0
    laughs: int = 0
    cries: int = 0
    comments: int = 0
    buzz: int = 0
    collects: int = 0
    views: int = 0


@dataclass(frozen=True, slots=True)
class TotalCounters(Counters):
    """Field-wise sum over every tracked image, plus the image count."""

    image_count: int = 0


CounterT = TypeVar("CounterT", bound=Counters)

# JSON keys for absolute values and their short delta aliases.
ABSOLUTE_KEYS: dict[str, str] = {
    "likes": "likes",
    "hearts": "hearts",
    "laughs": "laughs",
    "cries": "cries",
    "comments": "comments",
    "buzz": "buzz",
    "collects": "collects",
    "views": "views",
    "image_count": "imageCount",
}
DELTA_KEYS: dict[str, str] = {
    "likes": "dl",
    "hearts": "dh",
    "laughs": "dla",
    "cries": "dc",
    "comments": "dco",
    "buzz": "dbu",
    "collects": "dcol",
    "views": "dvi",
    "image_count": "dic",
}
DELTA_MARKER = "_d"


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Observed absolute counters at one instant."""

    timestamp: datetime
    counters: Counters


@dataclass(frozen=True, slots=True)
class DeltaSnapshot:
    """Signed per-field change from the previous resolved value.

    Only non-zero fields are kept, so an unchanged interval is a delta with no
    fields. It still replays as "no change", never as an all-zero reset.
    """

    timestamp: datetime
    deltas: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {name: int(value) for name, value in self.deltas.items() if value}
        object.__setattr__(self, "deltas", MappingProxyType(cleaned))

    def __hash__(self) -> int:
        return hash((self.timestamp, tuple(sorted(self.deltas.items()))))


EncodedSnapshot = Union[Snapshot, DeltaSnapshot]


def counter_fields(counters_type: type[Counters]) -> tuple[str, ...]:
    return tuple(item.name for item in fields(counters_type))


def apply_deltas(counters: CounterT, deltas: Mapping[str, int]) -> CounterT:
    """Return a copy of `counters` with each present delta added."""
    changes = {
        name: getattr(counters, name) + deltas[name]
        for name in counter_fields(type(counters))
        if name in deltas
    }
    return replace(counters, **changes) if changes else counters


def diff_counters(current: Counters, previous: Counters) -> dict[str, int]:
    """Signed differences for the fields that changed."""
    return {
        name: getattr(current, name) - getattr(previous, name, 0)
        for name in counter_fields(type(current))
        if getattr(current, name) != getattr(previous, name, 0)
    }


def sum_counters(items: list[Counters], *, image_count: int) -> TotalCounters:
    totals = {name: 0 for name in counter_fields(Counters)}
    for counters in items:
        for name in totals:
            totals[name] += getattr(counters, name)
    return TotalCounters(**totals, image_count=image_count)


def counters_from_mapping(
    payload: Mapping[str, Any],
    counters_type: type[CounterT] = Counters,
    *,
    keys: Mapping[str, str] = ABSOLUTE_KEYS,
) -> CounterT:
    values = {name: coerce_count(payload.get(keys[name])) for name in counter_fields(counters_type)}
    return counters_type(**values)


def coerce_count(value: Any) -> int:
    """Upstream counts are non-negative; anything unusable reads as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and value.is_integer():
        return max(int(value), 0)
    return 0


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"Invalid timestamp: {raw!r}")
    return ensure_utc(date_parser.isoparse(raw.strip()))


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def snapshot_to_dict(entry: EncodedSnapshot) -> dict[str, Any]:
    payload: dict[str, Any] = {"timestamp": format_timestamp(entry.timestamp)}
    if isinstance(entry, DeltaSnapshot):
        for name, value in entry.deltas.items():
            payload[DELTA_KEYS[name]] = value
        payload[DELTA_MARKER] = 1
        return payload

    for name in counter_fields(type(entry.counters)):
        payload[ABSOLUTE_KEYS[name]] = getattr(entry.counters, name)
    return payload


def snapshot_from_dict(payload: Mapping[str, Any], counters_type: type[Counters] = Counters) -> EncodedSnapshot:
    """Decode one stored history entry.

    The `_d` marker identifies deltas. Entries written before the marker
    existed are recognised by their delta aliases.
    """
    if not isinstance(payload, Mapping):
        raise ValueError(f"History entry must be an object, got {type(payload).__name__}")

    timestamp = parse_timestamp(payload.get("timestamp"))
    names = counter_fields(counters_type)
    aliases = {DELTA_KEYS[name]: name for name in names}

    if DELTA_MARKER in payload or any(alias in payload for alias in aliases):
        deltas: dict[str, int] = {}
        for alias, name in aliases.items():
            raw = payload.get(alias)
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                continue
            deltas[name] = int(raw)
        return DeltaSnapshot(timestamp=timestamp, deltas=deltas)

    return Snapshot(timestamp=timestamp, counters=counters_from_mapping(payload, counters_type))
