"""Stale-counter ratchet applied before a fresh observation enters history."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, Optional

from civstats.models.snapshot import CounterT, Counters, counter_fields


@dataclass(frozen=True, slots=True)
class GuardResult(Generic[CounterT]):
    corrected: CounterT
    regressed: bool = False
    regressed_fields: tuple[str, ...] = ()


def guard(fresh: CounterT, last_known: Optional[Counters]) -> GuardResult[CounterT]:
    """Take the field-wise max of fresh and last known counters.

    Upstream listings serve cached aggregates that can lag behind values already
    recorded, so a recorded counter never moves down.
    """

    if last_known is None:
        return GuardResult(corrected=fresh)

    raised: dict[str, int] = {}
    for name in counter_fields(type(fresh)):
        known = getattr(last_known, name, 0)
        if getattr(fresh, name) < known:
            raised[name] = known

    if not raised:
        return GuardResult(corrected=fresh)
    return GuardResult(
        corrected=replace(fresh, **raised),
        regressed=True,
        regressed_fields=tuple(raised),
    )
