"""Pre-write sanity check that blocks saving a document that lost history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from civstats.errors import IntegrityGateError
from civstats.models.document import StatsDocument


@dataclass(frozen=True, slots=True)
class IntegrityCheck:
    ok: bool
    reason: Optional[str] = None
    expected: Optional[int] = None
    actual: Optional[int] = None

    def raise_for_status(self) -> None:
        if not self.ok:
            raise IntegrityGateError(
                self.reason or "Integrity check failed",
                expected=self.expected,
                actual=self.actual,
            )


def check_document_integrity(old: StatsDocument, new: StatsDocument) -> IntegrityCheck:
    """Compare the merged document with the stored one before it replaces it.

    Only enforced once the stored aggregate has more than one point; before
    that there is no meaningful history to lose.
    """

    if len(old.total_history) <= 1:
        return IntegrityCheck(ok=True)

    image_count = len(new.images)
    snapshot_count = new.snapshot_count
    if snapshot_count < image_count:
        return IntegrityCheck(
            ok=False,
            reason=f"{image_count} tracked images but only {snapshot_count} history points",
            expected=image_count,
            actual=snapshot_count,
        )

    if image_count < len(old.images):
        return IntegrityCheck(
            ok=False,
            reason=f"Tracked images dropped from {len(old.images)} to {image_count}",
            expected=len(old.images),
            actual=image_count,
        )

    if not new.total_history:
        return IntegrityCheck(
            ok=False,
            reason="Aggregate history is empty",
            expected=1,
            actual=0,
        )

    return IntegrityCheck(ok=True)
