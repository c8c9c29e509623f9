"""Quality gate between the location provider and the history buffer."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from nearfix.geo import distance
from nearfix.tracking.fixes import PositionFix
from nearfix.tracking.history import HistoryBuffer

log = logging.getLogger(__name__)


class RejectReason(Enum):
    POOR_ACCURACY = "poor-accuracy"
    INVALID_COORDINATE = "invalid-coordinate"
    OUT_OF_ORDER = "out-of-order"
    IMPLAUSIBLE_JUMP = "implausible-jump"


@dataclass(frozen=True, slots=True)
class Accepted:
    fix: PositionFix


@dataclass(frozen=True, slots=True)
class Rejected:
    fix: PositionFix
    reason: RejectReason


IngestResult = Accepted | Rejected


def _valid_coordinate(fix: PositionFix) -> bool:
    lat, lon = fix.latitude, fix.longitude
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


class FixIngestor:
    """Filters raw fixes and appends the survivors to a history buffer."""

    def __init__(
        self,
        buffer: HistoryBuffer,
        hard_reject_accuracy: float = 100.0,
        max_jump_distance: float = 200.0,
        gap_reset_window: float = 30.0,
    ) -> None:
        self._buffer = buffer
        self.hard_reject_accuracy = hard_reject_accuracy
        self.max_jump_distance = max_jump_distance
        self.gap_reset_window = gap_reset_window

    def check(self, fix: PositionFix) -> RejectReason | None:
        """Return the first rule the fix violates, or None if it passes."""
        if fix.effective_accuracy > self.hard_reject_accuracy:
            return RejectReason.POOR_ACCURACY
        if not _valid_coordinate(fix):
            return RejectReason.INVALID_COORDINATE

        last = self._buffer.latest
        if last is None:
            return None
        gap = fix.timestamp - last.timestamp
        if gap < 0:
            return RejectReason.OUT_OF_ORDER
        # Tracking resumed after a gap: a large move is not an anomaly.
        if gap <= self.gap_reset_window:
            if distance(last.coordinate, fix.coordinate) > self.max_jump_distance:
                return RejectReason.IMPLAUSIBLE_JUMP
        return None

    def accept(self, fix: PositionFix) -> IngestResult:
        reason = self.check(fix)
        if reason is not None:
            log.debug(
                "rejected fix (%.6f, %.6f) acc=%s: %s",
                fix.latitude,
                fix.longitude,
                fix.accuracy,
                reason.value,
            )
            return Rejected(fix=fix, reason=reason)
        self._buffer.append(fix)
        return Accepted(fix=fix)
