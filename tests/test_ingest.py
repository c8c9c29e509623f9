from __future__ import annotations

from nearfix.geo import destination
from nearfix.tracking.fixes import PositionFix
from nearfix.tracking.history import HistoryBuffer
from nearfix.tracking.ingest import Accepted, FixIngestor, RejectReason, Rejected

P = (51.5074, -0.1278)


def _fix(coord: tuple[float, float], ts: float, accuracy: float | None = 8.0) -> PositionFix:
    return PositionFix(latitude=coord[0], longitude=coord[1], accuracy=accuracy, timestamp=ts)


def _ingestor() -> tuple[FixIngestor, HistoryBuffer]:
    buffer = HistoryBuffer(capacity=10)
    return FixIngestor(buffer), buffer


def test_poor_accuracy_is_rejected_and_buffer_unchanged() -> None:
    ingestor, buffer = _ingestor()
    result = ingestor.accept(_fix(P, 0.0, accuracy=150.0))

    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.POOR_ACCURACY
    assert len(buffer) == 0


def test_missing_accuracy_counts_as_worst_case() -> None:
    ingestor, buffer = _ingestor()
    result = ingestor.accept(_fix(P, 0.0, accuracy=None))

    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.POOR_ACCURACY
    assert len(buffer) == 0


def test_jump_rejected_inside_window_and_accepted_after_gap() -> None:
    ingestor, buffer = _ingestor()
    assert isinstance(ingestor.accept(_fix(P, 0.0)), Accepted)

    far = destination(P, 90.0, 500.0)
    jump = ingestor.accept(_fix(far, 2.0))
    assert isinstance(jump, Rejected)
    assert jump.reason is RejectReason.IMPLAUSIBLE_JUMP
    assert len(buffer) == 1

    resumed = ingestor.accept(_fix(far, 40.0))
    assert isinstance(resumed, Accepted)
    assert len(buffer) == 2


def test_small_move_is_accepted() -> None:
    ingestor, buffer = _ingestor()
    ingestor.accept(_fix(P, 0.0))
    result = ingestor.accept(_fix(destination(P, 10.0, 40.0), 1.0))

    assert isinstance(result, Accepted)
    assert len(buffer) == 2


def test_out_of_order_fix_is_rejected() -> None:
    ingestor, buffer = _ingestor()
    ingestor.accept(_fix(P, 10.0))
    result = ingestor.accept(_fix(P, 5.0))

    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.OUT_OF_ORDER
    assert len(buffer) == 1


def test_invalid_coordinate_is_rejected() -> None:
    ingestor, buffer = _ingestor()
    result = ingestor.accept(_fix((float("nan"), 0.0), 0.0))

    assert isinstance(result, Rejected)
    assert result.reason is RejectReason.INVALID_COORDINATE
    assert len(buffer) == 0


def test_accepted_entries_never_exceed_ceiling() -> None:
    ingestor, buffer = _ingestor()
    for ts, accuracy in enumerate((5.0, 120.0, 99.0, 100.0, 101.0, None)):
        ingestor.accept(_fix(P, float(ts), accuracy=accuracy))

    assert [fix.accuracy for fix in buffer] == [5.0, 99.0, 100.0]
