from __future__ import annotations

from nearfix.estimate.stabilizer import StableEstimate
from nearfix.estimate.throttle import PublishDecision, PublishThrottle


def _estimate(accuracy: float = 6.0) -> StableEstimate:
    return StableEstimate(
        latitude=51.5074,
        longitude=-0.1278,
        accuracy=accuracy,
        confidence=0.9,
        timestamp=0.0,
    )


def test_throttle_allows_one_publish_per_interval() -> None:
    throttle = PublishThrottle(publish_accuracy=200.0, min_interval=2.0)

    assert throttle.maybe_publish(_estimate(), now=100.0) is PublishDecision.PUBLISHED
    assert throttle.maybe_publish(_estimate(), now=101.0) is PublishDecision.THROTTLED
    assert throttle.maybe_publish(_estimate(), now=102.0) is PublishDecision.PUBLISHED
    assert throttle.last_published == 102.0


def test_burst_of_fixes_yields_single_publish() -> None:
    throttle = PublishThrottle(min_interval=2.0)
    decisions = [throttle.maybe_publish(_estimate(), now=50.0 + 0.1 * i) for i in range(20)]

    assert decisions.count(PublishDecision.PUBLISHED) == 1


def test_published_times_respect_interval() -> None:
    throttle = PublishThrottle(min_interval=2.0)
    published: list[float] = []
    for i in range(200):
        now = 0.37 * i
        if throttle.maybe_publish(_estimate(), now=now) is PublishDecision.PUBLISHED:
            published.append(now)

    assert len(published) > 1
    gaps = [b - a for a, b in zip(published, published[1:])]
    assert min(gaps) >= 2.0


def test_low_accuracy_is_skipped_without_consuming_slot() -> None:
    throttle = PublishThrottle(publish_accuracy=200.0, min_interval=2.0)

    decision = throttle.maybe_publish(_estimate(accuracy=250.0), now=10.0)
    assert decision is PublishDecision.SKIPPED_LOW_ACCURACY
    assert throttle.last_published is None
    assert throttle.maybe_publish(_estimate(), now=10.5) is PublishDecision.PUBLISHED


def test_reset_forgets_last_publish() -> None:
    throttle = PublishThrottle(min_interval=2.0)
    throttle.maybe_publish(_estimate(), now=10.0)
    throttle.reset()
    assert throttle.maybe_publish(_estimate(), now=10.5) is PublishDecision.PUBLISHED
