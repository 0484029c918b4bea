import pytest

from app.core.rate_tracker import RequestRateTracker


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return RequestRateTracker(limit=3, window_seconds=60, anomaly_threshold=2, clock=clock)


def test_requests_under_limit_are_allowed(tracker):
    decisions = [tracker.record("10.0.0.1") for _ in range(3)]

    assert all(decision.allowed for decision in decisions)
    assert [decision.count for decision in decisions] == [1, 2, 3]


def test_request_over_limit_is_refused_with_retry_after(tracker, clock):
    for _ in range(3):
        tracker.record("10.0.0.1")

    clock.now = 20.0
    decision = tracker.record("10.0.0.1")

    assert not decision.allowed
    assert decision.count == 3
    assert decision.retry_after == 41


def test_refused_requests_are_not_counted(tracker):
    for _ in range(5):
        tracker.record("10.0.0.1")

    assert tracker.count("10.0.0.1") == 3


def test_addresses_are_tracked_separately(tracker):
    for _ in range(3):
        tracker.record("10.0.0.1")

    assert tracker.record("10.0.0.2").allowed


def test_window_rolls_over(tracker, clock):
    for _ in range(3):
        tracker.record("10.0.0.1")

    clock.now = 60.0

    assert tracker.record("10.0.0.1").allowed
    assert tracker.count("10.0.0.1") == 1


def test_anomaly_flag(tracker):
    assert not tracker.record("10.0.0.1").anomalous
    assert tracker.record("10.0.0.1").anomalous


def test_sweep_forgets_idle_addresses(tracker, clock):
    tracker.record("10.0.0.1")
    tracker.record("10.0.0.2")

    clock.now = 120.0

    assert tracker.sweep() == 2
    assert len(tracker) == 0


def test_record_sweeps_periodically(tracker, clock):
    tracker.record("10.0.0.1")

    clock.now = 61.0
    tracker.record("10.0.0.2")

    assert len(tracker) == 1


def test_reset(tracker):
    tracker.record("10.0.0.1")

    tracker.reset()

    assert tracker.count("10.0.0.1") == 0
    assert len(tracker) == 0
