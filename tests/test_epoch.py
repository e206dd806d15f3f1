from epoch import EpochClock
from timeutil import to_iso


def test_epoch_rolls_over_after_duration(clock):
    epochs = EpochClock(duration_seconds=3600, clock=clock)
    first = epochs.current()

    clock.advance(3600)
    assert epochs.current()["id"] == first["id"]
    assert epochs.describe()["remaining_seconds"] == 0

    clock.advance(1)
    rolled = epochs.current()
    assert rolled["id"] != first["id"]
    assert rolled["start_time"] == clock()
    assert epochs.describe()["remaining_seconds"] == 3600


def test_describe_reports_window_bounds(clock):
    epochs = EpochClock(duration_seconds=600, clock=clock)
    start = clock()

    clock.advance(150)
    described = epochs.describe()

    assert described["epoch_id"] == epochs.current()["id"]
    assert described["started_at"] == to_iso(start)
    assert described["ends_at"] == to_iso(start + 600)
    assert described["remaining_seconds"] == 450


def test_current_returns_a_copy(clock):
    epochs = EpochClock(duration_seconds=600, clock=clock)
    epochs.current()["id"] = "tampered"
    assert epochs.current()["id"] != "tampered"
