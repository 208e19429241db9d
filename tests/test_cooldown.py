from datetime import datetime, timedelta

from custom_components.heating_optimizer.cooldown import CooldownGuard


def test_first_acquire_succeeds():
    guard = CooldownGuard(timedelta(minutes=5))
    assert guard.try_acquire(datetime(2024, 1, 1, 12, 0))


def test_second_acquire_within_interval_rejected():
    guard = CooldownGuard(timedelta(minutes=5))
    t0 = datetime(2024, 1, 1, 12, 0)
    assert guard.try_acquire(t0)
    assert not guard.try_acquire(t0 + timedelta(minutes=4, seconds=59))
    # a rejected attempt must not move the window
    assert guard.last_run == t0
    assert guard.try_acquire(t0 + timedelta(minutes=5))


def test_reset():
    guard = CooldownGuard(timedelta(seconds=2))
    t0 = datetime(2024, 1, 1, 12, 0)
    guard.try_acquire(t0)
    guard.reset()
    assert guard.last_run is None
    assert guard.try_acquire(t0)
