"""Tests for history sample helpers."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from custom_components.heating_optimizer.history import (
    HistoryUnavailable,
    async_fetch_history,
    hourly_means,
    samples_since,
    sanitize_values,
    states_to_samples,
)


def _state(value, ts):
    st = MagicMock()
    st.state = value
    st.last_updated = ts
    return st


T0 = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)


def test_states_to_samples_skips_non_numeric_and_sorts():
    states = [
        _state("12.5", T0 + timedelta(minutes=30)),
        _state("unavailable", T0 + timedelta(minutes=10)),
        _state("10.0", T0),
        _state("garbage", T0 + timedelta(minutes=20)),
        _state("nan", T0 + timedelta(minutes=40)),
    ]
    assert states_to_samples(states) == [(T0, 10.0), (T0 + timedelta(minutes=30), 12.5)]


def test_sanitize_values_inclusive_floor():
    assert sanitize_values([-1.0, 0.0, 3.0, None, float("inf")]) == [0.0, 3.0]


def test_sanitize_values_exclusive_floor():
    assert sanitize_values([0.5, 1.0, 1.5, 4.0], floor=1.0, inclusive=False) == [1.5, 4.0]


def test_samples_since_selects_by_time():
    samples = [(T0 + timedelta(minutes=m), float(m)) for m in range(0, 240)]
    window = samples_since(samples, T0 + timedelta(hours=1))
    assert len(window) == 180
    assert window[0] == 60.0
    assert window[-1] == 239.0


def test_samples_since_carries_value_in_effect():
    samples = [(T0, 10.0), (T0 + timedelta(hours=1), 12.0), (T0 + timedelta(hours=5), 9.0)]
    assert samples_since(samples, T0 + timedelta(hours=3)) == [12.0, 9.0]
    assert samples_since(samples, T0 + timedelta(hours=6)) == [9.0]
    assert samples_since([], T0) == []


def test_hourly_means():
    samples = [
        (T0, 10.0),
        (T0 + timedelta(minutes=30), 12.0),
        (T0 + timedelta(hours=1, minutes=5), 4.0),
    ]
    assert hourly_means(samples) == [11.0, 4.0]


async def test_fetch_history_without_recorder(hass):
    with pytest.raises(HistoryUnavailable):
        await async_fetch_history(hass, "sensor.spread", T0 - timedelta(hours=48), T0)
