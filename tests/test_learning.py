"""Tests for the learning cycle around the estimator."""
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from homeassistant.util import dt as dt_util

from custom_components.heating_optimizer.estimator import (
    AdaptiveControllerEstimator,
    EstimatorConfig,
    FlatWindowPolicy,
)
from custom_components.heating_optimizer.history import HistoryUnavailable
from custom_components.heating_optimizer.learning import ControllerLearning, LearningConfig
from custom_components.heating_optimizer.storage import LearnedStore

FETCH = "custom_components.heating_optimizer.learning.async_fetch_history"
SPREAD = "sensor.heating_spread"


def _samples(values):
    now = dt_util.utcnow()
    return [(now - timedelta(minutes=30 * (len(values) - i)), v) for i, v in enumerate(values)]


@pytest.fixture
def store(hass):
    return LearnedStore(hass, "test_learning")


def _learning(hass, store, active=True, estimator=None, on_learned=None):
    return ControllerLearning(
        hass,
        LearningConfig(spread_sensor=SPREAD),
        store,
        estimator or AdaptiveControllerEstimator(),
        lambda: active,
        on_learned,
    )


async def test_overreacting_window_damps_factor(hass, store):
    store.set("performance_factor", 1.2)
    hass.states.async_set(SPREAD, "18.0")
    learning = _learning(hass, store)

    history = [3.0] * 20 + [17.8, 18.2, 18.0, 17.9, 18.1, 18.0]
    with patch(FETCH, AsyncMock(return_value=_samples(history))):
        assert await learning.async_run_cycle() == "learned"

    assert learning.performance_factor == pytest.approx(1.14)
    assert store.get("last_regime") == "overreacting"
    assert 0.98 < learning.stability <= 1.0
    assert learning.window_size == 6


async def test_negative_samples_dropped(hass, store):
    hass.states.async_set(SPREAD, "10.0")
    learning = _learning(hass, store)
    with patch(FETCH, AsyncMock(return_value=_samples([-3.0, 10.0, -1.0, 10.2]))):
        assert await learning.async_run_cycle() == "not_enough_data"
    assert store.get("performance_factor") is None


async def test_heating_period_off_leaves_state_untouched(hass, store):
    store.set("performance_factor", 1.1)
    hass.states.async_set(SPREAD, "10.0")
    learning = _learning(hass, store, active=False)
    fetch = AsyncMock()
    with patch(FETCH, fetch):
        assert await learning.async_run_cycle() == "heating_period_off"
    fetch.assert_not_called()
    assert learning.performance_factor == 1.1


async def test_low_current_spread_skips(hass, store):
    hass.states.async_set(SPREAD, "1.5")
    learning = _learning(hass, store)
    assert await learning.async_run_cycle() == "spread_too_low"


async def test_missing_spread_sensor_skips(hass, store):
    learning = _learning(hass, store)
    assert await learning.async_run_cycle() == "spread_too_low"


async def test_history_failure_keeps_factor(hass, store):
    store.set("performance_factor", 0.9)
    hass.states.async_set(SPREAD, "10.0")
    learning = _learning(hass, store)
    with patch(FETCH, AsyncMock(side_effect=HistoryUnavailable("recorder down"))):
        assert await learning.async_run_cycle() == "history_unavailable"
    assert learning.performance_factor == 0.9


async def test_cooldown_blocks_back_to_back_runs(hass, store):
    hass.states.async_set(SPREAD, "10.0")
    learning = _learning(hass, store)
    with patch(FETCH, AsyncMock(return_value=_samples([10.0, 10.1, 9.9, 10.0]))):
        assert await learning.async_run_cycle() == "learned"
        assert await learning.async_run_cycle() == "cooldown"
        assert await learning.async_run_cycle(force=True) == "learned"


async def test_values_rounded_and_callback_invoked(hass, store):
    hass.states.async_set(SPREAD, "13.5")
    on_learned = AsyncMock()
    learning = _learning(hass, store, on_learned=on_learned)
    with patch(FETCH, AsyncMock(return_value=_samples([12.5, 14.5, 12.5, 14.5]))):
        assert await learning.async_run_cycle() == "learned"

    # default regime: 1.0 + 0 * lr * stability
    assert store.get("performance_factor") == 1.0
    assert store.get("stability") == 0.5
    on_learned.assert_awaited_once()
    assert on_learned.await_args.args[0].regime.value == "default"


async def test_hold_policy_flat_window(hass, store):
    store.set("performance_factor", 1.3)
    hass.states.async_set(SPREAD, "18.0")
    est = AdaptiveControllerEstimator(EstimatorConfig(flat_window_policy=FlatWindowPolicy.HOLD))
    learning = _learning(hass, store, estimator=est)
    with patch(FETCH, AsyncMock(return_value=_samples([18.0] * 6))):
        assert await learning.async_run_cycle() == "learned"
    assert store.get("last_regime") == "flat_signal"
    assert learning.performance_factor == 1.3


def _minute_samples(value_for_age, minutes):
    """One sample per minute; value_for_age maps the age in minutes to a value."""
    now = dt_util.utcnow()
    return [(now - timedelta(minutes=age), value_for_age(age)) for age in range(minutes, 0, -1)]


async def test_stability_window_covers_hours_not_sample_count(hass, store):
    store.set("performance_factor", 1.2)
    hass.states.async_set(SPREAD, "18.0")
    learning = _learning(hass, store)

    def spread(age):
        if age > 180:
            return 3.0
        return 18.1 if age % 2 else 17.9

    with patch(FETCH, AsyncMock(return_value=_minute_samples(spread, 48 * 60))):
        assert await learning.async_run_cycle() == "learned"

    # three hours of one-minute samples, not the last six
    assert learning.window_size == 180
    assert learning.last_result.mean == pytest.approx(18.0)
    assert store.get("last_regime") == "overreacting"


async def test_rarely_changing_sensor_uses_value_in_effect(hass, store):
    hass.states.async_set(SPREAD, "10.1")
    learning = _learning(hass, store)
    now = dt_util.utcnow()
    samples = [(now - timedelta(hours=h), v) for h, v in ((40, 10.0), (30, 10.2), (20, 9.8), (10, 10.1))]

    with patch(FETCH, AsyncMock(return_value=samples)):
        assert await learning.async_run_cycle() == "learned"

    assert learning.window_size == 1
    assert learning.last_result.mean == pytest.approx(10.1)
    assert store.get("last_regime") == "optimal"


async def test_flat_window_with_inexact_value_warns(hass, store, caplog):
    hass.states.async_set(SPREAD, "5.3")
    learning = _learning(hass, store)
    with patch(FETCH, AsyncMock(return_value=_samples([5.3] * 6))):
        assert await learning.async_run_cycle() == "learned"

    assert learning.last_result.flat_window
    assert "sensor may be stuck" in caplog.text
