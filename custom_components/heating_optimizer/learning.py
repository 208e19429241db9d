from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable

from homeassistant.core import HomeAssistant
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import (
    DEFAULT_HISTORY_HOURS,
    DEFAULT_MIN_SPREAD_FOR_LEARNING,
    DEFAULT_PERFORMANCE_FACTOR,
    DEFAULT_STABILITY_HOURS,
    KEY_LAST_LEARNING_AT,
    KEY_LAST_REGIME,
    KEY_PERFORMANCE_FACTOR,
    KEY_STABILITY,
    LEARNING_COOLDOWN_SECONDS,
    LEARNING_MIN_SAMPLES,
)
from .cooldown import CooldownGuard
from .estimator import AdaptiveControllerEstimator, EstimationResult
from .history import HistoryUnavailable, async_fetch_history, samples_since, sanitize_values
from .state_helpers import read_float
from .storage import LearnedStore

_LOGGER = logging.getLogger(__name__)


@dataclass
class LearningConfig:
    spread_sensor: str
    min_spread: float = DEFAULT_MIN_SPREAD_FOR_LEARNING
    history_hours: int = DEFAULT_HISTORY_HOURS
    stability_hours: int = DEFAULT_STABILITY_HOURS
    min_samples: int = LEARNING_MIN_SAMPLES


class ControllerLearning:
    """Periodic learning cycle around the AdaptiveControllerEstimator.

    Reads the spread history, runs the estimator against the persisted
    performance factor and writes the result back to the store. Any failed
    precondition aborts the cycle and keeps the previous state.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        cfg: LearningConfig,
        store: LearnedStore,
        estimator: AdaptiveControllerEstimator,
        heating_period_active: Callable[[], bool],
        on_learned: Callable[[EstimationResult], Awaitable[None]] | None = None,
    ) -> None:
        self.hass = hass
        self.cfg = cfg
        self.store = store
        self.estimator = estimator
        self._heating_period_active = heating_period_active
        self._on_learned = on_learned
        self._cooldown = CooldownGuard(timedelta(seconds=LEARNING_COOLDOWN_SECONDS))
        self._unsub = None

        # telemetry
        self.status: str | None = None
        self.last_result: EstimationResult | None = None
        self.window_size: int | None = None

    @property
    def performance_factor(self) -> float:
        return self.store.get_float(KEY_PERFORMANCE_FACTOR, DEFAULT_PERFORMANCE_FACTOR)

    @property
    def stability(self) -> float | None:
        v = self.store.get(KEY_STABILITY)
        return float(v) if v is not None else None

    async def async_start(self, interval: timedelta) -> None:
        async def _tick(_now):
            try:
                await self.async_run_cycle()
            except Exception as err:
                _LOGGER.exception("Learning cycle failed: %s", err)

        self.hass.async_create_task(_tick(dt_util.now()))
        self._unsub = async_track_time_interval(self.hass, _tick, interval)

    async def async_stop(self) -> None:
        if self._unsub:
            self._unsub()
            self._unsub = None

    def _skip(self, status: str, msg: str, *args: Any) -> str:
        self.status = status
        _LOGGER.debug("Learning skipped: " + msg, *args)
        return status

    async def async_run_cycle(self, *, force: bool = False) -> str:
        """Run one learning cycle and return its outcome."""
        now = dt_util.utcnow()
        if not force and not self._cooldown.try_acquire(now):
            return self._skip("cooldown", "last cycle ran less than %ss ago", LEARNING_COOLDOWN_SECONDS)
        if force:
            self._cooldown.last_run = now

        if not self._heating_period_active():
            return self._skip("heating_period_off", "heating period is off")

        spread = read_float(self.hass, self.cfg.spread_sensor)
        if spread is None or spread < self.cfg.min_spread:
            return self._skip(
                "spread_too_low",
                "current spread %s°C is below %.1f°C, boiler probably inactive",
                spread,
                self.cfg.min_spread,
            )

        start = now - timedelta(hours=self.cfg.history_hours)
        try:
            samples = await async_fetch_history(self.hass, self.cfg.spread_sensor, start, now)
        except HistoryUnavailable as err:
            self.status = "history_unavailable"
            _LOGGER.error("Error querying spread history: %s", err)
            return self.status

        values = sanitize_values((v for _, v in samples), floor=0.0)
        if len(values) < self.cfg.min_samples:
            return self._skip("not_enough_data", "only %d usable spread samples", len(values))

        window = sanitize_values(
            samples_since(samples, now - timedelta(hours=self.cfg.stability_hours)), floor=0.0
        )
        if not window:
            return self._skip(
                "not_enough_data", "no usable spread samples in the last %dh", self.cfg.stability_hours
            )

        previous = self.performance_factor
        result = self.estimator.estimate(window, previous)
        if result.flat_window:
            _LOGGER.warning(
                "Spread window of %d samples is perfectly flat (%.2f°C); sensor may be stuck",
                len(window),
                result.mean,
            )

        self.store.set(KEY_STABILITY, round(result.stability, 4))
        self.store.set(KEY_PERFORMANCE_FACTOR, round(result.factor, 4))
        self.store.set(KEY_LAST_REGIME, result.regime.value)
        self.store.set(KEY_LAST_LEARNING_AT, now.isoformat())
        await self.store.async_save()

        self.last_result = result
        self.window_size = len(window)
        self.status = "learned"
        _LOGGER.info(
            "System stability %.2f (mean spread %.1f°C over %d samples). Regime %s: "
            "controller performance %.3f -> %.3f",
            result.stability,
            result.mean,
            len(window),
            result.regime.value,
            previous,
            result.factor,
        )
        if self._on_learned is not None:
            await self._on_learned(result)
        return self.status
