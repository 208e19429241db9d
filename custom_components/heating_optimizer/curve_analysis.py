"""Heating curve slope/level recommendations.

Compares the recent flow/return spread with the boiler's own adaptive curve
shift and recommends a new base slope when the system is clearly under- or
oversupplied. Slope is judged on cold days, level on mild days.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from homeassistant.core import HomeAssistant
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import (
    ADAPTATION_ACTIVE_THRESHOLD,
    CURVE_ANALYSE_HOURS,
    CURVE_MIN_SAMPLES,
    CURVE_SPREAD_FLOOR,
    DEFAULT_HISTORY_HOURS,
    DEFAULT_RECOMMENDED_LEVEL,
    DEFAULT_RECOMMENDED_SLOPE,
    KEY_LAST_LEVEL_ANALYSIS,
    KEY_LAST_SLOPE_ANALYSIS,
    KEY_RECOMMENDED_LEVEL,
    KEY_RECOMMENDED_SLOPE,
    LEVEL_ANALYSIS_MIN_TEMP,
    OVERSUPPLY_SPREAD,
    SLOPE_ANALYSIS_MAX_TEMP,
    SLOPE_STEP,
    UNDERSUPPLY_SPREAD,
)
from .history import HistoryUnavailable, async_fetch_history, samples_since, sanitize_values
from .state_helpers import read_float
from .storage import LearnedStore

_LOGGER = logging.getLogger(__name__)

ANALYSIS_SLOPE = "slope"
ANALYSIS_LEVEL = "level"
ANALYSIS_NEUTRAL = "neutral"


@dataclass(frozen=True)
class CurveThresholds:
    slope_analysis_max_temp: float = SLOPE_ANALYSIS_MAX_TEMP
    level_analysis_min_temp: float = LEVEL_ANALYSIS_MIN_TEMP
    undersupply_spread: float = UNDERSUPPLY_SPREAD
    oversupply_spread: float = OVERSUPPLY_SPREAD
    adaptation_active_threshold: float = ADAPTATION_ACTIVE_THRESHOLD
    slope_step: float = SLOPE_STEP


@dataclass(frozen=True)
class CurveRecommendation:
    analysis: str
    slope: float | None
    level: float | None
    changed: bool
    message: str


def recommend_heating_curve(
    outdoor_temp: float,
    avg_spread: float,
    base_slope: float,
    adaptation: float,
    current_level: float = DEFAULT_RECOMMENDED_LEVEL,
    thresholds: CurveThresholds | None = None,
) -> CurveRecommendation:
    t = thresholds or CurveThresholds()

    if outdoor_temp <= t.slope_analysis_max_temp:
        if avg_spread > t.undersupply_spread:
            # A wide spread means too little heat reaches the rooms.
            if adaptation < t.adaptation_active_threshold:
                slope = round(base_slope + t.slope_step, 1)
                return CurveRecommendation(
                    ANALYSIS_SLOPE, slope, None, True, f"Recommendation increased to {slope}."
                )
            return CurveRecommendation(
                ANALYSIS_SLOPE, base_slope, None, False, "No change (boiler is adapting itself)."
            )
        if avg_spread < t.oversupply_spread:
            slope = round(base_slope - t.slope_step, 1)
            return CurveRecommendation(
                ANALYSIS_SLOPE, slope, None, True, f"Recommendation decreased to {slope}."
            )
        return CurveRecommendation(ANALYSIS_SLOPE, base_slope, None, False, "No change recommended.")

    if outdoor_temp >= t.level_analysis_min_temp:
        # Mild days are only reported; the level is never adjusted automatically.
        return CurveRecommendation(
            ANALYSIS_LEVEL, None, current_level, False, "Level analysis has no adjustment rule yet."
        )

    return CurveRecommendation(ANALYSIS_NEUTRAL, None, None, False, "Outdoor temperature in neutral range.")


@dataclass
class CurveAnalysisConfig:
    spread_sensor: str
    outdoor_temp_entity: str | None
    curve_entity: str | None
    adaptation_entity: str | None
    history_hours: int = DEFAULT_HISTORY_HOURS
    analyse_hours: int = CURVE_ANALYSE_HOURS
    min_samples: int = CURVE_MIN_SAMPLES


class HeatingCurveAnalysis:
    def __init__(
        self,
        hass: HomeAssistant,
        cfg: CurveAnalysisConfig,
        store: LearnedStore,
        heating_period_active: Callable[[], bool],
        thresholds: CurveThresholds | None = None,
    ) -> None:
        self.hass = hass
        self.cfg = cfg
        self.store = store
        self.thresholds = thresholds or CurveThresholds()
        self._heating_period_active = heating_period_active
        self._unsub = None

        self.status: str | None = None
        self.avg_spread: float | None = None
        self.last_recommendation: CurveRecommendation | None = None

    @property
    def recommended_slope(self) -> float:
        return self.store.get_float(KEY_RECOMMENDED_SLOPE, DEFAULT_RECOMMENDED_SLOPE)

    @property
    def recommended_level(self) -> float:
        return self.store.get_float(KEY_RECOMMENDED_LEVEL, DEFAULT_RECOMMENDED_LEVEL)

    async def async_start(self, interval: timedelta) -> None:
        async def _tick(_now):
            try:
                await self.async_analyse()
            except Exception as err:
                _LOGGER.exception("Heating curve analysis failed: %s", err)

        self.hass.async_create_task(_tick(dt_util.now()))
        self._unsub = async_track_time_interval(self.hass, _tick, interval)

    async def async_stop(self) -> None:
        if self._unsub:
            self._unsub()
            self._unsub = None

    async def async_analyse(self) -> str:
        if not self._heating_period_active():
            self.status = "heating_period_off"
            _LOGGER.debug("Heating period is off, skipping curve analysis")
            return self.status

        outdoor = read_float(self.hass, self.cfg.outdoor_temp_entity)
        base_slope = read_float(self.hass, self.cfg.curve_entity)
        adaptation = read_float(self.hass, self.cfg.adaptation_entity)
        if outdoor is None or base_slope is None or adaptation is None:
            self.status = "missing_input"
            _LOGGER.warning("Boiler outdoor temperature, curve or adaptation unavailable; skipping curve analysis")
            return self.status

        now = dt_util.utcnow()
        try:
            samples = await async_fetch_history(
                self.hass, self.cfg.spread_sensor, now - timedelta(hours=self.cfg.history_hours), now
            )
        except HistoryUnavailable as err:
            self.status = "history_unavailable"
            _LOGGER.error("Error querying spread history: %s", err)
            return self.status

        window = sanitize_values(
            samples_since(samples, now - timedelta(hours=self.cfg.analyse_hours)),
            floor=CURVE_SPREAD_FLOOR,
            inclusive=False,
        )
        if len(window) < self.cfg.min_samples:
            self.status = "not_enough_data"
            _LOGGER.debug("Only %d active heating samples available for curve analysis", len(window))
            return self.status

        avg_spread = sum(window) / len(window)
        self.avg_spread = avg_spread
        rec = recommend_heating_curve(
            outdoor, avg_spread, base_slope, adaptation, self.recommended_level, self.thresholds
        )
        self.last_recommendation = rec

        stamp = dt_util.now().strftime("%Y-%m-%d %H:%M")
        if rec.analysis == ANALYSIS_SLOPE:
            if rec.changed:
                self.store.set(KEY_RECOMMENDED_SLOPE, rec.slope)
            self.store.set(KEY_LAST_SLOPE_ANALYSIS, f"{stamp}: {rec.message}")
        elif rec.analysis == ANALYSIS_LEVEL:
            self.store.set(KEY_LAST_LEVEL_ANALYSIS, f"{stamp}: {rec.message}")
        await self.store.async_save()

        self.status = rec.analysis
        _LOGGER.info(
            "Curve analysis at OT %.1f°C, avg spread %.1f°C, adaptation %.2f: %s",
            outdoor,
            avg_spread,
            adaptation,
            rec.message,
        )
        return self.status
