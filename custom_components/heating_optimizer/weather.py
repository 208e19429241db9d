from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Sequence

from homeassistant.core import HomeAssistant
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import (
    SOLAR_FULL_SUPPORT_W_M2,
    WEATHER_RAIN,
    WEATHER_SOLAR,
    WEATHER_TEMP,
    WEATHER_WIND,
    WIND_DOUBLE_LOSS_KMH,
)
from .history import HistoryUnavailable, async_fetch_history, hourly_means
from .state_helpers import read_float

_LOGGER = logging.getLogger(__name__)

NO_DATA = "No data"


@dataclass
class WeatherReport:
    condition: str = "Undetermined"
    solar_support: float = 0.0
    wind_heat_loss: float = 1.0
    trend_short: str = NO_DATA
    trend_long: str = NO_DATA


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def analyse_current(
    solar: float | None, wind: float | None, rain: float | None
) -> tuple[str, float, float]:
    """Condition text, solar heating support (0..1) and wind heat loss factor (>= 1)."""
    condition = "Undetermined"
    if solar is not None and wind is not None and rain is not None:
        if solar > 400:
            condition = "Sunny"
        elif rain > 0.1:
            condition = "Rainy"
        else:
            condition = "Cloudy"
        if wind > 25:
            condition += " & windy"
        elif wind < 5:
            condition += " & calm"
        else:
            condition += " & moderate wind"

    solar_support = min(1.0, max(0.0, (solar or 0.0) / SOLAR_FULL_SUPPORT_W_M2))
    wind_heat_loss = 1.0 + (wind or 0.0) / WIND_DOUBLE_LOSS_KMH
    return condition, round(solar_support, 3), round(wind_heat_loss, 3)


def analyse_short_trend(temps: Sequence[float], solar: Sequence[float]) -> str:
    """48 h trend from hourly means."""
    text = ""
    if len(temps) > 24:
        diff = _mean(temps[-24:]) - _mean(temps[:24])
        if diff > 1:
            text += "Warming"
        elif diff < -1:
            text += "Cooling"
        else:
            text += "Stable"
    if len(solar) > 24:
        last_day = _mean(solar[-24:])
        if last_day > 200:
            text += ", sunny periods"
        elif last_day < 50:
            text += ", heavily clouded"
    return text or NO_DATA


def analyse_long_trend(temps: Sequence[float]) -> str:
    """Weekly character; needs about four days of hourly means."""
    if len(temps) <= 100:
        return NO_DATA
    half = len(temps) // 2
    diff = _mean(temps[half:]) - _mean(temps[:half])
    if diff > 1.5:
        return "Significant warming trend"
    if diff < -1.5:
        return "Significant cooling trend"
    return "Stable weather conditions"


class WeatherAnalysis:
    def __init__(self, hass: HomeAssistant, entities: dict[str, str | None]) -> None:
        self.hass = hass
        self.entities = entities
        self.report = WeatherReport()
        self._unsub = None

    @property
    def is_configured(self) -> bool:
        return any(self.entities.values())

    async def async_start(self, interval: timedelta) -> None:
        async def _tick(_now):
            try:
                await self.async_analyse()
            except Exception as err:
                _LOGGER.exception("Weather analysis failed: %s", err)

        self.hass.async_create_task(_tick(dt_util.now()))
        self._unsub = async_track_time_interval(self.hass, _tick, interval)

    async def async_stop(self) -> None:
        if self._unsub:
            self._unsub()
            self._unsub = None

    async def _hourly(self, key: str, hours: int) -> list[float]:
        entity_id = self.entities.get(key)
        if not entity_id:
            return []
        now = dt_util.utcnow()
        try:
            samples = await async_fetch_history(self.hass, entity_id, now - timedelta(hours=hours), now)
        except HistoryUnavailable as err:
            _LOGGER.error("Error querying weather history for %s: %s", entity_id, err)
            return []
        return hourly_means(samples)

    async def async_analyse(self) -> WeatherReport:
        condition, solar_support, wind_loss = analyse_current(
            read_float(self.hass, self.entities.get(WEATHER_SOLAR)),
            read_float(self.hass, self.entities.get(WEATHER_WIND)),
            read_float(self.hass, self.entities.get(WEATHER_RAIN)),
        )
        temps_48h = await self._hourly(WEATHER_TEMP, 48)
        solar_48h = await self._hourly(WEATHER_SOLAR, 48)
        temps_168h = await self._hourly(WEATHER_TEMP, 168)

        self.report = WeatherReport(
            condition=condition,
            solar_support=solar_support,
            wind_heat_loss=wind_loss,
            trend_short=analyse_short_trend(temps_48h, solar_48h),
            trend_long=analyse_long_trend(temps_168h),
        )
        _LOGGER.debug(
            "Weather analysis: %s, solar %.3f, wind %.3f, 48h '%s', 7d '%s'",
            self.report.condition,
            self.report.solar_support,
            self.report.wind_heat_loss,
            self.report.trend_short,
            self.report.trend_long,
        )
        return self.report
