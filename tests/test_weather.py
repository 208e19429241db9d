"""Tests for the weather analysis."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from custom_components.heating_optimizer.const import WEATHER_RAIN, WEATHER_SOLAR, WEATHER_TEMP, WEATHER_WIND
from custom_components.heating_optimizer.history import HistoryUnavailable
from custom_components.heating_optimizer.weather import (
    NO_DATA,
    WeatherAnalysis,
    analyse_current,
    analyse_long_trend,
    analyse_short_trend,
)

FETCH = "custom_components.heating_optimizer.weather.async_fetch_history"


@pytest.mark.parametrize(
    ("solar", "wind", "rain", "condition"),
    [
        (500.0, 30.0, 0.0, "Sunny & windy"),
        (100.0, 10.0, 2.0, "Rainy & moderate wind"),
        (100.0, 2.0, 0.0, "Cloudy & calm"),
        (None, 2.0, 0.0, "Undetermined"),
    ],
)
def test_current_condition(solar, wind, rain, condition):
    assert analyse_current(solar, wind, rain)[0] == condition


def test_solar_support_and_wind_loss():
    _, solar_support, wind_loss = analyse_current(500.0, 35.0, 0.0)
    assert solar_support == 0.625
    assert wind_loss == 2.0

    _, solar_support, wind_loss = analyse_current(1200.0, None, None)
    assert solar_support == 1.0
    assert wind_loss == 1.0


def test_short_trend():
    temps = [5.0] * 24 + [8.0] * 24
    assert analyse_short_trend(temps, [300.0] * 48) == "Warming, sunny periods"
    assert analyse_short_trend(list(reversed(temps)), [20.0] * 48) == "Cooling, heavily clouded"
    assert analyse_short_trend([5.0] * 30, []) == "Stable"
    assert analyse_short_trend([5.0] * 10, []) == NO_DATA


def test_long_trend():
    assert analyse_long_trend([10.0] * 60 + [5.0] * 60) == "Significant cooling trend"
    assert analyse_long_trend([5.0] * 60 + [10.0] * 60) == "Significant warming trend"
    assert analyse_long_trend([7.0] * 120) == "Stable weather conditions"
    assert analyse_long_trend([7.0] * 100) == NO_DATA


def _hourly_samples(values):
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [(t0 + timedelta(hours=i), v) for i, v in enumerate(values)]


async def test_analysis_reads_current_states(hass):
    entities = {
        WEATHER_SOLAR: "sensor.solar",
        WEATHER_WIND: "sensor.wind",
        WEATHER_TEMP: "sensor.temp",
        WEATHER_RAIN: "sensor.rain",
    }
    hass.states.async_set("sensor.solar", "450")
    hass.states.async_set("sensor.wind", "3")
    hass.states.async_set("sensor.rain", "0")
    analysis = WeatherAnalysis(hass, entities)
    assert analysis.is_configured

    with patch(FETCH, AsyncMock(side_effect=HistoryUnavailable("no recorder"))):
        report = await analysis.async_analyse()

    assert report.condition == "Sunny & calm"
    assert report.trend_short == NO_DATA
    assert report.trend_long == NO_DATA


async def test_analysis_trend_from_history(hass):
    analysis = WeatherAnalysis(hass, {WEATHER_TEMP: "sensor.temp"})
    with patch(FETCH, AsyncMock(return_value=_hourly_samples([2.0] * 24 + [6.0] * 24))):
        report = await analysis.async_analyse()
    assert report.trend_short == "Warming"
    assert report.trend_long == NO_DATA
    assert report.condition == "Undetermined"


def test_not_configured():
    assert not WeatherAnalysis(None, {WEATHER_TEMP: None}).is_configured
