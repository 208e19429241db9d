from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .const import (
    CONF_BOILER_ADAPTATION,
    CONF_BOILER_CURVE,
    CONF_BOILER_OUTDOOR_TEMP,
    CONF_HEATING_PERIOD_ENTITY,
    CONF_NIGHT_MODE_ENTITY,
    CONF_OUTDOOR_TEMP_SENSOR,
    CONF_PRESENCE_ENTITY,
    CONF_ROOMS,
    CONF_SPREAD_SENSOR,
    CONF_WEATHER,
    CURVE_ANALYSIS_INTERVAL_HOURS,
    DEFAULT_ABSENT_TARGET,
    DEFAULT_BASE_LEARNING_RATE,
    DEFAULT_HEATING_LIMIT_TEMP,
    DEFAULT_HISTORY_HOURS,
    DEFAULT_LEARNING_INTERVAL_MINUTES,
    DEFAULT_LOWER_BOUND,
    DEFAULT_MIN_SPREAD_FOR_LEARNING,
    DEFAULT_PRESENT_TARGET,
    DEFAULT_STABILITY_HOURS,
    DEFAULT_UPPER_BOUND,
    FLAT_WINDOW_STABLE,
    KEY_ABSENT_TARGET,
    KEY_PERFORMANCE_FACTOR,
    KEY_PRESENT_TARGET,
    OPT_BASE_LEARNING_RATE,
    OPT_FLAT_WINDOW_POLICY,
    OPT_HEATING_LIMIT_TEMP,
    OPT_HISTORY_HOURS,
    OPT_LEARNING_INTERVAL_MIN,
    OPT_LOWER_BOUND,
    OPT_MIN_SPREAD,
    OPT_STABILITY_HOURS,
    OPT_UPPER_BOUND,
    ROOM_SAFETY_INTERVAL_MINUTES,
    WEATHER_INTERVAL_MINUTES,
    WEATHER_KEYS,
)
from .curve_analysis import CurveAnalysisConfig, HeatingCurveAnalysis
from .estimator import AdaptiveControllerEstimator, EstimationResult, EstimatorConfig, FlatWindowPolicy
from .heating_period import HeatingPeriodTracker
from .learning import ControllerLearning, LearningConfig
from .room import RoomConfig, RoomHeatingController, RoomRuntime, RoomSettings, SharedInputs
from .state_helpers import read_bool
from .storage import LearnedStore
from .weather import WeatherAnalysis

_LOGGER = logging.getLogger(__name__)


def estimator_config_from_options(options: dict[str, Any]) -> EstimatorConfig:
    return EstimatorConfig(
        base_learning_rate=float(options.get(OPT_BASE_LEARNING_RATE, DEFAULT_BASE_LEARNING_RATE)),
        lower_bound=float(options.get(OPT_LOWER_BOUND, DEFAULT_LOWER_BOUND)),
        upper_bound=float(options.get(OPT_UPPER_BOUND, DEFAULT_UPPER_BOUND)),
        flat_window_policy=FlatWindowPolicy(options.get(OPT_FLAT_WINDOW_POLICY, FLAT_WINDOW_STABLE)),
    )


def room_from_dict(rd: dict[str, Any]) -> tuple[RoomConfig, RoomRuntime]:
    cfg = RoomConfig(
        room_name=rd["room_name"],
        thermostats=list(rd.get("thermostats", [])),
        window_sensors=list(rd.get("window_sensors", [])),
        door_sensor=rd.get("door_sensor"),
        humidity_sensor=rd.get("humidity_sensor"),
        wall_surface_sensor=rd.get("wall_surface_sensor"),
        wall_core_sensor=rd.get("wall_core_sensor"),
    )
    settings = RoomSettings(
        hysteresis=float(rd.get("hysteresis", RoomSettings.hysteresis)),
        temperature_offset=float(rd.get("temperature_offset", 0.0)),
        min_setpoint=float(rd.get("min_setpoint", RoomSettings.min_setpoint)),
        max_setpoint=float(rd.get("max_setpoint", RoomSettings.max_setpoint)),
        use_night_mode=bool(rd.get("use_night_mode", True)),
        use_door_sensor=bool(rd.get("door_sensor")),
    )
    return cfg, RoomRuntime(enabled=bool(rd.get("enabled", True)), settings=settings)


class HeatOptCoordinator(DataUpdateCoordinator[dict[str, Any]]):
    def __init__(self, hass: HomeAssistant, entry: ConfigEntry, store: LearnedStore) -> None:
        super().__init__(
            hass,
            _LOGGER,
            name=f"Heating Optimizer {entry.title}",
            update_interval=None,
        )
        self.entry = entry
        self.store = store
        data = entry.data
        options = entry.options

        self.heating_period = HeatingPeriodTracker(
            hass,
            store,
            data.get(CONF_OUTDOOR_TEMP_SENSOR),
            float(options.get(OPT_HEATING_LIMIT_TEMP, DEFAULT_HEATING_LIMIT_TEMP)),
        )

        self.learning = ControllerLearning(
            hass,
            LearningConfig(
                spread_sensor=data[CONF_SPREAD_SENSOR],
                min_spread=float(options.get(OPT_MIN_SPREAD, DEFAULT_MIN_SPREAD_FOR_LEARNING)),
                history_hours=int(options.get(OPT_HISTORY_HOURS, DEFAULT_HISTORY_HOURS)),
                stability_hours=int(options.get(OPT_STABILITY_HOURS, DEFAULT_STABILITY_HOURS)),
            ),
            store,
            AdaptiveControllerEstimator(estimator_config_from_options(options)),
            self.is_heating_period,
            on_learned=self._async_on_learned,
        )

        self.curve = HeatingCurveAnalysis(
            hass,
            CurveAnalysisConfig(
                spread_sensor=data[CONF_SPREAD_SENSOR],
                outdoor_temp_entity=data.get(CONF_BOILER_OUTDOOR_TEMP),
                curve_entity=data.get(CONF_BOILER_CURVE),
                adaptation_entity=data.get(CONF_BOILER_ADAPTATION),
                history_hours=int(options.get(OPT_HISTORY_HOURS, DEFAULT_HISTORY_HOURS)),
            ),
            store,
            self.is_heating_period,
        )

        weather_entities = data.get(CONF_WEATHER, {}) or {}
        self.weather = WeatherAnalysis(hass, {k: weather_entities.get(k) for k in WEATHER_KEYS})

        self.rooms: dict[str, RoomHeatingController] = {}
        self._shared = SharedInputs(
            heating_period_active=self.is_heating_period,
            performance_factor=lambda: self.learning.performance_factor,
            present_target=lambda: self.present_target,
            absent_target=lambda: self.absent_target,
            presence_entity=data.get(CONF_PRESENCE_ENTITY),
            night_mode_entity=data.get(CONF_NIGHT_MODE_ENTITY),
            outdoor_temp_sensor=data.get(CONF_OUTDOOR_TEMP_SENSOR),
        )

    @property
    def learning_interval(self) -> timedelta:
        minutes = int(self.entry.options.get(OPT_LEARNING_INTERVAL_MIN, DEFAULT_LEARNING_INTERVAL_MINUTES))
        return timedelta(minutes=minutes)

    @property
    def has_curve_analysis(self) -> bool:
        data = self.entry.data
        return bool(data.get(CONF_BOILER_CURVE) and data.get(CONF_BOILER_ADAPTATION))

    @property
    def present_target(self) -> float:
        return self.store.get_float(KEY_PRESENT_TARGET, DEFAULT_PRESENT_TARGET)

    @property
    def absent_target(self) -> float:
        return self.store.get_float(KEY_ABSENT_TARGET, DEFAULT_ABSENT_TARGET)

    def _external_heating_period(self) -> bool | None:
        return read_bool(self.hass, self.entry.data.get(CONF_HEATING_PERIOD_ENTITY))

    @property
    def heating_period_is_external(self) -> bool:
        return self._external_heating_period() is not None

    def is_heating_period(self) -> bool:
        # A configured heating-period entity overrides the internal tracker.
        external = self._external_heating_period()
        if external is not None:
            return external
        return self.heating_period.is_active

    async def async_configure_rooms(self) -> None:
        rooms = self.entry.data.get(CONF_ROOMS, {})
        for room_id, rd in rooms.items():
            cfg, rt = room_from_dict(rd)
            self.rooms[room_id] = RoomHeatingController(self.hass, room_id, cfg, rt, self._shared)

    async def async_start(self) -> None:
        await self.heating_period.async_start()
        await self.learning.async_start(self.learning_interval)
        if self.has_curve_analysis:
            await self.curve.async_start(timedelta(hours=CURVE_ANALYSIS_INTERVAL_HOURS))
        if self.weather.is_configured:
            await self.weather.async_start(timedelta(minutes=WEATHER_INTERVAL_MINUTES))
        for room in self.rooms.values():
            await room.async_start(timedelta(minutes=ROOM_SAFETY_INTERVAL_MINUTES))

    async def async_stop(self) -> None:
        for room in self.rooms.values():
            await room.async_stop()
        await self.weather.async_stop()
        await self.curve.async_stop()
        await self.learning.async_stop()
        await self.heating_period.async_stop()

    async def async_persist_learning(self) -> None:
        await self.store.async_save()

    async def async_trigger_rooms(self, reason: str) -> None:
        for room in self.rooms.values():
            try:
                await room.async_trigger(reason)
            except Exception as err:
                _LOGGER.exception("Room %s update after %s failed: %s", room.room_id, reason, err)

    async def _async_on_learned(self, result: EstimationResult) -> None:
        await self.async_trigger_rooms("controller performance")

    async def async_set_performance_factor(self, value: float) -> None:
        """Manual override of the learned factor."""
        cfg = self.learning.estimator.config
        value = max(cfg.lower_bound, min(cfg.upper_bound, float(value)))
        self.store.set(KEY_PERFORMANCE_FACTOR, round(value, 4))
        await self.store.async_save()
        _LOGGER.info("Controller performance overridden to %.3f", value)
        await self.async_trigger_rooms("controller performance override")

    async def async_set_target(self, key: str, value: float) -> None:
        self.store.set(key, float(value))
        await self.store.async_save()
        await self.async_trigger_rooms(key)

    async def async_set_heating_period(self, active: bool) -> bool:
        """Manual override; refused while an external entity decides the heating period."""
        if self.heating_period_is_external:
            _LOGGER.warning(
                "Heating period is controlled by %s, ignoring manual switch to %s",
                self.entry.data.get(CONF_HEATING_PERIOD_ENTITY),
                active,
            )
            return False
        self.heating_period.set_active(active)
        await self.store.async_save()
        await self.async_trigger_rooms("heating period")
        return True

    async def _async_update_data(self) -> dict[str, Any]:
        # Components schedule themselves; this only serves manual refreshes.
        result: dict[str, Any] = {
            "heating_period": self.is_heating_period(),
            "performance_factor": self.learning.performance_factor,
            "stability": self.learning.stability,
            "learning_status": self.learning.status,
            "recommended_slope": self.curve.recommended_slope,
            "recommended_level": self.curve.recommended_level,
            "weather_condition": self.weather.report.condition,
            "rooms": {},
        }
        for room_id, room in self.rooms.items():
            result["rooms"][room_id] = {
                "room_name": room.cfg.room_name,
                "enabled": room.rt.enabled,
                "target_setpoint_c": room.rt.target_setpoint_c,
                "control_status": room.rt.control_status,
            }
        return result
