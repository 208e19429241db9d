from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity, SensorStateClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.util import dt as dt_util

from .const import (
    ATTR_REGIME,
    ATTR_ROOM,
    DOMAIN,
    KEY_HEATING_PERIOD,
    KEY_LAST_LEARNING_AT,
    KEY_LAST_LEVEL_ANALYSIS,
    KEY_LAST_REGIME,
    KEY_LAST_SLOPE_ANALYSIS,
)
from .coordinator import HeatOptCoordinator


@dataclass(frozen=True)
class _SensorDesc:
    key: str
    name: str
    unit: str | None
    value_fn: Callable[[HeatOptCoordinator], Any]
    device_class: SensorDeviceClass | None = None
    state_class: SensorStateClass | None = None


def _round(v: float | None, ndigits: int) -> float | None:
    return round(v, ndigits) if v is not None else None


def _timestamp(v: str | None):
    return dt_util.parse_datetime(v) if v else None


SENSORS = [
    _SensorDesc(
        "performance_factor",
        "Controller Performance",
        None,
        lambda c: round(c.learning.performance_factor, 3),
        state_class=SensorStateClass.MEASUREMENT,
    ),
    _SensorDesc(
        "stability",
        "System Stability",
        None,
        lambda c: _round(c.learning.stability, 4),
        state_class=SensorStateClass.MEASUREMENT,
    ),
    _SensorDesc("learning_regime", "Learning Regime", None, lambda c: c.store.get(KEY_LAST_REGIME)),
    _SensorDesc("learning_status", "Learning Status", None, lambda c: c.learning.status),
    _SensorDesc(
        "last_learning",
        "Last Learning",
        None,
        lambda c: _timestamp(c.store.get(KEY_LAST_LEARNING_AT)),
        SensorDeviceClass.TIMESTAMP,
    ),
    _SensorDesc("recommended_slope", "Recommended Slope", None, lambda c: c.curve.recommended_slope),
    _SensorDesc("recommended_level", "Recommended Level", "K", lambda c: c.curve.recommended_level),
    _SensorDesc(
        "last_slope_analysis", "Last Slope Analysis", None, lambda c: c.store.get(KEY_LAST_SLOPE_ANALYSIS, "never")
    ),
    _SensorDesc(
        "last_level_analysis", "Last Level Analysis", None, lambda c: c.store.get(KEY_LAST_LEVEL_ANALYSIS, "never")
    ),
    _SensorDesc(
        "daily_average_temp",
        "Daily Average Temperature",
        "°C",
        lambda c: c.heating_period.state.daily_average,
        SensorDeviceClass.TEMPERATURE,
    ),
    _SensorDesc("weather_condition", "Weather Condition", None, lambda c: c.weather.report.condition),
    _SensorDesc("solar_support", "Solar Heating Support", None, lambda c: c.weather.report.solar_support),
    _SensorDesc("wind_heat_loss", "Wind Heat Loss", None, lambda c: c.weather.report.wind_heat_loss),
    _SensorDesc("weather_trend_short", "Weather Trend Short", None, lambda c: c.weather.report.trend_short),
    _SensorDesc("weather_trend_long", "Weather Trend Long", None, lambda c: c.weather.report.trend_long),
]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback) -> None:
    coord: HeatOptCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]

    ents: list[SensorEntity] = [HeatOptSensor(entry, coord, sd) for sd in SENSORS]
    for room_id in coord.rooms:
        ents.append(RoomSetpointSensor(entry, coord, room_id))
        ents.append(RoomStatusSensor(entry, coord, room_id))
    async_add_entities(ents)


class _BaseSensor(SensorEntity):
    _attr_has_entity_name = True
    # Components update themselves without pushing state; let HA poll.
    _attr_should_poll = True

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator) -> None:
        self._entry = entry
        self._coord = coord

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._entry.entry_id)},
            name=self._entry.title,
        )

    async def async_update(self) -> None:
        return


class HeatOptSensor(_BaseSensor):
    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator, sd: _SensorDesc) -> None:
        super().__init__(entry, coord)
        self._sd = sd
        self._attr_unique_id = f"{entry.entry_id}_{sd.key}"
        self._attr_name = sd.name
        self._attr_native_unit_of_measurement = sd.unit
        self._attr_device_class = sd.device_class
        self._attr_state_class = sd.state_class

    @property
    def native_value(self) -> Any:
        return self._sd.value_fn(self._coord)

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        if self._sd.key == "performance_factor":
            res = self._coord.learning.last_result
            return {
                ATTR_REGIME: self._coord.store.get(KEY_LAST_REGIME),
                "window_size": self._coord.learning.window_size,
                "window_mean": _round(res.mean, 2) if res else None,
                "window_variance": _round(res.variance, 4) if res else None,
                "flat_window": res.flat_window if res else None,
            }
        if self._sd.key == "daily_average_temp":
            hp = self._coord.store.get(KEY_HEATING_PERIOD) or {}
            return {
                "sample_count": hp.get("sample_count", 0),
                "last_reset": hp.get("last_reset", "never"),
            }
        if self._sd.key == "recommended_slope":
            return {"average_spread": _round(self._coord.curve.avg_spread, 2)}
        return None


class RoomSetpointSensor(_BaseSensor):
    _attr_device_class = SensorDeviceClass.TEMPERATURE
    _attr_native_unit_of_measurement = "°C"

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator, room_id: str) -> None:
        super().__init__(entry, coord)
        self._room_id = room_id
        room = coord.rooms[room_id]
        self._attr_unique_id = f"{entry.entry_id}_{room_id}_target_setpoint"
        self._attr_name = f"{room.cfg.room_name} Target Setpoint"

    @property
    def native_value(self) -> float | None:
        return self._coord.rooms[self._room_id].rt.target_setpoint_c

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        rt = self._coord.rooms[self._room_id].rt
        return {ATTR_ROOM: self._room_id, "special_case": rt.special_case, **rt.offsets}


class RoomStatusSensor(_BaseSensor):
    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator, room_id: str) -> None:
        super().__init__(entry, coord)
        self._room_id = room_id
        room = coord.rooms[room_id]
        self._attr_unique_id = f"{entry.entry_id}_{room_id}_status"
        self._attr_name = f"{room.cfg.room_name} Status"

    @property
    def native_value(self) -> str | None:
        return self._coord.rooms[self._room_id].rt.control_status

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        rt = self._coord.rooms[self._room_id].rt
        return {
            ATTR_ROOM: self._room_id,
            "last_trigger": rt.last_trigger,
            "last_update": rt.last_update.isoformat() if rt.last_update else None,
        }
