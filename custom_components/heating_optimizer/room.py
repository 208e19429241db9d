from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from homeassistant.core import Event, HomeAssistant, callback
from homeassistant.helpers.event import async_track_state_change_event, async_track_time_interval
from homeassistant.util import dt as dt_util

from .const import (
    COMFORT_OFFSET,
    DEFAULT_ABSENT_TARGET,
    DEFAULT_CURVE_FACTOR,
    DEFAULT_FROST_PROTECTION_TEMP,
    DEFAULT_HUMIDITY_FACTOR,
    DEFAULT_HYSTERESIS,
    DEFAULT_MAX_SETPOINT,
    DEFAULT_MIN_SETPOINT,
    DEFAULT_OPTIMAL_HUMIDITY,
    DEFAULT_OUTDOOR_NEUTRAL_TEMP,
    DEFAULT_PRESENT_TARGET,
    DEFAULT_WINDOW_OPEN_TEMP,
    DEW_POINT_MARGIN,
    HEAT_LOAD_FACTOR,
    HUMIDITY_TRIGGER_THRESHOLD,
    MAX_WALL_DIFFERENCE,
    MOLD_PROTECTION_OFFSET,
    OUTDOOR_TEMP_TRIGGER_THRESHOLD,
    ROOM_COOLDOWN_SECONDS,
    ROOM_TEMP_TRIGGER_THRESHOLD,
)
from .cooldown import CooldownGuard
from .state_helpers import get_state, read_bool, read_float, safe_float

_LOGGER = logging.getLogger(__name__)

# Magnus formula coefficients over water (base-10 form)
_MAGNUS_A = 7.5
_MAGNUS_B = 237.3


def dew_point(temp_c: float, humidity_pct: float) -> float:
    sdd = (_MAGNUS_A * temp_c) / (_MAGNUS_B + temp_c) + math.log10(humidity_pct / 100.0)
    return (_MAGNUS_B * sdd) / (_MAGNUS_A - sdd)


def round_half(value: float) -> float:
    """Round to 0.5°C steps (halves round up), as most thermostats expect."""
    return math.floor(value * 2.0 + 0.5) / 2.0


@dataclass
class RoomSettings:
    hysteresis: float = DEFAULT_HYSTERESIS
    window_open_temp: float = DEFAULT_WINDOW_OPEN_TEMP
    frost_protection_temp: float = DEFAULT_FROST_PROTECTION_TEMP
    temperature_offset: float = 0.0
    min_setpoint: float = DEFAULT_MIN_SETPOINT
    max_setpoint: float = DEFAULT_MAX_SETPOINT
    use_night_mode: bool = True
    use_door_sensor: bool = False
    outdoor_neutral_temp: float = DEFAULT_OUTDOOR_NEUTRAL_TEMP
    curve_factor: float = DEFAULT_CURVE_FACTOR
    optimal_humidity: float = DEFAULT_OPTIMAL_HUMIDITY
    humidity_factor: float = DEFAULT_HUMIDITY_FACTOR
    mold_protection: bool = True
    comfort: bool = True
    heat_load: bool = True


@dataclass
class RoomInputs:
    heating_period: bool
    present: bool
    night_mode: bool = False
    window_open: bool = False
    door_closed: bool | None = None
    outdoor_temp: float | None = None
    humidity: float | None = None
    wall_surface_temp: float | None = None
    wall_core_temp: float | None = None
    present_target: float | None = None
    absent_target: float | None = None


@dataclass
class RoomSetpoint:
    setpoint: float
    special_case: bool
    offsets: dict[str, float] = field(default_factory=dict)


def compute_room_setpoint(
    inputs: RoomInputs, settings: RoomSettings, performance_factor: float = 1.0
) -> RoomSetpoint:
    """Target temperature for one room.

    Window-open and heating-period-off are special cases: they bypass every
    dynamic adjustment and the min/max clamp.
    """
    present_target = inputs.present_target or DEFAULT_PRESENT_TARGET
    absent_target = inputs.absent_target or DEFAULT_ABSENT_TARGET
    if settings.use_night_mode and inputs.night_mode:
        present_target = absent_target

    offsets: dict[str, float] = {}

    if not inputs.heating_period:
        return RoomSetpoint(round_half(settings.frost_protection_temp), True, offsets)
    if inputs.window_open:
        return RoomSetpoint(round_half(settings.window_open_temp), True, offsets)

    if inputs.present:
        door_open = settings.use_door_sensor and inputs.door_closed is not True
        sp = absent_target if door_open else present_target
    else:
        sp = absent_target

    outdoor_ok = inputs.outdoor_temp is not None and -30.0 < inputs.outdoor_temp < 60.0
    humidity_ok = inputs.humidity is not None and 0.0 <= inputs.humidity <= 100.0
    surface_ok = inputs.wall_surface_temp is not None and inputs.wall_surface_temp < 90.0
    core_ok = inputs.wall_core_temp is not None and inputs.wall_core_temp < 90.0

    # Weather compensation, scaled by the learned controller performance
    if outdoor_ok and inputs.outdoor_temp < settings.outdoor_neutral_temp:
        delta = (settings.outdoor_neutral_temp - inputs.outdoor_temp) * settings.curve_factor * performance_factor
        sp += delta
        offsets["weather"] = delta

    if humidity_ok:
        delta = (settings.optimal_humidity - inputs.humidity) * settings.humidity_factor
        sp += delta
        offsets["humidity"] = delta

    # log(0) is undefined, so bone-dry readings skip the dew point check
    if settings.mold_protection and humidity_ok and inputs.humidity > 0.0 and surface_ok:
        if inputs.wall_surface_temp < dew_point(sp, inputs.humidity) + DEW_POINT_MARGIN:
            sp += MOLD_PROTECTION_OFFSET
            offsets["mold"] = MOLD_PROTECTION_OFFSET

    if settings.comfort and surface_ok and sp - inputs.wall_surface_temp > MAX_WALL_DIFFERENCE:
        sp += COMFORT_OFFSET
        offsets["comfort"] = COMFORT_OFFSET

    # Core warmer than surface: the wall is absorbing heat, fill the buffer.
    if settings.heat_load and surface_ok and core_ok:
        diff = inputs.wall_core_temp - inputs.wall_surface_temp
        if diff > 0:
            sp += diff * HEAT_LOAD_FACTOR
            offsets["heat_load"] = diff * HEAT_LOAD_FACTOR

    sp += settings.temperature_offset
    sp = max(settings.min_setpoint, min(settings.max_setpoint, sp))
    return RoomSetpoint(round_half(sp), False, offsets)


@dataclass
class RoomConfig:
    room_name: str
    thermostats: list[str]
    window_sensors: list[str] = field(default_factory=list)
    door_sensor: str | None = None
    humidity_sensor: str | None = None
    wall_surface_sensor: str | None = None
    wall_core_sensor: str | None = None


@dataclass
class RoomRuntime:
    enabled: bool = True
    settings: RoomSettings = field(default_factory=RoomSettings)

    # telemetry
    target_setpoint_c: float | None = None
    special_case: bool = False
    offsets: dict[str, float] = field(default_factory=dict)
    control_status: str | None = None
    last_trigger: str | None = None
    last_update: datetime | None = None


@dataclass
class SharedInputs:
    """Global inputs every room reads from the coordinator."""

    heating_period_active: Callable[[], bool]
    performance_factor: Callable[[], float]
    present_target: Callable[[], float]
    absent_target: Callable[[], float]
    presence_entity: str | None = None
    night_mode_entity: str | None = None
    outdoor_temp_sensor: str | None = None


class RoomHeatingController:
    def __init__(
        self,
        hass: HomeAssistant,
        room_id: str,
        cfg: RoomConfig,
        runtime: RoomRuntime,
        shared: SharedInputs,
    ) -> None:
        self.hass = hass
        self.room_id = room_id
        self.cfg = cfg
        self.rt = runtime
        self.shared = shared
        self._cooldown = CooldownGuard(timedelta(seconds=ROOM_COOLDOWN_SECONDS))
        self._unsubs: list = []

    async def async_start(self, safety_interval: timedelta) -> None:
        async def _run(trigger: str) -> None:
            if not self._cooldown.try_acquire(dt_util.utcnow()):
                return
            self.rt.last_trigger = trigger
            _LOGGER.debug("[%s] Trigger detected -> %s", self.cfg.room_name, trigger)
            try:
                await self.async_update_and_control()
            except Exception as err:
                _LOGGER.exception("[%s] Room update failed: %s", self.cfg.room_name, err)

        @callback
        def _on_change(event: Event) -> None:
            self.hass.async_create_task(_run(event.data.get("entity_id", "state change")))

        @callback
        def _on_threshold_change(event: Event) -> None:
            if self._exceeds_threshold(event):
                self.hass.async_create_task(_run(event.data.get("entity_id", "sensor change")))

        immediate = [
            e
            for e in (
                self.shared.presence_entity,
                self.shared.night_mode_entity,
                *self.cfg.window_sensors,
                self.cfg.door_sensor if self.rt.settings.use_door_sensor else None,
            )
            if e
        ]
        if immediate:
            self._unsubs.append(async_track_state_change_event(self.hass, immediate, _on_change))

        thresholded = [
            e
            for e in (*self.cfg.thermostats, self.cfg.humidity_sensor, self.shared.outdoor_temp_sensor)
            if e
        ]
        if thresholded:
            self._unsubs.append(
                async_track_state_change_event(self.hass, thresholded, _on_threshold_change)
            )

        async def _periodic(_now) -> None:
            await _run("periodic")

        self._unsubs.append(async_track_time_interval(self.hass, _periodic, safety_interval))
        self.hass.async_create_task(_run("initial start"))

    async def async_stop(self) -> None:
        while self._unsubs:
            self._unsubs.pop()()

    async def async_trigger(self, reason: str) -> None:
        """Recompute on a global input change (heating period, performance factor, targets)."""
        if not self._cooldown.try_acquire(dt_util.utcnow()):
            return
        self.rt.last_trigger = reason
        await self.async_update_and_control()

    def _exceeds_threshold(self, event: Event) -> bool:
        entity_id = event.data.get("entity_id")
        new_state = event.data.get("new_state")
        old_state = event.data.get("old_state")
        if new_state is None or old_state is None:
            return False

        if entity_id in self.cfg.thermostats:
            new_v = safe_float(new_state.attributes.get("current_temperature"))
            old_v = safe_float(old_state.attributes.get("current_temperature"))
            threshold = ROOM_TEMP_TRIGGER_THRESHOLD
        else:
            new_v = safe_float(new_state.state)
            old_v = safe_float(old_state.state)
            if entity_id == self.cfg.humidity_sensor:
                threshold = HUMIDITY_TRIGGER_THRESHOLD
            else:
                threshold = OUTDOOR_TEMP_TRIGGER_THRESHOLD
        if new_v is None or old_v is None:
            return False
        return abs(new_v - old_v) >= threshold

    def _collect_inputs(self) -> RoomInputs:
        window_open = any(read_bool(self.hass, w) is True for w in self.cfg.window_sensors)
        door_open = read_bool(self.hass, self.cfg.door_sensor)
        return RoomInputs(
            heating_period=self.shared.heating_period_active(),
            # Without a presence entity the house is assumed occupied
            present=(
                True
                if not self.shared.presence_entity
                else bool(read_bool(self.hass, self.shared.presence_entity))
            ),
            night_mode=bool(read_bool(self.hass, self.shared.night_mode_entity)),
            window_open=window_open,
            door_closed=None if door_open is None else not door_open,
            outdoor_temp=read_float(self.hass, self.shared.outdoor_temp_sensor),
            humidity=read_float(self.hass, self.cfg.humidity_sensor),
            wall_surface_temp=read_float(self.hass, self.cfg.wall_surface_sensor),
            wall_core_temp=read_float(self.hass, self.cfg.wall_core_sensor),
            present_target=self.shared.present_target(),
            absent_target=self.shared.absent_target(),
        )

    def _current_target(self, thermostat: str) -> float:
        st = get_state(self.hass, thermostat)
        if not st:
            return DEFAULT_FROST_PROTECTION_TEMP
        v = safe_float(st.attributes.get("temperature"))
        return v if v is not None else DEFAULT_FROST_PROTECTION_TEMP

    async def async_update_and_control(self) -> None:
        factor = self.shared.performance_factor()
        inputs = self._collect_inputs()
        result = compute_room_setpoint(inputs, self.rt.settings, factor)

        self.rt.target_setpoint_c = result.setpoint
        self.rt.special_case = result.special_case
        self.rt.offsets = {k: round(v, 2) for k, v in result.offsets.items()}
        self.rt.last_update = dt_util.utcnow()

        if not self.rt.enabled:
            self.rt.control_status = "disabled"
            return

        status = "no_change"
        for thermostat in self.cfg.thermostats:
            current = self._current_target(thermostat)
            if abs(result.setpoint - current) <= self.rt.settings.hysteresis:
                _LOGGER.debug(
                    "[%s] No change (is=%.1f°C ~ target=%.1f°C, hyst=%.1f°C, perf=%.2f)",
                    self.cfg.room_name,
                    current,
                    result.setpoint,
                    self.rt.settings.hysteresis,
                    factor,
                )
                continue
            try:
                await self.hass.services.async_call(
                    "climate",
                    "set_temperature",
                    {"entity_id": thermostat, "temperature": result.setpoint},
                    blocking=False,
                )
            except Exception as err:
                _LOGGER.error(
                    "[%s] Failed to set temperature for %s to %.1f°C: %s",
                    self.cfg.room_name,
                    thermostat,
                    result.setpoint,
                    err,
                )
                status = "apply_failed"
                continue
            if status != "apply_failed":
                status = "applied"
            _LOGGER.info(
                "[%s] Setting %s from %.1f°C to %.1f°C (heating=%s, present=%s, window=%s, offsets=%s, perf=%.2f)",
                self.cfg.room_name,
                thermostat,
                current,
                result.setpoint,
                inputs.heating_period,
                inputs.present,
                inputs.window_open,
                self.rt.offsets,
                factor,
            )
        self.rt.control_status = status
