from __future__ import annotations

from homeassistant.components.number import NumberEntity, NumberMode
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, KEY_ABSENT_TARGET, KEY_PRESENT_TARGET
from .coordinator import HeatOptCoordinator


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback) -> None:
    coord: HeatOptCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    async_add_entities(
        [
            PerformanceFactorNumber(entry, coord),
            TargetTempNumber(entry, coord, KEY_PRESENT_TARGET, "Present Target Temperature"),
            TargetTempNumber(entry, coord, KEY_ABSENT_TARGET, "Absent Target Temperature"),
        ]
    )


class _BaseNumber(NumberEntity):
    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator) -> None:
        self._entry = entry
        self._coord = coord

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._entry.entry_id)},
            name=self._entry.title,
        )


class PerformanceFactorNumber(_BaseNumber):
    """Manual override of the learned controller performance."""

    _attr_native_step = 0.01
    _attr_mode = NumberMode.BOX
    # The learning cycle may change the value behind our back.
    _attr_should_poll = True

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator) -> None:
        super().__init__(entry, coord)
        cfg = coord.learning.estimator.config
        self._attr_native_min_value = cfg.lower_bound
        self._attr_native_max_value = cfg.upper_bound
        self._attr_unique_id = f"{entry.entry_id}_performance_factor_override"
        self._attr_name = "Controller Performance Override"

    @property
    def native_value(self) -> float:
        return round(self._coord.learning.performance_factor, 3)

    async def async_set_native_value(self, value: float) -> None:
        await self._coord.async_set_performance_factor(value)
        self.async_write_ha_state()


class TargetTempNumber(_BaseNumber):
    _attr_native_min_value = 5.0
    _attr_native_max_value = 28.0
    _attr_native_step = 0.5
    _attr_native_unit_of_measurement = "°C"

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator, key: str, name: str) -> None:
        super().__init__(entry, coord)
        self._key = key
        self._attr_unique_id = f"{entry.entry_id}_{key}"
        self._attr_name = name

    @property
    def native_value(self) -> float:
        if self._key == KEY_PRESENT_TARGET:
            return float(self._coord.present_target)
        return float(self._coord.absent_target)

    async def async_set_native_value(self, value: float) -> None:
        await self._coord.async_set_target(self._key, float(value))
        self.async_write_ha_state()
