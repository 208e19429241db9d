from __future__ import annotations

from homeassistant.components.switch import SwitchEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import ATTR_ROOM, DOMAIN
from .coordinator import HeatOptCoordinator


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback) -> None:
    coord: HeatOptCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    ents: list[SwitchEntity] = [HeatingPeriodSwitch(entry, coord)]
    for room_id in coord.rooms:
        ents.append(RoomEnableSwitch(entry, coord, room_id))
    async_add_entities(ents)


class _BaseSwitch(SwitchEntity):
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


class HeatingPeriodSwitch(_BaseSwitch):
    # Flipped by the daily evaluation or an external heating period entity.
    _attr_should_poll = True

    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator) -> None:
        super().__init__(entry, coord)
        self._attr_unique_id = f"{entry.entry_id}_heating_period"
        self._attr_name = "Heating Period"

    @property
    def is_on(self) -> bool:
        return self._coord.is_heating_period()

    @property
    def extra_state_attributes(self) -> dict[str, str]:
        return {"source": "external" if self._coord.heating_period_is_external else "internal"}

    async def async_turn_on(self, **kwargs) -> None:
        await self._coord.async_set_heating_period(True)
        self.async_write_ha_state()

    async def async_turn_off(self, **kwargs) -> None:
        await self._coord.async_set_heating_period(False)
        self.async_write_ha_state()


class RoomEnableSwitch(_BaseSwitch):
    def __init__(self, entry: ConfigEntry, coord: HeatOptCoordinator, room_id: str) -> None:
        super().__init__(entry, coord)
        self._room_id = room_id

        room = coord.rooms[room_id]
        self._attr_unique_id = f"{entry.entry_id}_{room_id}_enable"
        self._attr_name = f"{room.cfg.room_name} Enable"
        self._attr_extra_state_attributes = {ATTR_ROOM: room_id}

    @property
    def is_on(self) -> bool:
        return bool(self._coord.rooms[self._room_id].rt.enabled)

    async def async_turn_on(self, **kwargs) -> None:
        self._coord.rooms[self._room_id].rt.enabled = True
        self.async_write_ha_state()

    async def async_turn_off(self, **kwargs) -> None:
        self._coord.rooms[self._room_id].rt.enabled = False
        self.async_write_ha_state()
