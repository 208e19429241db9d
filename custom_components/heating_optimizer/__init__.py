"""Heating optimizer: learns how well the heating controller performs and
drives room thermostats from it."""

from __future__ import annotations

import logging
from datetime import timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.event import async_track_time_interval

from .const import DOMAIN, PERSIST_INTERVAL_MINUTES, PLATFORMS
from .coordinator import HeatOptCoordinator
from .storage import LearnedStore

_LOGGER = logging.getLogger(__name__)


async def async_setup(hass: HomeAssistant, config: dict) -> bool:
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    store = LearnedStore(hass, entry.entry_id)
    await store.async_load()

    coord = HeatOptCoordinator(hass, entry, store)
    await coord.async_configure_rooms()
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {"coordinator": coord, "store": store}

    # Entities must exist before the first cycles publish into them.
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await coord.async_start()
    _LOGGER.debug("Started %s with %d room(s)", entry.title, len(coord.rooms))

    async def _persist(_now) -> None:
        await coord.async_persist_learning()

    entry.async_on_unload(
        async_track_time_interval(hass, _persist, timedelta(minutes=PERSIST_INTERVAL_MINUTES))
    )
    entry.async_on_unload(entry.add_update_listener(_async_reload_entry))
    return True


async def _async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not unloaded:
        return False

    data = hass.data[DOMAIN].pop(entry.entry_id)
    coord: HeatOptCoordinator = data["coordinator"]
    await coord.async_stop()
    await coord.async_persist_learning()
    return True
