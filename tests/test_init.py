"""Setup, entities and unload of the integration."""
from homeassistant.config_entries import ConfigEntryState
from homeassistant.helpers import entity_registry as er
from homeassistant.helpers.entity_component import async_update_entity

from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.heating_optimizer.const import CONF_HEATING_PERIOD_ENTITY, DOMAIN


def _entity_id(hass, platform, unique_id):
    return er.async_get(hass).async_get_entity_id(platform, DOMAIN, unique_id)


async def _setup(hass, entry):
    entry.add_to_hass(hass)
    assert await hass.config_entries.async_setup(entry.entry_id)
    await hass.async_block_till_done()
    return hass.data[DOMAIN][entry.entry_id]["coordinator"]


async def test_setup_and_unload(hass, mock_entry, hass_storage):
    coord = await _setup(hass, mock_entry)
    assert mock_entry.state is ConfigEntryState.LOADED

    perf = _entity_id(hass, "sensor", f"{mock_entry.entry_id}_performance_factor")
    assert hass.states.get(perf).state == "1.0"

    setpoint = _entity_id(hass, "sensor", f"{mock_entry.entry_id}_living_room_target_setpoint")
    assert setpoint is not None
    assert "living_room" in coord.rooms
    # heating period starts inactive, so the room sits at frost protection
    assert coord.rooms["living_room"].rt.target_setpoint_c == 4.5
    status = _entity_id(hass, "sensor", f"{mock_entry.entry_id}_living_room_status")
    await async_update_entity(hass, status)
    assert hass.states.get(status).attributes["last_update"] is not None

    await coord.async_set_performance_factor(1.5)
    assert await hass.config_entries.async_unload(mock_entry.entry_id)
    await hass.async_block_till_done()

    assert mock_entry.state is ConfigEntryState.NOT_LOADED
    assert mock_entry.entry_id not in hass.data[DOMAIN]
    saved = hass_storage[f"{DOMAIN}.{mock_entry.entry_id}"]["data"]
    assert saved["performance_factor"] == 1.5


async def test_performance_override_number(hass, mock_entry):
    coord = await _setup(hass, mock_entry)
    number = _entity_id(hass, "number", f"{mock_entry.entry_id}_performance_factor_override")

    await hass.services.async_call("number", "set_value", {"entity_id": number, "value": 1.25}, blocking=True)
    assert coord.learning.performance_factor == 1.25

    # out-of-range values are clamped to the estimator bounds
    await coord.async_set_performance_factor(5.0)
    assert coord.learning.performance_factor == 1.7

    await hass.config_entries.async_unload(mock_entry.entry_id)
    await hass.async_block_till_done()


async def test_heating_period_switch(hass, mock_entry):
    coord = await _setup(hass, mock_entry)
    switch = _entity_id(hass, "switch", f"{mock_entry.entry_id}_heating_period")
    assert hass.states.get(switch).state == "off"

    await hass.services.async_call("switch", "turn_on", {"entity_id": switch}, blocking=True)
    assert coord.is_heating_period()
    assert coord.store.get("heating_period")["heating_period_active"] is True

    await hass.config_entries.async_unload(mock_entry.entry_id)
    await hass.async_block_till_done()


async def test_external_heating_period_entity_wins(hass, entry_data):
    entry_data[CONF_HEATING_PERIOD_ENTITY] = "input_boolean.heating_season"
    entry = MockConfigEntry(domain=DOMAIN, title="Heating Optimizer", data=entry_data, options={})
    hass.states.async_set("input_boolean.heating_season", "on")

    coord = await _setup(hass, entry)
    assert coord.is_heating_period()
    assert not coord.heating_period.is_active

    hass.states.async_set("input_boolean.heating_season", "off")
    assert not coord.is_heating_period()

    # the manual switch is refused while the external entity decides
    switch = _entity_id(hass, "switch", f"{entry.entry_id}_heating_period")
    await hass.services.async_call("switch", "turn_on", {"entity_id": switch}, blocking=True)
    assert not coord.is_heating_period()
    assert not coord.heating_period.is_active
    assert hass.states.get(switch).state == "off"
    assert hass.states.get(switch).attributes["source"] == "external"

    # an unavailable external entity hands control back to the tracker
    hass.states.async_set("input_boolean.heating_season", "unavailable")
    assert await coord.async_set_heating_period(True)
    assert coord.is_heating_period()

    await hass.config_entries.async_unload(entry.entry_id)
    await hass.async_block_till_done()


async def test_set_target_persists(hass, mock_entry):
    coord = await _setup(hass, mock_entry)
    await coord.async_set_target("present_target", 22.5)
    assert coord.present_target == 22.5
    assert coord.absent_target == 16.0

    await hass.config_entries.async_unload(mock_entry.entry_id)
    await hass.async_block_till_done()
