"""Shared fixtures for heating optimizer tests."""
import pytest

from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.heating_optimizer.const import (
    CONF_OUTDOOR_TEMP_SENSOR,
    CONF_ROOMS,
    CONF_SPREAD_SENSOR,
    CONF_WEATHER,
    DOMAIN,
)


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    """Load custom_components/ in every test."""
    yield


@pytest.fixture
def entry_data():
    return {
        CONF_SPREAD_SENSOR: "sensor.heating_spread",
        CONF_OUTDOOR_TEMP_SENSOR: "sensor.outdoor_temp",
        CONF_WEATHER: {},
        CONF_ROOMS: {
            "living_room": {
                "room_name": "Living Room",
                "thermostats": ["climate.living_room"],
                "window_sensors": ["binary_sensor.living_window"],
            }
        },
    }


@pytest.fixture
def mock_entry(entry_data):
    return MockConfigEntry(
        domain=DOMAIN,
        title="Heating Optimizer",
        data=entry_data,
        options={},
        unique_id="heating_optimizer_test",
    )
