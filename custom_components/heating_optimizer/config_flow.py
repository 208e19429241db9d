from __future__ import annotations

from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.helpers.selector import EntitySelector, EntitySelectorConfig

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
    DEFAULT_BASE_LEARNING_RATE,
    DEFAULT_HEATING_LIMIT_TEMP,
    DEFAULT_HISTORY_HOURS,
    DEFAULT_HYSTERESIS,
    DEFAULT_LEARNING_INTERVAL_MINUTES,
    DEFAULT_LOWER_BOUND,
    DEFAULT_MAX_SETPOINT,
    DEFAULT_MIN_SETPOINT,
    DEFAULT_MIN_SPREAD_FOR_LEARNING,
    DEFAULT_STABILITY_HOURS,
    DEFAULT_UPPER_BOUND,
    DOMAIN,
    FLAT_WINDOW_HOLD,
    FLAT_WINDOW_STABLE,
    OPT_BASE_LEARNING_RATE,
    OPT_FLAT_WINDOW_POLICY,
    OPT_HEATING_LIMIT_TEMP,
    OPT_HISTORY_HOURS,
    OPT_LEARNING_INTERVAL_MIN,
    OPT_LOWER_BOUND,
    OPT_MIN_SPREAD,
    OPT_STABILITY_HOURS,
    OPT_UPPER_BOUND,
    WEATHER_KEYS,
)

DEFAULT_TITLE = "Heating Optimizer"


def _sensor(multiple: bool = False) -> EntitySelector:
    return EntitySelector(EntitySelectorConfig(domain=["sensor"], multiple=multiple))


def _boolean_entity(multiple: bool = False) -> EntitySelector:
    return EntitySelector(
        EntitySelectorConfig(domain=["binary_sensor", "input_boolean", "switch"], multiple=multiple)
    )


def _any_entity() -> EntitySelector:
    return EntitySelector(EntitySelectorConfig(multiple=False))


def room_schema(rd: dict[str, Any] | None = None, with_name: bool = True) -> vol.Schema:
    rd = rd or {}
    fields: dict[Any, Any] = {}
    if with_name:
        fields[vol.Required("room_name")] = str
    fields.update(
        {
            vol.Required("thermostats", default=list(rd.get("thermostats", []))): EntitySelector(
                EntitySelectorConfig(domain=["climate"], multiple=True)
            ),
            vol.Optional("window_sensors", default=list(rd.get("window_sensors", []))): _boolean_entity(True),
            vol.Optional("door_sensor", description={"suggested_value": rd.get("door_sensor")}): _boolean_entity(),
            vol.Optional(
                "humidity_sensor", description={"suggested_value": rd.get("humidity_sensor")}
            ): _sensor(),
            vol.Optional(
                "wall_surface_sensor", description={"suggested_value": rd.get("wall_surface_sensor")}
            ): _sensor(),
            vol.Optional(
                "wall_core_sensor", description={"suggested_value": rd.get("wall_core_sensor")}
            ): _sensor(),
            vol.Optional("use_night_mode", default=bool(rd.get("use_night_mode", True))): bool,
            vol.Optional("enabled", default=bool(rd.get("enabled", True))): bool,
            vol.Optional("hysteresis", default=float(rd.get("hysteresis", DEFAULT_HYSTERESIS))): vol.All(
                vol.Coerce(float), vol.Range(min=0.0, max=3.0)
            ),
            vol.Optional("temperature_offset", default=float(rd.get("temperature_offset", 0.0))): vol.All(
                vol.Coerce(float), vol.Range(min=-5.0, max=5.0)
            ),
            vol.Optional("min_setpoint", default=float(rd.get("min_setpoint", DEFAULT_MIN_SETPOINT))): vol.All(
                vol.Coerce(float), vol.Range(min=5.0, max=25.0)
            ),
            vol.Optional("max_setpoint", default=float(rd.get("max_setpoint", DEFAULT_MAX_SETPOINT))): vol.All(
                vol.Coerce(float), vol.Range(min=15.0, max=30.0)
            ),
        }
    )
    return vol.Schema(fields)


def room_from_input(user_input: dict[str, Any], room_name: str) -> dict[str, Any]:
    return {
        "room_name": room_name,
        "thermostats": list(user_input.get("thermostats", [])),
        "window_sensors": list(user_input.get("window_sensors", [])),
        "door_sensor": user_input.get("door_sensor"),
        "humidity_sensor": user_input.get("humidity_sensor"),
        "wall_surface_sensor": user_input.get("wall_surface_sensor"),
        "wall_core_sensor": user_input.get("wall_core_sensor"),
        "use_night_mode": bool(user_input.get("use_night_mode", True)),
        "enabled": bool(user_input.get("enabled", True)),
        "hysteresis": float(user_input.get("hysteresis", DEFAULT_HYSTERESIS)),
        "temperature_offset": float(user_input.get("temperature_offset", 0.0)),
        "min_setpoint": float(user_input.get("min_setpoint", DEFAULT_MIN_SETPOINT)),
        "max_setpoint": float(user_input.get("max_setpoint", DEFAULT_MAX_SETPOINT)),
    }


def make_room_id(name: str, existing: dict[str, Any]) -> str:
    base = (name or "room").strip().lower().replace(" ", "_")
    room_id = base
    i = 2
    while room_id in existing:
        room_id = f"{base}_{i}"
        i += 1
    return room_id


class HeatOptConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        return HeatOptOptionsFlow()

    async def async_step_user(self, user_input: dict[str, Any] | None = None):
        if user_input is None:
            return self.async_show_form(
                step_id="user",
                data_schema=vol.Schema(
                    {
                        vol.Optional("name", default=DEFAULT_TITLE): str,
                        vol.Required(CONF_SPREAD_SENSOR): _sensor(),
                        vol.Optional(CONF_OUTDOOR_TEMP_SENSOR): _sensor(),
                        vol.Optional(CONF_HEATING_PERIOD_ENTITY): _boolean_entity(),
                        vol.Optional(CONF_PRESENCE_ENTITY): _any_entity(),
                        vol.Optional(CONF_NIGHT_MODE_ENTITY): _boolean_entity(),
                    }
                ),
            )

        title = user_input.get("name") or DEFAULT_TITLE
        data = {
            CONF_SPREAD_SENSOR: user_input[CONF_SPREAD_SENSOR],
            CONF_OUTDOOR_TEMP_SENSOR: user_input.get(CONF_OUTDOOR_TEMP_SENSOR),
            CONF_HEATING_PERIOD_ENTITY: user_input.get(CONF_HEATING_PERIOD_ENTITY),
            CONF_PRESENCE_ENTITY: user_input.get(CONF_PRESENCE_ENTITY),
            CONF_NIGHT_MODE_ENTITY: user_input.get(CONF_NIGHT_MODE_ENTITY),
            CONF_WEATHER: {},
            CONF_ROOMS: {},
        }
        options = {
            OPT_BASE_LEARNING_RATE: DEFAULT_BASE_LEARNING_RATE,
            OPT_LOWER_BOUND: DEFAULT_LOWER_BOUND,
            OPT_UPPER_BOUND: DEFAULT_UPPER_BOUND,
            OPT_MIN_SPREAD: DEFAULT_MIN_SPREAD_FOR_LEARNING,
            OPT_HISTORY_HOURS: DEFAULT_HISTORY_HOURS,
            OPT_STABILITY_HOURS: DEFAULT_STABILITY_HOURS,
            OPT_LEARNING_INTERVAL_MIN: DEFAULT_LEARNING_INTERVAL_MINUTES,
            OPT_FLAT_WINDOW_POLICY: FLAT_WINDOW_STABLE,
            OPT_HEATING_LIMIT_TEMP: DEFAULT_HEATING_LIMIT_TEMP,
        }
        return self.async_create_entry(title=title, data=data, options=options)

    async def async_step_import(self, user_input: dict[str, Any]):
        return await self.async_step_user(user_input)


class HeatOptOptionsFlow(config_entries.OptionsFlow):
    def __init__(self) -> None:
        self._edit_room_id: str | None = None

    def _save_data(self, **changes: Any):
        data = dict(self.config_entry.data)
        data.update(changes)
        self.hass.config_entries.async_update_entry(self.config_entry, data=data)
        # Options stay as they are; the data update already triggers a reload.
        return self.async_create_entry(title="", data=dict(self.config_entry.options))

    async def async_step_init(self, user_input: dict[str, Any] | None = None):
        return await self.async_step_menu()

    async def async_step_menu(self, user_input: dict[str, Any] | None = None):
        rooms = self.config_entry.data.get(CONF_ROOMS, {})
        menu_options: dict[str, str] = {
            "add_room": "Add room",
            "boiler": "Boiler / heating curve",
            "weather": "Weather sources",
            "modify_settings": "Learning settings",
        }
        if rooms:
            menu_options["edit_room"] = "Edit room"
            menu_options["remove_room"] = "Remove room"

        return self.async_show_menu(step_id="menu", menu_options=menu_options)

    async def async_step_add_room(self, user_input: dict[str, Any] | None = None):
        if user_input is None:
            return self.async_show_form(step_id="add_room", data_schema=room_schema())

        rooms = dict(self.config_entry.data.get(CONF_ROOMS, {}))
        room_id = make_room_id(user_input["room_name"], rooms)
        rooms[room_id] = room_from_input(user_input, user_input["room_name"])
        return self._save_data(**{CONF_ROOMS: rooms})

    async def async_step_edit_room(self, user_input: dict[str, Any] | None = None):
        rooms: dict[str, Any] = dict(self.config_entry.data.get(CONF_ROOMS, {}))
        room_options = {room_id: rd.get("room_name", room_id) for room_id, rd in rooms.items()}

        if user_input is None:
            return self.async_show_form(
                step_id="edit_room",
                data_schema=vol.Schema({vol.Required("room_id"): vol.In(room_options)}),
            )

        self._edit_room_id = str(user_input["room_id"])
        return await self.async_step_edit_room_details()

    async def async_step_edit_room_details(self, user_input: dict[str, Any] | None = None):
        rooms: dict[str, Any] = dict(self.config_entry.data.get(CONF_ROOMS, {}))
        room_id = self._edit_room_id
        if not room_id or room_id not in rooms:
            return await self.async_step_menu()

        rd = rooms[room_id]
        if user_input is None:
            return self.async_show_form(
                step_id="edit_room_details", data_schema=room_schema(rd, with_name=False)
            )

        # Keep room_id and room_name stable so entity ids survive the edit.
        rooms[room_id] = room_from_input(user_input, rd["room_name"])
        self._edit_room_id = None
        return self._save_data(**{CONF_ROOMS: rooms})

    async def async_step_remove_room(self, user_input: dict[str, Any] | None = None):
        rooms: dict[str, Any] = dict(self.config_entry.data.get(CONF_ROOMS, {}))
        room_options = {room_id: rd.get("room_name", room_id) for room_id, rd in rooms.items()}

        if user_input is None:
            return self.async_show_form(
                step_id="remove_room",
                data_schema=vol.Schema({vol.Required("room_id"): vol.In(room_options)}),
            )

        rooms.pop(str(user_input["room_id"]), None)
        return self._save_data(**{CONF_ROOMS: rooms})

    async def async_step_boiler(self, user_input: dict[str, Any] | None = None):
        data = self.config_entry.data
        if user_input is None:
            return self.async_show_form(
                step_id="boiler",
                data_schema=vol.Schema(
                    {
                        vol.Optional(
                            CONF_BOILER_OUTDOOR_TEMP,
                            description={"suggested_value": data.get(CONF_BOILER_OUTDOOR_TEMP)},
                        ): _any_entity(),
                        vol.Optional(
                            CONF_BOILER_CURVE, description={"suggested_value": data.get(CONF_BOILER_CURVE)}
                        ): _any_entity(),
                        vol.Optional(
                            CONF_BOILER_ADAPTATION,
                            description={"suggested_value": data.get(CONF_BOILER_ADAPTATION)},
                        ): _any_entity(),
                    }
                ),
            )

        return self._save_data(
            **{
                CONF_BOILER_OUTDOOR_TEMP: user_input.get(CONF_BOILER_OUTDOOR_TEMP),
                CONF_BOILER_CURVE: user_input.get(CONF_BOILER_CURVE),
                CONF_BOILER_ADAPTATION: user_input.get(CONF_BOILER_ADAPTATION),
            }
        )

    async def async_step_weather(self, user_input: dict[str, Any] | None = None):
        current = self.config_entry.data.get(CONF_WEATHER, {}) or {}
        if user_input is None:
            return self.async_show_form(
                step_id="weather",
                data_schema=vol.Schema(
                    {
                        vol.Optional(key, description={"suggested_value": current.get(key)}): _sensor()
                        for key in WEATHER_KEYS
                    }
                ),
            )

        weather = {key: user_input.get(key) for key in WEATHER_KEYS}
        return self._save_data(**{CONF_WEATHER: weather})

    async def async_step_modify_settings(self, user_input: dict[str, Any] | None = None):
        opts = self.config_entry.options
        if user_input is None:
            return self.async_show_form(
                step_id="modify_settings",
                data_schema=vol.Schema(
                    {
                        vol.Optional(
                            OPT_BASE_LEARNING_RATE,
                            default=opts.get(OPT_BASE_LEARNING_RATE, DEFAULT_BASE_LEARNING_RATE),
                        ): vol.All(vol.Coerce(float), vol.Range(min=0.001, max=0.5)),
                        vol.Optional(
                            OPT_LOWER_BOUND, default=opts.get(OPT_LOWER_BOUND, DEFAULT_LOWER_BOUND)
                        ): vol.All(vol.Coerce(float), vol.Range(min=0.0, max=1.0)),
                        vol.Optional(
                            OPT_UPPER_BOUND, default=opts.get(OPT_UPPER_BOUND, DEFAULT_UPPER_BOUND)
                        ): vol.All(vol.Coerce(float), vol.Range(min=1.0, max=3.0)),
                        vol.Optional(
                            OPT_MIN_SPREAD, default=opts.get(OPT_MIN_SPREAD, DEFAULT_MIN_SPREAD_FOR_LEARNING)
                        ): vol.All(vol.Coerce(float), vol.Range(min=0.0, max=10.0)),
                        vol.Optional(
                            OPT_HISTORY_HOURS, default=opts.get(OPT_HISTORY_HOURS, DEFAULT_HISTORY_HOURS)
                        ): vol.All(vol.Coerce(int), vol.Range(min=6, max=168)),
                        vol.Optional(
                            OPT_STABILITY_HOURS, default=opts.get(OPT_STABILITY_HOURS, DEFAULT_STABILITY_HOURS)
                        ): vol.All(vol.Coerce(int), vol.Range(min=1, max=24)),
                        vol.Optional(
                            OPT_LEARNING_INTERVAL_MIN,
                            default=opts.get(OPT_LEARNING_INTERVAL_MIN, DEFAULT_LEARNING_INTERVAL_MINUTES),
                        ): vol.All(vol.Coerce(int), vol.Range(min=5, max=240)),
                        vol.Optional(
                            OPT_FLAT_WINDOW_POLICY, default=opts.get(OPT_FLAT_WINDOW_POLICY, FLAT_WINDOW_STABLE)
                        ): vol.In([FLAT_WINDOW_STABLE, FLAT_WINDOW_HOLD]),
                        vol.Optional(
                            OPT_HEATING_LIMIT_TEMP,
                            default=opts.get(OPT_HEATING_LIMIT_TEMP, DEFAULT_HEATING_LIMIT_TEMP),
                        ): vol.All(vol.Coerce(float), vol.Range(min=5.0, max=25.0)),
                    }
                ),
            )

        return self.async_create_entry(title="", data=user_input)
