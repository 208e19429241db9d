from __future__ import annotations

DOMAIN = "heating_optimizer"
PLATFORMS: list[str] = ["sensor", "number", "switch"]

# Entry data keys
CONF_SPREAD_SENSOR = "spread_sensor"
CONF_OUTDOOR_TEMP_SENSOR = "outdoor_temp_sensor"
CONF_HEATING_PERIOD_ENTITY = "heating_period_entity"
CONF_PRESENCE_ENTITY = "presence_entity"
CONF_NIGHT_MODE_ENTITY = "night_mode_entity"
CONF_BOILER_OUTDOOR_TEMP = "boiler_outdoor_temp_entity"
CONF_BOILER_CURVE = "boiler_curve_entity"
CONF_BOILER_ADAPTATION = "boiler_adaptation_entity"
CONF_WEATHER = "weather"
CONF_ROOMS = "rooms"

# Weather entity keys (inside entry.data["weather"])
WEATHER_SOLAR = "solar_radiation"
WEATHER_WIND = "wind_speed"
WEATHER_TEMP = "temperature"
WEATHER_RAIN = "daily_rain"
WEATHER_KEYS = (WEATHER_SOLAR, WEATHER_WIND, WEATHER_TEMP, WEATHER_RAIN)

# Options keys
OPT_BASE_LEARNING_RATE = "base_learning_rate"
OPT_LOWER_BOUND = "lower_bound"
OPT_UPPER_BOUND = "upper_bound"
OPT_MIN_SPREAD = "min_spread_for_learning"
OPT_HISTORY_HOURS = "history_hours"
OPT_STABILITY_HOURS = "stability_hours"
OPT_LEARNING_INTERVAL_MIN = "learning_interval_minutes"
OPT_FLAT_WINDOW_POLICY = "flat_window_policy"
OPT_HEATING_LIMIT_TEMP = "heating_limit_temp"

# Learning defaults
DEFAULT_PERFORMANCE_FACTOR = 1.0
DEFAULT_BASE_LEARNING_RATE = 0.02
DEFAULT_LOWER_BOUND = 0.3
DEFAULT_UPPER_BOUND = 1.7
DEFAULT_MIN_SPREAD_FOR_LEARNING = 2.0  # below this the boiler is probably inactive
DEFAULT_HISTORY_HOURS = 48
DEFAULT_STABILITY_HOURS = 3
DEFAULT_LEARNING_INTERVAL_MINUTES = 30
LEARNING_COOLDOWN_SECONDS = 300
LEARNING_MIN_SAMPLES = 3

# Regime thresholds (spread in K, stability in 0..1)
LOW_MEAN_THRESHOLD = 7.0
LOW_STABILITY_THRESHOLD = 0.4
AGGRESSIVE_MULTIPLIER = 2.0
HIGH_MEAN_THRESHOLD = 16.0
HIGH_STABILITY_THRESHOLD = 0.6
DAMPING_FACTOR = 0.95
OPTIMAL_LOW = 8.0
OPTIMAL_HIGH = 12.0
OPTIMAL_STABILITY_THRESHOLD = 0.7
CONVERGENCE_WEIGHT = 0.99

FLAT_WINDOW_STABLE = "stable"
FLAT_WINDOW_HOLD = "hold"

# Heating curve analysis
CURVE_ANALYSIS_INTERVAL_HOURS = 4
CURVE_ANALYSE_HOURS = 6
CURVE_MIN_SAMPLES = 5
CURVE_SPREAD_FLOOR = 1.0  # pump is off below this
SLOPE_ANALYSIS_MAX_TEMP = 0.0
LEVEL_ANALYSIS_MIN_TEMP = 5.0
UNDERSUPPLY_SPREAD = 15.0
OVERSUPPLY_SPREAD = 5.0
ADAPTATION_ACTIVE_THRESHOLD = 0.1
SLOPE_STEP = 0.1
DEFAULT_RECOMMENDED_SLOPE = 1.2
DEFAULT_RECOMMENDED_LEVEL = 0.0

# Heating period
DEFAULT_HEATING_LIMIT_TEMP = 18.0
HEATING_PERIOD_RESET_HOUR = 2
HEATING_PERIOD_RESET_MINUTE = 50
HEATING_SEASON_MONTHS = frozenset({10, 11, 12, 1, 2, 3, 4, 5})

# Room control defaults
DEFAULT_PRESENT_TARGET = 21.0
DEFAULT_ABSENT_TARGET = 16.0
DEFAULT_HYSTERESIS = 0.5
DEFAULT_WINDOW_OPEN_TEMP = 12.0
DEFAULT_FROST_PROTECTION_TEMP = 4.5
DEFAULT_MIN_SETPOINT = 16.0
DEFAULT_MAX_SETPOINT = 24.0
DEFAULT_OUTDOOR_NEUTRAL_TEMP = 12.0
DEFAULT_CURVE_FACTOR = 0.25
DEFAULT_OPTIMAL_HUMIDITY = 50.0
DEFAULT_HUMIDITY_FACTOR = 0.02
DEW_POINT_MARGIN = 2.5
MOLD_PROTECTION_OFFSET = 0.5
MAX_WALL_DIFFERENCE = 3.0
COMFORT_OFFSET = 0.5
HEAT_LOAD_FACTOR = 0.1
ROOM_COOLDOWN_SECONDS = 2
ROOM_SAFETY_INTERVAL_MINUTES = 15
ROOM_TEMP_TRIGGER_THRESHOLD = 0.3
HUMIDITY_TRIGGER_THRESHOLD = 5.0
OUTDOOR_TEMP_TRIGGER_THRESHOLD = 1.0

# Weather analysis
WEATHER_INTERVAL_MINUTES = 15
SOLAR_FULL_SUPPORT_W_M2 = 800.0  # a very sunny day
WIND_DOUBLE_LOSS_KMH = 35.0

# Persistence
PERSIST_INTERVAL_MINUTES = 10

# Store keys
KEY_PERFORMANCE_FACTOR = "performance_factor"
KEY_STABILITY = "stability"
KEY_LAST_REGIME = "last_regime"
KEY_LAST_LEARNING_AT = "last_learning_at"
KEY_RECOMMENDED_SLOPE = "recommended_slope"
KEY_RECOMMENDED_LEVEL = "recommended_level"
KEY_LAST_SLOPE_ANALYSIS = "last_slope_analysis"
KEY_LAST_LEVEL_ANALYSIS = "last_level_analysis"
KEY_HEATING_PERIOD = "heating_period"
KEY_PRESENT_TARGET = "present_target"
KEY_ABSENT_TARGET = "absent_target"

ATTR_ROOM = "room"
ATTR_REGIME = "regime"
