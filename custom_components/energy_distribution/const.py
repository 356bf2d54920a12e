"""Constants for the Energy Distribution Planner integration."""

DOMAIN = "energy_distribution"

# Config entry data keys (immutable after creation)
CONF_NAME = "name"
CONF_NORDPOOL_SENSOR = "nordpool_sensor"
CONF_NORDPOOL_TYPE = "nordpool_type"
CONF_FORECAST_SENSOR = "forecast_sensor"
CONF_FORECAST_UNIT = "forecast_unit"
CONF_BATTERY_SOC_SENSOR = "battery_soc_sensor"
CONF_DHW_SETPOINT_ENTITY = "dhw_setpoint_entity"
CONF_HEATING_SETPOINT_ENTITY = "heating_setpoint_entity"

# Nordpool sensor types
NORDPOOL_TYPE_HACS = "hacs"
NORDPOOL_TYPE_NATIVE = "native"

# Forecast units
FORECAST_UNIT_WH = "Wh"
FORECAST_UNIT_KWH = "kWh"

# Options keys (changeable via options flow)
CONF_NIGHT_START_HOUR = "night_start_hour"
CONF_NIGHT_END_HOUR = "night_end_hour"
CONF_STORAGE_GUARD_DAY = "storage_guard_day"
CONF_STORAGE_GUARD_NIGHT = "storage_guard_night"
CONF_GUARD_BONUS = "guard_bonus"
CONF_CHEAP_CUTOFF = "cheap_cutoff"
CONF_STORAGE_PENALTY = "storage_penalty"
CONF_HOURLY_SUFFICIENCY = "hourly_sufficiency_kwh"
CONF_APPLY_PLANS = "apply_plans"
CONF_TARGET_ENERGY = "target_energy_kwh"
CONF_CHARGE_RATE = "charge_rate_kw"
CONF_SUFFICIENCY_THRESHOLD = "sufficiency_threshold_kwh"
CONF_DHW_SETPOINT_DELTA = "dhw_setpoint_delta"
CONF_DHW_DURATION = "dhw_duration_minutes"
CONF_HEATING_SETPOINT_DELTA = "heating_setpoint_delta"
CONF_HEATING_DURATION = "heating_duration_minutes"
CONF_DEFAULT_STORAGE_SOC = "default_storage_soc"

# Defaults
DEFAULT_NIGHT_START_HOUR = 22
DEFAULT_NIGHT_END_HOUR = 6
DEFAULT_STORAGE_GUARD_DAY = 50.0
DEFAULT_STORAGE_GUARD_NIGHT = 30.0
DEFAULT_GUARD_BONUS = 0.02
DEFAULT_CHEAP_CUTOFF = 0.16
DEFAULT_STORAGE_PENALTY = 0.05
DEFAULT_HOURLY_SUFFICIENCY = 1.5
DEFAULT_APPLY_PLANS = False
DEFAULT_TARGET_ENERGY = 12.0
DEFAULT_CHARGE_RATE = 3.6
DEFAULT_SUFFICIENCY_THRESHOLD = 12.0
DEFAULT_DHW_SETPOINT_DELTA = 5.0
DEFAULT_DHW_DURATION = 90
DEFAULT_HEATING_SETPOINT_DELTA = 3.0
DEFAULT_HEATING_DURATION = 120
DEFAULT_DEFAULT_STORAGE_SOC = 0.0
DEFAULT_FORECAST_UNIT = FORECAST_UNIT_WH

# Planning cycle runs at this minute of every hour
PLAN_MINUTE = 10

# Event fired with the EV plan when plans are applied
EVENT_EV_PLAN = f"{DOMAIN}_ev_plan"

# Services
SERVICE_REPLAN = "replan"
