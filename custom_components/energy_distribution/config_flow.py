"""Config flow for the Energy Distribution Planner integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlowWithReload,
)
from homeassistant.core import callback
from homeassistant.helpers.selector import (
    BooleanSelector,
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectOptionDict,
    SelectSelector,
    SelectSelectorConfig,
    TextSelector,
)
from homeassistant.util import slugify

from .const import (
    CONF_APPLY_PLANS,
    CONF_BATTERY_SOC_SENSOR,
    CONF_CHARGE_RATE,
    CONF_CHEAP_CUTOFF,
    CONF_DEFAULT_STORAGE_SOC,
    CONF_DHW_DURATION,
    CONF_DHW_SETPOINT_DELTA,
    CONF_DHW_SETPOINT_ENTITY,
    CONF_FORECAST_SENSOR,
    CONF_FORECAST_UNIT,
    CONF_GUARD_BONUS,
    CONF_HEATING_DURATION,
    CONF_HEATING_SETPOINT_DELTA,
    CONF_HEATING_SETPOINT_ENTITY,
    CONF_HOURLY_SUFFICIENCY,
    CONF_NAME,
    CONF_NIGHT_END_HOUR,
    CONF_NIGHT_START_HOUR,
    CONF_NORDPOOL_SENSOR,
    CONF_NORDPOOL_TYPE,
    CONF_STORAGE_GUARD_DAY,
    CONF_STORAGE_GUARD_NIGHT,
    CONF_STORAGE_PENALTY,
    CONF_SUFFICIENCY_THRESHOLD,
    CONF_TARGET_ENERGY,
    DEFAULT_APPLY_PLANS,
    DEFAULT_CHARGE_RATE,
    DEFAULT_CHEAP_CUTOFF,
    DEFAULT_DEFAULT_STORAGE_SOC,
    DEFAULT_DHW_DURATION,
    DEFAULT_DHW_SETPOINT_DELTA,
    DEFAULT_FORECAST_UNIT,
    DEFAULT_GUARD_BONUS,
    DEFAULT_HEATING_DURATION,
    DEFAULT_HEATING_SETPOINT_DELTA,
    DEFAULT_HOURLY_SUFFICIENCY,
    DEFAULT_NIGHT_END_HOUR,
    DEFAULT_NIGHT_START_HOUR,
    DEFAULT_STORAGE_GUARD_DAY,
    DEFAULT_STORAGE_GUARD_NIGHT,
    DEFAULT_STORAGE_PENALTY,
    DEFAULT_SUFFICIENCY_THRESHOLD,
    DEFAULT_TARGET_ENERGY,
    DOMAIN,
    FORECAST_UNIT_KWH,
    FORECAST_UNIT_WH,
)
from .nordpool_adapter import detect_nordpool_type, find_all_nordpool_sensors

_LOGGER = logging.getLogger(__name__)

# (key, default, min, max, step, unit)
_NUMBER_OPTIONS: list[tuple[str, float, float, float, float, str | None]] = [
    (CONF_NIGHT_START_HOUR, DEFAULT_NIGHT_START_HOUR, 0, 23, 1, "h"),
    (CONF_NIGHT_END_HOUR, DEFAULT_NIGHT_END_HOUR, 0, 23, 1, "h"),
    (CONF_STORAGE_GUARD_DAY, DEFAULT_STORAGE_GUARD_DAY, 0, 100, 1, "%"),
    (CONF_STORAGE_GUARD_NIGHT, DEFAULT_STORAGE_GUARD_NIGHT, 0, 100, 1, "%"),
    (CONF_GUARD_BONUS, DEFAULT_GUARD_BONUS, 0, 10, 0.001, None),
    (CONF_CHEAP_CUTOFF, DEFAULT_CHEAP_CUTOFF, -10, 100, 0.001, None),
    (CONF_STORAGE_PENALTY, DEFAULT_STORAGE_PENALTY, 0, 10, 0.001, None),
    (CONF_HOURLY_SUFFICIENCY, DEFAULT_HOURLY_SUFFICIENCY, 0, 100, 0.1, "kWh"),
    (CONF_TARGET_ENERGY, DEFAULT_TARGET_ENERGY, 0, 200, 0.5, "kWh"),
    (CONF_CHARGE_RATE, DEFAULT_CHARGE_RATE, 0.1, 50, 0.1, "kW"),
    (CONF_SUFFICIENCY_THRESHOLD, DEFAULT_SUFFICIENCY_THRESHOLD, 0, 500, 0.5, "kWh"),
    (CONF_DHW_SETPOINT_DELTA, DEFAULT_DHW_SETPOINT_DELTA, -20, 20, 0.5, None),
    (CONF_DHW_DURATION, DEFAULT_DHW_DURATION, 1, 720, 1, "min"),
    (CONF_HEATING_SETPOINT_DELTA, DEFAULT_HEATING_SETPOINT_DELTA, -20, 20, 0.5, None),
    (CONF_HEATING_DURATION, DEFAULT_HEATING_DURATION, 1, 720, 1, "min"),
    (CONF_DEFAULT_STORAGE_SOC, DEFAULT_DEFAULT_STORAGE_SOC, 0, 100, 1, "%"),
]

_INTEGER_OPTIONS = (
    CONF_NIGHT_START_HOUR,
    CONF_NIGHT_END_HOUR,
    CONF_DHW_DURATION,
    CONF_HEATING_DURATION,
)


def _optional_entity(key: str, defaults: dict[str, Any]) -> vol.Optional:
    """Create vol.Optional with suggested value pre-fill (allows clearing)."""
    val = defaults.get(key)
    if val is not None:
        return vol.Optional(key, description={"suggested_value": val})
    return vol.Optional(key)


def _options_schema(defaults: dict[str, Any] | None = None) -> vol.Schema:
    """Build the schema for tunable options."""
    if defaults is None:
        defaults = {}
    schema: dict = {}
    for key, default, minimum, maximum, step, unit in _NUMBER_OPTIONS:
        schema[vol.Required(key, default=defaults.get(key, default))] = NumberSelector(
            NumberSelectorConfig(
                min=minimum,
                max=maximum,
                step=step,
                mode=NumberSelectorMode.BOX,
                unit_of_measurement=unit,
            )
        )
    schema[
        vol.Required(CONF_APPLY_PLANS, default=defaults.get(CONF_APPLY_PLANS, DEFAULT_APPLY_PLANS))
    ] = BooleanSelector()
    return vol.Schema(schema)


def _source_schema(defaults: dict[str, Any] | None = None) -> vol.Schema:
    """Build the schema for the forecast, battery and setpoint entities."""
    if defaults is None:
        defaults = {}
    return vol.Schema(
        {
            vol.Required(
                CONF_FORECAST_SENSOR,
                default=defaults.get(CONF_FORECAST_SENSOR, vol.UNDEFINED),
            ): EntitySelector(EntitySelectorConfig(domain="sensor")),
            vol.Required(
                CONF_FORECAST_UNIT,
                default=defaults.get(CONF_FORECAST_UNIT, DEFAULT_FORECAST_UNIT),
            ): SelectSelector(
                SelectSelectorConfig(
                    options=[FORECAST_UNIT_WH, FORECAST_UNIT_KWH],
                    mode="dropdown",
                )
            ),
            _optional_entity(CONF_BATTERY_SOC_SENSOR, defaults): EntitySelector(
                EntitySelectorConfig(domain="sensor")
            ),
            _optional_entity(CONF_DHW_SETPOINT_ENTITY, defaults): EntitySelector(
                EntitySelectorConfig(domain=["number", "input_number"])
            ),
            _optional_entity(CONF_HEATING_SETPOINT_ENTITY, defaults): EntitySelector(
                EntitySelectorConfig(domain=["number", "input_number"])
            ),
        }
    )


def _split_options(user_input: dict[str, Any]) -> dict[str, Any]:
    """Extract tunable options from form input, with integer fields as int."""
    options: dict[str, Any] = {}
    for key, default, *_ in _NUMBER_OPTIONS:
        value = user_input.get(key, default)
        options[key] = int(value) if key in _INTEGER_OPTIONS else value
    options[CONF_APPLY_PLANS] = user_input.get(CONF_APPLY_PLANS, DEFAULT_APPLY_PLANS)
    return options


class EnergyDistributionConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Energy Distribution Planner."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> EnergyDistributionOptionsFlow:
        """Get the options flow for this handler."""
        return EnergyDistributionOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step."""
        errors: dict[str, str] = {}

        all_sensors = find_all_nordpool_sensors(self.hass)

        if user_input is not None:
            nordpool_entity = user_input.get(CONF_NORDPOOL_SENSOR)
            nordpool_type = "unknown"
            if nordpool_entity:
                nordpool_type = detect_nordpool_type(self.hass, nordpool_entity)
            if nordpool_type == "unknown":
                errors["base"] = "nordpool_not_found"
            elif self.hass.states.get(user_input[CONF_FORECAST_SENSOR]) is None:
                errors[CONF_FORECAST_SENSOR] = "forecast_not_found"

            if not errors:
                name = user_input[CONF_NAME]
                await self.async_set_unique_id(f"{nordpool_entity}_{slugify(name)}")
                self._abort_if_unique_id_configured()

                # Split data (immutable) and options (mutable)
                data = {
                    CONF_NAME: name,
                    CONF_NORDPOOL_SENSOR: nordpool_entity,
                    CONF_NORDPOOL_TYPE: nordpool_type,
                    CONF_FORECAST_SENSOR: user_input[CONF_FORECAST_SENSOR],
                    CONF_FORECAST_UNIT: user_input.get(CONF_FORECAST_UNIT, DEFAULT_FORECAST_UNIT),
                    CONF_BATTERY_SOC_SENSOR: user_input.get(CONF_BATTERY_SOC_SENSOR),
                    CONF_DHW_SETPOINT_ENTITY: user_input.get(CONF_DHW_SETPOINT_ENTITY),
                    CONF_HEATING_SETPOINT_ENTITY: user_input.get(CONF_HEATING_SETPOINT_ENTITY),
                }
                return self.async_create_entry(
                    title=name,
                    data=data,
                    options=_split_options(user_input),
                )

        if not all_sensors:
            errors["base"] = "nordpool_not_found"

        sensor_options = [
            SelectOptionDict(value=entity_id, label=label)
            for entity_id, _, label in all_sensors
        ]

        # Pre-select if only one sensor exists
        sensor_default: str | vol.Undefined = vol.UNDEFINED
        if len(all_sensors) == 1:
            sensor_default = all_sensors[0][0]

        schema = (
            vol.Schema(
                {
                    vol.Required(CONF_NAME): TextSelector(),
                    vol.Required(
                        CONF_NORDPOOL_SENSOR, default=sensor_default
                    ): SelectSelector(
                        SelectSelectorConfig(options=sensor_options, mode="dropdown")
                    ),
                }
            )
            .extend(_source_schema(user_input).schema)
            .extend(_options_schema().schema)
        )

        return self.async_show_form(
            step_id="user",
            data_schema=schema,
            errors=errors,
        )


class EnergyDistributionOptionsFlow(OptionsFlowWithReload):
    """Handle options flow for Energy Distribution Planner."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage the options and the source entities."""
        errors: dict[str, str] = {}

        if user_input is not None:
            forecast_entity = user_input[CONF_FORECAST_SENSOR]
            if self.hass.states.get(forecast_entity) is None:
                _LOGGER.warning("Selected forecast sensor %s not found", forecast_entity)
                errors[CONF_FORECAST_SENSOR] = "forecast_not_found"
            else:
                # Source entities are stored in data, not options
                new_data = dict(self.config_entry.data)
                for key in (
                    CONF_FORECAST_SENSOR,
                    CONF_FORECAST_UNIT,
                    CONF_BATTERY_SOC_SENSOR,
                    CONF_DHW_SETPOINT_ENTITY,
                    CONF_HEATING_SETPOINT_ENTITY,
                ):
                    new_data[key] = user_input.get(key)
                if new_data != dict(self.config_entry.data):
                    self.hass.config_entries.async_update_entry(
                        self.config_entry, data=new_data
                    )
                return self.async_create_entry(data=_split_options(user_input))

        schema = _source_schema(dict(self.config_entry.data)).extend(
            _options_schema(dict(self.config_entry.options)).schema
        )

        return self.async_show_form(
            step_id="init",
            data_schema=schema,
            errors=errors,
        )
