"""Sensor platform for the Energy Distribution Planner integration."""

from __future__ import annotations

from datetime import datetime

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfEnergy
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity import EntityCategory
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import CONF_NAME, DOMAIN
from .coordinator import EnergyDistributionCoordinator, EnergyDistributionData
from .scheduler import OUTCOME_DAYTIME_SURPLUS, OUTCOME_INFEASIBLE, OUTCOME_NIGHT_CHARGE


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Energy Distribution sensors from a config entry."""
    coordinator: EnergyDistributionCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([
        PlanSensor(coordinator, entry),
        EvDeadlineSensor(coordinator, entry),
        HotWaterWindowSensor(coordinator, entry),
        HeatingWindowSensor(coordinator, entry),
        PriceTableSensor(coordinator, entry),
        ForecastTotalSensor(coordinator, entry),
        PlanDetailsSensor(coordinator, entry),
    ])


class _PlannerSensor(CoordinatorEntity[EnergyDistributionCoordinator], SensorEntity):
    """Base class for Energy Distribution sensors."""

    _attr_has_entity_name = True

    def __init__(
        self, coordinator: EnergyDistributionCoordinator, entry: ConfigEntry
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._attr_unique_id = f"{entry.entry_id}_{self._attr_translation_key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry.entry_id)},
            name=entry.data[CONF_NAME],
            manufacturer="Energy Distribution",
            model="Day-ahead Planner",
            entry_type="service",
        )


class PlanSensor(_PlannerSensor):
    """Main sensor: outcome of the EV planner and the cycle summary."""

    _attr_translation_key = "plan"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [OUTCOME_NIGHT_CHARGE, OUTCOME_DAYTIME_SURPLUS, OUTCOME_INFEASIBLE]

    @property
    def native_value(self) -> str | None:
        """Return the EV planner outcome."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.outcome

    @property
    def icon(self) -> str:
        """Return icon based on outcome."""
        if self.coordinator.data is None:
            return "mdi:calendar-blank"
        return {
            OUTCOME_NIGHT_CHARGE: "mdi:weather-night",
            OUTCOME_DAYTIME_SURPLUS: "mdi:solar-power",
        }.get(self.coordinator.data.outcome, "mdi:calendar-remove")

    @property
    def extra_state_attributes(self) -> dict:
        """Return the summary and both plans."""
        if self.coordinator.data is None:
            return {}
        data: EnergyDistributionData = self.coordinator.data
        return {
            "summary": data.summary,
            "ev_plan": data.ev_plan,
            "hot_water_slots": data.hot_water_slots,
            "heating_slots": data.heating_slots,
            "cheapest_night": data.cheapest_night,
            "storage_soc": data.storage_soc,
            "min_price": data.min_price,
            "max_price": data.max_price,
            "apply_enabled": data.apply_enabled,
            "last_planned": data.last_planned,
        }


class EvDeadlineSensor(_PlannerSensor):
    """Deadline of the planned night charge."""

    _attr_translation_key = "ev_deadline"
    _attr_device_class = SensorDeviceClass.TIMESTAMP
    _attr_icon = "mdi:car-electric"

    @property
    def native_value(self) -> datetime | None:
        """Return the end of the latest charging slot, if a plan exists."""
        if self.coordinator.data is None or self.coordinator.data.ev_plan is None:
            return None
        return datetime.fromisoformat(self.coordinator.data.ev_plan["deadline"])

    @property
    def extra_state_attributes(self) -> dict:
        """Return energy and hours of the plan."""
        if self.coordinator.data is None or self.coordinator.data.ev_plan is None:
            return {}
        plan = self.coordinator.data.ev_plan
        return {
            "energy": plan["energy"],
            "hours_used": plan["hours_used"],
            "slots": plan["slots"],
        }


class _WindowSensor(_PlannerSensor):
    """Start of the first slot of a heat pump window."""

    _attr_device_class = SensorDeviceClass.TIMESTAMP
    _slots_field: str

    def _slots(self) -> list[dict]:
        if self.coordinator.data is None:
            return []
        return getattr(self.coordinator.data, self._slots_field)

    @property
    def native_value(self) -> datetime | None:
        """Return the start of the first selected slot."""
        slots = self._slots()
        if not slots:
            return None
        return datetime.fromisoformat(slots[0]["start"])

    @property
    def extra_state_attributes(self) -> dict:
        """Return all selected slots."""
        return {"slots": self._slots()}


class HotWaterWindowSensor(_WindowSensor):
    """Domestic hot water window."""

    _attr_translation_key = "hot_water_window"
    _attr_icon = "mdi:water-boiler"
    _slots_field = "hot_water_slots"


class HeatingWindowSensor(_WindowSensor):
    """Space heating window."""

    _attr_translation_key = "heating_window"
    _attr_icon = "mdi:heat-pump"
    _slots_field = "heating_slots"


# --- Diagnostic sensors ---


class PriceTableSensor(_PlannerSensor):
    """Diagnostic sensor exposing the aligned 24-hour table."""

    _attr_translation_key = "price_table"
    _attr_entity_category = EntityCategory.DIAGNOSTIC
    _attr_icon = "mdi:table-clock"

    @property
    def native_value(self) -> int | None:
        """Return the number of cheap night hours."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.cheap_night_count

    @property
    def extra_state_attributes(self) -> dict:
        """Return the full table as an attribute."""
        if self.coordinator.data is None:
            return {}
        return {"rows": self.coordinator.data.rows}


class ForecastTotalSensor(_PlannerSensor):
    """Diagnostic sensor with the PV forecast total of the horizon."""

    _attr_translation_key = "forecast_total"
    _attr_entity_category = EntityCategory.DIAGNOSTIC
    _attr_device_class = SensorDeviceClass.ENERGY
    _attr_native_unit_of_measurement = UnitOfEnergy.KILO_WATT_HOUR

    @property
    def native_value(self) -> float | None:
        """Return the forecast total in kWh."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.forecast_total_kwh


class PlanDetailsSensor(_PlannerSensor):
    """Diagnostic sensor with the log lines of the last cycle."""

    _attr_translation_key = "plan_details"
    _attr_entity_category = EntityCategory.DIAGNOSTIC
    _attr_icon = "mdi:text-box-outline"

    @property
    def native_value(self) -> int | None:
        """Return the number of log lines."""
        if self.coordinator.data is None:
            return None
        return len(self.coordinator.data.details)

    @property
    def extra_state_attributes(self) -> dict:
        """Return the log lines and scheduled actions."""
        if self.coordinator.data is None:
            return {}
        return {
            "lines": self.coordinator.data.details,
            "scheduled_actions": self.coordinator.data.scheduled_actions,
        }
