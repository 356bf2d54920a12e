"""Binary sensor platform for the Energy Distribution Planner integration."""

from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import CONF_NAME, DOMAIN
from .coordinator import EnergyDistributionCoordinator


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Energy Distribution binary sensors from a config entry."""
    coordinator: EnergyDistributionCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([
        NightChargePlannedBinarySensor(coordinator, entry),
    ])


class NightChargePlannedBinarySensor(
    CoordinatorEntity[EnergyDistributionCoordinator], BinarySensorEntity
):
    """Binary sensor indicating whether an overnight EV charge is planned."""

    _attr_has_entity_name = True
    _attr_translation_key = "night_charge_planned"
    _attr_icon = "mdi:ev-station"

    def __init__(
        self, coordinator: EnergyDistributionCoordinator, entry: ConfigEntry
    ) -> None:
        """Initialize the binary sensor."""
        super().__init__(coordinator)
        self._attr_unique_id = f"{entry.entry_id}_night_charge_planned"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry.entry_id)},
            name=entry.data[CONF_NAME],
            manufacturer="Energy Distribution",
            model="Day-ahead Planner",
            entry_type="service",
        )

    @property
    def is_on(self) -> bool:
        """Return True if the current plan includes a night charge."""
        if self.coordinator.data is None:
            return False
        return self.coordinator.data.ev_plan is not None
