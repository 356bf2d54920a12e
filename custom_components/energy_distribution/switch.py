"""Switch platform for the Energy Distribution Planner integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import STATE_OFF, STATE_ON
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.restore_state import RestoreEntity
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import CONF_NAME, DOMAIN
from .coordinator import EnergyDistributionCoordinator

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Energy Distribution switches from a config entry."""
    coordinator: EnergyDistributionCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([
        ApplyPlansSwitch(coordinator, entry),
    ])


class ApplyPlansSwitch(
    CoordinatorEntity[EnergyDistributionCoordinator], SwitchEntity, RestoreEntity
):
    """Switch to write planned setpoints to the heat pump.

    When off, plans are computed and reported but never applied.
    """

    _attr_has_entity_name = True
    _attr_translation_key = "apply_plans"
    _attr_icon = "mdi:calendar-check"

    def __init__(
        self, coordinator: EnergyDistributionCoordinator, entry: ConfigEntry
    ) -> None:
        """Initialize the switch."""
        super().__init__(coordinator)
        self._attr_unique_id = f"{entry.entry_id}_apply_plans"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry.entry_id)},
            name=entry.data[CONF_NAME],
            manufacturer="Energy Distribution",
            model="Day-ahead Planner",
            entry_type="service",
        )

    @property
    def is_on(self) -> bool:
        """Return True if plans are applied."""
        return self.coordinator.apply_enabled

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Start applying plans."""
        await self.coordinator.async_set_apply_enabled(True)

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Stop applying plans; scheduled actions still run."""
        await self.coordinator.async_set_apply_enabled(False)

    async def async_added_to_hass(self) -> None:
        """Restore previous state on startup."""
        await super().async_added_to_hass()
        last_state = await self.async_get_last_state()
        if last_state is None or last_state.state not in (STATE_ON, STATE_OFF):
            return
        restored = last_state.state == STATE_ON
        if restored != self.coordinator.apply_enabled:
            _LOGGER.info("Restoring apply plans state: %s", last_state.state.upper())
            await self.coordinator.async_set_apply_enabled(restored)
