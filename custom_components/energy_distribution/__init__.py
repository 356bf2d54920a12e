"""The Energy Distribution Planner integration."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant, ServiceCall

from .const import DOMAIN, SERVICE_REPLAN
from .coordinator import EnergyDistributionCoordinator

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.SENSOR,
    Platform.BINARY_SENSOR,
    Platform.SWITCH,
]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Energy Distribution Planner from a config entry."""
    hass.data.setdefault(DOMAIN, {})

    coordinator = EnergyDistributionCoordinator(hass, entry)
    # A missing price curve fails the cycle, not the setup; the hourly
    # trigger retries.
    await coordinator.async_refresh()
    coordinator.async_start()

    hass.data[DOMAIN][entry.entry_id] = coordinator

    if not hass.services.has_service(DOMAIN, SERVICE_REPLAN):

        async def _async_replan(call: ServiceCall) -> None:
            """Run a planning cycle for every configured planner."""
            for planner in hass.data[DOMAIN].values():
                await planner.async_refresh()

        hass.services.async_register(DOMAIN, SERVICE_REPLAN, _async_replan)

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    _LOGGER.info("Energy Distribution Planner %s initialized", entry.title)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        coordinator: EnergyDistributionCoordinator = hass.data[DOMAIN].pop(entry.entry_id)
        await coordinator.async_shutdown()
        if not hass.data[DOMAIN]:
            hass.services.async_remove(DOMAIN, SERVICE_REPLAN)

    return unload_ok
