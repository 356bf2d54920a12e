"""DataUpdateCoordinator for the Energy Distribution Planner integration."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.helpers.event import async_track_time_change
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from .actions import SetpointActionScheduler, SetpointAdjustment
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
    EVENT_EV_PLAN,
    NORDPOOL_TYPE_HACS,
    PLAN_MINUTE,
)
from . import scheduler
from .forecast_adapter import get_forecast_by_hour
from .nordpool_adapter import async_get_price_slots

_LOGGER = logging.getLogger(__name__)


@dataclass
class EnergyDistributionData:
    """Data returned by the Energy Distribution coordinator."""

    rows: list[dict] = field(default_factory=list)
    outcome: str | None = None
    ev_plan: dict | None = None
    hot_water_slots: list[dict] = field(default_factory=list)
    heating_slots: list[dict] = field(default_factory=list)
    summary: str = ""
    forecast_total_kwh: float = 0.0
    cheap_night_count: int = 0
    cheapest_night: list[dict] = field(default_factory=list)
    storage_soc: float | None = None
    min_price: float | None = None
    max_price: float | None = None
    apply_enabled: bool = False
    scheduled_actions: list[dict] = field(default_factory=list)
    details: list[str] = field(default_factory=list)
    last_planned: str | None = None


class EnergyDistributionCoordinator(DataUpdateCoordinator[EnergyDistributionData]):
    """Coordinator that runs one planning cycle per hour."""

    config_entry: ConfigEntry

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_{entry.entry_id}",
            config_entry=entry,
            update_interval=None,
        )
        self._cycle_lock = asyncio.Lock()
        self._unsub_trigger: CALLBACK_TYPE | None = None
        self._apply_enabled: bool = entry.options.get(CONF_APPLY_PLANS, DEFAULT_APPLY_PLANS)
        self.actions = SetpointActionScheduler(hass)

    @property
    def apply_enabled(self) -> bool:
        """Return whether plans are written to the setpoint entities."""
        return self._apply_enabled

    async def async_set_apply_enabled(self, active: bool) -> None:
        """Enable or disable applying plans.

        Already scheduled actions are not cancelled.
        """
        if active == self._apply_enabled:
            return
        self._apply_enabled = active
        _LOGGER.info("Applying plans %s", "enabled" if active else "disabled")
        await self.async_request_refresh()

    def async_start(self) -> None:
        """Start the hourly planning trigger."""
        self._unsub_trigger = async_track_time_change(
            self.hass, self._handle_trigger, minute=PLAN_MINUTE, second=0
        )

    async def _handle_trigger(self, now: datetime) -> None:
        """Run a planning cycle from the hourly trigger."""
        _LOGGER.debug("Planning triggered at %s", now.isoformat())
        await self.async_refresh()

    def planner_config(self) -> scheduler.PlannerConfig:
        """Build the planner configuration from the entry options."""
        options = self.config_entry.options
        return scheduler.PlannerConfig(
            night_start_hour=int(options.get(CONF_NIGHT_START_HOUR, DEFAULT_NIGHT_START_HOUR)),
            night_end_hour=int(options.get(CONF_NIGHT_END_HOUR, DEFAULT_NIGHT_END_HOUR)),
            storage_guard_day=options.get(CONF_STORAGE_GUARD_DAY, DEFAULT_STORAGE_GUARD_DAY),
            storage_guard_night=options.get(CONF_STORAGE_GUARD_NIGHT, DEFAULT_STORAGE_GUARD_NIGHT),
            guard_bonus=options.get(CONF_GUARD_BONUS, DEFAULT_GUARD_BONUS),
            cheap_cutoff=options.get(CONF_CHEAP_CUTOFF, DEFAULT_CHEAP_CUTOFF),
            storage_penalty=options.get(CONF_STORAGE_PENALTY, DEFAULT_STORAGE_PENALTY),
            hourly_sufficiency_kwh=options.get(CONF_HOURLY_SUFFICIENCY, DEFAULT_HOURLY_SUFFICIENCY),
            target_energy_kwh=options.get(CONF_TARGET_ENERGY, DEFAULT_TARGET_ENERGY),
            charge_rate_kw=options.get(CONF_CHARGE_RATE, DEFAULT_CHARGE_RATE),
            sufficiency_threshold_kwh=options.get(
                CONF_SUFFICIENCY_THRESHOLD, DEFAULT_SUFFICIENCY_THRESHOLD
            ),
        )

    def _adjustments(self) -> list[tuple[SetpointAdjustment, str]]:
        """Return the configured setpoint adjustments with their plan field."""
        data = self.config_entry.data
        options = self.config_entry.options
        adjustments = []
        if dhw := data.get(CONF_DHW_SETPOINT_ENTITY):
            adjustments.append((
                SetpointAdjustment(
                    target=dhw,
                    delta=options.get(CONF_DHW_SETPOINT_DELTA, DEFAULT_DHW_SETPOINT_DELTA),
                    duration=timedelta(
                        minutes=options.get(CONF_DHW_DURATION, DEFAULT_DHW_DURATION)
                    ),
                ),
                "hot_water_slots",
            ))
        if heating := data.get(CONF_HEATING_SETPOINT_ENTITY):
            adjustments.append((
                SetpointAdjustment(
                    target=heating,
                    delta=options.get(CONF_HEATING_SETPOINT_DELTA, DEFAULT_HEATING_SETPOINT_DELTA),
                    duration=timedelta(
                        minutes=options.get(CONF_HEATING_DURATION, DEFAULT_HEATING_DURATION)
                    ),
                ),
                "heating_slots",
            ))
        return adjustments

    def _read_storage_soc(self) -> float:
        """Read the battery state of charge, or the configured default."""
        default = float(
            self.config_entry.options.get(CONF_DEFAULT_STORAGE_SOC, DEFAULT_DEFAULT_STORAGE_SOC)
        )
        soc_entity = self.config_entry.data.get(CONF_BATTERY_SOC_SENSOR)
        if not soc_entity:
            return default
        state = self.hass.states.get(soc_entity)
        if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
            _LOGGER.warning(
                "Battery SoC sensor %s not available, using %s%%", soc_entity, default
            )
            return default
        try:
            return float(state.state)
        except (ValueError, TypeError):
            _LOGGER.warning(
                "Battery SoC sensor %s has non-numeric state %s, using %s%%",
                soc_entity, state.state, default,
            )
            return default

    async def _async_update_data(self) -> EnergyDistributionData:
        """Fetch prices, forecast and SoC and compute the plans."""
        async with self._cycle_lock:
            return await self._async_run_cycle()

    async def _async_run_cycle(self) -> EnergyDistributionData:
        now = dt_util.now()
        tz = now.tzinfo
        data = self.config_entry.data
        nordpool_entity = data[CONF_NORDPOOL_SENSOR]
        log = scheduler.CycleLog()
        log.add(f"Planning cycle started at {now:%d.%m.%Y %H:%M}", logging.DEBUG)

        try:
            slots = await async_get_price_slots(
                self.hass, nordpool_entity, data.get(CONF_NORDPOOL_TYPE, NORDPOOL_TYPE_HACS), now
            )
            if not slots:
                raise scheduler.DataUnavailable(
                    f"No price data available from {nordpool_entity}"
                )
            forecast = get_forecast_by_hour(
                self.hass,
                data[CONF_FORECAST_SENSOR],
                data.get(CONF_FORECAST_UNIT, DEFAULT_FORECAST_UNIT),
                slots[0].start,
            )
            storage_soc = self._read_storage_soc()
            result = scheduler.plan_cycle(
                slots, forecast, storage_soc, self.planner_config(), tz, log
            )
        except scheduler.DataUnavailable as err:
            log.add(f"Planning failed: {err}", logging.WARNING)
            log.flush(_LOGGER)
            raise UpdateFailed(str(err)) from err

        hot_water = scheduler.describe_slots(result.slots, result.thermal_plan.hot_water_slots)
        heating = scheduler.describe_slots(result.slots, result.thermal_plan.heating_slots)

        if self._apply_enabled:
            self._apply_plans(result, now, log)
        else:
            log.add("Plans not applied (apply disabled)", logging.DEBUG)

        if result.ev_plan is not None:
            self.hass.bus.async_fire(
                EVENT_EV_PLAN,
                {"entry_id": self.config_entry.entry_id, **result.ev_plan.as_dict()},
            )

        return EnergyDistributionData(
            rows=result.rows,
            outcome=result.outcome,
            ev_plan=result.ev_plan.as_dict() if result.ev_plan else None,
            hot_water_slots=hot_water,
            heating_slots=heating,
            summary=result.summary,
            forecast_total_kwh=result.forecast_total,
            cheap_night_count=result.cheap_night_count,
            cheapest_night=scheduler.describe_slots(result.slots, result.cheapest_night),
            storage_soc=result.storage_soc,
            min_price=result.min_price,
            max_price=result.max_price,
            apply_enabled=self._apply_enabled,
            scheduled_actions=[a.as_dict() for a in self.actions.pending],
            details=log.flush(_LOGGER),
            last_planned=now.isoformat(),
        )

    def _apply_plans(
        self, result: scheduler.PlanResult, now: datetime, log: scheduler.CycleLog
    ) -> None:
        """Replace the previous plan's pending actions with the new windows."""
        self.actions.async_supersede()
        for adjustment, plan_field in self._adjustments():
            indices = getattr(result.thermal_plan, plan_field)
            scheduled = self.actions.async_schedule(
                adjustment, [result.slots[i].start for i in indices], now
            )
            log.add(
                f"Scheduled {len(scheduled) // 2} window(s) for {adjustment.target}",
                logging.DEBUG,
            )

    async def async_shutdown(self) -> None:
        """Stop the trigger and revert applied setpoints."""
        if self._unsub_trigger:
            self._unsub_trigger()
            self._unsub_trigger = None
        await self.actions.async_shutdown()
        await super().async_shutdown()
