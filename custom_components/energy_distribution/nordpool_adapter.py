"""Price source: HACS Nordpool or native HA Nordpool."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from homeassistant.core import HomeAssistant
from homeassistant.helpers import entity_registry as er

from .const import NORDPOOL_TYPE_HACS, NORDPOOL_TYPE_NATIVE
from .scheduler import PriceSlot, build_price_slots

_LOGGER = logging.getLogger(__name__)


def detect_nordpool_type(hass: HomeAssistant, entity_id: str) -> str:
    """Detect whether an entity is a HACS Nordpool or native HA Nordpool sensor.

    Returns:
        "hacs", "native", or "unknown".
    """
    state = hass.states.get(entity_id)
    if state is not None and state.attributes.get("raw_today") is not None:
        return NORDPOOL_TYPE_HACS

    registry = er.async_get(hass)
    entity_entry = registry.async_get(entity_id)
    if entity_entry is not None and entity_entry.platform == "nordpool":
        return NORDPOOL_TYPE_NATIVE

    return "unknown"


def find_all_nordpool_sensors(hass: HomeAssistant) -> list[tuple[str, str, str]]:
    """List all usable Nordpool price sensors.

    Returns:
        List of (entity_id, nordpool_type, label) tuples.
    """
    found: list[tuple[str, str, str]] = []
    seen: set[str] = set()

    for state in hass.states.async_all("sensor"):
        if state.attributes.get("raw_today") is not None:
            label = state.attributes.get("friendly_name") or state.entity_id
            found.append((state.entity_id, NORDPOOL_TYPE_HACS, label))
            seen.add(state.entity_id)

    registry = er.async_get(hass)
    for config_entry in hass.config_entries.async_entries("nordpool"):
        for entity_entry in er.async_entries_for_config_entry(
            registry, config_entry.entry_id
        ):
            if (
                entity_entry.domain != "sensor"
                or entity_entry.entity_id in seen
                or not entity_entry.unique_id.endswith("current_price")
            ):
                continue
            state = hass.states.get(entity_entry.entity_id)
            label = (
                state.attributes.get("friendly_name") if state is not None else None
            ) or entity_entry.entity_id
            found.append((entity_entry.entity_id, NORDPOOL_TYPE_NATIVE, label))
            seen.add(entity_entry.entity_id)

    return found


async def async_get_price_slots(
    hass: HomeAssistant,
    entity_id: str,
    nordpool_type: str,
    now: datetime,
) -> list[PriceSlot]:
    """Fetch the hourly price slots for the 24 hours starting at ``now``.

    Returns an empty or short list when prices are not (yet) available; the
    planner treats that as a failed cycle.
    """
    if nordpool_type == NORDPOOL_TYPE_HACS:
        raw = _get_hacs_prices(hass, entity_id)
    elif nordpool_type == NORDPOOL_TYPE_NATIVE:
        raw = await _async_get_native_prices(hass, entity_id, now.date())
    else:
        _LOGGER.error("Unknown nordpool_type: %s", nordpool_type)
        return []

    slots = build_price_slots(raw, now)
    _LOGGER.debug("Nordpool %s: %d raw slots, %d hourly slots", entity_id, len(raw), len(slots))
    return slots


def _get_hacs_prices(hass: HomeAssistant, entity_id: str) -> list[dict]:
    """Read today's and tomorrow's prices from HACS Nordpool attributes."""
    state = hass.states.get(entity_id)
    if state is None:
        return []
    raw_today = state.attributes.get("raw_today") or []
    raw_tomorrow = state.attributes.get("raw_tomorrow") or []
    return [*raw_today, *raw_tomorrow]


async def _async_get_native_prices(
    hass: HomeAssistant, entity_id: str, today: date
) -> list[dict]:
    """Fetch today's and tomorrow's prices from native HA Nordpool."""
    registry = er.async_get(hass)
    entity_entry = registry.async_get(entity_id)
    if entity_entry is None or entity_entry.config_entry_id is None:
        _LOGGER.error(
            "Cannot find config entry for native Nordpool entity %s", entity_id
        )
        return []

    prices: list[dict] = []
    for target_date in (today, today + timedelta(days=1)):
        prices.extend(
            await _async_fetch_native_date(hass, entity_entry.config_entry_id, target_date)
        )
    return prices


async def _async_fetch_native_date(
    hass: HomeAssistant, config_entry_id: str, target_date: date
) -> list[dict]:
    """Call nordpool.get_prices_for_date and convert to {start, end, value}."""
    try:
        response = await hass.services.async_call(
            "nordpool",
            "get_prices_for_date",
            {
                "config_entry": config_entry_id,
                "date": str(target_date),
            },
            blocking=True,
            return_response=True,
        )
    except Exception:
        _LOGGER.debug(
            "Failed to fetch native Nordpool prices for %s (may not be available yet)",
            target_date,
        )
        return []

    if not response:
        return []

    return _convert_native_response(response)


def _convert_native_response(response: dict | list) -> list[dict]:
    """Convert a native Nordpool service response.

    The response is grouped by area ({"SE4": [{"start", "end", "price"}]}) or
    a plain list. The first area is used and Currency/MWh becomes Currency/kWh.
    """
    price_list: list[dict] = []
    if isinstance(response, dict):
        price_list = next(
            (prices for prices in response.values() if isinstance(prices, list)), []
        )
    elif isinstance(response, list):
        price_list = response

    converted: list[dict] = []
    for entry in price_list:
        start = entry.get("start")
        price_mwh = entry.get("price")
        if start is None or price_mwh is None:
            continue
        try:
            converted.append({
                "start": start,
                "end": entry.get("end"),
                "value": float(price_mwh) / 1000.0,
            })
        except (ValueError, TypeError) as exc:
            _LOGGER.warning("Error converting native Nordpool entry: %s", exc)
    return converted
