"""Forecast source: hourly PV forecast from a sensor's attributes.

The forecast unit is declared in the config entry and never inferred from the
sensor. Values are returned in kWh, indexed by local hour of day.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from homeassistant.const import STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .const import FORECAST_UNIT_KWH, FORECAST_UNIT_WH
from .scheduler import HORIZON_HOURS, DataUnavailable

_LOGGER = logging.getLogger(__name__)

# Attribute names used by common PV forecast integrations (Solcast,
# Forecast.Solar, Open-Meteo Solar Forecast)
FORECAST_ATTRIBUTES = ("detailedHourly", "detailedForecast", "forecast", "wh_hours")
TIME_KEYS = ("period_start", "datetime", "time", "start")
VALUE_KEYS = ("pv_estimate", "value", "energy", "power")

UNIT_TO_KWH = {
    FORECAST_UNIT_WH: 0.001,
    FORECAST_UNIT_KWH: 1.0,
}


def _first_key(entry: dict, keys: tuple[str, ...]):
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def _iter_entries(raw) -> list[tuple[object, object]]:
    """Return (time, value) pairs from a list of dicts or a {time: value} mapping."""
    if isinstance(raw, dict):
        return list(raw.items())
    if isinstance(raw, list):
        return [
            (_first_key(entry, TIME_KEYS), _first_key(entry, VALUE_KEYS))
            for entry in raw
            if isinstance(entry, dict)
        ]
    return []


def parse_forecast(
    raw,
    unit: str,
    start: datetime,
    end: datetime,
) -> tuple[list[float], int]:
    """Bucket raw forecast entries into 24 local-hour values in kWh.

    Only entries with ``start <= time < end`` are used, compared in UTC.
    Entries for the same local hour are summed, negative values count as zero.

    Returns:
        Tuple of (24 hourly kWh values, number of entries mapped).
    """
    factor = UNIT_TO_KWH.get(unit)
    if factor is None:
        raise DataUnavailable(f"Unsupported forecast unit: {unit}")

    window_start, window_end = dt_util.as_utc(start), dt_util.as_utc(end)
    hourly = [0.0] * HORIZON_HOURS
    mapped = 0
    for when, value in _iter_entries(raw):
        if when is None or value is None:
            continue
        moment = when if isinstance(when, datetime) else dt_util.parse_datetime(str(when))
        if moment is None:
            _LOGGER.debug("Unparseable forecast time: %s", when)
            continue
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=start.tzinfo)
        if not window_start <= dt_util.as_utc(moment) < window_end:
            continue
        try:
            energy = float(str(value).replace(",", "."))
        except ValueError:
            _LOGGER.debug("Unparseable forecast value: %s", value)
            continue
        if math.isnan(energy):
            continue
        hourly[moment.astimezone(start.tzinfo).hour] += max(0.0, energy) * factor
        mapped += 1
    return hourly, mapped


def get_forecast_by_hour(
    hass: HomeAssistant,
    entity_id: str,
    unit: str,
    start: datetime,
) -> list[float]:
    """Read the PV forecast for the 24 hours starting at ``start``.

    Raises:
        DataUnavailable: If the forecast entity is missing or unavailable.
    """
    state = hass.states.get(entity_id)
    if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
        raise DataUnavailable(f"Forecast sensor {entity_id} not available")

    raw = next(
        (
            state.attributes[attr]
            for attr in FORECAST_ATTRIBUTES
            if state.attributes.get(attr)
        ),
        None,
    )
    if raw is None:
        _LOGGER.warning("Forecast sensor %s has no hourly forecast attribute", entity_id)
        return [0.0] * HORIZON_HOURS

    hourly, mapped = parse_forecast(
        raw, unit, start, dt_util.as_utc(start) + timedelta(hours=HORIZON_HOURS)
    )
    _LOGGER.debug("PV forecast %s: %d entries mapped", entity_id, mapped)
    return hourly
