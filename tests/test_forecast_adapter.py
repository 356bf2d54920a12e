"""Tests for the PV forecast adapter."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from homeassistant.core import HomeAssistant

from custom_components.energy_distribution.const import FORECAST_UNIT_KWH, FORECAST_UNIT_WH
from custom_components.energy_distribution.forecast_adapter import (
    get_forecast_by_hour,
    parse_forecast,
)
from custom_components.energy_distribution.scheduler import DataUnavailable

from helpers import TZ

START = datetime(2026, 2, 6, 15, 0, tzinfo=TZ)
END = START + timedelta(hours=24)
FORECAST_ENTITY = "sensor.pv_forecast"
BERLIN = ZoneInfo("Europe/Berlin")


class TestParseForecast:
    """Tests for bucketing raw forecast entries into local hours."""

    def test_list_of_dicts_in_wh(self):
        raw = [
            {"period_start": "2026-02-07T10:00:00+01:00", "pv_estimate": 1200},
            {"period_start": "2026-02-07T11:00:00+01:00", "pv_estimate": 2500},
        ]
        hourly, mapped = parse_forecast(raw, FORECAST_UNIT_WH, START, END)

        assert mapped == 2
        assert hourly[10] == pytest.approx(1.2)
        assert hourly[11] == pytest.approx(2.5)
        assert sum(hourly) == pytest.approx(3.7)

    def test_mapping_in_kwh(self):
        raw = {
            "2026-02-07T09:00:00+01:00": 0.8,
            "2026-02-07T12:00:00+01:00": "1,5",
        }
        hourly, mapped = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)

        assert mapped == 2
        assert hourly[9] == pytest.approx(0.8)
        assert hourly[12] == pytest.approx(1.5)

    def test_sub_hourly_entries_summed(self):
        raw = [
            {"datetime": "2026-02-07T12:00:00+01:00", "value": 0.4},
            {"datetime": "2026-02-07T12:30:00+01:00", "value": 0.6},
        ]
        hourly, _ = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)
        assert hourly[12] == pytest.approx(1.0)

    def test_entries_outside_window_ignored(self):
        raw = {
            "2026-02-06T14:00:00+01:00": 2.0,
            "2026-02-07T15:00:00+01:00": 2.0,
            "2026-02-06T16:00:00+01:00": 1.0,
        }
        hourly, mapped = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)
        assert mapped == 1
        assert hourly[16] == pytest.approx(1.0)
        assert hourly[14] == 0.0
        assert hourly[15] == 0.0

    def test_utc_times_converted_to_local_hour(self):
        raw = {"2026-02-07T11:00:00+00:00": 1.0}
        hourly, _ = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)
        assert hourly[12] == pytest.approx(1.0)

    def test_naive_times_use_window_timezone(self):
        raw = {"2026-02-07T11:00:00": 1.0}
        hourly, _ = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)
        assert hourly[11] == pytest.approx(1.0)

    def test_invalid_values_skipped(self):
        raw = [
            {"period_start": "2026-02-07T10:00:00+01:00", "pv_estimate": "n/a"},
            {"period_start": "garbage", "pv_estimate": 1.0},
            {"period_start": "2026-02-07T11:00:00+01:00", "pv_estimate": float("nan")},
            {"period_start": "2026-02-07T12:00:00+01:00"},
            {"period_start": "2026-02-07T13:00:00+01:00", "pv_estimate": -0.5},
            "not-a-dict",
        ]
        hourly, mapped = parse_forecast(raw, FORECAST_UNIT_KWH, START, END)
        assert mapped == 1
        assert hourly == [0.0] * 24

    def test_unknown_unit_rejected(self):
        with pytest.raises(DataUnavailable, match="Unsupported forecast unit"):
            parse_forecast([], "MWh", START, END)


class TestGetForecastByHour:
    """Tests for reading the forecast from a sensor."""

    async def test_reads_first_known_attribute(self, hass: HomeAssistant):
        hass.states.async_set(
            FORECAST_ENTITY,
            "4.2",
            {"wh_hours": {"2026-02-07T12:00:00+01:00": 3000}},
        )

        hourly = get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_WH, START)

        assert len(hourly) == 24
        assert hourly[12] == pytest.approx(3.0)

    async def test_missing_entity_raises(self, hass: HomeAssistant):
        with pytest.raises(DataUnavailable, match="not available"):
            get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_WH, START)

    async def test_unavailable_entity_raises(self, hass: HomeAssistant):
        hass.states.async_set(FORECAST_ENTITY, "unavailable")
        with pytest.raises(DataUnavailable):
            get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_WH, START)

    async def test_no_attribute_gives_zero_forecast(self, hass: HomeAssistant, caplog):
        hass.states.async_set(FORECAST_ENTITY, "0")

        hourly = get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_WH, START)

        assert hourly == [0.0] * 24
        assert "no hourly forecast attribute" in caplog.text

    async def test_window_is_24_elapsed_hours_when_clocks_go_back(self, hass: HomeAssistant):
        start = datetime(2026, 10, 24, 15, 0, tzinfo=BERLIN)
        hass.states.async_set(
            FORECAST_ENTITY,
            "9",
            {
                "wh_hours": {
                    "2026-10-25T00:00:00+00:00": 1.0,
                    "2026-10-25T01:00:00+00:00": 1.0,
                    "2026-10-25T12:00:00+00:00": 3.0,
                    "2026-10-25T13:00:00+00:00": 5.0,
                }
            },
        )

        hourly = get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_KWH, start)

        # Both real 02:00 hours land in one bucket; 14:00 CET is past the window
        assert hourly[2] == pytest.approx(2.0)
        assert hourly[13] == pytest.approx(3.0)
        assert hourly[14] == 0.0

    async def test_window_is_24_elapsed_hours_when_clocks_go_forward(self, hass: HomeAssistant):
        start = datetime(2026, 3, 28, 15, 0, tzinfo=BERLIN)
        hass.states.async_set(
            FORECAST_ENTITY,
            "7",
            {
                "wh_hours": {
                    "2026-03-28T14:00:00+00:00": 1.0,
                    "2026-03-29T13:00:00+00:00": 2.0,
                    "2026-03-29T14:00:00+00:00": 4.0,
                }
            },
        )

        hourly = get_forecast_by_hour(hass, FORECAST_ENTITY, FORECAST_UNIT_KWH, start)

        assert hourly[15] == pytest.approx(3.0)
        assert hourly[16] == 0.0
