"""Shared test fixtures for Energy Distribution tests."""

from __future__ import annotations

from datetime import datetime

import pytest

from helpers import TZ


@pytest.fixture
def now() -> datetime:
    """Return a fixed 'now' for deterministic testing."""
    return datetime(2026, 2, 6, 14, 30, 0, tzinfo=TZ)


@pytest.fixture
def today_prices() -> list[float]:
    """Return 24 hourly prices simulating a winter day (EUR/kWh).

    Cheap at night, expensive in morning/evening, moderate midday.
    """
    return [
        0.30, 0.28, 0.10, 0.08, 0.09, 0.25,  # 00-05: night
        0.32, 0.35, 0.50, 0.45, 0.40, 0.36,  # 06-11: morning ramp
        0.34, 0.33, 0.31, 0.35, 0.38, 0.40,  # 12-17: midday + evening ramp
        0.55, 0.60, 0.50, 0.45, 0.42, 0.41,  # 18-23: evening peak + decline
    ]


@pytest.fixture
def low_forecast() -> list[float]:
    """Return a 24-hour PV forecast (kWh) totalling 5 kWh."""
    forecast = [0.0] * 24
    forecast[10], forecast[11], forecast[12], forecast[13] = 1.0, 1.5, 1.5, 1.0
    return forecast
