"""Tests for the timed setpoint action scheduler."""

from __future__ import annotations

from datetime import timedelta
import logging

import pytest

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util
from pytest_homeassistant_custom_component.common import (
    async_fire_time_changed,
    async_mock_service,
)

from custom_components.energy_distribution.actions import (
    ACTION_APPLY,
    ACTION_REVERT,
    SetpointActionScheduler,
    SetpointAdjustment,
)

SETPOINT = "number.dhw_setpoint"
ADJUSTMENT = SetpointAdjustment(target=SETPOINT, delta=5.0, duration=timedelta(minutes=90))


@pytest.fixture
def set_value_calls(hass: HomeAssistant):
    """Record number.set_value service calls."""
    return async_mock_service(hass, "number", "set_value")


@pytest.fixture
async def scheduler(hass: HomeAssistant):
    """Return an action scheduler with a numeric setpoint in place."""
    hass.states.async_set(SETPOINT, "50.0")
    action_scheduler = SetpointActionScheduler(hass)
    yield action_scheduler
    await action_scheduler.async_shutdown()


async def _advance(hass: HomeAssistant, when) -> None:
    async_fire_time_changed(hass, when)
    await hass.async_block_till_done()


def _values(calls) -> list[float]:
    return [call.data["value"] for call in calls]


class TestSchedule:
    """Tests for scheduling apply/revert pairs."""

    async def test_pair_created_per_slot(self, hass: HomeAssistant, scheduler, set_value_calls):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)

        scheduled = scheduler.async_schedule(ADJUSTMENT, [start, start + timedelta(hours=5)], now)

        assert len(scheduled) == 4
        apply, revert = scheduled[0], scheduled[1]
        assert apply.kind == ACTION_APPLY
        assert apply.fire_at == start
        assert apply.value == 55.0
        assert revert.kind == ACTION_REVERT
        assert revert.fire_at == start + timedelta(minutes=90)
        assert revert.value == 50.0
        assert scheduler.pending[0] == apply
        assert len(scheduler.pending) == 4
        assert set_value_calls == []

    async def test_apply_then_revert_fire(self, hass: HomeAssistant, scheduler, set_value_calls):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start], now)

        await _advance(hass, start + timedelta(seconds=1))
        assert _values(set_value_calls) == [55.0]
        assert set_value_calls[0].data["entity_id"] == SETPOINT

        await _advance(hass, start + timedelta(minutes=91))
        assert _values(set_value_calls) == [55.0, 50.0]
        assert scheduler.pending == []

    async def test_past_slot_skipped(self, hass: HomeAssistant, scheduler, set_value_calls, caplog):
        now = dt_util.utcnow()

        with caplog.at_level(logging.INFO):
            scheduled = scheduler.async_schedule(ADJUSTMENT, [now - timedelta(minutes=5), now], now)

        assert scheduled == []
        assert scheduler.pending == []
        assert "Scheduling skipped" in caplog.text

        await _advance(hass, now + timedelta(hours=3))
        assert set_value_calls == []

    async def test_non_numeric_setpoint_skipped(self, hass: HomeAssistant, scheduler, caplog):
        hass.states.async_set(SETPOINT, "unavailable")
        now = dt_util.utcnow()

        scheduled = scheduler.async_schedule(ADJUSTMENT, [now + timedelta(hours=1)], now)

        assert scheduled == []
        assert "has no numeric state" in caplog.text

    async def test_duplicate_slot_not_rescheduled(self, hass: HomeAssistant, scheduler):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start], now)

        assert scheduler.async_schedule(ADJUSTMENT, [start], now) == []
        assert len(scheduler.pending) == 2


class TestSupersede:
    """Tests for replacing a previous plan."""

    async def test_unfired_pair_cancelled(self, hass: HomeAssistant, scheduler, set_value_calls):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start], now)

        assert scheduler.async_supersede() == 2
        assert scheduler.pending == []

        await _advance(hass, start + timedelta(hours=3))
        assert set_value_calls == []

    async def test_revert_of_fired_apply_kept(self, hass: HomeAssistant, scheduler, set_value_calls):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start], now)
        await _advance(hass, start + timedelta(seconds=1))

        assert scheduler.async_supersede() == 0
        assert [a.kind for a in scheduler.pending] == [ACTION_REVERT]

        await _advance(hass, start + timedelta(minutes=91))
        assert _values(set_value_calls) == [55.0, 50.0]

    async def test_baseline_from_outstanding_revert(
        self, hass: HomeAssistant, scheduler, set_value_calls
    ):
        """A window scheduled while another is applied keeps the true baseline."""
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start], now)
        await _advance(hass, start + timedelta(seconds=1))
        hass.states.async_set(SETPOINT, "55.0")

        later = start + timedelta(hours=3)
        scheduled = scheduler.async_schedule(ADJUSTMENT, [later], start + timedelta(minutes=10))

        assert [a.value for a in scheduled] == [55.0, 50.0]


class TestShutdown:
    """Tests for unloading with outstanding actions."""

    async def test_committed_revert_runs_immediately(
        self, hass: HomeAssistant, scheduler, set_value_calls
    ):
        now = dt_util.utcnow()
        start = now + timedelta(hours=1)
        scheduler.async_schedule(ADJUSTMENT, [start, start + timedelta(hours=4)], now)
        await _advance(hass, start + timedelta(seconds=1))

        await scheduler.async_shutdown()
        await hass.async_block_till_done()

        assert _values(set_value_calls) == [55.0, 50.0]
        assert scheduler.pending == []

        await _advance(hass, start + timedelta(hours=8))
        assert len(set_value_calls) == 2

    async def test_nothing_applied_nothing_written(
        self, hass: HomeAssistant, scheduler, set_value_calls
    ):
        now = dt_util.utcnow()
        scheduler.async_schedule(ADJUSTMENT, [now + timedelta(hours=1)], now)

        await scheduler.async_shutdown()
        await hass.async_block_till_done()

        assert set_value_calls == []


async def test_service_failure_logged(hass: HomeAssistant, caplog):
    """A failing setpoint write is logged and does not raise."""
    hass.states.async_set("input_number.heating_setpoint", "21")
    scheduler = SetpointActionScheduler(hass)
    adjustment = SetpointAdjustment(
        target="input_number.heating_setpoint", delta=3.0, duration=timedelta(hours=2)
    )
    now = dt_util.utcnow()
    start = now + timedelta(hours=1)
    scheduler.async_schedule(adjustment, [start], now)

    await _advance(hass, start + timedelta(seconds=1))

    assert "Failed to set input_number.heating_setpoint to 24.0" in caplog.text
    assert [a.kind for a in scheduler.pending] == [ACTION_REVERT]

    await scheduler.async_shutdown()
