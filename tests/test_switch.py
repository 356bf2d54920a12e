"""Tests for the Energy Distribution apply plans switch entity."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from helpers import make_config_entry

from custom_components.energy_distribution.switch import ApplyPlansSwitch


def _coordinator(apply_enabled: bool = False) -> MagicMock:
    coordinator = MagicMock()
    coordinator.apply_enabled = apply_enabled
    coordinator.async_set_apply_enabled = AsyncMock()
    return coordinator


def test_apply_switch_unique_id():
    """Test apply switch has correct unique ID."""
    switch = ApplyPlansSwitch(_coordinator(), make_config_entry("abc"))
    assert switch.unique_id == "abc_apply_plans"


def test_apply_switch_translation_key():
    switch = ApplyPlansSwitch(_coordinator(), make_config_entry())
    assert switch.translation_key == "apply_plans"
    assert switch.has_entity_name is True


def test_apply_switch_is_on_follows_coordinator():
    assert ApplyPlansSwitch(_coordinator(True), make_config_entry()).is_on is True
    assert ApplyPlansSwitch(_coordinator(False), make_config_entry()).is_on is False


async def test_apply_switch_turn_on():
    """Test turning on calls coordinator.async_set_apply_enabled(True)."""
    coordinator = _coordinator()
    switch = ApplyPlansSwitch(coordinator, make_config_entry())
    await switch.async_turn_on()
    coordinator.async_set_apply_enabled.assert_awaited_once_with(True)


async def test_apply_switch_turn_off():
    """Test turning off calls coordinator.async_set_apply_enabled(False)."""
    coordinator = _coordinator(True)
    switch = ApplyPlansSwitch(coordinator, make_config_entry())
    await switch.async_turn_off()
    coordinator.async_set_apply_enabled.assert_awaited_once_with(False)


async def test_apply_switch_restore_on():
    """Test that a previous ON state is restored on startup."""
    coordinator = _coordinator(False)
    switch = ApplyPlansSwitch(coordinator, make_config_entry())

    last_state = MagicMock()
    last_state.state = "on"

    with patch.object(switch, "async_get_last_state", return_value=last_state):
        await switch.async_added_to_hass()

    coordinator.async_set_apply_enabled.assert_awaited_once_with(True)


async def test_apply_switch_restore_off_overrides_option():
    """A switch turned off before restart stays off even if the option says on."""
    coordinator = _coordinator(True)
    switch = ApplyPlansSwitch(coordinator, make_config_entry())

    last_state = MagicMock()
    last_state.state = "off"

    with patch.object(switch, "async_get_last_state", return_value=last_state):
        await switch.async_added_to_hass()

    coordinator.async_set_apply_enabled.assert_awaited_once_with(False)


async def test_apply_switch_restore_same_state():
    coordinator = _coordinator(False)
    switch = ApplyPlansSwitch(coordinator, make_config_entry())

    last_state = MagicMock()
    last_state.state = "off"

    with patch.object(switch, "async_get_last_state", return_value=last_state):
        await switch.async_added_to_hass()

    coordinator.async_set_apply_enabled.assert_not_awaited()


async def test_apply_switch_restore_no_previous_state():
    coordinator = _coordinator(False)
    switch = ApplyPlansSwitch(coordinator, make_config_entry())

    with patch.object(switch, "async_get_last_state", return_value=None):
        await switch.async_added_to_hass()

    coordinator.async_set_apply_enabled.assert_not_awaited()
