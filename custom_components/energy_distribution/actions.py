"""Timed setpoint actions for the Energy Distribution Planner integration.

Each selected heat pump slot becomes a pair of actions: apply a setpoint
delta at the slot start and revert it after a fixed duration. Actions are
plain values; their timers are owned by ``SetpointActionScheduler``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
import logging

from homeassistant.const import STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.helpers.event import async_track_point_in_time
from homeassistant.util import dt as dt_util

_LOGGER = logging.getLogger(__name__)

ACTION_APPLY = "apply"
ACTION_REVERT = "revert"


@dataclass(frozen=True)
class SetpointAdjustment:
    """A temporary change of a setpoint entity."""

    target: str
    delta: float
    duration: timedelta


@dataclass(frozen=True)
class TimedAction:
    """A single setpoint write at a fixed point in time."""

    fire_at: datetime
    kind: str
    target: str
    value: float
    slot_start: datetime

    def as_dict(self) -> dict:
        """Return a JSON-friendly representation."""
        return {
            "fire_at": self.fire_at.isoformat(),
            "kind": self.kind,
            "target": self.target,
            "value": self.value,
            "slot_start": self.slot_start.isoformat(),
        }


class SetpointActionScheduler:
    """Schedule apply/revert setpoint pairs and guarantee their revert.

    An apply action is only scheduled together with its revert. Once an apply
    has fired, its revert can no longer be cancelled by a new plan; it runs at
    its time or, on shutdown, immediately.
    """

    def __init__(self, hass: HomeAssistant) -> None:
        """Initialize the scheduler."""
        self.hass = hass
        self._timers: dict[TimedAction, CALLBACK_TYPE] = {}
        self._reverts: dict[TimedAction, TimedAction] = {}
        self._committed: set[TimedAction] = set()

    @property
    def pending(self) -> list[TimedAction]:
        """Return all actions still waiting to fire, ordered by fire time."""
        return sorted(self._timers, key=lambda a: (a.fire_at, a.kind != ACTION_REVERT))

    def async_schedule(
        self,
        adjustment: SetpointAdjustment,
        slot_starts: list[datetime],
        now: datetime,
    ) -> list[TimedAction]:
        """Schedule an apply/revert pair for every slot start.

        Slots that already started are skipped. Returns the actions that
        were scheduled.
        """
        baseline = self._baseline(adjustment.target)
        if baseline is None:
            _LOGGER.warning(
                "Setpoint %s has no numeric state, not scheduling %d slot(s)",
                adjustment.target, len(slot_starts),
            )
            return []

        scheduled: list[TimedAction] = []
        for start in slot_starts:
            if start <= now:
                _LOGGER.info(
                    "Scheduling skipped for %s: slot start %s already passed",
                    adjustment.target, start.isoformat(),
                )
                continue
            apply = TimedAction(
                fire_at=start,
                kind=ACTION_APPLY,
                target=adjustment.target,
                value=baseline + adjustment.delta,
                slot_start=start,
            )
            revert = TimedAction(
                fire_at=dt_util.as_utc(start) + adjustment.duration,
                kind=ACTION_REVERT,
                target=adjustment.target,
                value=baseline,
                slot_start=start,
            )
            if apply in self._timers:
                _LOGGER.debug("Action %s already scheduled", apply)
                continue
            self._reverts[apply] = revert
            self._track(apply)
            self._track(revert)
            scheduled.extend((apply, revert))
            _LOGGER.debug(
                "Scheduled %s = %s at %s, revert to %s at %s",
                adjustment.target, apply.value, apply.fire_at.isoformat(),
                revert.value, revert.fire_at.isoformat(),
            )
        return scheduled

    def async_supersede(self) -> int:
        """Cancel applies that have not fired yet, together with their reverts.

        Reverts of applies that already fired are kept. Returns the number of
        cancelled actions.
        """
        cancelled = 0
        for apply, revert in list(self._reverts.items()):
            self._cancel(apply)
            self._cancel(revert)
            del self._reverts[apply]
            cancelled += 2
        if cancelled:
            _LOGGER.debug("Superseded %d pending action(s)", cancelled)
        return cancelled

    async def async_shutdown(self) -> None:
        """Cancel pending applies and run reverts of already applied actions."""
        self.async_supersede()
        committed = sorted(self._committed, key=lambda a: a.fire_at)
        for revert in committed:
            self._cancel(revert)
        self._committed.clear()
        for revert in committed:
            _LOGGER.info("Reverting %s to %s on shutdown", revert.target, revert.value)
            await self._async_set_value(revert.target, revert.value)

    def _baseline(self, target: str) -> float | None:
        """Return the value a revert restores for ``target``.

        While an earlier window is applied, the entity shows the raised value;
        the outstanding revert then holds the true baseline.
        """
        for revert in sorted(self._committed, key=lambda a: a.fire_at):
            if revert.target == target:
                return revert.value
        state = self.hass.states.get(target)
        if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
            return None
        try:
            return float(state.state)
        except (ValueError, TypeError):
            return None

    def _track(self, action: TimedAction) -> None:
        self._timers[action] = async_track_point_in_time(
            self.hass, partial(self._async_fire, action), action.fire_at
        )

    def _cancel(self, action: TimedAction) -> None:
        if (unsub := self._timers.pop(action, None)) is not None:
            unsub()

    async def _async_fire(self, action: TimedAction, now: datetime) -> None:
        """Run an action once and release its timer."""
        if self._timers.pop(action, None) is None:
            return
        if action.kind == ACTION_APPLY:
            revert = self._reverts.pop(action, None)
            if revert is not None:
                self._committed.add(revert)
        else:
            self._committed.discard(action)
        _LOGGER.info(
            "%s %s: setting %s to %s",
            action.kind.capitalize(), action.slot_start.isoformat(),
            action.target, action.value,
        )
        await self._async_set_value(action.target, action.value)

    async def _async_set_value(self, target: str, value: float) -> None:
        """Write a value to a number or input_number entity."""
        domain = target.split(".", 1)[0]
        try:
            await self.hass.services.async_call(
                domain,
                "set_value",
                {"entity_id": target, "value": value},
                blocking=True,
            )
        except Exception:
            _LOGGER.exception("Failed to set %s to %s", target, value)
