"""Pure planning algorithm for the Energy Distribution Planner integration.

This module contains no Home Assistant dependencies and can be tested independently.
It scores the next 24 hourly price slots and allocates them to two deferred loads:
- EV (dischargeable load): fixed energy target, night hours only, ranked by raw price
- Heat pump (thermal load): two independent 2-hour windows for hot water and heating
"""

from __future__ import annotations

import logging
import math
from collections import Counter, deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo

_LOGGER = logging.getLogger(__name__)

HORIZON_HOURS = 24
THERMAL_SLOT_COUNT = 2
CHEAPEST_NIGHT_COUNT = 2
CYCLE_LOG_MAX_LINES = 9
MIN_CHARGE_RATE = 0.1

OUTCOME_NIGHT_CHARGE = "night_charge"
OUTCOME_DAYTIME_SURPLUS = "daytime_surplus"
OUTCOME_INFEASIBLE = "infeasible"


class DataUnavailable(ValueError):
    """Raised when the price or forecast input cannot be planned on."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PriceSlot:
    """One hourly price slot of the planning horizon."""

    start: datetime
    end: datetime
    price: float


@dataclass(frozen=True)
class PlannerConfig:
    """Tunable thresholds and constants of the planner."""

    night_start_hour: int = 22
    night_end_hour: int = 6
    storage_guard_day: float = 50.0
    storage_guard_night: float = 30.0
    guard_bonus: float = 0.02
    cheap_cutoff: float = 0.16
    storage_penalty: float = 0.05
    hourly_sufficiency_kwh: float = 1.5
    target_energy_kwh: float = 12.0
    charge_rate_kw: float = 3.6
    sufficiency_threshold_kwh: float = 12.0


@dataclass(frozen=True)
class DischargeablePlan:
    """Overnight replenishment plan for the EV."""

    energy: float
    deadline: datetime
    hours_used: int
    slots: tuple[int, ...]

    def as_dict(self) -> dict:
        """Return a JSON-friendly representation."""
        return {
            "energy": self.energy,
            "deadline": self.deadline.isoformat(),
            "hours_used": self.hours_used,
            "slots": list(self.slots),
        }


@dataclass(frozen=True)
class ThermalPlan:
    """Hot water and space heating windows for the heat pump.

    The two windows are selected independently and may share slots.
    """

    hot_water_slots: tuple[int, ...] = ()
    heating_slots: tuple[int, ...] = ()


@dataclass
class PlanResult:
    """Structured record of one planning cycle."""

    slots: list[PriceSlot]
    rows: list[dict]
    outcome: str
    ev_plan: DischargeablePlan | None
    thermal_plan: ThermalPlan
    forecast_total: float
    cheap_night_count: int
    cheapest_night: list[int]
    storage_soc: float
    summary: str
    min_price: float
    max_price: float


class CycleLog:
    """Bounded, append-only log owned by a single planning cycle."""

    def __init__(self, max_lines: int = CYCLE_LOG_MAX_LINES) -> None:
        self._entries: deque[tuple[int, str]] = deque(maxlen=max_lines)

    def add(self, message: str, level: int = logging.INFO) -> None:
        """Append a line; the oldest line is dropped when full."""
        self._entries.append((level, message))

    @property
    def lines(self) -> list[str]:
        """Return the retained messages, oldest first."""
        return [message for _, message in self._entries]

    def flush(self, logger: logging.Logger) -> list[str]:
        """Write the retained lines to ``logger`` and return them."""
        for level, message in self._entries:
            logger.log(level, message)
        return self.lines


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_datetime(value: str | datetime) -> datetime:
    """Convert a value to a datetime, handling both strings and datetime objects."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def local_hour(value: datetime, tz: tzinfo) -> int:
    """Return the hour of day (0-23) of ``value`` in ``tz``."""
    return value.astimezone(tz).hour


def is_night(hour: int, config: PlannerConfig) -> bool:
    """Check if an hour of day falls in the configured night window.

    Supports cross-midnight windows (e.g., 22 to 6). An empty window
    (start == end) contains no hours.
    """
    start, end = config.night_start_hour, config.night_end_hour
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def hours_needed(config: PlannerConfig) -> int:
    """Return how many charging hours the EV energy target requires."""
    rate = max(MIN_CHARGE_RATE, config.charge_rate_kw)
    return max(1, math.ceil(config.target_energy_kwh / rate))


def build_price_slots(raw_slots: Sequence[dict], now: datetime) -> list[PriceSlot]:
    """Build the hourly planning horizon from raw ``{start, end, value}`` slots.

    Quarter-hour slots are averaged into their hour. Only hours starting at or
    after ``now`` and less than 24 elapsed hours later are kept.

    Hours are keyed and compared in UTC, so a daylight saving change neither
    merges nor drops an hour. Slot times are returned in the timezone of
    ``now``.
    """
    tz = now.tzinfo
    now_utc = now.astimezone(timezone.utc)
    horizon_end = now_utc + timedelta(hours=HORIZON_HOURS)
    grouped: dict[datetime, list[float]] = {}
    for slot in raw_slots:
        try:
            start = _to_datetime(slot.get("start")).astimezone(tz)
            price = float(slot.get("value"))
        except (ValueError, TypeError, KeyError) as e:
            _LOGGER.warning("Error processing price slot: %s", e)
            continue
        if math.isnan(price):
            _LOGGER.warning("Ignoring NaN price for slot starting %s", start)
            continue
        hour_start = start.replace(minute=0, second=0, microsecond=0).astimezone(timezone.utc)
        if now_utc <= hour_start < horizon_end:
            grouped.setdefault(hour_start, []).append(price)

    return [
        PriceSlot(
            start=hour_start.astimezone(tz),
            end=(hour_start + timedelta(hours=1)).astimezone(tz),
            price=sum(prices) / len(prices),
        )
        for hour_start, prices in sorted(grouped.items())
    ]


def align_forecast(
    slots: Sequence[PriceSlot], forecast_by_hour: Sequence[float], tz: tzinfo
) -> list[float]:
    """Map each slot to the forecast value of its local hour of day.

    When a daylight saving change puts two slots on the same local hour, that
    hour's value is split evenly between them so it is counted once.
    """
    if len(forecast_by_hour) != HORIZON_HOURS:
        raise DataUnavailable(
            f"Forecast must have {HORIZON_HOURS} hourly values, got {len(forecast_by_hour)}"
        )
    hours = [local_hour(s.start, tz) for s in slots]
    shares = Counter(hours)
    return [float(forecast_by_hour[h]) / shares[h] for h in hours]


# ---------------------------------------------------------------------------
# Cost model and slot selection
# ---------------------------------------------------------------------------

def hour_cost(
    hour: int,
    price: float,
    forecast_kwh: float,
    storage_soc: float,
    config: PlannerConfig,
) -> float:
    """Score one hour: price plus storage penalty plus guard bonus.

    The storage penalty applies when the PV forecast for the hour is too low to
    carry the load, so the battery would have to supply it. The guard bonus
    applies when the battery is below the guard level for that time of day.
    Negative or NaN forecasts count as zero.
    """
    pv = forecast_kwh if forecast_kwh > 0 else 0.0
    penalty = config.storage_penalty if pv < config.hourly_sufficiency_kwh else 0.0
    guard = config.storage_guard_night if is_night(hour, config) else config.storage_guard_day
    bonus = config.guard_bonus if storage_soc < guard else 0.0
    return price + penalty + bonus


def _rank_lowest(scores: Sequence[float], count: int, candidates: Sequence[int]) -> list[int]:
    """Pick ``count`` candidate indices with the lowest score.

    Ties go to the earlier index. The result is in ascending index order.
    """
    if count <= 0:
        return []
    ranked = sorted(candidates, key=lambda i: (scores[i], i))
    return sorted(ranked[:count])


def select_cheapest_slots(
    slots: Sequence[PriceSlot],
    forecast: Sequence[float],
    storage_soc: float,
    count: int,
    config: PlannerConfig,
    tz: tzinfo,
    eligible: Callable[[int], bool] | None = None,
) -> list[int]:
    """Return the indices of the ``count`` lowest-cost slots.

    Args:
        slots: The 24 hourly price slots, ordered by start.
        forecast: PV forecast (kWh) aligned to ``slots``.
        storage_soc: Battery state of charge in percent.
        count: How many slots to select.
        config: Planner configuration.
        tz: Timezone for hour-of-day evaluation.
        eligible: Optional predicate over the local hour of day.

    Returns:
        Up to ``count`` slot indices in chronological order. Fewer are
        returned when fewer slots are eligible.
    """
    hours = [local_hour(s.start, tz) for s in slots]
    costs = [
        hour_cost(h, s.price, f, storage_soc, config)
        for h, s, f in zip(hours, slots, forecast)
    ]
    candidates = [i for i, h in enumerate(hours) if eligible is None or eligible(h)]
    return _rank_lowest(costs, count, candidates)


def cheapest_night_slots(
    slots: Sequence[PriceSlot],
    config: PlannerConfig,
    tz: tzinfo,
    count: int = CHEAPEST_NIGHT_COUNT,
) -> list[int]:
    """Return the ``count`` cheapest night slots by raw price, in time order."""
    candidates = [i for i, s in enumerate(slots) if is_night(local_hour(s.start, tz), config)]
    return _rank_lowest([s.price for s in slots], count, candidates)


# ---------------------------------------------------------------------------
# Load planners
# ---------------------------------------------------------------------------

def plan_dischargeable_load(
    slots: Sequence[PriceSlot],
    forecast: Sequence[float],
    config: PlannerConfig,
    tz: tzinfo,
    log: CycleLog | None = None,
) -> tuple[str, DischargeablePlan | None]:
    """Decide whether the EV charges overnight or waits for daytime PV surplus.

    Night slots are ranked by raw price only: the goal is the lowest tariff
    for a guaranteed replenishment, independent of battery considerations.

    Returns:
        Tuple of (outcome, plan). The plan is None unless the outcome is
        ``night_charge``.
    """
    needed = hours_needed(config)
    forecast_total = sum(forecast)
    candidates = [i for i, s in enumerate(slots) if is_night(local_hour(s.start, tz), config)]
    picked = _rank_lowest([s.price for s in slots], needed, candidates)

    if forecast_total >= config.sufficiency_threshold_kwh:
        if log:
            log.add(
                f"EV: PV forecast {forecast_total:.2f} kWh >= "
                f"{config.sufficiency_threshold_kwh:.1f} kWh, charging from daytime surplus"
            )
        return OUTCOME_DAYTIME_SURPLUS, None

    if len(picked) < needed:
        if log:
            log.add(
                f"EV: only {len(picked)} of {needed} night hours available, no night charge",
                logging.WARNING,
            )
        return OUTCOME_INFEASIBLE, None

    deadline = max(slots[i].end for i in picked)
    plan = DischargeablePlan(
        energy=config.target_energy_kwh,
        deadline=deadline,
        hours_used=needed,
        slots=tuple(picked),
    )
    if log:
        first = slots[picked[0]].start.astimezone(tz)
        log.add(
            f"EV: night charge of {plan.energy:g} kWh planned from "
            f"{first:%d.%m %H:%M} until {deadline.astimezone(tz):%d.%m %H:%M} "
            f"({needed} {'hour' if needed == 1 else 'hours'})"
        )
    return OUTCOME_NIGHT_CHARGE, plan


def plan_thermal_load(
    slots: Sequence[PriceSlot],
    forecast: Sequence[float],
    storage_soc: float,
    config: PlannerConfig,
    tz: tzinfo,
) -> ThermalPlan:
    """Pick two 2-hour windows for the heat pump, any time of day.

    Hot water and heating are selected by two independent calls and may
    coincide.
    """
    hot_water = select_cheapest_slots(slots, forecast, storage_soc, THERMAL_SLOT_COUNT, config, tz)
    heating = select_cheapest_slots(slots, forecast, storage_soc, THERMAL_SLOT_COUNT, config, tz)
    return ThermalPlan(hot_water_slots=tuple(hot_water), heating_slots=tuple(heating))


# ---------------------------------------------------------------------------
# Cycle output
# ---------------------------------------------------------------------------

def build_rows(
    slots: Sequence[PriceSlot],
    forecast: Sequence[float],
    config: PlannerConfig,
    tz: tzinfo,
) -> list[dict]:
    """Build the aligned per-hour table of the cycle."""
    rows = []
    for i, (slot, pv) in enumerate(zip(slots, forecast)):
        hour = local_hour(slot.start, tz)
        night = is_night(hour, config)
        rows.append({
            "index": i,
            "hour": hour,
            "start": slot.start.isoformat(),
            "end": slot.end.isoformat(),
            "price": round(slot.price, 5),
            "price_ct": round(slot.price * 100, 2),
            "forecast_kwh": round(pv, 3),
            "is_night": night,
            "is_cheap_night": night and slot.price < config.cheap_cutoff,
        })
    return rows


def describe_slots(slots: Sequence[PriceSlot], indices: Sequence[int]) -> list[dict]:
    """Return start/end/price details for the given slot indices."""
    return [
        {
            "index": i,
            "start": slots[i].start.isoformat(),
            "end": slots[i].end.isoformat(),
            "price": round(slots[i].price, 5),
        }
        for i in indices
    ]


def build_summary(
    slots: Sequence[PriceSlot],
    forecast_total: float,
    ev_plan: DischargeablePlan | None,
    cheapest_night: Sequence[int],
    tz: tzinfo,
) -> str:
    """Build a compact one-line summary for dashboards."""
    prices = [s.price for s in slots]
    if ev_plan:
        ev = f"EV: {ev_plan.energy:g} kWh by {ev_plan.deadline.astimezone(tz):%H:%M}"
    else:
        ev = "EV: no night charge"
    if cheapest_night:
        cheap = "Night (cheap): " + ", ".join(
            f"{slots[i].start.astimezone(tz):%H:%M} {slots[i].price * 100:.1f} ct"
            for i in cheapest_night
        )
    else:
        cheap = "Night (cheap): none"
    return (
        f"PV: {forecast_total:.2f} kWh | "
        f"Price: {min(prices) * 100:.1f}-{max(prices) * 100:.1f} ct/kWh | "
        f"{ev} | {cheap}"
    )


def _validate_slots(slots: Sequence[PriceSlot]) -> None:
    """Ensure the horizon has exactly 24 ordered, non-overlapping slots."""
    if len(slots) != HORIZON_HOURS:
        raise DataUnavailable(
            f"Expected {HORIZON_HOURS} hourly price slots, got {len(slots)}"
        )
    for prev, cur in zip(slots, slots[1:]):
        if cur.start.astimezone(timezone.utc) < prev.end.astimezone(timezone.utc):
            raise DataUnavailable(
                f"Price slots overlap or are unordered at {cur.start.isoformat()}"
            )


def plan_cycle(
    slots: Sequence[PriceSlot],
    forecast_by_hour: Sequence[float],
    storage_soc: float,
    config: PlannerConfig,
    tz: tzinfo,
    log: CycleLog | None = None,
) -> PlanResult:
    """Run one full planning cycle over a 24-hour horizon.

    Args:
        slots: Hourly price slots from ``build_price_slots``.
        forecast_by_hour: PV forecast in kWh indexed by local hour (0-23).
        storage_soc: Battery state of charge in percent.
        config: Planner configuration.
        tz: Local timezone.
        log: Optional cycle log receiving the decision rationale.

    Returns:
        The structured record of the cycle.

    Raises:
        DataUnavailable: If the price curve is short, empty or malformed, or
            the forecast does not cover 24 hours.
    """
    slots = list(slots)
    _validate_slots(slots)
    forecast = align_forecast(slots, forecast_by_hour, tz)
    forecast_total = sum(forecast)

    cheapest_night = cheapest_night_slots(slots, config, tz)
    if log and cheapest_night:
        log.add(
            "Cheapest night hours: "
            + " | ".join(
                f"{slots[i].start.astimezone(tz):%d.%m %H:%M} {slots[i].price * 100:.1f} ct/kWh"
                for i in cheapest_night
            )
        )

    rows = build_rows(slots, forecast, config, tz)
    cheap_night_count = sum(1 for r in rows if r["is_cheap_night"])
    if log:
        log.add(
            f"PV forecast total: {forecast_total:.2f} kWh "
            f"(threshold {config.sufficiency_threshold_kwh:.1f} kWh)"
        )
        log.add(f"Cheap night hours (< {config.cheap_cutoff} /kWh): {cheap_night_count}")

    outcome, ev_plan = plan_dischargeable_load(slots, forecast, config, tz, log)
    thermal_plan = plan_thermal_load(slots, forecast, storage_soc, config, tz)
    if log:
        for label, indices in (
            ("hot water", thermal_plan.hot_water_slots),
            ("heating", thermal_plan.heating_slots),
        ):
            listed = ", ".join(
                f"{slots[i].start.astimezone(tz):%d.%m %H:%M} ({slots[i].price * 100:.1f} ct/kWh)"
                for i in indices
            )
            log.add(f"Heat pump {label} (2h): {listed or 'none'}")

    prices = [s.price for s in slots]
    return PlanResult(
        slots=slots,
        rows=rows,
        outcome=outcome,
        ev_plan=ev_plan,
        thermal_plan=thermal_plan,
        forecast_total=round(forecast_total, 3),
        cheap_night_count=cheap_night_count,
        cheapest_night=cheapest_night,
        storage_soc=storage_soc,
        summary=build_summary(slots, forecast_total, ev_plan, cheapest_night, tz),
        min_price=round(min(prices), 5),
        max_price=round(max(prices), 5),
    )
