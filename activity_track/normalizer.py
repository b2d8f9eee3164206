from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator, Literal

from .stats import DayStats

logger = logging.getLogger(__name__)

KJ_PER_KCAL = 4.184
# Used when a timestamp is absent or its date part does not parse.
SENTINEL_DATE = "1970-01-01"
# Upper bound for one sample's qty/duration. Anything above is junk, and the
# bound keeps steps inside SQLite's INTEGER range and running sums finite.
MAX_QUANTITY = 1e9

STEP_METRIC = "step_count"
ACTIVE_ENERGY_METRICS = frozenset({"active_energy"})
RESTING_ENERGY_METRICS = frozenset({"basal_energy_burned", "resting_energy"})

EnergyField = Literal["active_kcal", "resting_kcal"]


class InvalidPayloadError(ValueError):
    """Raised when a batch does not have the expected shape."""


@dataclass(frozen=True)
class SetSteps:
    steps: int

    def apply(self, stats: DayStats) -> None:
        stats.steps = self.steps


@dataclass(frozen=True)
class AddEnergy:
    field: EnergyField
    kcal: float

    def apply(self, stats: DayStats) -> None:
        setattr(stats, self.field, getattr(stats, self.field) + self.kcal)


@dataclass(frozen=True)
class AddWorkout:
    minutes: float
    kcal: float
    name: str | None = None

    def apply(self, stats: DayStats) -> None:
        stats.workout_count += 1
        stats.workout_minutes += self.minutes
        stats.active_kcal += self.kcal
        if self.name:
            stats.workout_names.add(self.name)


Delta = SetSteps | AddEnergy | AddWorkout


def date_key(raw: Any) -> str:
    """Return the literal YYYY-MM-DD prefix of a "YYYY-MM-DD HH:MM:SS +ZZZZ" timestamp."""
    if not isinstance(raw, str) or not raw:
        logger.debug("timestamp missing, using %s", SENTINEL_DATE)
        return SENTINEL_DATE
    head = raw.split(" ", 1)[0]
    if len(head) > 10 and head[10] == "T":
        # ISO 8601 "2024-01-03T10:00:00Z": the date is still the literal prefix
        head = head[:10]
    try:
        parsed = date.fromisoformat(head)
    except ValueError:
        parsed = None
    if parsed is None or parsed.isoformat() != head:
        logger.warning("malformed timestamp %r, counting it under %s", raw, SENTINEL_DATE)
        return SENTINEL_DATE
    return head


def _to_quantity(raw: Any) -> float:
    # bool is an int subclass; treat it as junk
    if isinstance(raw, bool):
        return 0.0
    if not isinstance(raw, (int, float, str)):
        return 0.0
    try:
        value = float(raw)
    except (ValueError, OverflowError):
        return 0.0
    if not math.isfinite(value) or value < 0 or value > MAX_QUANTITY:
        if value > MAX_QUANTITY:
            logger.warning("quantity %r out of range, counting it as 0", raw)
        return 0.0
    return value


def to_kcal(qty: Any, units: Any) -> float:
    value = _to_quantity(qty)
    if units == "kJ":
        return value / KJ_PER_KCAL
    return value


def round_steps(qty: Any) -> int:
    return int(math.floor(_to_quantity(qty) + 0.5))


def _sample(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def normalize_metrics(payload: Any) -> Iterator[tuple[str, Delta]]:
    """Yield one (date, delta) per recognized metric sample, in payload order."""
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid metrics payload")
    data = payload.get("data")
    metrics = data.get("metrics") if isinstance(data, dict) else None
    if not isinstance(metrics, list):
        return

    for group in metrics:
        if not isinstance(group, dict):
            continue
        name = group.get("name")
        units = group.get("units")
        samples = group.get("data")
        if not isinstance(samples, list):
            continue

        if name == STEP_METRIC:
            for raw in samples:
                r = _sample(raw)
                yield date_key(r.get("date")), SetSteps(round_steps(r.get("qty")))
        elif name in ACTIVE_ENERGY_METRICS or name in RESTING_ENERGY_METRICS:
            field: EnergyField = "active_kcal" if name in ACTIVE_ENERGY_METRICS else "resting_kcal"
            for raw in samples:
                r = _sample(raw)
                yield date_key(r.get("date")), AddEnergy(field, to_kcal(r.get("qty"), units))


def validate_workouts(payload: Any) -> list[Any]:
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid workout payload")
    data = payload.get("data")
    workouts = data.get("workouts") if isinstance(data, dict) else None
    if not isinstance(workouts, list):
        raise InvalidPayloadError("Invalid workout payload")
    return workouts


def normalize_workout(raw: Any) -> tuple[str, AddWorkout]:
    w = _sample(raw)
    energy = w.get("activeEnergyBurned")
    kcal = to_kcal(energy.get("qty"), energy.get("units")) if isinstance(energy, dict) else 0.0
    name = w.get("name")
    return date_key(w.get("start")), AddWorkout(
        minutes=_to_quantity(w.get("duration")) / 60,
        kcal=kcal,
        name=str(name) if name else None,
    )


def normalize_workouts(payload: Any) -> list[tuple[str, AddWorkout]]:
    """Validate the batch shape up front so a bad batch mutates nothing."""
    return [normalize_workout(w) for w in validate_workouts(payload)]
