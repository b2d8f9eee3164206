from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator


class NameSet:
    """Distinct workout names, kept in first-insertion order."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: dict[str, None] = dict.fromkeys(names)

    def add(self, name: str) -> None:
        self._names.setdefault(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NameSet):
            return list(self) == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"NameSet({list(self)!r})"

    def copy(self) -> NameSet:
        return NameSet(self)


@dataclass
class DayStats:
    date: str
    steps: int = 0
    active_kcal: float = 0.0
    resting_kcal: float = 0.0
    total_kcal: float = 0.0
    workout_count: int = 0
    workout_minutes: float = 0.0
    workout_names: NameSet = field(default_factory=NameSet)

    def recompute_total(self, fixed_resting_kcal: float | None = None) -> None:
        # total is derived; every mutation path ends here
        if fixed_resting_kcal is not None:
            self.resting_kcal = fixed_resting_kcal
        self.total_kcal = self.active_kcal + self.resting_kcal

    def copy(self) -> DayStats:
        return DayStats(
            date=self.date,
            steps=self.steps,
            active_kcal=self.active_kcal,
            resting_kcal=self.resting_kcal,
            total_kcal=self.total_kcal,
            workout_count=self.workout_count,
            workout_minutes=self.workout_minutes,
            workout_names=self.workout_names.copy(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "steps": self.steps,
            "activeKcal": self.active_kcal,
            "restingKcal": self.resting_kcal,
            "totalKcal": self.total_kcal,
            "workoutCount": self.workout_count,
            "workoutMinutes": self.workout_minutes,
            "workoutNames": list(self.workout_names),
        }
