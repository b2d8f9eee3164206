from __future__ import annotations

from typing import Iterable

from .normalizer import Delta
from .stats import DayStats


class DailyStore:
    """In-memory mapping of date -> DayStats.

    Knows nothing about durability: whoever calls apply_delta() must hand the
    returned record to the repository before considering the mutation done.
    """

    def __init__(self, fixed_resting_kcal: float | None = None) -> None:
        self._days: dict[str, DayStats] = {}
        self.fixed_resting_kcal = fixed_resting_kcal

    def load(self, records: Iterable[DayStats]) -> None:
        for rec in records:
            rec.recompute_total(self.fixed_resting_kcal)
            self._days[rec.date] = rec

    def apply_delta(self, date: str, delta: Delta) -> DayStats:
        current = self._days.get(date)
        stats = current.copy() if current is not None else DayStats(date=date)
        delta.apply(stats)
        stats.recompute_total(self.fixed_resting_kcal)
        self._days[date] = stats
        return stats.copy()

    def get(self, date: str) -> DayStats | None:
        rec = self._days.get(date)
        return rec.copy() if rec is not None else None

    def __len__(self) -> int:
        return len(self._days)

    def snapshot(self) -> list[DayStats]:
        # Keys are canonical YYYY-MM-DD, so string order is calendar order.
        return [self._days[d].copy() for d in sorted(self._days)]
