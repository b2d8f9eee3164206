from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from .db import DayStatsRepository, open_repository
from .normalizer import Delta, normalize_metrics, normalize_workouts
from .settings import Settings
from .stats import DayStats
from .store import DailyStore

logger = logging.getLogger(__name__)


class ActivityEngine:
    """Owns the daily store and its repository.

    Every mutation is written through to the repository before the next one
    starts. A single lock serializes the fetch/apply/recompute/persist cycle,
    so two requests touching the same date cannot lose each other's update.
    """

    def __init__(self, store: DailyStore, repository: DayStatsRepository) -> None:
        self.store = store
        self.repository = repository
        self._lock = threading.Lock()

    @classmethod
    def open(cls, settings: Settings) -> ActivityEngine:
        repository = open_repository(settings.db_path, settings.persistence_mode)
        store = DailyStore(fixed_resting_kcal=settings.fixed_resting_kcal)
        store.load(repository.load_all())
        logger.info(
            "loaded %d day(s) from %s (mode=%s)", len(store), repository.path, repository.mode
        )
        return cls(store, repository)

    def apply(self, date: str, delta: Delta) -> DayStats:
        with self._lock:
            stats = self.store.apply_delta(date, delta)
            try:
                self.repository.save(stats)
            except Exception:
                logger.error("failed to persist %s; memory is ahead of %s", date, self.repository.path)
                raise
            return stats

    def apply_all(self, deltas: Iterable[tuple[str, Delta]]) -> int:
        applied = 0
        for date, delta in deltas:
            self.apply(date, delta)
            applied += 1
        return applied

    def ingest_metrics(self, payload: Any) -> int:
        return self.apply_all(normalize_metrics(payload))

    def ingest_workouts(self, payload: Any) -> int:
        # normalize_workouts() validates the whole batch before anything is applied
        return self.apply_all(normalize_workouts(payload))

    def get(self, date: str) -> DayStats | None:
        with self._lock:
            return self.store.get(date)

    def snapshot(self) -> list[DayStats]:
        with self._lock:
            return self.store.snapshot()
