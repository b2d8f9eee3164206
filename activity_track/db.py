from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Protocol

from .stats import DayStats, NameSet

logger = logging.getLogger(__name__)

COLUMNS = (
    "date",
    "steps",
    "activeKcal",
    "restingKcal",
    "workoutCount",
    "workoutMinutes",
    "workoutNames",
)

UPSERT_SQL = """
INSERT INTO day_stats
  (date, steps, activeKcal, restingKcal, workoutCount, workoutMinutes, workoutNames)
VALUES (?,?,?,?,?,?,?)
ON CONFLICT(date) DO UPDATE SET
  steps=excluded.steps,
  activeKcal=excluded.activeKcal,
  restingKcal=excluded.restingKcal,
  workoutCount=excluded.workoutCount,
  workoutMinutes=excluded.workoutMinutes,
  workoutNames=excluded.workoutNames
"""


class PersistenceError(RuntimeError):
    """The durable store could not be read or written."""


class DayStatsRepository(Protocol):
    mode: str
    path: Path

    def load_all(self) -> list[DayStats]: ...

    def save(self, stats: DayStats) -> None: ...

    def save_many(self, records: Iterable[DayStats]) -> None: ...


def init_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS day_stats (
          date TEXT PRIMARY KEY,
          steps INTEGER,
          activeKcal REAL,
          restingKcal REAL,
          workoutCount INTEGER,
          workoutMinutes REAL,
          workoutNames TEXT
        );
        """
    )
    # Lightweight migration for stores written before resting energy was tracked
    cols = {r[1] for r in conn.execute("PRAGMA table_info(day_stats)").fetchall()}
    if "restingKcal" not in cols:
        conn.execute("ALTER TABLE day_stats ADD COLUMN restingKcal REAL;")


def dumps_names(names: NameSet) -> str:
    return json.dumps(list(names), ensure_ascii=False, separators=(",", ":"))


def loads_names(raw: str | None) -> list[str]:
    if not raw:
        return []
    if raw.startswith("["):
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return [str(v) for v in value]
    # legacy: comma-joined
    return [n for n in raw.split(",") if n]


def stats_to_row(s: DayStats) -> tuple:
    return (
        s.date,
        s.steps,
        s.active_kcal,
        s.resting_kcal,
        s.workout_count,
        s.workout_minutes,
        dumps_names(s.workout_names),
    )


def row_to_stats(row: sqlite3.Row) -> DayStats:
    # Never trust a stored total; it is recomputed from the additive fields.
    stats = DayStats(
        date=row["date"],
        steps=int(row["steps"] or 0),
        active_kcal=float(row["activeKcal"] or 0),
        resting_kcal=float(row["restingKcal"] or 0),
        workout_count=int(row["workoutCount"] or 0),
        workout_minutes=float(row["workoutMinutes"] or 0),
        workout_names=NameSet(loads_names(row["workoutNames"])),
    )
    stats.recompute_total()
    return stats


def _select_all(conn: sqlite3.Connection) -> list[DayStats]:
    rows = conn.execute(f"SELECT {', '.join(COLUMNS)} FROM day_stats ORDER BY date ASC").fetchall()
    return [row_to_stats(r) for r in rows]


class SnapshotFileRepository:
    """SQLite database held in memory and rewritten to disk in full on every save.

    The file is replaced atomically (temp file, fsync, rename), so a failure
    mid-write leaves the previous complete file in place.
    """

    mode = "snapshot"

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._conn = sqlite3.connect(":memory:", check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        try:
            if self.path.exists():
                data = self.path.read_bytes()
                if data:
                    self._conn.deserialize(_rollback_journal_image(data))
            init_schema(self._conn)
            self._conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Failed to open {self.path}: {exc}") from exc

    def load_all(self) -> list[DayStats]:
        try:
            return _select_all(self._conn)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read {self.path}: {exc}") from exc

    def save(self, stats: DayStats) -> None:
        self.save_many([stats])

    def save_many(self, records: Iterable[DayStats]) -> None:
        try:
            with self._conn:
                self._conn.executemany(UPSERT_SQL, [stats_to_row(s) for s in records])
        except (sqlite3.Error, OverflowError, ValueError) as exc:
            raise PersistenceError(f"Failed to upsert into {self.path}: {exc}") from exc
        self._flush()

    def _flush(self) -> None:
        data = self._conn.serialize()
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write {self.path}: {exc}") from exc


def _rollback_journal_image(data: bytes) -> bytes:
    # A file left in WAL mode by SqliteRepository cannot be opened in memory;
    # header bytes 18/19 (read/write format version) 2 -> 1 switch it back.
    if len(data) >= 20 and data[18] == 2 and data[19] == 2:
        patched = bytearray(data)
        patched[18] = patched[19] = 1
        return bytes(patched)
    return data


class SqliteRepository:
    """On-disk SQLite in WAL mode; one committed upsert per save, no full rewrite."""

    mode = "sqlite"

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.db() as conn:
                init_schema(conn)
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Failed to open {self.path}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def db(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def load_all(self) -> list[DayStats]:
        try:
            with self.db() as conn:
                return _select_all(conn)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read {self.path}: {exc}") from exc

    def save(self, stats: DayStats) -> None:
        self.save_many([stats])

    def save_many(self, records: Iterable[DayStats]) -> None:
        try:
            with self.db() as conn:
                conn.executemany(UPSERT_SQL, [stats_to_row(s) for s in records])
        except (sqlite3.Error, OverflowError, ValueError) as exc:
            raise PersistenceError(f"Failed to upsert into {self.path}: {exc}") from exc


def open_repository(path: str | os.PathLike[str], mode: str = "snapshot") -> DayStatsRepository:
    if mode == "snapshot":
        return SnapshotFileRepository(path)
    if mode == "sqlite":
        return SqliteRepository(path)
    raise ValueError(f"Unknown persistence mode: {mode}")
