from __future__ import annotations

import os
from dataclasses import dataclass

PERSISTENCE_MODES = ("snapshot", "sqlite")


def get_env(name: str, default: str | None = None) -> str:
    v = os.getenv(name, default)
    if v is None:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


@dataclass(frozen=True)
class Settings:
    db_path: str = "activity_data.sqlite"
    persistence_mode: str = "snapshot"
    fixed_resting_kcal: float | None = None
    api_key: str | None = None


def load_settings() -> Settings:
    mode = get_env("PERSISTENCE_MODE", "snapshot").strip().lower()
    if mode not in PERSISTENCE_MODES:
        raise RuntimeError(f"PERSISTENCE_MODE must be one of {PERSISTENCE_MODES}, got {mode!r}")

    fixed_raw = os.getenv("FIXED_RESTING_KCAL")
    fixed: float | None = None
    if fixed_raw:
        try:
            fixed = float(fixed_raw)
        except ValueError as exc:
            raise RuntimeError(f"FIXED_RESTING_KCAL must be a number, got {fixed_raw!r}") from exc

    return Settings(
        db_path=os.path.abspath(get_env("DB_PATH", "activity_data.sqlite")),
        persistence_mode=mode,
        fixed_resting_kcal=fixed,
        api_key=os.getenv("API_KEY") or None,
    )
