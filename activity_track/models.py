from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .stats import DayStats


class DayStatsOut(BaseModel):
    date: str
    steps: int = Field(ge=0)
    activeKcal: float = Field(ge=0)
    restingKcal: float = Field(ge=0)
    totalKcal: float = Field(ge=0)
    workoutCount: int = Field(ge=0)
    workoutMinutes: float = Field(ge=0)
    workoutNames: list[str] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, s: DayStats) -> DayStatsOut:
        return cls(**s.to_dict())


class IngestResponse(BaseModel):
    ok: bool
    applied: int


class StatusResponse(BaseModel):
    ok: bool
    dbPath: str
    persistenceMode: str
    totalDays: int
    lastDate: Optional[str] = None
