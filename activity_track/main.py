from __future__ import annotations

import csv
import io
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, HTTPException, Request, Response

from .db import PersistenceError
from .engine import ActivityEngine
from .models import DayStatsOut, IngestResponse, StatusResponse
from .normalizer import InvalidPayloadError
from .security import require_api_key
from .settings import Settings, load_settings

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "date",
    "steps",
    "activeKcal",
    "restingKcal",
    "totalKcal",
    "workoutCount",
    "workoutMinutes",
    "workoutNames",
]


def get_engine(request: Request) -> ActivityEngine:
    return request.app.state.engine


def _run_ingest(kind: str, ingest: Callable[[Any], int], payload: dict[str, Any]) -> IngestResponse:
    try:
        applied = ingest(payload)
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PersistenceError as exc:
        logger.exception("%s ingest aborted by a durable-write failure", kind)
        raise HTTPException(status_code=500, detail="Failed to persist daily stats") from exc
    logger.info("%s ingest applied %d mutation(s)", kind, applied)
    return IngestResponse(ok=True, applied=applied)


def create_app(settings: Settings | None = None, engine: ActivityEngine | None = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not settings.api_key:
            logger.warning("API_KEY not set: ingest and read endpoints accept unauthenticated requests")
        if getattr(app.state, "engine", None) is None:
            app.state.engine = ActivityEngine.open(settings)
        yield

    app = FastAPI(title="Activity Track", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("→ %s %s", request.method, request.url.path)
        return await call_next(request)

    @app.post("/steps", response_model=IngestResponse)
    def ingest_steps(
        payload: dict[str, Any],
        engine: ActivityEngine = Depends(get_engine),
        _: None = Depends(require_api_key),
    ) -> IngestResponse:
        """Step counts and active/resting energy samples (Health Auto Export format)."""
        return _run_ingest("metrics", engine.ingest_metrics, payload)

    @app.post("/workouts", response_model=IngestResponse)
    def ingest_workouts(
        payload: dict[str, Any],
        engine: ActivityEngine = Depends(get_engine),
        _: None = Depends(require_api_key),
    ) -> IngestResponse:
        return _run_ingest("workouts", engine.ingest_workouts, payload)

    @app.get("/api/daily", response_model=list[DayStatsOut])
    def daily(
        engine: ActivityEngine = Depends(get_engine),
        _: None = Depends(require_api_key),
    ) -> list[DayStatsOut]:
        return [DayStatsOut.from_stats(s) for s in engine.snapshot()]

    @app.get("/api/daily.csv")
    def daily_csv(
        engine: ActivityEngine = Depends(get_engine),
        _: None = Depends(require_api_key),
    ) -> Response:
        out = io.StringIO()
        w = csv.writer(out)
        w.writerow(CSV_HEADER)
        for s in engine.snapshot():
            row = s.to_dict()
            row["workoutNames"] = ", ".join(row["workoutNames"])
            w.writerow([row[c] for c in CSV_HEADER])
        return Response(content=out.getvalue(), media_type="text/csv")

    @app.get("/api/status", response_model=StatusResponse)
    def status(
        engine: ActivityEngine = Depends(get_engine),
        _: None = Depends(require_api_key),
    ) -> StatusResponse:
        days = engine.snapshot()
        return StatusResponse(
            ok=True,
            dbPath=str(engine.repository.path),
            persistenceMode=engine.repository.mode,
            totalDays=len(days),
            lastDate=days[-1].date if days else None,
        )

    @app.get("/")
    def dashboard() -> Response:
        html = Path(__file__).with_name("dashboard.html").read_text(encoding="utf-8")
        return Response(content=html, media_type="text/html")

    return app


app = create_app()
