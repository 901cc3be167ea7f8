"""
FastAPI app entrypoint.

Leaderboard alerts for Trackmania maps: background map search jobs, daily mapper and
driver notifications (in-process scheduler or POST /cron/daily).
"""
import logging
import os
import threading
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from trackwatch.api.routes import admin, cron, drivers, map_search
from trackwatch.config import settings
from trackwatch.core.constants import DAILY_JOB_ID, JOB_RETENTION_PRUNE_JOB_ID
from trackwatch.scheduler.daily_job import run_daily_job
from trackwatch.scheduler.maintenance_job import run_resume_pending_jobs, run_retention_job
from trackwatch.services.map_search import default_executor

logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler(timezone="UTC")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _scheduler.add_job(
        run_daily_job,
        "cron",
        hour=settings.daily_job_hour,
        minute=0,
        id=DAILY_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(run_retention_job, "cron", hour=3, minute=30, id=JOB_RETENTION_PRUNE_JOB_ID)
    _scheduler.start()
    app.state.scheduler = _scheduler

    # Jobs left pending by a previous process get picked up again
    threading.Thread(target=run_resume_pending_jobs, daemon=True).start()
    logger.info("Backend ready; daily notifications at %02d:00 UTC", settings.daily_job_hour)
    yield
    _scheduler.shutdown(wait=False)
    default_executor.shutdown(wait=False)


app = FastAPI(title="Trackwatch", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_extra = os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(map_search.router, prefix="/map-search", tags=["map-search"])
app.include_router(drivers.router, prefix="/users", tags=["drivers"])
app.include_router(cron.router, prefix="/cron", tags=["cron"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Trackwatch API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
