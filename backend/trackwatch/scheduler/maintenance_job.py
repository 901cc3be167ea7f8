"""Daily retention: finished map search jobs and old leaderboard snapshots."""
import logging
from datetime import timedelta

from trackwatch.core.constants import MAP_SEARCH_JOB_RETENTION_DAYS
from trackwatch.db.session import SessionLocal
from trackwatch.services.leaderboard_cache_service import prune_old_snapshots, utc_today
from trackwatch.services.map_search.crawl import resume_pending_jobs
from trackwatch.services.map_search.job_store import prune_finished_jobs

logger = logging.getLogger(__name__)

# Snapshots are only read on the day they are written; keep a couple for debugging
SNAPSHOT_RETENTION_DAYS = 2


def run_retention_job() -> None:
    db = SessionLocal()
    try:
        prune_finished_jobs(db, MAP_SEARCH_JOB_RETENTION_DAYS)
        prune_old_snapshots(db, utc_today() - timedelta(days=SNAPSHOT_RETENTION_DAYS))
    except Exception as e:
        db.rollback()
        logger.warning("Retention job failed: %s", e, exc_info=True)
    finally:
        db.close()


def run_resume_pending_jobs() -> None:
    db = SessionLocal()
    try:
        resume_pending_jobs(db)
    except Exception as e:
        logger.warning("Resuming pending map search jobs failed: %s", e, exc_info=True)
    finally:
        db.close()
