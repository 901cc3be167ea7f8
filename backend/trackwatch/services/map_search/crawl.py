"""
Background map search ("crawl"): every map of a user with its recent leaderboard entries.

start_crawl validates, rate-limits (2 starts per minute per username), creates a pending
job and hands it to a bounded thread pool; the request returns the job id immediately.
The runner claims the job, optionally seeds inaccurate-mode baselines, walks the map
catalog, fetches each map's leaderboard filtered to the job's period, resolves display
names in one pass and stores the result. A map whose leaderboard keeps failing is
skipped; any other error marks the job failed.
"""
import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from trackwatch.core.constants import (
    ALERT_TYPE_INACCURATE,
    CRAWL_MAX_WORKERS,
    CRAWL_RATE_LIMIT,
    CRAWL_RATE_WINDOW_SECONDS,
    DEFAULT_PERIOD,
    MAP_FETCH_DELAY_SECONDS,
    STALE_PENDING_JOB_MINUTES,
)
from trackwatch.core.errors import InvalidInputError, RateLimitedError
from trackwatch.core.rate_limit import SlidingWindowRateLimiter
from trackwatch.core.retry import SCHEDULER_RETRY, RetryPolicy
from trackwatch.models.alert_map import AlertMap
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.services.map_position_service import seed_missing_baselines
from trackwatch.services.map_search.job_store import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    claim_job,
    create_job,
    list_stale_pending_jobs,
    set_job_status,
)
from trackwatch.services.nadeo.leaderboards import LeaderboardApi, filter_by_period, validate_period

logger = logging.getLogger(__name__)

_rate_limiter = SlidingWindowRateLimiter(CRAWL_RATE_LIMIT, CRAWL_RATE_WINDOW_SECONDS)


def _default_session_factory() -> Session:
    from trackwatch.db.session import SessionLocal

    return SessionLocal()


class CrawlExecutor:
    """
    Bounded pool for crawl jobs. Every submission returns its Future and stays tracked
    until done; a crash inside the runner is logged by the done-callback.
    """

    def __init__(self, max_workers: int = CRAWL_MAX_WORKERS) -> None:
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def _get_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="map_search")
        return self._pool

    def submit(self, job_id: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        with self._lock:
            future = self._get_pool().submit(fn, *args, **kwargs)
            self._futures[job_id] = future
        future.add_done_callback(lambda f: self._on_done(job_id, f))
        return future

    def _on_done(self, job_id: str, future: Future) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
        if future.cancelled():
            logger.warning("Map search job %s was cancelled", job_id)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Map search job %s crashed: %s", job_id, exc, exc_info=exc)

    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._futures)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)


default_executor = CrawlExecutor()


def _resolve_apis(leaderboards: LeaderboardApi | None, catalog: Any, resolver: Any) -> tuple[LeaderboardApi, Any, Any]:
    if leaderboards is None:
        from trackwatch.services.nadeo import default_leaderboards as leaderboards
    if catalog is None:
        from trackwatch.services.map_catalog import default_catalog as catalog
    if resolver is None:
        from trackwatch.services.account_names import default_resolver as resolver
    return leaderboards, catalog, resolver


def seed_inaccurate_baselines(db: Session, username: str, leaderboards: LeaderboardApi) -> int:
    """For a user in inaccurate mode, baseline tracked maps that have none yet. 0 otherwise."""
    alert = db.query(AlertSubscription).filter(AlertSubscription.username == username).first()
    if alert is None or alert.alert_type != ALERT_TYPE_INACCURATE:
        return 0
    uids = [r.map_uid for r in db.query(AlertMap.map_uid).filter(AlertMap.alert_id == alert.id).order_by(AlertMap.id)]
    if not uids:
        return 0
    return seed_missing_baselines(db, uids, leaderboards.probe_positions(uids))


def crawl_maps(
    username: str,
    period: str,
    *,
    leaderboards: LeaderboardApi,
    catalog: Any,
    resolver: Any,
    delay: float = MAP_FETCH_DELAY_SECONDS,
    now: datetime | None = None,
    retry: RetryPolicy = SCHEDULER_RETRY,
) -> list[dict[str, Any]]:
    """All maps of username with leaderboard entries from the trailing period window.

    A map whose leaderboard still fails after retries is logged and left out.
    """
    now = now or datetime.now(timezone.utc)
    maps = catalog.fetch_author_maps(username)
    results: list[dict[str, Any]] = []
    for i, m in enumerate(maps):
        if i and delay > 0:
            time.sleep(delay)
        try:
            top = retry.run(lambda: leaderboards.get_top(m.map_uid), name=f"leaderboard {m.map_uid}")
        except Exception as e:
            logger.warning("Map search for %s: skipping map %s: %s", username, m.map_uid, e)
            continue
        entries = filter_by_period(top, period, now=now)
        results.append(
            {"map_uid": m.map_uid, "map_id": m.map_id, "map_name": m.name, "leaderboard": [dict(e) for e in entries]}
        )
    account_ids = [e["account_id"] for r in results for e in r["leaderboard"]]
    names = resolver.resolve(account_ids) if account_ids else {}
    for r in results:
        for e in r["leaderboard"]:
            e["player_name"] = names.get(e["account_id"]) or e["account_id"]
    return results


def run_crawl_job(
    job_id: str,
    username: str,
    period: str,
    *,
    session_factory: Callable[[], Session] | None = None,
    leaderboards: LeaderboardApi | None = None,
    catalog: Any = None,
    resolver: Any = None,
    delay: float = MAP_FETCH_DELAY_SECONDS,
    retry: RetryPolicy = SCHEDULER_RETRY,
) -> str:
    """Drain one job in its own session. Returns the final status."""
    leaderboards, catalog, resolver = _resolve_apis(leaderboards, catalog, resolver)
    db = (session_factory or _default_session_factory)()
    try:
        if not claim_job(db, job_id):
            logger.info("Map search job %s already claimed; skipping", job_id)
            return "skipped"
        try:
            try:
                seeded = seed_inaccurate_baselines(db, username, leaderboards)
                if seeded:
                    logger.info("Job %s: seeded %s baselines for %s", job_id, seeded, username)
            except Exception as e:
                db.rollback()
                logger.warning("Job %s: baseline seeding for %s failed (job continues): %s", job_id, username, e)
            maps = crawl_maps(
                username,
                period,
                leaderboards=leaderboards,
                catalog=catalog,
                resolver=resolver,
                delay=delay,
                retry=retry,
            )
            set_job_status(db, job_id, STATUS_COMPLETED, result={"maps": maps, "total_maps": len(maps)})
            logger.info("Map search job %s completed: %s maps for %s", job_id, len(maps), username)
            return STATUS_COMPLETED
        except Exception as e:
            db.rollback()
            logger.exception("Map search job %s failed: %s", job_id, e)
            set_job_status(db, job_id, STATUS_FAILED, error_message=str(e) or type(e).__name__)
            return STATUS_FAILED
    finally:
        db.close()


def run_crawl_batch(items: Iterable[tuple[str, str, str]], **kwargs: Any) -> dict[str, str]:
    """Run queued (job_id, username, period) items one by one; one failure never stops the rest."""
    statuses: dict[str, str] = {}
    for job_id, username, period in items:
        try:
            statuses[job_id] = run_crawl_job(job_id, username, period, **kwargs)
        except Exception as e:
            logger.exception("Map search job %s could not be run: %s", job_id, e)
            statuses[job_id] = "error"
    return statuses


def start_crawl(
    db: Session,
    username: str,
    period: str = DEFAULT_PERIOD,
    *,
    limiter: SlidingWindowRateLimiter | None = None,
    executor: CrawlExecutor | None = None,
    **runner_kwargs: Any,
) -> str:
    """Create a pending job and schedule it. Returns the job id without waiting for the crawl."""
    username = (username or "").strip()
    if not username:
        raise InvalidInputError("username is required")
    period = validate_period(period or DEFAULT_PERIOD)
    decision = (limiter or _rate_limiter).hit(username)
    if not decision.allowed:
        raise RateLimitedError(
            f"Too many searches for {username}; retry in {decision.retry_after}s",
            retry_after=decision.retry_after,
        )
    job_id = uuid.uuid4().hex
    create_job(db, job_id, username, period)
    (executor or default_executor).submit(job_id, run_crawl_job, job_id, username, period, **runner_kwargs)
    logger.info("Map search job %s queued for %s (%s)", job_id, username, period)
    return job_id


def resume_pending_jobs(
    db: Session,
    *,
    older_than_minutes: int = STALE_PENDING_JOB_MINUTES,
    executor: CrawlExecutor | None = None,
    **runner_kwargs: Any,
) -> int:
    """Re-submit jobs still pending after older_than_minutes (e.g. lost with a restart)."""
    executor = executor or default_executor
    in_flight = set(executor.in_flight())
    resumed = 0
    for job in list_stale_pending_jobs(db, older_than_minutes):
        if job.job_id in in_flight:
            continue
        executor.submit(job.job_id, run_crawl_job, job.job_id, job.username, job.period, **runner_kwargs)
        resumed += 1
    if resumed:
        logger.info("Resumed %s pending map search jobs", resumed)
    return resumed
