"""Map search jobs: persisted job records and the background crawl that fills them."""
from trackwatch.services.map_search.crawl import (
    CrawlExecutor,
    default_executor,
    resume_pending_jobs,
    run_crawl_batch,
    run_crawl_job,
    start_crawl,
)
from trackwatch.services.map_search.job_store import get_job, prune_finished_jobs, set_job_status

__all__ = [
    "CrawlExecutor",
    "default_executor",
    "get_job",
    "prune_finished_jobs",
    "resume_pending_jobs",
    "run_crawl_batch",
    "run_crawl_job",
    "set_job_status",
    "start_crawl",
]
