"""
Centralized constants for the scheduler, the external APIs and the diff engines.

Change job IDs, batch sizes or retry budgets here instead of scattering literals
across services and main. Per-deployment thresholds live in config.Settings.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
DAILY_JOB_ID = "daily_notifications"
JOB_RETENTION_PRUNE_JOB_ID = "map_search_job_prune"

# Tokens: an access token younger than this is reused without a liveness check
TOKEN_MAX_AGE_HOURS = 24
PROVIDER_LIVE = "live"
PROVIDER_OAUTH2 = "oauth2"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

# HTTP timeouts (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
VALIDATION_LOOKUP_TIMEOUT_SECONDS = 10.0

# Leaderboards
PERSONAL_BEST_GROUP = "Personal_Best"
LEADERBOARD_TOP_LENGTH = 100
DRIVER_TOP_POSITIONS = 5
# Reserved very-high score (ms): the rank it would get is the "new player" rank of a map
SENTINEL_SCORE_MS = 9999999
POSITION_PROBE_BATCH_SIZE = 50
# Courtesy delay between successive leaderboard fetches
MAP_FETCH_DELAY_SECONDS = 0.5

# Display names: at most this many account ids per lookup
DISPLAY_NAME_CHUNK_SIZE = 50

# Map catalog walk: whole walk retried this many times, fixed delay between attempts
CATALOG_RETRY_ATTEMPTS = 5
CATALOG_RETRY_DELAY_SECONDS = 15 * 60
CATALOG_FIELDS = "Name,MapId,MapUid,Authors"

# Generic scheduler operations: exponential backoff 1s, 2s, 4s ... capped at 10s
SCHEDULER_RETRY_ATTEMPTS = 3
SCHEDULER_RETRY_BASE_DELAY_SECONDS = 1.0
SCHEDULER_RETRY_MAX_DELAY_SECONDS = 10.0
SCHEDULER_RETRY_TIMEOUT_SECONDS = 30.0

# Crawl starts per username inside a sliding window
CRAWL_RATE_LIMIT = 2
CRAWL_RATE_WINDOW_SECONDS = 60
CRAWL_MAX_WORKERS = 4

# Search periods accepted by the crawl (trailing window in hours)
PERIOD_HOURS = {
    "1d": 24,
    "1w": 24 * 7,
    "1m": 24 * 30,
}
DEFAULT_PERIOD = "1d"
# Phase 1 always reports the last day
MAPPER_ALERT_PERIOD = "1d"

# Record filters for mapper alerts
RECORD_FILTER_ALL = "all"
RECORD_FILTER_TOP5 = "top5"
RECORD_FILTER_WR = "wr"
RECORD_FILTERS = (RECORD_FILTER_ALL, RECORD_FILTER_TOP5, RECORD_FILTER_WR)

ALERT_TYPE_ACCURATE = "accurate"
ALERT_TYPE_INACCURATE = "inaccurate"
ALERT_TYPES = (ALERT_TYPE_ACCURATE, ALERT_TYPE_INACCURATE)

# Finished map_search_jobs older than this are pruned daily; pending/processing are kept
MAP_SEARCH_JOB_RETENTION_DAYS = 7
# On startup, pending jobs older than this are re-submitted (lost with a previous process)
STALE_PENDING_JOB_MINUTES = 5
