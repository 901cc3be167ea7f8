"""
Single source of truth for database tables that exist after migrations (001).

Use these names when writing raw SQL (e.g. TRUNCATE). alembic/env.py checks that the
registered models match this list exactly.
"""
ALL_TABLE_NAMES = (
    "users",
    "alerts",
    "alert_maps",
    "map_positions",
    "driver_notifications",
    "daily_emails",
    "map_leaderboard_cache",
    "notification_history",
    "api_tokens",
    "map_search_jobs",
)

# Per-run notification state, cleared by scripts when resetting a test deployment
NOTIFICATION_TABLE_NAMES = (
    "daily_emails",
    "map_leaderboard_cache",
    "notification_history",
)
