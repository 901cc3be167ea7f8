"""Initial schema: users, alerts + tracked maps + baselines, driver notifications,
daily outbox, leaderboard snapshots, notification history, provider tokens, map search jobs.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_json = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("tm_username", sa.String(64), nullable=True),
        sa.Column("tm_account_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_tm_account_id", "users", ["tm_account_id"])

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("alert_type", sa.String(16), nullable=False, server_default="accurate"),
        sa.Column("alert_type_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("map_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("record_filter", sa.String(8), nullable=False, server_default="all"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_alerts_username", "alerts", ["username"], unique=True)
    op.create_index("ix_alerts_user_id", "alerts", ["user_id"])

    op.create_table(
        "alert_maps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("alert_id", sa.Integer(), sa.ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("map_uid", sa.String(64), nullable=False),
        sa.Column("map_name", sa.String(255), nullable=True),
        sa.UniqueConstraint("alert_id", "map_uid", name="uq_alert_maps_alert_map"),
    )
    op.create_index("ix_alert_maps_alert_id", "alert_maps", ["alert_id"])
    op.create_index("ix_alert_maps_map_uid", "alert_maps", ["map_uid"])

    op.create_table(
        "map_positions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("map_uid", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("score", sa.BigInteger(), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_map_positions_map_uid", "map_positions", ["map_uid"], unique=True)

    op.create_table(
        "driver_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("map_uid", sa.String(64), nullable=False),
        sa.Column("map_name", sa.String(255), nullable=False),
        sa.Column("current_position", sa.Integer(), nullable=False),
        sa.Column("current_score", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "map_uid", name="uq_driver_notifications_user_map"),
    )
    op.create_index("ix_driver_notifications_user_id", "driver_notifications", ["user_id"])
    op.create_index("ix_driver_notifications_map_uid", "driver_notifications", ["map_uid"])

    op.create_table(
        "daily_emails",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_date", sa.Date(), nullable=False),
        sa.Column("mapper_content", sa.Text(), nullable=True),
        sa.Column("driver_content", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("username", "email_date", name="uq_daily_emails_username_date"),
    )
    op.create_index("ix_daily_emails_username", "daily_emails", ["username"])
    op.create_index("ix_daily_emails_email_date", "daily_emails", ["email_date"])

    op.create_table(
        "map_leaderboard_cache",
        sa.Column("cache_key", sa.String(128), primary_key=True),
        sa.Column("map_uid", sa.String(64), nullable=False),
        sa.Column("cache_date", sa.Date(), nullable=False),
        sa.Column("leaderboard", _json, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_map_leaderboard_cache_map_uid", "map_leaderboard_cache", ["map_uid"])
    op.create_index("ix_map_leaderboard_cache_cache_date", "map_leaderboard_cache", ["cache_date"])

    op.create_table(
        "notification_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("records_found", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processing_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notification_history_user_id", "notification_history", ["user_id"])
    op.create_index("ix_notification_history_username", "notification_history", ["username"])
    op.create_index("ix_notification_history_processing_date", "notification_history", ["processing_date"])

    op.create_table(
        "api_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("token_type", sa.String(16), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("provider", "token_type", name="uq_api_tokens_provider_type"),
    )

    op.create_table(
        "map_search_jobs",
        sa.Column("job_id", sa.String(64), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("period", sa.String(8), nullable=False, server_default="1d"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("result", _json, nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_map_search_jobs_username", "map_search_jobs", ["username"])
    op.create_index("ix_map_search_jobs_status", "map_search_jobs", ["status"])


def downgrade() -> None:
    op.drop_table("map_search_jobs")
    op.drop_table("api_tokens")
    op.drop_table("notification_history")
    op.drop_table("map_leaderboard_cache")
    op.drop_table("daily_emails")
    op.drop_table("driver_notifications")
    op.drop_table("map_positions")
    op.drop_table("alert_maps")
    op.drop_table("alerts")
    op.drop_table("users")
