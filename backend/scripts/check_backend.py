#!/usr/bin/env python3
"""
Pre-flight checks before starting the backend or the daily job:
.env present, database reachable, migrations applied, app importable, credentials set.
Run: cd backend && python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def main() -> int:
    errors: list[str] = []
    warnings: list[str] = []

    if not (backend_dir / ".env").exists():
        warnings.append("backend/.env missing; using defaults and process environment only.")
    else:
        print("OK   .env exists")

    try:
        from sqlalchemy import inspect, text

        from trackwatch.db.session import engine
        from trackwatch.db.tables import ALL_TABLE_NAMES

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK   Database connection (DATABASE_URL)")
        missing = sorted(set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names()))
        if missing:
            errors.append(f"Tables missing: {', '.join(missing)}. Run: alembic upgrade head")
        else:
            print("OK   All tables present")
    except Exception as e:
        errors.append(f"Database: {e}")

    try:
        from trackwatch.main import app  # noqa: F401

        print("OK   App import (trackwatch.main)")
    except Exception as e:
        errors.append(f"App import: {e}")

    from trackwatch.config import settings
    from trackwatch.services.email_notify import is_configured as smtp_configured

    if not settings.nadeo_authorization:
        warnings.append("NADEO_AUTHORIZATION not set: leaderboard calls will fail.")
    if not (settings.oauth_client_id and settings.oauth_client_secret):
        warnings.append("OAUTH_CLIENT_ID / OAUTH_CLIENT_SECRET not set: player names fall back to account ids.")
    if not smtp_configured():
        warnings.append("SMTP_USER / SMTP_PASSWORD not set: the send phase will fail.")
    if not settings.cron_secret:
        warnings.append("CRON_SECRET not set: /cron and /admin routes are disabled.")

    for w in warnings:
        print("WARN", w)
    for e in errors:
        print("FAIL", e)
    if errors:
        return 1
    print("\nReady: uvicorn trackwatch.main:app --host 0.0.0.0 --port 8000")
    return 0


if __name__ == "__main__":
    sys.exit(main())
