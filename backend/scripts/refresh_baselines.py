#!/usr/bin/env python3
"""
Refresh inaccurate-mode baselines in place for every inaccurate alert.
Syncs each alert's tracked maps with the catalog, probes them, and stores the current
sentinel rank as the baseline. Changes since the last run are discarded, not reported.
Run: cd backend && python scripts/refresh_baselines.py
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trackwatch.core.constants import ALERT_TYPE_INACCURATE
from trackwatch.db.session import SessionLocal
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.services.map_catalog import default_catalog
from trackwatch.services.map_position_service import apply_position_probes, sync_alert_maps
from trackwatch.services.nadeo import default_leaderboards


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    db = SessionLocal()
    errors = 0
    try:
        alerts = (
            db.query(AlertSubscription)
            .filter(AlertSubscription.alert_type == ALERT_TYPE_INACCURATE)
            .order_by(AlertSubscription.id)
            .all()
        )
        print(f"Refreshing baselines for {len(alerts)} inaccurate alerts...")
        for i, alert in enumerate(alerts, start=1):
            try:
                members = sync_alert_maps(db, alert, default_catalog.fetch_author_maps(alert.username))
                uids = [m.map_uid for m in members]
                diff = apply_position_probes(db, uids, default_leaderboards.probe_positions(uids))
                print(
                    f"  [{i}/{len(alerts)}] {alert.username}: {len(uids)} maps, "
                    f"{len(diff.initialized)} new, {len(diff.changed)} moved, {len(diff.missing)} unresolved"
                )
            except Exception as e:
                errors += 1
                db.rollback()
                print(f"  [{i}/{len(alerts)}] {alert.username}: failed: {e}")
        print(f"Done. alerts={len(alerts)}, errors={errors}")
        if errors:
            sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
