#!/usr/bin/env python3
"""
Run the daily notification job once (Phase 1, Phase 2, send) and print the summary.
Use --no-send to fill today's outbox without emailing (rows stay pending).
Run: cd backend && python scripts/run_daily.py [--no-send]
"""
import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trackwatch.db.session import SessionLocal
from trackwatch.scheduler.daily_job import run_daily


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--no-send", action="store_true", help="skip the send phase")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    db = SessionLocal()
    try:
        summary = run_daily(db, skip_send=args.no_send)
        print(json.dumps(summary, indent=2))
        if summary["phase1"]["errors"] or summary["phase2"]["errors"]:
            sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
