#!/usr/bin/env python3
"""Run the daily deal score sweep.

Usage:
    python scripts/run_daily_sweep.py
    python scripts/run_daily_sweep.py --full-refresh --config-version v2

Schedule with cron at the scoring config's schedule.daily_sweep_time, e.g.
    0 6 * * *  cd /srv/dealscore && python scripts/run_daily_sweep.py

Recalculates every active and snoozed deal once.
Exits 0 when the sweep completed with no failed deals, 1 otherwise.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.db.session import SessionLocal
from app.services.pipeline.daily_sweep import recalculate_all_active, run_daily_sweep


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate all open deal scores.")
    parser.add_argument(
        "--full-refresh",
        action="store_true",
        help="Record the run as a manual full refresh (e.g. after a config change).",
    )
    parser.add_argument(
        "--config-version",
        default=None,
        help="Scoring config version; defaults to SCORING_CONFIG_VERSION.",
    )
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        job = recalculate_all_active if args.full_refresh else run_daily_sweep
        result = job(db, config_version=args.config_version)
        print(
            f"status={result['status']} "
            f"sweep_run_id={result['sweep_run_id']} "
            f"processed={result['processed']} "
            f"succeeded={result['succeeded']} "
            f"skipped={result['skipped']} "
            f"failed={result['failed']} "
            f"duration_ms={result['duration_ms']}"
        )
        for diag in result["diagnostics"]:
            print(
                f"deal_id={diag['deal_id']} error_type={diag['error_type']} error={diag['error']}",
                file=sys.stderr,
            )
        return 0 if result["status"] == "completed" and result["failed"] == 0 else 1
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
