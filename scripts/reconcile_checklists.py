#!/usr/bin/env python3
"""Add missing checklist items to every active montage (idempotent).

Safe to run while the application serves traffic: a montage reconciled by
a concurrent request is counted as "raced" and left alone.

Usage:
    python scripts/reconcile_checklists.py --dry-run
    python scripts/reconcile_checklists.py --apply [--batch-size 500]
"""

import argparse
import os
import sys

sys.path.insert(0, ".")

from montage_app import create_app
from montage_app.services.checklist_reconciler import reconcile_all


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Add missing checklist items to every active montage (idempotent)."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview only; do not write data")
    mode.add_argument("--apply", action="store_true", help="Persist missing checklist items")
    parser.add_argument("--batch-size", type=int, default=200, help="Montage ids per query page")
    args = parser.parse_args()

    apply = bool(args.apply)
    if not args.dry_run and not args.apply:
        print("[INFO] No mode specified; defaulting to --dry-run")

    app = create_app(os.getenv("APP_ENV", "development"))
    with app.app_context():
        summary = reconcile_all(batch_size=args.batch_size, dry_run=not apply)

    print(
        "[SUMMARY] "
        f"mode={'apply' if apply else 'dry-run'} "
        f"checked={summary['checked']} "
        f"repaired={summary['repaired']} "
        f"items={summary['items_created']} "
        f"raced={summary['raced']}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
