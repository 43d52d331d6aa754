"""
Validate a FocusFive data directory.

Walks every day record through the load path, then checks the metadata stores
and the observation ledger. Nothing is written.

Usage:
    python tools/validate_data_dir.py
    python tools/validate_data_dir.py --data-dir ~/FocusFive --strict
"""
# ruff: noqa: E402
from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from focusfive.exceptions import ParseError
from focusfive.logger import setup_logging
from focusfive.paths import get_data_dir
from focusfive.persistence import PersistenceCoordinator


def validate_data_dir(data_dir: Path, strict: bool = False) -> int:
    if not data_dir.exists():
        print(f"[validate] No data directory found: {data_dir}")
        return 0

    coordinator = PersistenceCoordinator(data_dir)
    store = coordinator.store

    days = 0
    unreadable = 0
    warnings = Counter()
    for day_date in coordinator.list_dates():
        days += 1
        text = coordinator.read_text(day_date) or ""
        try:
            coordinator.codec.parse(text)
        except ParseError as exc:
            unreadable += 1
            print(f"[validate] {day_date}: unreadable ({exc.message})")
            continue
        day = coordinator.load_day(day_date, persist=False)
        for warning in day.warnings:
            warnings[type(warning).__name__] += 1
            print(f"[validate] {day_date}: {warning}")

    store.load_objectives()
    store.load_indicators()
    store.load_templates()
    store.load_vision()
    for period_identifier in store.list_reviews():
        store.load_review(period_identifier)
    for issue in store.issues:
        print(f"[validate] store: {issue.message}")

    ledger_lines = 0
    ledger_errors = 0
    ledger = store.layout.observations_path
    if ledger.exists():
        with open(ledger, "r", encoding="utf-8", errors="replace") as f:
            for idx, raw_line in enumerate(f, start=1):
                if not raw_line.strip():
                    continue
                ledger_lines += 1
                try:
                    json.loads(raw_line)
                except json.JSONDecodeError as exc:
                    ledger_errors += 1
                    print(f"[validate] ledger line {idx}: invalid json ({exc})")

    print(f"[validate] days={days}")
    print(f"[validate] unreadable_days={unreadable}")
    print(f"[validate] warnings={dict(warnings)}")
    print(f"[validate] store_issues={len(store.issues)}")
    print(f"[validate] ledger_lines={ledger_lines}")
    print(f"[validate] ledger_errors={ledger_errors}")

    if unreadable or store.issues or ledger_errors:
        return 1
    if strict and warnings:
        return 1
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Validate a FocusFive data directory.")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Override the data directory (default: FOCUSFIVE_DATA_DIR or ~/FocusFive).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat parse warnings (truncation, overflow, orphan lines) as failures.",
    )
    args = parser.parse_args(argv)
    setup_logging()
    return validate_data_dir(args.data_dir or get_data_dir(), strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
