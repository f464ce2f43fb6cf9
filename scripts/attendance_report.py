"""
Print the attendance log for a class.

Reads the attendance store directly and prints one table per (date, period)
event, marking events recorded in a degraded mode.

Usage:
    python scripts/attendance_report.py --class 10A
    python scripts/attendance_report.py --class 10A --date 2026-03-02
    python scripts/attendance_report.py --class 10A --date 2026-03-02 --period 2

Author: CS-1
"""

import argparse
import sys
from collections import OrderedDict
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.attendance_store import get_attendance_store  # noqa: E402
from core.matching import MatchMode  # noqa: E402


def group_by_event(rows):
    """Group log rows by (date, period), keeping log order."""
    events = OrderedDict()
    for row in rows:
        events.setdefault((row["date"], row["period"]), []).append(row)
    return events


def main():
    parser = argparse.ArgumentParser(description="Print the attendance log")
    parser.add_argument("--class", dest="class_id", required=True, help="Class identifier")
    parser.add_argument("--date", type=str, default=None, help="Only this date (YYYY-MM-DD)")
    parser.add_argument("--period", type=int, default=None, help="Only this period")
    args = parser.parse_args()

    store = get_attendance_store()
    rows = store.get_attendance(class_id=args.class_id, date=args.date, period=args.period)

    if not rows:
        print(f"No attendance recorded for class {args.class_id}")
        return 0

    for (date, period), records in group_by_event(rows).items():
        present = sum(1 for r in records if r["status"] == "Present")
        modes = {r["mode"] for r in records}
        degraded = any(m and MatchMode(m).is_degraded for m in modes)

        print(f"\n{'=' * 60}")
        print(f"Class {args.class_id} | {date} | period {period}"
              f"{'  [synthetic: ' + ', '.join(sorted(m for m in modes if m)) + ']' if degraded else ''}")
        print("=" * 60)
        for r in records:
            print(f"  {r['roll_no']:<12} {r['student_name']:<24} {r['status']:<8} {r['reason']}")
        print(f"  Present: {present}/{len(records)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
