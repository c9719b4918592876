"""Print the attendance record store as a table or JSON.

Run with: python scripts/show_attendance.py
Date:     python scripts/show_attendance.py --date 2026-10-19
JSON:     python scripts/show_attendance.py --json
"""

import argparse
import json
import os
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.attendance.config import get_config  # noqa: E402
from src.attendance.models import AttendanceRecord  # noqa: E402
from src.attendance.store import RecordStore  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show recorded attendance.")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Only this date (YYYY-MM-DD).")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of a table.")
    parser.add_argument("--csv", type=str, default=None, help="Record CSV (default: RECORDS_CSV).")
    return parser.parse_args()


def _format_table(records: list[AttendanceRecord]) -> str:
    """Columns: Date | Course | Teacher | Scheduled | Entered | Finished | Minutes | Approved | Status"""
    if not records:
        return "(no attendance recorded)"

    headers = ["Date", "Course", "Teacher", "Scheduled", "Entered", "Finished", "Minutes", "Approved", "Status"]
    rows = [
        [
            r.date.isoformat(),
            r.course_name,
            r.email_or_teacher_name,
            r.scheduled_time,
            r.entered_time,
            r.finished_time or "-",
            "-" if r.total_time_minutes is None else str(r.total_time_minutes),
            "-" if r.approved_payment is None else f"£{r.approved_payment}",
            r.status.value,
        ]
        for r in records
    ]

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows]
    return "\n".join([header_line, separator, *row_lines])


def main(args: argparse.Namespace) -> None:
    store = RecordStore(args.csv or get_config().records_csv)
    records = store.list_records()
    if args.date is not None:
        records = [r for r in records if r.date == args.date]

    if args.json:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
    else:
        print(_format_table(records))


if __name__ == "__main__":
    args = _parse_args()
    try:
        main(args)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
