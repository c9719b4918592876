"""Attendance record store: a CSV row file mirrored into a JSON array.

Rows are appended when a matched meeting starts and patched in place when it
ends (the only mutation a row ever sees). Every read-modify-write holds one
lock and replaces the files atomically, so a crash mid-write leaves the
previous version intact.
"""

import csv
import io
import json
import os
import tempfile
import threading
from datetime import date
from pathlib import Path

from src.attendance.errors import StoreError
from src.attendance.logging import get_logger
from src.attendance.models import AttendanceRecord

logger = get_logger(__name__)


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class RecordStore:
    """CSV-backed attendance rows keyed by meeting id and start date."""

    def __init__(self, csv_path: str | Path, json_path: str | Path | None = None) -> None:
        self.csv_path = Path(csv_path)
        self.json_path = Path(json_path) if json_path else None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Create the CSV with its header row if it does not exist yet."""
        with self._lock:
            if self.csv_path.exists():
                logger.info("record_store_found", path=str(self.csv_path))
                return
            self._write([])
            logger.info("record_store_created", path=str(self.csv_path))

    def list_records(self) -> list[AttendanceRecord]:
        with self._lock:
            return self._read()

    def append(self, record: AttendanceRecord) -> None:
        with self._lock:
            records = self._read()
            records.append(record)
            self._write(records)
        logger.info(
            "record_appended",
            meeting_id=record.meeting_id,
            course=record.course_name,
            status=record.status.value,
        )

    def backfill(self, meeting_id: str, on: date, record: AttendanceRecord) -> bool:
        """Replace the open row for (meeting_id, date) with a completed record.

        Returns:
            False when no open row exists for that key.
        """
        with self._lock:
            records = self._read()
            for position in range(len(records) - 1, -1, -1):
                row = records[position]
                if row.meeting_id == meeting_id and row.date == on and row.is_open:
                    records[position] = record
                    self._write(records)
                    break
            else:
                return False

        logger.info("record_backfilled", meeting_id=meeting_id, date=on.isoformat(), status=record.status.value)
        return True

    def upsert(self, record: AttendanceRecord) -> None:
        """Replace the open row with the record's key, or append when there is none.

        Used both to complete a row on meeting end and to replace the open
        row of a meeting that was started again.
        """
        if not self.backfill(record.meeting_id, record.date, record):
            self.append(record)

    def _read(self) -> list[AttendanceRecord]:
        if not self.csv_path.exists():
            return []
        try:
            with self.csv_path.open(encoding="utf-8", newline="") as handle:
                rows = list(csv.DictReader(handle))
        except OSError as e:
            raise StoreError(f"Cannot read {self.csv_path}: {e}") from e

        records: list[AttendanceRecord] = []
        for line, row in enumerate(rows, start=2):
            try:
                records.append(AttendanceRecord.from_row(row))
            except ValueError as e:
                # Refuse to rewrite a file we could not fully read
                logger.error("record_row_invalid", path=str(self.csv_path), line=line, error=str(e))
                raise StoreError(f"Invalid row at {self.csv_path}:{line}: {e}") from e
        return records

    def _write(self, records: list[AttendanceRecord]) -> None:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=AttendanceRecord.columns())
        writer.writeheader()
        for record in records:
            writer.writerow(record.to_row())

        try:
            _atomic_write(self.csv_path, buffer.getvalue())
            if self.json_path is not None:
                mirror = [record.model_dump(mode="json") for record in records]
                _atomic_write(self.json_path, json.dumps(mirror, indent=2) + "\n")
        except OSError as e:
            logger.error("record_store_write_failed", path=str(self.csv_path), error=str(e))
            raise StoreError(f"Cannot write {self.csv_path}: {e}") from e
