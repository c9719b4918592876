import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.attendance.config import AttendanceConfig
from src.attendance.models import Course, Session, WeekDay
from tests.support import COURSES, LONDON, FakeNotifier, TimerRecorder


@pytest.fixture
def london():
    return LONDON


@pytest.fixture
def algebra() -> Course:
    return Course(
        course_id="ALG1-MON",
        course_name="Algebra 1",
        teacher_name="Ann Lee",
        week_day=WeekDay.MONDAY,
        scheduled_time="09:00",
        rate_pound=Decimal("40"),
    )


@pytest.fixture
def make_session():
    def _make(start: datetime, meeting_id: str = "85746", topic: str = "Algebra 1", host: str | None = "ann@example.com"):
        return Session(
            meeting_id=meeting_id,
            topic=topic,
            start_time=start,
            host=host,
            registered_at=start.astimezone(timezone.utc),
        )

    return _make


@pytest.fixture
def courses_file(tmp_path):
    path = tmp_path / "courses.json"
    path.write_text(json.dumps({"courses": COURSES}), encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path, courses_file) -> AttendanceConfig:
    return AttendanceConfig(
        _env_file=None,
        zoom_webhook_secret_token="test-secret",
        courses_file=str(courses_file),
        records_csv=str(tmp_path / "attendance.csv"),
        records_json=str(tmp_path / "attendance.json"),
        timezone="Europe/London",
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def timers() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture
def clock():
    # 07:00 BST on the Monday
    return lambda: datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
