import hashlib
import hmac
import json
import threading
from datetime import datetime
from zoneinfo import ZoneInfo

from src.attendance.models import Alert

LONDON = ZoneInfo("Europe/London")

# Monday; British Summer Time (UTC+1) until 2026-10-25
MONDAY = datetime(2026, 10, 19, tzinfo=LONDON)

COURSES = [
    {
        "course_id": "ALG1-MON",
        "course_name": "Algebra 1",
        "teacher_name": "Ann Lee",
        "week_day": "Monday",
        "scheduled_time": "09:00",
        "rate_pound": 40,
    },
    {
        "course_id": "ALG1-THU",
        "course_name": "Algebra 1",
        "teacher_name": "Ann Lee",
        "week_day": "Thursday",
        "scheduled_time": "17:30",
        "rate_pound": 40,
    },
    {
        "course_id": "CHEM-MON",
        "course_name": "Chemistry",
        "teacher_name": "Raj Patel",
        "week_day": "Monday",
        "scheduled_time": "06:30",
        "rate_pound": 30,
    },
]


class FakeNotifier:
    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def notify(self, alert: Alert) -> bool:
        self.alerts.append(alert)
        return True


class FakeTimer:
    def __init__(self, interval, function) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class TimerRecorder:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


def at(hour: int, minute: int, second: int = 0, day: datetime = MONDAY) -> datetime:
    return day.replace(hour=hour, minute=minute, second=second)


def signed(body: dict, secret: str, timestamp: str) -> tuple[bytes, dict[str, str]]:
    raw = json.dumps(body).encode("utf-8")
    digest = hmac.new(secret.encode(), b"v0:" + timestamp.encode() + b":" + raw, hashlib.sha256).hexdigest()
    return raw, {"x-zm-request-timestamp": timestamp, "x-zm-signature": f"v0={digest}"}


class BlockingNotifier(FakeNotifier):
    """Holds every alert until release is set, like a mail server that hangs."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def notify(self, alert: Alert) -> bool:
        self.release.wait(timeout=10)
        return super().notify(alert)
