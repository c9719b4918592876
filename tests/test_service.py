import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from src.attendance.models import AttendanceStatus, CheckState
from src.attendance.service import AttendanceService
from src.attendance.store import RecordStore
from tests.support import MONDAY, BlockingNotifier, TimerRecorder, at, signed


@pytest.fixture
def service(config, notifier, timers, clock):
    service = AttendanceService(config, notifier=notifier, timer_factory=timers, clock=clock)
    service.start()
    return service


@pytest.fixture
def deliver(service, clock):
    timestamp = str(int(clock().timestamp()))

    def _deliver(body: dict, secret: str = "test-secret"):
        raw, headers = signed(body, secret, timestamp)
        return service.handle_delivery(raw, headers)

    return _deliver


def started(meeting_id: str, topic: str, start: datetime, host_email: str = "ann@example.com") -> dict:
    return {
        "event": "meeting.started",
        "payload": {
            "object": {
                "id": meeting_id,
                "topic": topic,
                "start_time": start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "host_email": host_email,
            }
        },
    }


def ended(meeting_id: str, end: datetime) -> dict:
    return {
        "event": "meeting.ended",
        "payload": {"object": {"id": meeting_id, "end_time": end.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")}},
    }


def test_on_time_meeting_is_recorded_as_attended(service, deliver, notifier):
    assert deliver(started("m1", "Algebra 1", at(8, 58)))[0] == 200
    assert deliver(ended("m1", at(9, 38)))[0] == 200
    service.alerts.join()

    records = service.records()
    assert len(records) == 1
    record = records[0]
    assert record.status is AttendanceStatus.ATTENDED
    assert record.total_time_minutes == 40
    assert str(record.approved_payment) == "40.00"
    assert record.entered_time == "08:58:00"
    assert notifier.alerts == []
    assert "m1" not in service.tracker


def test_started_meeting_leaves_an_open_row(service, deliver):
    deliver(started("m1", "Algebra 1", at(8, 58)))

    records = service.records()
    assert [r.status for r in records] == [AttendanceStatus.SCHEDULED]
    assert records[0].finished_time is None
    assert "m1" in service.tracker


def test_late_meeting_notifies_exactly_once(service, deliver, notifier):
    deliver(started("m1", "Algebra 1", at(9, 1)))
    deliver(ended("m1", at(9, 41)))
    service.alerts.join()

    assert service.records()[0].status is AttendanceStatus.NOT_ATTENDED
    assert len(notifier.alerts) == 1
    assert notifier.alerts[0].subject == "Late Meeting: Algebra 1"
    assert "ann@example.com" in notifier.alerts[0].body


def test_monitor_and_late_end_share_one_alert(service, deliver, notifier, timers):
    check = timers.active()[0]
    check.function()  # 09:00 check, nothing started yet
    deliver(started("m1", "Algebra 1", at(9, 10)))
    deliver(ended("m1", at(9, 50)))
    service.alerts.join()

    assert [a.subject for a in notifier.alerts] == ["Meeting Not Started: Algebra 1"]
    course = service.registry.by_name("Algebra 1")[0]
    assert service.ledger.state(course, at(9, 0).date()) is CheckState.EVALUATED


def test_started_meeting_confirms_the_monitor_check(service, deliver, notifier, timers):
    deliver(started("m1", "Algebra 1", at(8, 58)))
    timers.active()[0].function()
    service.alerts.join()

    assert notifier.alerts == []


def test_end_without_start_is_acknowledged_and_ignored(service, deliver):
    status, _ = deliver(ended("ghost", at(9, 38)))

    assert status == 200
    assert service.records() == []


def test_unmatched_topic_clears_session_without_record(service, deliver):
    deliver(started("m9", "Staff social", at(12, 0)))
    status, _ = deliver(ended("m9", at(12, 30)))

    assert status == 200
    assert "m9" not in service.tracker
    assert service.records() == []


def test_bad_signature_is_rejected_without_side_effects(service, deliver):
    status, body = deliver(started("m1", "Algebra 1", at(8, 58)), secret="wrong")

    assert status == 401
    assert "error" in body
    assert len(service.tracker) == 0
    assert service.records() == []


def test_stale_delivery_is_rejected(service):
    raw, headers = signed(started("m1", "Algebra 1", at(8, 58)), "test-secret", "1700000000")

    status, _ = service.handle_delivery(raw, headers)

    assert status == 401
    assert len(service.tracker) == 0


def test_malformed_started_event_is_400(service, deliver):
    body = started("m1", "Algebra 1", at(8, 58))
    del body["payload"]["object"]["topic"]

    status, _ = deliver(body)

    assert status == 400
    assert len(service.tracker) == 0


def test_unknown_event_is_acknowledged(service, deliver):
    status, body = deliver({"event": "meeting.participant_joined", "payload": {"object": {"id": "m1"}}})

    assert status == 200
    assert body == {"status": "ignored"}


def test_url_validation_is_answered(service, deliver):
    status, body = deliver({"event": "endpoint.url_validation", "payload": {"plainToken": "tok"}})

    assert status == 200
    assert body["plainToken"] == "tok"
    assert len(body["encryptedToken"]) == 64


def test_restarted_meeting_keeps_last_start(service, deliver):
    deliver(started("m1", "Algebra 1", at(8, 50)))
    deliver(started("m1", "Algebra 1", at(9, 5)))
    deliver(ended("m1", at(9, 45)))

    records = service.records()
    assert len(records) == 1
    assert records[0].entered_time == "09:05:00"
    assert records[0].total_time_minutes == 40


def test_subscribers_receive_open_and_completed_records(service):
    seen = []
    unsubscribe = service.subscribe(seen.append)

    service.meeting_started("m1", "Algebra 1", at(8, 58), "ann@example.com")
    service.meeting_ended("m1", at(9, 38))
    unsubscribe()
    service.meeting_started("m2", "Algebra 1", at(10, 0))

    assert [r.status for r in seen] == [AttendanceStatus.SCHEDULED, AttendanceStatus.ATTENDED]


def test_failing_subscriber_does_not_block_processing(service):
    def explode(record):
        raise RuntimeError("dashboard gone")

    service.subscribe(explode)

    assert service.meeting_started("m1", "Algebra 1", at(8, 58)) is not None
    assert service.meeting_ended("m1", at(9, 38)) is not None


def test_store_failure_still_clears_session(config, notifier, timers, clock, tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("")
    service = AttendanceService(
        config,
        store=RecordStore(blocker / "attendance.csv"),
        notifier=notifier,
        timer_factory=timers,
        clock=clock,
    )
    service.reload_courses()

    service.meeting_started("m1", "Algebra 1", at(8, 58))
    record = service.meeting_ended("m1", at(9, 38))

    assert record.status is AttendanceStatus.ATTENDED
    assert "m1" not in service.tracker


def test_json_mirror_written_for_dashboard(service, deliver, config):
    deliver(started("m1", "Algebra 1", at(8, 58)))
    deliver(ended("m1", at(9, 38)))

    with open(config.records_json, encoding="utf-8") as handle:
        mirror = json.load(handle)

    assert [row["status"] for row in mirror] == ["Attended"]


def test_hanging_mail_server_does_not_delay_acknowledgement(config, timers, clock):
    slow = BlockingNotifier()
    service = AttendanceService(config, notifier=slow, timer_factory=timers, clock=clock)
    service.start()
    service.meeting_started("m1", "Algebra 1", at(9, 1))

    began = time.monotonic()
    record = service.meeting_ended("m1", at(9, 41))
    elapsed = time.monotonic() - began

    assert record.status is AttendanceStatus.NOT_ATTENDED
    assert elapsed < 1
    assert slow.alerts == []

    slow.release.set()
    service.alerts.join()
    assert [a.subject for a in slow.alerts] == ["Late Meeting: Algebra 1"]
    service.stop()


def test_overnight_meeting_alerts_once_across_daily_sweep(config, notifier, tmp_path):
    courses = tmp_path / "night.json"
    courses.write_text(
        json.dumps(
            {
                "courses": [
                    {
                        "course_name": "Night",
                        "teacher_name": "Lee",
                        "week_day": "Sunday",
                        "scheduled_time": "23:58",
                        "rate_pound": 20,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    sunday = MONDAY - timedelta(days=1)
    now = [at(23, 0, day=sunday)]
    timers = TimerRecorder()
    service = AttendanceService(
        config.model_copy(update={"courses_file": str(courses)}),
        notifier=notifier,
        timer_factory=timers,
        clock=lambda: now[0].astimezone(timezone.utc),
    )
    service.start()

    timers.active()[0].function()  # 23:58 Sunday check, nothing open
    now[0] = at(0, 2)
    service.meeting_started("n1", "Night", at(0, 2), "lee@example.com")
    now[0] = at(4, 0)
    service.monitor.sweep()
    now[0] = at(4, 10)
    record = service.meeting_ended("n1", at(4, 10))
    service.alerts.join()

    assert record.status is AttendanceStatus.NOT_ATTENDED
    assert [a.subject for a in notifier.alerts] == ["Meeting Not Started: Night"]
    service.stop()


def test_grace_deadline_check_fires_before_scheduled_start(config, notifier, timers, clock):
    service = AttendanceService(
        config.model_copy(update={"monitor_checks_at_grace_deadline": True}),
        notifier=notifier,
        timer_factory=timers,
        clock=clock,
    )
    service.start()

    # 08:57 BST is 117 minutes after the 07:00 BST clock
    assert timers.active()[0].interval == pytest.approx(117 * 60)
    service.stop()
