"""AttendanceService: owns all runtime state and reconciles webhook events.

One instance is built at start-up and handed to the HTTP server. Event
handling and monitor checks take the same re-entrant lock, so each webhook
delivery or timer callback runs to completion before the next one starts.
Alerts only ever get queued under that lock; a worker thread sends them.
"""

import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from src.attendance.config import AttendanceConfig
from src.attendance.errors import RegistryError, StoreError, WebhookError
from src.attendance.evaluator import AttendanceEvaluator
from src.attendance.logging import bind_delivery, clear_delivery, get_logger
from src.attendance.matcher import ScheduleMatcher
from src.attendance.models import AttendanceRecord, AttendanceStatus
from src.attendance.monitor import CourseDayLedger, ProactiveMonitor, TimerFactory, daemon_timer, utc_now
from src.attendance.notifier import EmailNotifier, LogNotifier, Notifier, QueuedNotifier, late_start_alert
from src.attendance.registry import CourseRegistry
from src.attendance.store import RecordStore
from src.attendance.tracker import SessionTracker
from src.attendance.webhook import (
    MEETING_ENDED,
    MEETING_STARTED,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    URL_VALIDATION,
    WebhookVerifier,
    parse_delivery,
    url_validation_response,
)

logger = get_logger(__name__)

Subscriber = Callable[[AttendanceRecord], None]


def build_notifier(config: AttendanceConfig) -> Notifier:
    if not config.smtp_host:
        logger.warning("smtp_not_configured", fallback="log")
        return LogNotifier()
    return EmailNotifier(
        config.smtp_host,
        config.smtp_port,
        config.it_email,
        user=config.smtp_user,
        password=config.smtp_pass,
        starttls=config.smtp_starttls,
        timeout=config.smtp_timeout_seconds,
    )


class AttendanceService:
    def __init__(
        self,
        config: AttendanceConfig,
        *,
        registry: CourseRegistry | None = None,
        store: RecordStore | None = None,
        notifier: Notifier | None = None,
        timer_factory: TimerFactory = daemon_timer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.lock = threading.RLock()
        self.registry = registry or CourseRegistry(config.courses_file)
        self.tracker = SessionTracker()
        self.store = store or RecordStore(config.records_csv, config.records_json)
        self.notifier = notifier or build_notifier(config)
        self.alerts = QueuedNotifier(self.notifier)
        self.matcher = ScheduleMatcher(self.registry)
        self.ledger = CourseDayLedger()
        self.evaluator = AttendanceEvaluator(
            config.tz,
            grace_minutes=config.grace_minutes,
            late_tolerance_minutes=config.late_tolerance_minutes,
            reference_session_minutes=config.reference_session_minutes,
        )
        self.verifier = WebhookVerifier(
            config.zoom_webhook_secret_token,
            config.max_request_age_seconds,
            clock=clock,
        )
        self.monitor = ProactiveMonitor(
            self.registry,
            self.tracker,
            self.ledger,
            self.alerts,
            config.tz,
            check_offset_minutes=config.monitor_check_offset_minutes,
            sweep_time=config.sweep_time,
            session_ttl=timedelta(hours=config.session_ttl_hours),
            lock=self.lock,
            timer_factory=timer_factory,
            clock=clock,
        )
        self._clock = clock
        self._subscribers: list[Subscriber] = []

    def start(self) -> None:
        """Prepare the record store and start the monitor (which loads the registry)."""
        self.store.initialize()
        self.monitor.start()
        logger.info("service_started", courses=len(self.registry.courses), timezone=self.config.timezone)

    def stop(self) -> None:
        self.monitor.stop()
        self.alerts.stop()

    def reload_courses(self) -> int:
        with self.lock:
            try:
                return len(self.registry.load())
            except RegistryError:
                return len(self.registry.courses)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Receive every record written; returns an unsubscribe function."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def handle_delivery(self, raw_body: bytes, headers: Mapping[str, str]) -> tuple[int, dict[str, Any]]:
        """Verify and dispatch one webhook delivery.

        Returns:
            (HTTP status, JSON body). Structurally valid deliveries always get
            200, even when nothing matched, so the provider never retries them.
        """
        try:
            self.verifier.verify(raw_body, headers.get(TIMESTAMP_HEADER), headers.get(SIGNATURE_HEADER))
            delivery = parse_delivery(raw_body)
            bind_delivery(delivery.event)

            if delivery.event == URL_VALIDATION:
                logger.info("url_validation_answered")
                return 200, url_validation_response(self.config.zoom_webhook_secret_token, delivery.plain_token())

            if delivery.event == MEETING_STARTED:
                meeting = delivery.started()
                bind_delivery(delivery.event, meeting.id)
                self.meeting_started(meeting.id, meeting.topic, meeting.start_time, meeting.host)
                return 200, {"status": "meeting started logged"}

            if delivery.event == MEETING_ENDED:
                meeting = delivery.ended()
                bind_delivery(delivery.event, meeting.id)
                self.meeting_ended(meeting.id, meeting.end_time)
                return 200, {"status": "meeting ended logged"}

            logger.info("event_ignored")
            return 200, {"status": "ignored"}
        except WebhookError as e:
            logger.warning("delivery_rejected", reason=type(e).__name__, error=str(e), status=e.status_code)
            return e.status_code, {"error": str(e)}
        finally:
            clear_delivery()

    def meeting_started(
        self,
        meeting_id: str,
        topic: str,
        start_time: datetime,
        host: str | None = None,
    ) -> AttendanceRecord | None:
        """Track the meeting and, when it matches a course, append its open row."""
        with self.lock:
            session = self.tracker.register(meeting_id, topic, start_time, host, now=self._clock())
            course = self.matcher.match_session_start(topic, start_time.astimezone(self.config.tz))
            if course is None:
                return None

            occurrence = self.evaluator.scheduled_occurrence(course, start_time)
            self.ledger.confirm(course, occurrence.date())
            record = self.evaluator.open_record(course, session)
            self._persist(self.store.upsert, record)
            self._broadcast(record)
            return record

    def meeting_ended(self, meeting_id: str, end_time: datetime) -> AttendanceRecord | None:
        """Close the meeting's session and write its evaluated record.

        The session is cleared even when no course matches or persistence
        fails; those outcomes are logged only.
        """
        with self.lock:
            session = self.tracker.resolve_and_clear(meeting_id, end_time)
            if session is None:
                return None

            course = self.matcher.match_session_start(session.topic, session.start_time.astimezone(self.config.tz))
            if course is None:
                logger.info("ended_meeting_unmatched", meeting_id=meeting_id, topic=session.topic)
                return None

            record = self.evaluator.evaluate(course, session, end_time)
            occurrence = self.evaluator.scheduled_occurrence(course, session.start_time)
            day = occurrence.date()
            if record.status is AttendanceStatus.NOT_ATTENDED and self.ledger.escalate(course, day):
                self.alerts.notify(late_start_alert(course, session, occurrence))
            self.ledger.mark_evaluated(course, day)

            self._persist(self.store.upsert, record)
            self._broadcast(record)
            return record

    def records(self) -> list[AttendanceRecord]:
        return self.store.list_records()

    def _persist(self, write: Callable[[AttendanceRecord], None], record: AttendanceRecord) -> None:
        try:
            write(record)
        except StoreError as e:
            logger.error("record_not_persisted", meeting_id=record.meeting_id, error=str(e))

    def _broadcast(self, record: AttendanceRecord) -> None:
        for callback in list(self._subscribers):
            try:
                callback(record)
            except Exception as e:
                logger.warning("subscriber_failed", subscriber=repr(callback), error=str(e))
