"""Proactive monitor: alert staff when a course's meeting has not started.

Once a day (and at start-up) the monitor reloads the registry and schedules a
check at each of today's course slots. A check confirms the course when a
matching meeting is open and escalates otherwise.

CourseDayLedger is shared with the webhook path so a course gets at most one
alert per day, whether the monitor or a late meeting end raises it first:

    Pending -> Confirmed -> Evaluated
    Pending -> Escalated -> Evaluated
"""

import threading
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from pydantic import AwareDatetime, BaseModel

from src.attendance.errors import RegistryError
from src.attendance.logging import get_logger
from src.attendance.models import CheckState, Course, WeekDay
from src.attendance.notifier import Notifier, not_started_alert
from src.attendance.registry import CourseRegistry
from src.attendance.tracker import SessionTracker

logger = get_logger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class CourseDayLedger:
    """Single authoritative state per (course slot, calendar day)."""

    def __init__(self) -> None:
        self._states: dict[tuple[str, date], CheckState] = {}
        self._lock = threading.Lock()

    def state(self, course: Course, day: date) -> CheckState:
        with self._lock:
            return self._states.get((course.key, day), CheckState.PENDING)

    def confirm(self, course: Course, day: date) -> CheckState:
        """Record that a meeting for the course started; only Pending moves."""
        with self._lock:
            current = self._states.get((course.key, day), CheckState.PENDING)
            if current is CheckState.PENDING:
                current = self._states[(course.key, day)] = CheckState.CONFIRMED
            return current

    def escalate(self, course: Course, day: date) -> bool:
        """Claim the day's alert for a course.

        Returns:
            True if the caller should send the alert, False if one was
            already sent or the course was already evaluated.
        """
        with self._lock:
            current = self._states.get((course.key, day), CheckState.PENDING)
            if current in (CheckState.ESCALATED, CheckState.EVALUATED):
                return False
            self._states[(course.key, day)] = CheckState.ESCALATED
            return True

    def mark_evaluated(self, course: Course, day: date) -> None:
        with self._lock:
            self._states[(course.key, day)] = CheckState.EVALUATED

    def prune(self, before: date) -> int:
        """Forget days earlier than ``before``."""
        with self._lock:
            stale = [key for key in self._states if key[1] < before]
            for key in stale:
                del self._states[key]
        return len(stale)


class PlannedCheck(BaseModel):
    course: Course
    day: date
    fire_at: AwareDatetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class ProactiveMonitor:
    """Schedules and runs the per-course "has the meeting started?" checks."""

    def __init__(
        self,
        registry: CourseRegistry,
        tracker: SessionTracker,
        ledger: CourseDayLedger,
        notifier: Notifier,
        tz: tzinfo,
        *,
        check_offset_minutes: int = 0,
        sweep_time: time = time(4, 0),
        session_ttl: timedelta = timedelta(hours=24),
        lock: "threading.RLock | None" = None,
        timer_factory: TimerFactory = daemon_timer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.registry = registry
        self.tracker = tracker
        self.ledger = ledger
        self.notifier = notifier
        self.tz = tz
        self.check_offset = timedelta(minutes=check_offset_minutes)
        self.sweep_time = sweep_time
        self.session_ttl = session_ttl
        self._lock = lock or threading.RLock()
        self._timer_factory = timer_factory
        self._clock = clock
        self._check_timers: list[threading.Timer] = []
        self._sweep_timer: threading.Timer | None = None

    def plan_day(self, now: datetime) -> list[PlannedCheck]:
        """Checks for every course scheduled on the local day containing ``now``."""
        today = now.astimezone(self.tz).date()
        plans = []
        for course in self.registry.courses_on(WeekDay.of(today)):
            scheduled = datetime.combine(today, course.scheduled_time, tzinfo=self.tz)
            plans.append(PlannedCheck(course=course, day=today, fire_at=scheduled + self.check_offset))
        return plans

    def run_check(self, course: Course, day: date) -> CheckState:
        """Resolve a Pending course-day to Confirmed or Escalated."""
        current = self.ledger.state(course, day)
        if current is not CheckState.PENDING:
            logger.info("check_already_resolved", course=course.key, day=day.isoformat(), state=current.value)
            return current

        session = self.tracker.find_by_topic(course.course_name)
        if session is not None:
            logger.info("check_confirmed", course=course.key, meeting_id=session.meeting_id)
            return self.ledger.confirm(course, day)

        if self.ledger.escalate(course, day):
            scheduled = datetime.combine(day, course.scheduled_time, tzinfo=self.tz)
            logger.warning("check_escalated", course=course.key, day=day.isoformat())
            self.notifier.notify(not_started_alert(course, scheduled))
        return CheckState.ESCALATED

    def sweep(self) -> list[PlannedCheck]:
        """Daily housekeeping: reload, expire orphans, reschedule today's checks.

        Returns:
            The checks that were scheduled (past ones are skipped).
        """
        now = self._clock()
        with self._lock:
            try:
                self.registry.load()
            except RegistryError:
                logger.warning("sweep_using_previous_registry", courses=len(self.registry.courses))

            self.tracker.sweep_expired(now, self.session_ttl)
            pruned = self.ledger.prune(before=self.ledger_horizon(now))
            self._cancel_checks()

            scheduled: list[PlannedCheck] = []
            for plan in self.plan_day(now):
                delay = (plan.fire_at.astimezone(timezone.utc) - now).total_seconds()
                if delay < 0:
                    logger.info("check_skipped_past", course=plan.course.key, fire_at=plan.fire_at.isoformat())
                    continue
                timer = self._timer_factory(delay, lambda plan=plan: self._fire(plan))
                self._check_timers.append(timer)
                timer.start()
                scheduled.append(plan)

        logger.info("sweep_completed", checks=len(scheduled), ledger_pruned=pruned)
        return scheduled

    def ledger_horizon(self, now: datetime) -> date:
        """Earliest course-day whose ledger state must survive a sweep.

        A session may stay open for session_ttl, and a meeting opened just
        after midnight belongs to the previous day's slot, so keep one more
        day than the oldest session the tracker can still hold.
        """
        oldest_open = (now - self.session_ttl).astimezone(self.tz).date()
        return oldest_open - timedelta(days=1)

    def next_sweep_at(self, now: datetime) -> datetime:
        local = now.astimezone(self.tz)
        candidate = datetime.combine(local.date(), self.sweep_time, tzinfo=self.tz)
        if candidate.astimezone(timezone.utc) <= now.astimezone(timezone.utc):
            candidate = datetime.combine(local.date() + timedelta(days=1), self.sweep_time, tzinfo=self.tz)
        return candidate

    def start(self) -> None:
        self.sweep()
        self._schedule_next_sweep()

    def stop(self) -> None:
        with self._lock:
            self._cancel_checks()
            if self._sweep_timer is not None:
                self._sweep_timer.cancel()
                self._sweep_timer = None
        logger.info("monitor_stopped")

    def _fire(self, plan: PlannedCheck) -> None:
        with self._lock:
            self.run_check(plan.course, plan.day)

    def _daily(self) -> None:
        self.sweep()
        self._schedule_next_sweep()

    def _schedule_next_sweep(self) -> None:
        now = self._clock()
        at = self.next_sweep_at(now)
        with self._lock:
            self._sweep_timer = self._timer_factory(
                (at.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds(),
                self._daily,
            )
            self._sweep_timer.start()
        logger.info("sweep_scheduled", at=at.isoformat())

    def _cancel_checks(self) -> None:
        for timer in self._check_timers:
            timer.cancel()
        self._check_timers = []
