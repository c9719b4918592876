"""Attendance evaluation: duration, scheduled occurrence, punctuality and payment.

All instant arithmetic is done in UTC. Python compares and subtracts aware
datetimes that share a tzinfo by wall clock, which is wrong across a DST
change, so local times are only produced for display and for locating the
calendar week.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal

from src.attendance.logging import get_logger
from src.attendance.models import AttendanceRecord, AttendanceStatus, Course, Session, WeekDay

logger = get_logger(__name__)

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
MAX_OCCURRENCE_GAP = timedelta(days=6)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded away from zero."""
    seconds = (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()
    return int((Decimal(str(seconds)) / 60).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def scheduled_occurrence(course: Course, start: datetime, tz: tzinfo) -> datetime:
    """The instant the course was due to start in the week of ``start``.

    Weeks run Monday to Sunday in ``tz``. A result more than six days away
    from ``start`` is moved one week toward it, so a meeting opened just
    after midnight on Monday resolves to the previous Sunday's late slot.

    Returns:
        Aware datetime in ``tz``.
    """
    local_start = start.astimezone(tz)
    monday = local_start.date() - timedelta(days=local_start.weekday())
    day = monday + timedelta(days=course.week_day.index)

    occurrence = datetime.combine(day, course.scheduled_time, tzinfo=tz)
    gap = occurrence.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    if gap > MAX_OCCURRENCE_GAP:
        occurrence = datetime.combine(day - timedelta(days=7), course.scheduled_time, tzinfo=tz)
    elif gap < -MAX_OCCURRENCE_GAP:
        occurrence = datetime.combine(day + timedelta(days=7), course.scheduled_time, tzinfo=tz)
    return occurrence


def compute_payment(rate_pound: Decimal, minutes: int, reference_minutes: int = 40) -> tuple[Decimal, Decimal, Decimal]:
    """Per-minute rate, raw payment and approved (capped) payment.

    The approved amount never exceeds ``rate_pound``; a non-positive
    duration yields a non-positive payment rather than being clamped.
    """
    rate_per_minute = (rate_pound / reference_minutes).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    calculated = (rate_pound * minutes / reference_minutes).quantize(CENT, rounding=ROUND_HALF_UP)
    approved = min(calculated, rate_pound).quantize(CENT, rounding=ROUND_HALF_UP)
    return rate_per_minute, calculated, approved


class AttendanceEvaluator:
    """Turns a matched course and a meeting's start/end into an AttendanceRecord."""

    def __init__(
        self,
        tz: tzinfo,
        *,
        grace_minutes: int = 3,
        late_tolerance_minutes: int = 0,
        reference_session_minutes: int = 40,
    ) -> None:
        self.tz = tz
        self.grace = timedelta(minutes=grace_minutes)
        self.late_tolerance = timedelta(minutes=late_tolerance_minutes)
        self.reference_session_minutes = reference_session_minutes

    def scheduled_occurrence(self, course: Course, start: datetime) -> datetime:
        return scheduled_occurrence(course, start, self.tz)

    def grace_deadline(self, occurrence: datetime) -> datetime:
        """Instant by which the meeting is expected to be open."""
        return occurrence - self.grace

    def punctuality(self, course: Course, start: datetime) -> AttendanceStatus:
        """Attended when the meeting opened no later than the scheduled start
        plus the late tolerance (inclusive); Not-attended otherwise."""
        occurrence = self.scheduled_occurrence(course, start)
        latest = occurrence.astimezone(timezone.utc) + self.late_tolerance
        if start.astimezone(timezone.utc) <= latest:
            return AttendanceStatus.ATTENDED
        return AttendanceStatus.NOT_ATTENDED

    def open_record(self, course: Course, session: Session) -> AttendanceRecord:
        """Row written when a matched meeting starts; completed on its end."""
        local_start = session.start_time.astimezone(self.tz)
        rate_per_minute, _, _ = compute_payment(course.rate_pound, 0, self.reference_session_minutes)
        return AttendanceRecord(
            teacher_name=course.teacher_name,
            email_or_teacher_name=session.host or course.teacher_name,
            course_name=course.course_name,
            meeting_id=session.meeting_id,
            scheduled_week_day=course.week_day,
            attended_week_day=WeekDay.of(local_start.date()),
            date=local_start.date(),
            scheduled_time=course.scheduled_time.strftime("%H:%M"),
            entered_time=local_start.strftime("%H:%M:%S"),
            rate_pound=course.rate_pound,
            rate_per_minute=rate_per_minute,
            status=AttendanceStatus.SCHEDULED,
        )

    def evaluate(self, course: Course, session: Session, end_time: datetime) -> AttendanceRecord:
        start = session.start_time
        minutes = elapsed_minutes(start, end_time)
        if minutes <= 0:
            logger.warning(
                "non_positive_duration",
                meeting_id=session.meeting_id,
                start=start.isoformat(),
                end=end_time.isoformat(),
                minutes=minutes,
            )

        occurrence = self.scheduled_occurrence(course, start)
        status = self.punctuality(course, start)
        rate_per_minute, calculated, approved = compute_payment(
            course.rate_pound, minutes, self.reference_session_minutes
        )

        record = self.open_record(course, session).model_copy(
            update={
                "finished_time": end_time.astimezone(self.tz).strftime("%H:%M:%S"),
                "total_time_minutes": minutes,
                "rate_per_minute": rate_per_minute,
                "calculated_payment": calculated,
                "approved_payment": approved,
                "status": status,
            }
        )
        logger.info(
            "attendance_evaluated",
            meeting_id=session.meeting_id,
            course=course.key,
            scheduled=occurrence.isoformat(),
            grace_deadline=self.grace_deadline(occurrence).isoformat(),
            minutes=minutes,
            status=status.value,
            approved_payment=str(approved),
        )
        return record
