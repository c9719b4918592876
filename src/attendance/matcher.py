"""Match a meeting topic to the course slot it was held for."""

from datetime import datetime, time

from src.attendance.logging import get_logger
from src.attendance.models import Course, WeekDay
from src.attendance.registry import CourseRegistry

logger = get_logger(__name__)


def _minutes_apart(a: time, b: time) -> int:
    # Clock distance wraps around midnight: 23:50 and 00:10 are 20 minutes apart
    delta = abs((a.hour * 60 + a.minute) - (b.hour * 60 + b.minute))
    return min(delta, 24 * 60 - delta)


class ScheduleMatcher:
    """Exact, case-sensitive topic match against the registry.

    Several slots may share a course name; a weekday and a time of day,
    when given, pick between them.
    """

    def __init__(self, registry: CourseRegistry) -> None:
        self.registry = registry

    def match(
        self,
        topic: str,
        occurrence_weekday: WeekDay | None = None,
        occurrence_time: time | None = None,
    ) -> Course | None:
        candidates = self.registry.by_name(topic)
        if not candidates:
            logger.info("course_not_matched", topic=topic)
            return None

        if occurrence_weekday is not None:
            same_day = [c for c in candidates if c.week_day is occurrence_weekday]
            if same_day:
                candidates = same_day

        if occurrence_time is not None and len(candidates) > 1:
            # min() keeps the first of equally close slots, i.e. registry order
            course = min(candidates, key=lambda c: _minutes_apart(c.scheduled_time, occurrence_time))
        else:
            course = candidates[0]

        logger.debug("course_matched", topic=topic, course=course.key)
        return course

    def match_session_start(self, topic: str, local_start: datetime) -> Course | None:
        """Match using the weekday and clock time a meeting actually started at."""
        return self.match(topic, WeekDay.of(local_start.date()), local_start.time())
