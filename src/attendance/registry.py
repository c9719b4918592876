"""Course registry loaded from a human-edited JSON file.

File layout::

    {"courses": [
        {"course_id": "C1", "course_name": "Algebra 1", "teacher_name": "Ann Lee",
         "week_day": "Monday", "scheduled_time": "09:00", "rate_pound": 40}
    ]}
"""

import json
from pathlib import Path

from pydantic import ValidationError

from src.attendance.errors import RegistryError
from src.attendance.logging import get_logger
from src.attendance.models import Course, WeekDay

logger = get_logger(__name__)


class CourseRegistry:
    """Holds the current list of course slots; reload() swaps it wholesale."""

    def __init__(self, path: str | Path, courses: list[Course] | None = None) -> None:
        self.path = Path(path)
        self._courses: tuple[Course, ...] = tuple(courses or ())

    @property
    def courses(self) -> tuple[Course, ...]:
        return self._courses

    def load(self) -> tuple[Course, ...]:
        """Read and validate the registry file, replacing the held courses.

        Entries that fail validation are logged and skipped. If the file
        itself cannot be read or parsed the previous courses are kept.

        Returns:
            The newly loaded courses.

        Raises:
            RegistryError: If the file is missing, not JSON, or has no courses list.
        """
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("registry_load_failed", path=str(self.path), error=str(e))
            raise RegistryError(f"Cannot read course registry {self.path}: {e}") from e

        entries = document.get("courses") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            logger.error("registry_load_failed", path=str(self.path), error="missing courses list")
            raise RegistryError(f"Course registry {self.path} has no 'courses' list")

        loaded: list[Course] = []
        for position, entry in enumerate(entries):
            try:
                loaded.append(Course.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "registry_entry_skipped",
                    position=position,
                    errors=e.error_count(),
                    detail=str(e).splitlines()[0],
                )

        self._courses = tuple(loaded)
        logger.info("registry_loaded", path=str(self.path), courses=len(loaded), skipped=len(entries) - len(loaded))
        return self._courses

    def courses_on(self, week_day: WeekDay) -> list[Course]:
        """Courses scheduled on the given weekday, ordered by start time."""
        return sorted(
            (c for c in self._courses if c.week_day is week_day),
            key=lambda c: c.scheduled_time,
        )

    def by_name(self, course_name: str) -> list[Course]:
        """All slots sharing a course name, in registry order."""
        return [c for c in self._courses if c.course_name == course_name]
