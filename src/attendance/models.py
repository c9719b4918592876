"""Pydantic models for courses, open meeting sessions and attendance records.

All data structures use Pydantic v2 for validation, serialization, and type safety.
"""

from datetime import date, time
from decimal import Decimal
from enum import Enum

from pydantic import AliasChoices, AwareDatetime, BaseModel, ConfigDict, Field, field_validator

_Date = date


class WeekDay(str, Enum):
    """Day names as they appear in the course registry and the record store."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @property
    def index(self) -> int:
        """Python weekday number (0=Monday)."""
        return list(WeekDay).index(self)

    @classmethod
    def of(cls, moment: date) -> "WeekDay":
        return list(cls)[moment.weekday()]


class AttendanceStatus(str, Enum):
    SCHEDULED = "Scheduled"  # open row, meeting started but not ended
    ATTENDED = "Attended"
    NOT_ATTENDED = "Not-attended"


class Course(BaseModel):
    """A recurring weekly course slot from the registry.

    Older registry files name the match key ``topic``; both spellings load.
    """

    model_config = ConfigDict(frozen=True)

    course_id: str | None = None
    course_name: str = Field(validation_alias=AliasChoices("course_name", "topic"), min_length=1)
    teacher_name: str = ""
    week_day: WeekDay
    scheduled_time: time  # local wall-clock in the configured timezone
    rate_pound: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)

    @field_validator("course_id", mode="before")
    @classmethod
    def _id_as_text(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def key(self) -> str:
        """Identity of the slot: name alone is not unique across weekdays."""
        return f"{self.course_name}|{self.week_day.value}|{self.scheduled_time:%H:%M}"


class Session(BaseModel):
    """An open meeting between its started- and ended-events."""

    meeting_id: str
    topic: str
    start_time: AwareDatetime
    host: str | None = None  # host id or host email, whichever the provider sent
    registered_at: AwareDatetime


class AttendanceRecord(BaseModel):
    """One row of the attendance store.

    Field order is the CSV column order. Rows appended on meeting start
    carry status Scheduled and leave the end-of-meeting columns empty.
    """

    teacher_name: str
    email_or_teacher_name: str
    course_name: str
    meeting_id: str
    scheduled_week_day: WeekDay
    attended_week_day: WeekDay
    date: _Date
    scheduled_time: str  # HH:MM
    entered_time: str  # HH:MM:SS
    finished_time: str | None = None
    total_time_minutes: int | None = None
    rate_pound: Decimal
    rate_per_minute: Decimal
    calculated_payment: Decimal | None = None
    approved_payment: Decimal | None = None
    status: AttendanceStatus = AttendanceStatus.SCHEDULED

    @classmethod
    def columns(cls) -> list[str]:
        return list(cls.model_fields)

    @property
    def is_open(self) -> bool:
        return self.status is AttendanceStatus.SCHEDULED

    def to_row(self) -> dict[str, str]:
        """Flatten to CSV cells; missing values become empty strings."""
        data = self.model_dump(mode="json")
        return {name: "" if data[name] is None else str(data[name]) for name in self.columns()}

    @classmethod
    def from_row(cls, row: dict[str, str]) -> "AttendanceRecord":
        cleaned = {name: (value if value != "" else None) for name, value in row.items() if name in cls.model_fields}
        return cls.model_validate(cleaned)


class CheckState(str, Enum):
    """Lifecycle of one course on one calendar day."""

    PENDING = "Pending"
    CONFIRMED = "Confirmed"  # a matching meeting started
    ESCALATED = "Escalated"  # staff were alerted
    EVALUATED = "Evaluated"  # the meeting ended and a record was written


class Alert(BaseModel):
    subject: str
    body: str
    course_key: str | None = None

