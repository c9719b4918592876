"""Course attendance reconciliation for video-conferencing webhooks.

Matches meeting start/end events to recurring course slots, records
attendance and payment, and alerts staff when a course does not start.
"""

from src.attendance.evaluator import AttendanceEvaluator, compute_payment, elapsed_minutes, scheduled_occurrence
from src.attendance.matcher import ScheduleMatcher
from src.attendance.models import AttendanceRecord, AttendanceStatus, CheckState, Course, Session, WeekDay
from src.attendance.monitor import CourseDayLedger, ProactiveMonitor
from src.attendance.registry import CourseRegistry
from src.attendance.service import AttendanceService
from src.attendance.store import RecordStore
from src.attendance.tracker import SessionTracker

__all__ = [
    "AttendanceEvaluator",
    "AttendanceRecord",
    "AttendanceService",
    "AttendanceStatus",
    "CheckState",
    "Course",
    "CourseDayLedger",
    "CourseRegistry",
    "ProactiveMonitor",
    "RecordStore",
    "ScheduleMatcher",
    "Session",
    "SessionTracker",
    "WeekDay",
    "compute_payment",
    "elapsed_minutes",
    "scheduled_occurrence",
]
