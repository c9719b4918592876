"""Run the attendance webhook server and proactive monitor.

Run with: python scripts/run_server.py
Port:     python scripts/run_server.py --port 8080
Check:    python scripts/run_server.py --check-courses

Configuration comes from environment variables or .env (see
src/attendance/config.py). ZOOM_WEBHOOK_SECRET_TOKEN is required.

Exit codes:
  0 = clean shutdown (Ctrl-C) or --check-courses succeeded
  1 = configuration or start-up error (message on stderr)
"""

import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.attendance.config import get_config  # noqa: E402
from src.attendance.logging import get_logger, setup_logging  # noqa: E402
from src.attendance.models import WeekDay  # noqa: E402
from src.attendance.registry import CourseRegistry  # noqa: E402
from src.attendance.server import build_server  # noqa: E402
from src.attendance.service import AttendanceService  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Attendance webhook listener with daily started-meeting checks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=None, help="Bind address (default: HOST or 0.0.0.0).")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: PORT or 3000).")
    parser.add_argument(
        "--courses",
        type=str,
        default=None,
        help="Course registry JSON file (default: COURSES_FILE or data/courses.json).",
    )
    parser.add_argument(
        "--check-courses",
        action="store_true",
        help="Validate the course registry, print slots per weekday and exit.",
    )
    return parser.parse_args()


def check_courses(path: str) -> None:
    registry = CourseRegistry(path)
    registry.load()
    for day in WeekDay:
        slots = registry.courses_on(day)
        if not slots:
            continue
        print(day.value)
        for course in slots:
            print(f"  {course.scheduled_time:%H:%M}  {course.course_name}  ({course.teacher_name or '-'}, £{course.rate_pound})")


def main(args: argparse.Namespace) -> None:
    config = get_config()
    overrides = {
        key: value
        for key, value in (("host", args.host), ("port", args.port), ("courses_file", args.courses))
        if value is not None
    }
    if overrides:
        config = config.model_copy(update=overrides)

    setup_logging(json_output=config.log_json, log_level=config.log_level)
    log = get_logger("run_server")

    if args.check_courses:
        check_courses(config.courses_file)
        return

    if not config.zoom_webhook_secret_token:
        raise RuntimeError("ZOOM_WEBHOOK_SECRET_TOKEN environment variable required")

    service = AttendanceService(config)
    service.start()
    server = build_server(service, config.host, config.port)
    log.info("webhook_listener_running", host=config.host, port=config.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    finally:
        server.server_close()
        service.stop()


if __name__ == "__main__":
    args = _parse_args()
    try:
        main(args)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
