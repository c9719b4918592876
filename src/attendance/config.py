"""Service configuration loaded from environment variables.

For local development, create a .env file in the project root; names are
case-insensitive (ZOOM_WEBHOOK_SECRET_TOKEN, SMTP_HOST, TIMEZONE, ...).
"""

from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AttendanceConfig(BaseSettings):
    """Attendance service configuration loaded from environment variables."""

    # Webhook
    zoom_webhook_secret_token: str = Field(
        default="",
        description="Shared secret used to sign webhook deliveries",
    )
    max_request_age_seconds: int = Field(
        default=300,
        ge=0,
        description="Reject deliveries whose timestamp is older than this (0 disables)",
    )

    # HTTP
    host: str = Field(default="0.0.0.0", description="Interface the webhook server binds to")
    port: int = Field(default=3000, description="Port the webhook server listens on")

    # Schedule
    timezone: str = Field(
        default="Europe/London",
        description="IANA timezone all course times are expressed in",
    )
    courses_file: str = Field(
        default="data/courses.json",
        description="Course registry JSON file ({'courses': [...]})",
    )

    # Record store
    records_csv: str = Field(default="data/attendance.csv", description="Attendance CSV row store")
    records_json: str = Field(
        default="data/attendance.json",
        description="JSON array mirror of the CSV store for the dashboard",
    )

    # Punctuality and payment
    grace_minutes: int = Field(
        default=3,
        ge=0,
        description="Minutes before the scheduled start a meeting is expected to be open",
    )
    late_tolerance_minutes: int = Field(
        default=0,
        ge=0,
        description="Minutes after the scheduled start still counted as attended",
    )
    reference_session_minutes: int = Field(
        default=40,
        gt=0,
        description="Session length the hourly-equivalent rate is spread over",
    )

    # Monitor
    monitor_checks_at_grace_deadline: bool = Field(
        default=False,
        description="Fire the started-check grace_minutes before the scheduled start instead of at it",
    )
    daily_sweep_time: str = Field(
        default="04:00",
        description="Local time of the daily registry reload and check scheduling",
    )
    session_ttl_hours: int = Field(
        default=24,
        gt=0,
        description="Open sessions older than this are dropped by the daily sweep",
    )

    # Mail
    it_email: str = Field(default="", description="Operations mailbox receiving escalations")
    smtp_host: str = Field(default="", description="SMTP server; empty logs alerts instead")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_user: str = Field(default="", description="SMTP username, also the From address")
    smtp_pass: str = Field(default="", description="SMTP password")
    smtp_starttls: bool = Field(default=True, description="Upgrade the SMTP connection with STARTTLS")
    smtp_timeout_seconds: float = Field(default=10.0, gt=0, description="SMTP socket timeout")

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {value!r}") from exc
        return value

    @field_validator("daily_sweep_time")
    @classmethod
    def _clock_time(cls, value: str) -> str:
        time.fromisoformat(value)
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def sweep_time(self) -> time:
        return time.fromisoformat(self.daily_sweep_time)

    @property
    def monitor_check_offset_minutes(self) -> int:
        """Minutes from the scheduled start at which the monitor checks."""
        return -self.grace_minutes if self.monitor_checks_at_grace_deadline else 0


_config: AttendanceConfig | None = None


def get_config() -> AttendanceConfig:
    """Get the service configuration singleton.

    Returns:
        AttendanceConfig: Configuration instance
    """
    global _config
    if _config is None:
        _config = AttendanceConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
