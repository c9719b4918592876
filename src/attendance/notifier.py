"""Staff alerts for meetings that did not start, or started late.

EmailNotifier sends through SMTP and retries transient connection failures;
LogNotifier stands in when no SMTP host is configured. QueuedNotifier hands
alerts to a daemon worker so webhook handling and monitor checks never wait
on the mail server. None of them raise to the caller: a lost alert is
logged, never allowed to fail webhook handling.
"""

import queue
import smtplib
import socket
import threading
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol

from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.attendance.errors import PermanentError, TransientError
from src.attendance.logging import get_logger
from src.attendance.models import Alert, Course, Session

logger = get_logger(__name__)


class Notifier(Protocol):
    def notify(self, alert: Alert) -> bool: ...


def not_started_alert(course: Course, scheduled: datetime) -> Alert:
    when = scheduled.strftime("%H:%M")
    zone = scheduled.tzname() or ""
    return Alert(
        subject=f"Meeting Not Started: {course.course_name}",
        body=(
            f'The scheduled meeting for "{course.course_name}" '
            f"({course.teacher_name or 'no teacher on record'}) "
            f"at {when} {zone} on {scheduled:%A %d %B %Y} has not started."
        ),
        course_key=course.key,
    )


def late_start_alert(course: Course, session: Session, scheduled: datetime) -> Alert:
    started = session.start_time.astimezone(scheduled.tzinfo)
    return Alert(
        subject=f"Late Meeting: {course.course_name}",
        body=(
            f'The meeting for "{course.course_name}" hosted by '
            f"{session.host or course.teacher_name or 'an unknown host'} "
            f"started at {started:%H:%M:%S}, after its scheduled time of "
            f"{scheduled:%H:%M} {scheduled.tzname() or ''} on {scheduled:%A %d %B %Y}."
        ),
        course_key=course.key,
    )


class LogNotifier:
    """Writes alerts to the log only."""

    def notify(self, alert: Alert) -> bool:
        logger.warning("alert_logged", subject=alert.subject, body=alert.body)
        return True


class EmailNotifier:
    """Delivers alerts to the operations mailbox over SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        recipient: str,
        *,
        user: str = "",
        password: str = "",
        starttls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.recipient = recipient
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, alert: Alert) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.user or self.recipient
        message["To"] = self.recipient
        message["Subject"] = alert.subject
        message.set_content(alert.body)
        return message

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type(TransientError),
    )
    def _send(self, message: EmailMessage) -> None:
        """Send one message, classifying SMTP failures for retry.

        Raises:
            TransientError: Connection refused/dropped or timed out.
            PermanentError: Credentials or recipient rejected.
        """
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused) as e:
            raise PermanentError(f"SMTP rejected alert: {e}") from e
        except (smtplib.SMTPException, socket.timeout, OSError) as e:
            logger.warning("alert_send_retry", host=self.host, error=str(e))
            raise TransientError(f"SMTP delivery failed: {e}") from e

    def notify(self, alert: Alert) -> bool:
        if not self.recipient:
            logger.error("alert_not_sent", reason="no_recipient", subject=alert.subject)
            return False
        try:
            self._send(self.build_message(alert))
        except (TransientError, PermanentError, RetryError) as e:
            logger.error("alert_send_failed", subject=alert.subject, error=str(e))
            return False
        logger.info("alert_sent", to=self.recipient, subject=alert.subject)
        return True


class QueuedNotifier:
    """Delivers alerts to another notifier from a single daemon worker thread.

    notify() only enqueues, so callers holding the service lock return
    immediately however long the wrapped notifier takes. Alerts are sent
    one at a time in submission order.
    """

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier
        self._queue: queue.Queue[Alert | None] = queue.Queue()
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()

    def notify(self, alert: Alert) -> bool:
        self._ensure_worker()
        self._queue.put(alert)
        logger.debug("alert_queued", subject=alert.subject, pending=self._queue.qsize())
        return True

    def join(self) -> None:
        """Block until every queued alert has been handed to the notifier."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None or not worker.is_alive():
            return
        self._queue.put(None)
        worker.join(timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run, name="alert-worker", daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while True:
            alert = self._queue.get()
            try:
                if alert is None:
                    return
                self.notifier.notify(alert)
            except Exception as e:
                logger.error("alert_worker_failed", subject=alert.subject, error=str(e))
            finally:
                self._queue.task_done()
