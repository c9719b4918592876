"""Error hierarchy for webhook handling, persistence and alert delivery.

Webhook errors are raised before any state is touched and map straight to an
HTTP status at the server boundary. Delivery errors are split into transient
(retry) and permanent (give up) so tenacity retry decorators can classify them.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def send(alert: Alert):
        ...
"""


class AttendanceError(Exception):
    """Base exception for all attendance service errors."""

    pass


class WebhookError(AttendanceError):
    """Request rejected at the webhook boundary.

    Subclasses carry the HTTP status returned to the provider.
    """

    status_code = 400


class InvalidSignatureError(WebhookError):
    """Signature header missing or not matching the shared secret."""

    status_code = 401


class StaleRequestError(WebhookError):
    """Request timestamp is outside the accepted freshness window."""

    status_code = 401


class MalformedPayloadError(WebhookError):
    """Body is not JSON, or required event fields are missing or unparseable."""

    status_code = 400


class RegistryError(AttendanceError):
    """Course registry file could not be read or parsed."""

    pass


class StoreError(AttendanceError):
    """Attendance record store could not be written."""

    pass


class TransientError(AttendanceError):
    """Temporary failure that may succeed on retry.

    Examples: SMTP connection refused, socket timeout.
    """

    pass


class PermanentError(AttendanceError):
    """Failure that won't succeed on retry.

    Examples: recipient rejected, authentication refused by the mail server.
    """

    pass
