"""Webhook boundary: signature verification and payload parsing.

Nothing here touches service state. Every rejection is a WebhookError whose
status_code the server returns as-is.
"""

import hashlib
import hmac
import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, ValidationError, field_validator

from src.attendance.errors import InvalidSignatureError, MalformedPayloadError, StaleRequestError
from src.attendance.logging import get_logger

logger = get_logger(__name__)

URL_VALIDATION = "endpoint.url_validation"
MEETING_STARTED = "meeting.started"
MEETING_ENDED = "meeting.ended"

SIGNATURE_HEADER = "x-zm-signature"
TIMESTAMP_HEADER = "x-zm-request-timestamp"


def sign(secret: str, timestamp: str, raw_body: bytes) -> str:
    """Signature the provider sends for a body: ``v0=<hex hmac-sha256>``."""
    message = b"v0:" + timestamp.encode("utf-8") + b":" + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def url_validation_response(secret: str, plain_token: str) -> dict[str, str]:
    encrypted = hmac.new(secret.encode("utf-8"), plain_token.encode("utf-8"), hashlib.sha256).hexdigest()
    return {"plainToken": plain_token, "encryptedToken": encrypted}


class WebhookVerifier:
    """Checks the signature and freshness of a delivery."""

    def __init__(
        self,
        secret: str,
        max_age_seconds: int = 300,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.secret = secret
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def verify(self, raw_body: bytes, timestamp: str | None, signature: str | None) -> None:
        """Raise unless the delivery was signed with our secret recently.

        Raises:
            InvalidSignatureError: Missing headers, or signature mismatch.
            StaleRequestError: Timestamp older than max_age_seconds.
        """
        if not self.secret:
            raise InvalidSignatureError("Webhook secret is not configured")
        if not timestamp or not signature:
            raise InvalidSignatureError("Missing signature headers")

        expected = sign(self.secret, timestamp, raw_body)
        if not hmac.compare_digest(expected, signature):
            raise InvalidSignatureError("Signature mismatch")

        if self.max_age_seconds:
            try:
                sent_at = int(timestamp)
            except ValueError as e:
                raise StaleRequestError(f"Unreadable request timestamp {timestamp!r}") from e
            # Some senders use milliseconds
            if sent_at > 10**11:
                sent_at //= 1000
            age = self._clock().timestamp() - sent_at
            if age > self.max_age_seconds:
                raise StaleRequestError(f"Request is {int(age)}s old")


class MeetingObject(BaseModel):
    """``payload.object`` of a meeting event; the provider sends many more fields."""

    model_config = ConfigDict(extra="ignore")

    id: str
    topic: str | None = None
    start_time: AwareDatetime | None = None
    end_time: AwareDatetime | None = None
    host_id: str | None = None
    host_email: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def host(self) -> str | None:
        return self.host_email or self.host_id


class Delivery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    payload: dict[str, Any] = {}

    def meeting(self) -> MeetingObject:
        obj = self.payload.get("object")
        if not isinstance(obj, dict):
            raise MalformedPayloadError("Missing payload.object")
        try:
            return MeetingObject.model_validate(obj)
        except ValidationError as e:
            raise MalformedPayloadError(f"Invalid payload.object: {e.errors()[0]['msg']}") from e

    def started(self) -> MeetingObject:
        meeting = self.meeting()
        if not meeting.topic or meeting.start_time is None or not meeting.host:
            raise MalformedPayloadError("meeting.started needs id, topic, start_time and host_id or host_email")
        return meeting

    def ended(self) -> MeetingObject:
        meeting = self.meeting()
        if meeting.end_time is None:
            raise MalformedPayloadError("meeting.ended needs id and end_time")
        return meeting

    def plain_token(self) -> str:
        token = self.payload.get("plainToken")
        if not isinstance(token, str) or not token:
            raise MalformedPayloadError("endpoint.url_validation needs payload.plainToken")
        return token


def parse_delivery(raw_body: bytes) -> Delivery:
    try:
        document = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Body is not JSON: {e}") from e
    if not isinstance(document, dict):
        raise MalformedPayloadError("Body is not a JSON object")
    try:
        return Delivery.model_validate(document)
    except ValidationError as e:
        raise MalformedPayloadError("Body needs an event name and a payload object") from e
