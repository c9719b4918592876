"""Send a signed sample webhook to a running attendance server.

For local testing without the provider: builds a meeting.started or
meeting.ended delivery, signs it with ZOOM_WEBHOOK_SECRET_TOKEN and POSTs it.

Usage:
    python scripts/send_test_webhook.py started --id 123 --topic "Algebra 1"
    python scripts/send_test_webhook.py ended --id 123
    python scripts/send_test_webhook.py validate
    python scripts/send_test_webhook.py started --id 123 --topic "Algebra 1" \\
        --at 2026-10-19T08:58:00+01:00 --url http://localhost:3000/webhook
"""

import argparse
import json
import os
import sys
import time
from datetime import datetime, timezone

import requests
from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.attendance.webhook import (  # noqa: E402
    MEETING_ENDED,
    MEETING_STARTED,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    URL_VALIDATION,
    sign,
)

DEFAULT_URL = os.getenv("WEBHOOK_URL", "http://localhost:3000/webhook")
SECRET = os.getenv("ZOOM_WEBHOOK_SECRET_TOKEN", "")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a signed test webhook.")
    parser.add_argument("kind", choices=["started", "ended", "validate"])
    parser.add_argument("--id", type=str, default="1000000001", help="Meeting id.")
    parser.add_argument("--topic", type=str, default="Algebra 1", help="Meeting topic (started only).")
    parser.add_argument("--host-email", type=str, default="teacher@example.com")
    parser.add_argument("--at", type=str, default=None, help="ISO-8601 event time (default: now, UTC).")
    parser.add_argument("--url", type=str, default=DEFAULT_URL)
    return parser.parse_args()


def build_body(args: argparse.Namespace) -> dict:
    at = args.at or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    if args.kind == "validate":
        return {"event": URL_VALIDATION, "payload": {"plainToken": "test-plain-token"}}
    if args.kind == "started":
        return {
            "event": MEETING_STARTED,
            "payload": {
                "object": {
                    "id": args.id,
                    "topic": args.topic,
                    "start_time": at,
                    "host_email": args.host_email,
                }
            },
        }
    return {"event": MEETING_ENDED, "payload": {"object": {"id": args.id, "end_time": at}}}


def main(args: argparse.Namespace) -> None:
    if not SECRET:
        raise RuntimeError("ZOOM_WEBHOOK_SECRET_TOKEN environment variable required")

    raw_body = json.dumps(build_body(args)).encode("utf-8")
    timestamp = str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: sign(SECRET, timestamp, raw_body),
    }
    resp = requests.post(args.url, data=raw_body, headers=headers, timeout=10)
    print(f"{resp.status_code} {resp.text}")
    if resp.status_code != 200:
        sys.exit(1)


if __name__ == "__main__":
    args = _parse_args()
    try:
        main(args)
    except requests.RequestException as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
