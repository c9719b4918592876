"""HTTP front end for the attendance service.

POST /webhook   provider deliveries
GET  /records   attendance records as a JSON array (dashboard polling)
GET  /health    liveness probe
"""

import json
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

from src.attendance.logging import get_logger
from src.attendance.service import AttendanceService

logger = get_logger(__name__)

MAX_BODY_BYTES = 1024 * 1024


class AttendanceServer(HTTPServer):
    """HTTPServer carrying the service instance its handlers dispatch to."""

    def __init__(self, address: tuple[str, int], service: AttendanceService) -> None:
        self.service = service
        super().__init__(address, WebhookHandler)


class WebhookHandler(BaseHTTPRequestHandler):
    server: AttendanceServer

    def do_POST(self):
        if self.path != "/webhook":
            self._send_json(404, {"error": "not found"})
            return

        try:
            content_length = int(self.headers.get("Content-Length", 0) or 0)
        except ValueError:
            content_length = -1
        if content_length < 0:
            self._send_json(400, {"error": "invalid Content-Length"})
            return
        if content_length > MAX_BODY_BYTES:
            self._send_json(413, {"error": "payload too large"})
            return
        raw_body = self.rfile.read(content_length)

        status, body = self.server.service.handle_delivery(raw_body, self.headers)
        self._send_json(status, body)

    def do_GET(self):
        if self.path == "/health":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            self.wfile.write(b"ok")
            return
        if self.path == "/records":
            records = self.server.service.records()
            self._send_json(200, [record.model_dump(mode="json") for record in records])
            return
        self._send_json(404, {"error": "not found"})

    def log_message(self, format, *args):
        logger.debug("http_request", client=self.address_string(), line=format % args)

    def _send_json(self, code: int, payload: Any) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def build_server(service: AttendanceService, host: str, port: int) -> AttendanceServer:
    server = AttendanceServer((host, port), service)
    logger.info("webhook_server_bound", host=host, port=server.server_address[1])
    return server
