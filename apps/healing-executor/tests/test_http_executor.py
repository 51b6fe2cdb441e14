from __future__ import annotations

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Iterator

import pytest

from healing_executor.errors import HttpRequestError
from healing_executor.http_executor import ApiClient, ApiRequest


@pytest.fixture()
def server() -> Iterator[str]:
    class Handler(BaseHTTPRequestHandler):
        def _reply(self, status: int, body: bytes, content_type: str = "application/json") -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("X-Request-Id", "req-1")
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:  # noqa: N802 - HTTP handler requirement
            if self.path == "/slow":
                time.sleep(0.5)
                self._reply(200, b"{}")
            elif self.path == "/text":
                self._reply(200, b"plain body", "text/plain")
            elif self.path == "/missing":
                self._reply(404, json.dumps({"error": "not found"}).encode("utf-8"))
            else:
                self._reply(200, json.dumps({"ok": True}).encode("utf-8"))

        def do_POST(self) -> None:  # noqa: N802 - HTTP handler requirement
            length = int(self.headers.get("Content-Length", 0))
            payload = json.loads(self.rfile.read(length) or b"null")
            echo = {"received": payload, "contentType": self.headers.get("Content-Type")}
            self._reply(201, json.dumps(echo).encode("utf-8"))

        def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
            return

    httpd = HTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        thread.join(timeout=1)


@pytest.mark.asyncio
async def test_json_request_round_trip(server: str) -> None:
    response = await ApiClient().request(ApiRequest(method="post", url=f"{server}/users", body={"name": "ada"}))

    assert response.status == 201
    assert response.body == {"received": {"name": "ada"}, "contentType": "application/json"}
    assert response.header("x-request-id") == "req-1"
    assert response.duration >= 0


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised(server: str) -> None:
    response = await ApiClient().request(ApiRequest(method="GET", url=f"{server}/missing"))

    assert response.status == 404
    assert response.body == {"error": "not found"}


@pytest.mark.asyncio
async def test_non_json_body_stays_text(server: str) -> None:
    response = await ApiClient().request(ApiRequest(method="GET", url=f"{server}/text"))

    assert response.body == "plain body"


@pytest.mark.asyncio
async def test_timeout_raises_request_error(server: str) -> None:
    with pytest.raises(HttpRequestError, match="Request timeout after 100ms"):
        await ApiClient().request(ApiRequest(method="GET", url=f"{server}/slow", timeout=100))


@pytest.mark.asyncio
async def test_connection_failure_raises_request_error() -> None:
    with pytest.raises(HttpRequestError, match="HTTP request failed for GET"):
        await ApiClient(default_timeout=1000).request(ApiRequest(method="GET", url="http://127.0.0.1:9/unreachable"))
