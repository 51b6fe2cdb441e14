"""HTTP transport used by api-request steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
import asyncio
import json
import socket
import time
from urllib import error, request

import structlog

from .errors import HttpRequestError

LOGGER = structlog.get_logger("healing_executor")

DEFAULT_TIMEOUT_MS = 30000


@dataclass
class ApiRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout: Optional[float] = None


@dataclass
class ApiResponse:
    """Details about a performed request."""

    status: int
    status_text: str
    headers: dict[str, str]
    body: Any
    duration: float

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class ApiClient:
    """Performs JSON-oriented HTTP requests without blocking the event loop."""

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT_MS) -> None:
        self._default_timeout = default_timeout

    async def request(self, api_request: ApiRequest) -> ApiResponse:
        return await asyncio.to_thread(self._perform_request, api_request)

    def _perform_request(self, api_request: ApiRequest) -> ApiResponse:
        method = api_request.method.upper()
        timeout_ms = api_request.timeout or self._default_timeout
        headers = {"Content-Type": "application/json"}
        headers.update(api_request.headers)
        data = self._encode_body(api_request.body)

        req = request.Request(api_request.url, data=data, headers=headers, method=method)
        start = time.perf_counter()
        try:
            with request.urlopen(req, timeout=timeout_ms / 1000) as response:
                payload = response.read()
                status = response.status
                reason = response.reason or ""
                response_headers = _lower_headers(response.headers.items())
        except error.HTTPError as exc:
            payload = exc.read()
            status = exc.code
            reason = str(exc.reason or "")
            response_headers = _lower_headers(exc.headers.items() if exc.headers else [])
        except (socket.timeout, TimeoutError) as exc:
            raise HttpRequestError(f"Request timeout after {timeout_ms:g}ms") from exc
        except error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise HttpRequestError(f"Request timeout after {timeout_ms:g}ms") from exc
            raise HttpRequestError(f"HTTP request failed for {method} {api_request.url}: {exc.reason}") from exc
        duration = (time.perf_counter() - start) * 1000

        LOGGER.debug("http_request_completed", method=method, url=api_request.url, status=status)
        return ApiResponse(
            status=status,
            status_text=reason,
            headers=response_headers,
            body=_decode_body(payload, response_headers.get("content-type", "")),
            duration=round(duration, 3),
        )

    @staticmethod
    def _encode_body(body: Any) -> bytes | None:
        if body is None:
            return None
        if isinstance(body, str):
            return body.encode("utf-8")
        return json.dumps(body).encode("utf-8")


def _lower_headers(items: Any) -> dict[str, str]:
    return {str(key).lower(): str(value) for key, value in items}


def _decode_body(payload: bytes, content_type: str) -> Any:
    text = payload.decode("utf-8", errors="replace")
    if "application/json" in content_type and text:
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text
