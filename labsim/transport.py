"""Blocking JSON-over-HTTP helper shared by the REST client and the Ollama call.

Requests are executed with ``urllib`` and meant to be pushed to a worker
thread with ``asyncio.to_thread`` so the event loop stays responsive.
"""

from __future__ import annotations

import http.client
import json
import socket
from typing import Any, Mapping
from urllib import error, request


class HttpStatusError(RuntimeError):
    """Raised when the server answered with a non-2xx status."""

    def __init__(self, status: int, body: Any, reason: str = "") -> None:
        self.status = status
        self.body = body
        self.reason = reason
        super().__init__(f"HTTP {status}: {reason or body}")


class HttpTransportError(RuntimeError):
    """Raised when the server could not be reached or did not answer in time."""


def _decode_body(raw: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def perform_json_request(
    method: str,
    url: str,
    *,
    payload: Any = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = 30.0,
) -> Any:
    """Execute one blocking HTTP request and return the decoded JSON body."""

    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    merged_headers = {"Accept": "application/json"}
    if data is not None:
        merged_headers["Content-Type"] = "application/json"
    if headers:
        merged_headers.update(headers)

    req = request.Request(url, data=data, headers=merged_headers, method=method.upper())

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise HttpStatusError(exc.code, _decode_body(body), str(exc.reason)) from exc
    except error.URLError as exc:
        raise HttpTransportError(f"Could not reach {url}: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise HttpTransportError(f"Request to {url} timed out after {timeout}s") from exc
    except (OSError, http.client.HTTPException, UnicodeDecodeError) as exc:
        # Dropped connections and garbled bodies surface as transport failures.
        raise HttpTransportError(f"Request to {url} failed: {exc!r}") from exc

    return _decode_body(raw)


__all__ = ["HttpStatusError", "HttpTransportError", "perform_json_request"]
