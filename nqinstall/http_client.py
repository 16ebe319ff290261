"""Thin urllib wrappers for the GitHub REST API and release downloads."""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable

from .constants import GITHUB_ACCEPT, USER_AGENT
from .errors import ApiError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class HttpResponse:
    url: str
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise ApiError(self.url, self.status, self.body, f"Malformed JSON from {self.url}: {exc}") from exc


def _build_request(url: str, token: str | None, accept: str) -> urllib.request.Request:
    headers = {"User-Agent": USER_AGENT, "Accept": accept}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return urllib.request.Request(url, headers=headers)


def http_get(
    url: str,
    *,
    token: str | None = None,
    timeout: float = 30.0,
    accept: str = GITHUB_ACCEPT,
) -> HttpResponse:
    """GET a URL. Non-2xx statuses are returned, transport failures raise ApiError."""
    req = _build_request(url, token, accept)
    logger.debug("GET %s", url)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read().decode("utf-8", errors="replace")
            return HttpResponse(url=url, status=resp.status, body=body)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        return HttpResponse(url=url, status=exc.code, body=body)
    except (socket.timeout, TimeoutError) as exc:
        raise ApiError(url, None, f"timed out after {timeout:.0f}s") from exc
    except urllib.error.URLError as exc:
        raise ApiError(url, None, str(exc.reason)) from exc


def download_to(
    url: str,
    dest: BinaryIO,
    *,
    timeout: float = 60.0,
    on_chunk: Callable[[int, int | None], None] | None = None,
) -> int:
    """Stream ``url`` into ``dest``; ``on_chunk(received, total)`` after every chunk.

    Returns the number of bytes written.
    """
    req = _build_request(url, None, "application/octet-stream")
    logger.info("Downloading %s", url)
    received = 0
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            length = resp.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() and int(length) > 0 else None
            while True:
                chunk = resp.read(_CHUNK_SIZE)
                if not chunk:
                    break
                dest.write(chunk)
                received += len(chunk)
                if on_chunk:
                    on_chunk(received, total)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        raise ApiError(url, exc.code, body) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise ApiError(url, None, f"timed out after {timeout:.0f}s") from exc
    except urllib.error.URLError as exc:
        raise ApiError(url, None, str(exc.reason)) from exc
    return received
