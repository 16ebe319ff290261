"""Classify docker compose output lines and estimate install progress.

Nothing here keeps state between calls: the caller owns a
:class:`ProgressCounters` value and receives a new one from :func:`classify`.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Iterator, Sequence

from .constants import (
    BUILD_PROGRESS_FLOOR,
    COMPOSE_SERVICES,
    DEFAULT_BUILD_PROGRESS_SHARE,
    LOG_BUFFER_CAPACITY,
)

_STEP_RE = re.compile(r"\s*Step (\d+)/(\d+)")


class LogKind(Enum):
    PULL_START = "pull_start"
    PULL_DONE = "pull_done"
    CREATING = "creating"
    CREATED = "created"
    STARTING = "starting"
    STARTED = "started"
    RUNNING = "running"
    ERROR = "error"
    STEP = "step"
    INFO = "info"
    BLANK = "blank"


# Level used by the log panel for colouring.
_KIND_LEVELS = {
    LogKind.PULL_DONE: "success",
    LogKind.CREATED: "success",
    LogKind.STARTED: "success",
    LogKind.RUNNING: "success",
    LogKind.ERROR: "error",
}


@dataclass(frozen=True)
class ProgressCounters:
    """Progress bookkeeping for one install run."""

    total_services: int = len(COMPOSE_SERVICES)
    completed_services: int = 0
    progress: float = 0.0
    current_service: str = ""
    build_share: float = DEFAULT_BUILD_PROGRESS_SHARE


@dataclass(frozen=True)
class LogEvent:
    kind: LogKind
    display: str | None
    service: str | None = None
    progress: float | None = None

    @property
    def level(self) -> str:
        return _KIND_LEVELS.get(self.kind, "info")


@dataclass(frozen=True)
class LogEntry:
    level: str
    text: str


def extract_service_name(line: str, services: Sequence[str] = COMPOSE_SERVICES) -> str | None:
    lower = line.lower()
    for service in services:
        if service in lower:
            return service
    return None


def build_step_progress(line: str, counters: ProgressCounters) -> float | None:
    """Progress implied by a ``Step X/Y`` line, or None if it is not one.

    The result never drops below the current progress and never exceeds the
    build share, so stale or out-of-order steps cannot move the bar back.
    """
    match = _STEP_RE.match(line)
    if not match:
        return None
    current, total = int(match.group(1)), int(match.group(2))
    if total <= 0:
        return None
    span = max(counters.build_share - BUILD_PROGRESS_FLOOR, 0.0)
    estimate = BUILD_PROGRESS_FLOOR + (min(current, total) / total) * span
    estimate = min(estimate, counters.build_share)
    return max(counters.progress, estimate)


def _deploy_progress(counters: ProgressCounters, completed: int) -> float:
    total = max(counters.total_services, 1)
    share = counters.build_share
    return min(100.0, share + (completed / total) * (100.0 - share))


def classify(
    line: str,
    counters: ProgressCounters,
    services: Sequence[str] = COMPOSE_SERVICES,
    *,
    build_phase: bool = False,
) -> tuple[LogEvent, ProgressCounters]:
    """Map one raw output line to a display event and updated counters.

    Rules are checked in order and the first match wins.
    """
    lower = line.lower()
    step_progress = build_step_progress(line, counters) if build_phase else None
    if step_progress is not None and step_progress != counters.progress:
        counters = replace(counters, progress=step_progress)
    hint = step_progress

    if "pulling" in lower:
        service = extract_service_name(line, services)
        if service:
            counters = replace(counters, current_service=service)
            return LogEvent(LogKind.PULL_START, f"⬇️  Pulling image for {service}...", service, hint), counters
        return LogEvent(LogKind.PULL_START, "⬇️  Pulling image...", None, hint), counters

    if "pulled" in lower:
        return LogEvent(LogKind.PULL_DONE, "✓ Image pulled", None, hint), counters

    if "creating" in lower or "created" in lower:
        service = extract_service_name(line, services)
        if service:
            counters = replace(counters, current_service=service)
        if "creating" in lower:
            text = f"🔨 Creating container {service}..." if service else "🔨 Creating container..."
            return LogEvent(LogKind.CREATING, text, service, hint), counters
        return LogEvent(LogKind.CREATED, "✓ Container created", service, hint), counters

    if "starting" in lower:
        service = extract_service_name(line, services)
        if service:
            counters = replace(counters, current_service=service)
        text = f"▶️  Starting service {service}..." if service else "▶️  Starting service..."
        return LogEvent(LogKind.STARTING, text, service, hint), counters

    if "started" in lower:
        completed = counters.completed_services + 1
        progress = _deploy_progress(counters, completed)
        counters = replace(counters, completed_services=completed, progress=progress)
        text = f"✅ Service started ({completed}/{counters.total_services})"
        return LogEvent(LogKind.STARTED, text, extract_service_name(line, services), progress), counters

    if "running" in lower:
        return LogEvent(LogKind.RUNNING, "🟢 Service is running", extract_service_name(line, services), hint), counters

    if "error" in lower or "failed" in lower:
        return LogEvent(LogKind.ERROR, f"❌ {line.strip()}", None, hint), counters

    if not line.strip():
        return LogEvent(LogKind.BLANK, None), counters

    kind = LogKind.STEP if step_progress is not None else LogKind.INFO
    return LogEvent(kind, f"ℹ️  {line.strip()}", None, hint), counters


LogMark = tuple[int, int]


class LogBuffer:
    """Bounded transcript; the oldest entry is dropped once capacity is hit.

    ``mark()`` identifies what a reader has seen so far; ``entries_since``
    hands back only what was pushed after it.
    """

    def __init__(self, capacity: int = LOG_BUFFER_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self.capacity = capacity
        self._generation = 0
        self._pushed = 0

    def push(self, text: str, level: str = "info") -> None:
        self._entries.append(LogEntry(level=level, text=text))
        self._pushed += 1

    def extend(self, lines: Iterable[str], level: str = "info") -> None:
        for line in lines:
            self.push(line, level)

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1
        self._pushed = 0

    def mark(self) -> LogMark:
        return (self._generation, self._pushed)

    def entries_since(self, mark: LogMark | None) -> list[LogEntry] | None:
        """New entries after ``mark``, or None when the buffer was cleared since."""
        if mark is None or mark[0] != self._generation:
            return None
        fresh = min(self._pushed - mark[1], len(self._entries))
        if fresh <= 0:
            return []
        return list(self._entries)[-fresh:]

    def texts(self) -> list[str]:
        return [entry.text for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))
