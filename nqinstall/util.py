"""Utility helpers for version tags, timestamps and status notes."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable

from semver import Version

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_FRACTION_RE = re.compile(r"\.(\d+)")


def is_semver(value: str) -> bool:
    return bool(_SEMVER_RE.match(value))


def parse_release_version(tag: str) -> Version | None:
    """Parse a release tag such as ``v1.2.0`` or ``1.3.0-nightly.4``.

    Only MAJOR.MINOR.PATCH tags with an optional pre-release qualify. Build
    metadata is dropped so it never affects precedence.
    """
    candidate = tag.strip()
    if candidate[:1] in {"v", "V"}:
        candidate = candidate[1:]
    if not is_semver(candidate):
        return None
    try:
        version = Version.parse(candidate)
    except ValueError:
        return None
    return version.replace(build=None)


def latest_release_tag(tags: Iterable[str]) -> str | None:
    """Return the tag with the highest semantic version, or None."""
    best: tuple[Version, str] | None = None
    for tag in tags:
        version = parse_release_version(tag)
        if version is None:
            continue
        if best is None or version > best[0]:
            best = (version, tag)
    return best[1] if best else None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse RFC 3339 timestamps from GitHub and ``docker image inspect``.

    Docker reports nanoseconds; fractions are truncated to microseconds.
    Naive values are assumed to be UTC.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "—"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def append_note(existing: str | None, message: str) -> str:
    if not existing:
        return message
    return f"{existing}; {message}"
