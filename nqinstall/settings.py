"""Installer settings — persisted at ~/.nqinstall/settings.toml."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

from .constants import (
    API_BASE,
    DEFAULT_BUILD_PROGRESS_SHARE,
    DEFAULT_UPDATE_TOLERANCE_SECONDS,
    GITHUB_OWNER,
    REGISTRY_HOST,
    RELEASE_REPO,
)

logger = logging.getLogger(__name__)

STATE_DIR = Path.home() / ".nqinstall"
SETTINGS_PATH = STATE_DIR / "settings.toml"
TOKEN_PATH = STATE_DIR / "ghcr-token"


@dataclass(frozen=True)
class Settings:
    """Tunable values; every field has a working default."""

    owner: str = GITHUB_OWNER
    release_repo: str = RELEASE_REPO
    api_base: str = API_BASE
    registry_host: str = REGISTRY_HOST
    update_tolerance_seconds: float = DEFAULT_UPDATE_TOLERANCE_SECONDS
    build_progress_share: float = DEFAULT_BUILD_PROGRESS_SHARE
    identity_timeout: float = 15.0
    registry_timeout: float = 30.0
    download_timeout: float = 60.0
    download_dir: str = str(STATE_DIR / "downloads")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if raw is None:
                continue
            default = getattr(defaults, f.name)
            if isinstance(default, float):
                if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
                    logger.warning("Ignoring invalid setting %s=%r", f.name, raw)
                    continue
                values[f.name] = float(raw)
            elif isinstance(raw, str) and raw.strip():
                values[f.name] = raw.strip()
            else:
                logger.warning("Ignoring invalid setting %s=%r", f.name, raw)
        share = values.get("build_progress_share", defaults.build_progress_share)
        if share > 100:
            logger.warning("build_progress_share %.1f capped at 100", share)
            values["build_progress_share"] = 100.0
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _ensure_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def load_settings(path: Path = SETTINGS_PATH) -> Settings:
    """Load settings, writing a default file on first run."""
    if not path.exists():
        settings = Settings()
        try:
            save_settings(settings, path)
        except OSError as exc:
            logger.warning("Could not write default settings to %s: %s", path, exc)
        return settings
    try:
        data = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Could not read %s, using defaults: %s", path, exc)
        return Settings()
    section = data.get("installer", {})
    if not isinstance(section, dict):
        return Settings()
    return Settings.from_dict(section)


def save_settings(settings: Settings, path: Path = SETTINGS_PATH) -> None:
    """Write settings to disk."""
    _ensure_dir(path)
    path.write_bytes(tomli_w.dumps({"installer": settings.to_dict()}).encode())
