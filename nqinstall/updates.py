"""Update resolution against GHCR package versions and GitHub releases."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from . import __version__
from .constants import (
    CHECKSUM_ASSET_NAME,
    DEFAULT_UPDATE_TOLERANCE_SECONDS,
    INSTALLER_ASSET_SUFFIX,
    TRACKED_ARTIFACTS,
    TrackedArtifact,
)
from .errors import ApiError, UpdateCheckError
from .http_client import http_get
from .settings import Settings
from .util import append_note, latest_release_tag, parse_release_version, parse_timestamp

logger = logging.getLogger(__name__)

NOT_FOUND_NOTE = "Package not found in GitHub Container Registry"
NO_TAGS_NOTE = "No tags found for this image yet"
INSPECT_FAILED_PREFIX = "Failed to inspect local image"


@dataclass
class UpdateInfo:
    """Remote vs. local view of one tracked artifact.

    ``has_update`` is derived: only :meth:`recompute_status` writes it, and it
    runs whenever either timestamp changes.
    """

    display_name: str
    image: str
    package: str
    current_tag: str
    available_tags: list[str] = field(default_factory=list)
    latest_release_tag: str | None = None
    latest_release_published: datetime | None = None
    remote_latest_updated: datetime | None = None
    local_created: datetime | None = None
    status_note: str | None = None
    has_update: bool = False
    is_self: bool = False
    download_url: str | None = None
    checksum_url: str | None = None
    release_version: str | None = None
    tolerance_seconds: float = DEFAULT_UPDATE_TOLERANCE_SECONDS

    @classmethod
    def for_artifact(cls, artifact: TrackedArtifact, tolerance_seconds: float) -> "UpdateInfo":
        return cls(
            display_name=artifact.display_name,
            image=artifact.image,
            package=artifact.package,
            current_tag=artifact.current_tag,
            tolerance_seconds=tolerance_seconds,
        )

    def recompute_status(self) -> None:
        if self.is_self:
            remote = parse_release_version(self.release_version or "")
            running = parse_release_version(self.current_tag)
            self.has_update = remote is not None and (running is None or remote > running)
            return
        remote = self.remote_latest_updated
        if remote is None:
            self.has_update = False
        elif self.local_created is None:
            self.has_update = True
        else:
            self.has_update = remote - self.local_created > timedelta(seconds=self.tolerance_seconds)

    def apply_remote_timestamp(self, updated: datetime | None) -> None:
        self.remote_latest_updated = updated
        self.recompute_status()

    def apply_local_created(self, created: datetime | None) -> None:
        self.local_created = created
        self.recompute_status()

    def append_status(self, message: str) -> None:
        self.status_note = append_note(self.status_note, message)

    def clear_local_error(self) -> None:
        if self.status_note and INSPECT_FAILED_PREFIX in self.status_note:
            kept = [part for part in self.status_note.split("; ") if INSPECT_FAILED_PREFIX not in part]
            self.status_note = "; ".join(kept) or None

    @property
    def pull_reference(self) -> str:
        return f"{self.image}:{self.current_tag}"

    @property
    def status_text(self) -> str:
        if self.status_note:
            return self.status_note
        if self.has_update:
            return "Update available"
        return "Up to date"


def apply_remote_versions(info: UpdateInfo, versions: list[Any]) -> None:
    """Fold a GHCR package-version listing into ``info``."""
    tags: list[str] = []
    seen: set[str] = set()
    tag_dates: dict[str, datetime] = {}

    for version in versions:
        if not isinstance(version, dict):
            continue
        timestamp = parse_timestamp(version.get("updated_at")) or parse_timestamp(version.get("created_at"))
        metadata = version.get("metadata")
        container = metadata.get("container") if isinstance(metadata, dict) else None
        version_tags = container.get("tags") if isinstance(container, dict) else None
        if not isinstance(version_tags, list):
            continue
        for tag in version_tags:
            if not isinstance(tag, str) or not tag:
                continue
            if tag not in seen:
                seen.add(tag)
                tags.append(tag)
            if timestamp is not None:
                tag_dates.setdefault(tag, timestamp)

    info.available_tags = sorted(tags)
    latest = latest_release_tag(tags)
    if latest is not None:
        info.latest_release_tag = latest
        info.latest_release_published = tag_dates.get(latest)
    info.apply_remote_timestamp(tag_dates.get("latest"))

    if not info.available_tags:
        info.append_status(NO_TAGS_NOTE)


def inspect_local_image_created(reference: str) -> datetime | None:
    """Creation time of a local image, None when it is not present.

    Raises RuntimeError when docker itself cannot be run.
    """
    try:
        result = subprocess.run(
            ["docker", "image", "inspect", reference, "--format", "{{.Created}}"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise RuntimeError(str(exc)) from exc
    if result.returncode != 0:
        logger.info("No local image for %s: %s", reference, result.stderr.strip())
        return None
    return parse_timestamp(result.stdout.strip())


Inspector = Callable[[str], datetime | None]


class UpdateResolver:
    """Compare tracked artifacts against GHCR and the installer release feed."""

    def __init__(
        self,
        settings: Settings | None = None,
        inspector: Inspector = inspect_local_image_created,
        running_version: str = __version__,
    ) -> None:
        self.settings = settings or Settings()
        self.inspector = inspector
        self.running_version = running_version

    def _api(self, path: str) -> str:
        return f"{self.settings.api_base.rstrip('/')}/{path.lstrip('/')}"

    def fetch_package_versions(self, package: str, token: str | None) -> list[Any] | None:
        """Version listing for a container package, None when neither scope has it."""
        owner = self.settings.owner
        endpoints = [
            self._api(f"orgs/{owner}/packages/container/{package}/versions?per_page=100"),
            self._api(f"users/{owner}/packages/container/{package}/versions?per_page=100"),
        ]
        for url in endpoints:
            try:
                response = http_get(url, token=token, timeout=self.settings.registry_timeout)
            except ApiError as exc:
                raise UpdateCheckError(f"GitHub API request for package {package} failed: {exc}") from exc
            status = response.status
            if response.ok:
                try:
                    data = response.json()
                except ApiError as exc:
                    raise UpdateCheckError(str(exc)) from exc
                if not isinstance(data, list):
                    raise UpdateCheckError(f"Unexpected version listing for package {package}")
                return data
            if status == 404:
                continue
            if status in (401, 403):
                raise UpdateCheckError(
                    f"GitHub API request for package {package} requires authentication: {response.body}"
                )
            if status >= 500:
                raise UpdateCheckError(f"GitHub API error {status} for package {package}: {response.body}")
            raise UpdateCheckError(f"Failed to fetch package {package}: {status} {response.body}")
        return None

    def resolve_artifact(self, artifact: TrackedArtifact, token: str | None) -> UpdateInfo:
        info = UpdateInfo.for_artifact(artifact, self.settings.update_tolerance_seconds)
        versions = self.fetch_package_versions(artifact.package, token)
        if versions is None:
            info.append_status(NOT_FOUND_NOTE)
        else:
            apply_remote_versions(info, versions)
        self.refresh_local(info)
        return info

    def refresh_local(self, info: UpdateInfo) -> None:
        """Re-inspect the local image; failure becomes a note, never an error."""
        try:
            created = self.inspector(info.pull_reference)
        except Exception as exc:
            info.append_status(f"{INSPECT_FAILED_PREFIX}: {exc}")
            info.apply_local_created(None)
            return
        info.clear_local_error()
        info.apply_local_created(created)

    def fetch_installer_update(self) -> UpdateInfo | None:
        settings = self.settings
        url = self._api(f"repos/{settings.owner}/{settings.release_repo}/releases/latest")
        try:
            response = http_get(url, timeout=settings.registry_timeout)
        except ApiError as exc:
            raise UpdateCheckError(f"Release lookup failed: {exc}") from exc
        if response.status == 404:
            logger.info("No published installer release at %s", url)
            return None
        if not response.ok:
            raise UpdateCheckError(f"Release lookup failed: {response.status} {response.body}")
        try:
            release = response.json()
        except ApiError as exc:
            raise UpdateCheckError(str(exc)) from exc
        if not isinstance(release, dict) or not isinstance(release.get("tag_name"), str):
            raise UpdateCheckError("Release response did not include a tag name")

        download_url = None
        checksum_url = None
        for asset in release.get("assets") or []:
            if not isinstance(asset, dict):
                continue
            name = str(asset.get("name", ""))
            asset_url = asset.get("browser_download_url")
            if not isinstance(asset_url, str):
                continue
            if name.endswith(INSTALLER_ASSET_SUFFIX):
                download_url = asset_url
            if name.lower() == CHECKSUM_ASSET_NAME.lower():
                checksum_url = asset_url

        if download_url is None:
            logger.info("Release %s has no installer package", release["tag_name"])
            return None

        published = parse_timestamp(release.get("published_at"))
        info = UpdateInfo(
            display_name="Installer (self-update)",
            image="installer",
            package=settings.release_repo,
            current_tag=f"v{self.running_version}",
            latest_release_tag=release["tag_name"],
            latest_release_published=published,
            is_self=True,
            download_url=download_url,
            checksum_url=checksum_url,
            release_version=release["tag_name"],
            tolerance_seconds=settings.update_tolerance_seconds,
        )
        info.apply_remote_timestamp(published)
        if parse_release_version(release["tag_name"]) is None:
            info.append_status(f"Unrecognised release tag {release['tag_name']}")
        return info

    def resolve(
        self,
        artifacts: Sequence[TrackedArtifact] = TRACKED_ARTIFACTS,
        token: str | None = None,
    ) -> list[UpdateInfo]:
        infos = [self.resolve_artifact(artifact, token) for artifact in artifacts]
        installer = self.fetch_installer_update()
        if installer is not None:
            infos.append(installer)
        logger.info(
            "Update check: %d entries, %d with updates",
            len(infos),
            sum(1 for info in infos if info.has_update),
        )
        return infos
