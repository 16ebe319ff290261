"""Download, verify and install a newer installer package."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import shutil
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .errors import ApiError, IntegrityError, ProcessFailed, SelfUpdateError
from .http_client import download_to
from .process import LineCallback, ProcessSupervisor
from .settings import Settings
from .updates import UpdateInfo

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float | None], None]

_MEGABYTE = 1024 * 1024
_PERCENT_STEP = 5


@dataclass(frozen=True)
class SelfUpdateOutcome:
    package_path: Path
    verified: bool
    message: str
    warning: str | None = None


class DownloadProgress:
    """Turn byte counts into coarse progress reports.

    With a known length a report is emitted each time another 5% is crossed,
    otherwise once per megabyte received.
    """

    def __init__(self, label: str, on_progress: ProgressCallback | None) -> None:
        self.label = label
        self.on_progress = on_progress
        self._next_percent = _PERCENT_STEP
        self._next_bytes = _MEGABYTE

    def __call__(self, received: int, total: int | None) -> None:
        if self.on_progress is None:
            return
        if total:
            percent = min(100.0, received * 100.0 / total)
            if percent < self._next_percent:
                return
            while self._next_percent <= percent:
                self._next_percent += _PERCENT_STEP
            self.on_progress(f"Downloading {self.label}: {percent:.0f}%", percent)
            return
        if received < self._next_bytes:
            return
        while self._next_bytes <= received:
            self._next_bytes += _MEGABYTE
        self.on_progress(f"Downloading {self.label}: {received // _MEGABYTE} MB", None)


def file_name_from_url(url: str) -> str:
    path = urllib.parse.urlparse(url).path
    name = urllib.parse.unquote(path.rsplit("/", 1)[-1])
    if not name:
        raise SelfUpdateError(f"Cannot derive a file name from {url}")
    return name


def sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for block in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(block)
    return hasher.hexdigest()


def find_expected_digest(manifest_text: str, file_name: str) -> str | None:
    """Digest listed for ``file_name`` in a ``sha256sum``-style manifest."""
    for raw in manifest_text.splitlines():
        parts = raw.strip().split(None, 1)
        if len(parts) != 2:
            continue
        digest, listed = parts
        listed = listed.strip().lstrip("*")
        if listed.endswith(file_name):
            return digest.lower()
    return None


def verify_checksum(package_path: Path, manifest_text: str) -> bool:
    """Check ``package_path`` against the manifest.

    Returns False when the manifest has no entry for the file. Raises
    IntegrityError on a digest mismatch.
    """
    expected = find_expected_digest(manifest_text, package_path.name)
    if expected is None:
        return False
    actual = sha256_file(package_path)
    if actual.lower() != expected:
        raise IntegrityError(
            f"Checksum mismatch for {package_path.name}: expected {expected}, got {actual}"
        )
    return True


def installer_command(package_path: Path) -> list[str]:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        return ["dpkg", "-i", str(package_path)]
    if shutil.which("pkexec"):
        return ["pkexec", "dpkg", "-i", str(package_path)]
    return ["sudo", "dpkg", "-i", str(package_path)]


class SelfUpdater:
    """Replace the installed package; the running process is left alone."""

    def __init__(
        self,
        settings: Settings | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.supervisor = supervisor or ProcessSupervisor()

    def _download(self, url: str, dest: Path, on_progress: ProgressCallback | None) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        try:
            with partial.open("wb") as handle:
                download_to(
                    url,
                    handle,
                    timeout=self.settings.download_timeout,
                    on_chunk=DownloadProgress(dest.name, on_progress),
                )
            partial.replace(dest)
        except ApiError as exc:
            partial.unlink(missing_ok=True)
            raise SelfUpdateError(f"Download of {dest.name} failed: {exc}") from exc
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise SelfUpdateError(f"Could not write {dest}: {exc}") from exc
        return dest

    def download_package(self, info: UpdateInfo, on_progress: ProgressCallback | None = None) -> Path:
        if not info.download_url:
            raise SelfUpdateError("Release has no installer package to download")
        dest = Path(self.settings.download_dir).expanduser() / file_name_from_url(info.download_url)
        return self._download(info.download_url, dest, on_progress)

    def check_package(self, info: UpdateInfo, package_path: Path) -> tuple[bool, str | None]:
        """Verify against the release manifest; (verified, warning)."""
        if not info.checksum_url:
            return False, "Release publishes no checksum manifest; verification skipped"
        manifest_path = self._download(
            info.checksum_url,
            package_path.with_name(package_path.name + ".sha256sums"),
            None,
        )
        manifest_text = manifest_path.read_text(errors="replace")
        if verify_checksum(package_path, manifest_text):
            return True, None
        return False, f"No checksum entry for {package_path.name}; verification skipped"

    async def update(
        self,
        info: UpdateInfo,
        on_progress: ProgressCallback | None = None,
        on_line: LineCallback | None = None,
    ) -> SelfUpdateOutcome:
        """Download, verify and install ``info``'s package.

        ``on_progress`` is invoked from a worker thread during the download.
        """
        if not info.is_self:
            raise SelfUpdateError(f"{info.display_name} is not the installer entry")

        package_path = await asyncio.to_thread(self.download_package, info, on_progress)
        logger.info("Downloaded %s", package_path)

        verified, warning = await asyncio.to_thread(self.check_package, info, package_path)
        if warning:
            logger.warning(warning)
        else:
            logger.info("Checksum verified for %s", package_path.name)

        argv = installer_command(package_path)
        try:
            outcome = await self.supervisor.run(argv[0], argv[1:], on_line=on_line)
        except ProcessFailed as exc:
            raise SelfUpdateError(f"Package installation failed: {exc}") from exc
        if not outcome.success:
            raise SelfUpdateError(
                f"Package installation failed ({outcome.command} exited {outcome.returncode}):\n{outcome.tail()}"
            )

        version = info.latest_release_tag or package_path.name
        return SelfUpdateOutcome(
            package_path=package_path,
            verified=verified,
            message=f"Installer {version} installed; restart required.",
            warning=warning,
        )
