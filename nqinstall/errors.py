"""Exception types raised by the installer core."""

from __future__ import annotations


class InstallerError(Exception):
    """Base class for failures that end a wizard operation."""


class ApiError(InstallerError):
    """A GitHub/GHCR HTTP call failed (non-2xx, timeout or malformed body)."""

    def __init__(self, url: str, status: int | None, body: str, message: str | None = None) -> None:
        self.url = url
        self.status = status
        self.body = body
        if message is None:
            if status is None:
                message = f"Request to {url} failed: {body}"
            else:
                message = f"Request to {url} returned HTTP {status}: {body}"
        super().__init__(message)


class ProcessFailed(InstallerError):
    """An external command could not be spawned or exited non-zero."""

    def __init__(self, command: str, returncode: int | None, output: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        if returncode is None:
            message = f"{command} could not be started"
        else:
            message = f"{command} exited with status {returncode}"
        if output:
            message = f"{message}: {output}"
        super().__init__(message)


class LoginError(InstallerError):
    """Registry login failed at one of its steps."""


class UpdateCheckError(InstallerError):
    """Update resolution failed for the whole artifact list."""


class IntegrityError(InstallerError):
    """A downloaded file did not match its published checksum."""


class SelfUpdateError(InstallerError):
    """The installer package could not be downloaded or installed."""
