"""GHCR credential resolution, identity lookup and docker login."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .constants import TOKEN_ENV_VARS
from .errors import ApiError, LoginError, ProcessFailed
from .http_client import http_get
from .process import LineCallback, ProcessSupervisor
from .settings import TOKEN_PATH, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginOutcome:
    username: str
    token: str
    warning: str | None = None


def _clean(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped if stripped else None


def resolve_token(
    environ: Mapping[str, str] | None = None,
    path: Path = TOKEN_PATH,
    env_vars: Sequence[str] = TOKEN_ENV_VARS,
) -> str | None:
    """Return the credential from env vars, then the disk cache, else None."""
    environ = os.environ if environ is None else environ
    for name in env_vars:
        token = _clean(environ.get(name))
        if token:
            logger.info("Using registry token from $%s", name)
            return token
    try:
        cached = _clean(path.read_text())
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Could not read cached token %s: %s", path, exc)
        return None
    if cached:
        logger.info("Using cached registry token from %s", path)
    return cached


def persist_token(token: str, path: Path = TOKEN_PATH) -> None:
    """Write the token with owner-only permissions where the platform has them."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(token.strip() + "\n")
    try:
        path.chmod(0o600)
    except (NotImplementedError, PermissionError) as exc:
        logger.debug("chmod unsupported for %s: %s", path, exc)


class RegistryAuthenticator:
    """Validate a token against the GitHub API and log docker into GHCR."""

    def __init__(
        self,
        settings: Settings | None = None,
        supervisor: ProcessSupervisor | None = None,
        token_path: Path = TOKEN_PATH,
    ) -> None:
        self.settings = settings or Settings()
        self.supervisor = supervisor or ProcessSupervisor()
        self.token_path = token_path

    def fetch_username(self, token: str) -> str:
        url = f"{self.settings.api_base.rstrip('/')}/user"
        response = http_get(url, token=token, timeout=self.settings.identity_timeout)
        if not response.ok:
            raise ApiError(url, response.status, response.body, response.body or f"HTTP {response.status}")
        payload = response.json()
        login = payload.get("login") if isinstance(payload, dict) else None
        if not isinstance(login, str) or not login:
            raise ApiError(url, response.status, response.body, "Identity response did not include a login")
        return login

    async def login(self, token: str, on_line: LineCallback | None = None) -> LoginOutcome:
        token = token.strip() if isinstance(token, str) else ""
        if not token:
            raise LoginError("Personal access token is required")

        try:
            username = await asyncio.to_thread(self.fetch_username, token)
        except ApiError as exc:
            raise LoginError(f"Failed to verify token: {exc}") from exc
        logger.info("Token belongs to %s", username)

        try:
            outcome = await self.supervisor.run(
                "docker",
                ["login", self.settings.registry_host, "--username", username, "--password-stdin"],
                stdin_data=token + "\n",
                on_line=on_line,
            )
            outcome.raise_for_status()
        except ProcessFailed as exc:
            raise LoginError(f"docker login failed: {exc}") from exc

        warning = None
        try:
            persist_token(token, self.token_path)
        except OSError as exc:
            warning = f"Logged in, but the token could not be saved: {exc}"
            logger.warning(warning)
        return LoginOutcome(username=username, token=token, warning=warning)
