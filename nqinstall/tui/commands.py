"""Commands API — the wizard's side effects as CommandResult-returning calls.

Every function accepts explicit kwargs and returns a CommandResult; failures
are reported in the result, never raised. Long-running commands accept
callbacks for log lines and progress.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable

from ..errors import InstallerError, ProcessFailed
from ..log_interpreter import ProgressCounters, classify
from ..paths import ensure_compose_bundle
from ..process import ProcessOutcome, ProcessSupervisor
from ..registry_auth import RegistryAuthenticator
from ..self_update import ProgressCallback, SelfUpdater
from ..templates import find_template, render_env, write_config_file, write_env_file
from ..updates import INSPECT_FAILED_PREFIX, UpdateInfo, UpdateResolver

logger = logging.getLogger(__name__)

LogCallback = Callable[[str, str], None]
CountersCallback = Callable[[ProgressCounters], None]


@dataclass
class CommandResult:
    """Universal return type for all wizard commands."""

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)


def _noop_log(text: str, level: str) -> None:
    pass


async def _compose_phase(
    supervisor: ProcessSupervisor,
    args: list[str],
    root: Path,
    counters: ProgressCounters,
    *,
    build_phase: bool,
    on_log: LogCallback,
    on_counters: CountersCallback | None,
) -> tuple[ProcessOutcome, ProgressCounters]:
    state = {"counters": counters}

    def on_line(stream: str, line: str) -> None:
        if stream == "warning":
            on_log(f"❌ {line}", "error")
            return
        event, updated = classify(line, state["counters"], build_phase=build_phase)
        if updated != state["counters"]:
            state["counters"] = updated
            if on_counters:
                on_counters(updated)
        if event.display:
            on_log(event.display, event.level)

    outcome = await supervisor.run("docker", ["compose", *args], cwd=root, on_line=on_line)
    return outcome, state["counters"]


def _phase_failed(phase: str, outcome: ProcessOutcome) -> CommandResult:
    tail = outcome.tail()
    return CommandResult(
        success=False,
        message=f"Docker Compose {phase} failed: {outcome.command} exited with status {outcome.returncode}",
        errors=[tail] if tail else [],
    )


async def cmd_install(
    root: Path,
    *,
    supervisor: ProcessSupervisor | None = None,
    counters: ProgressCounters | None = None,
    on_log: LogCallback = _noop_log,
    on_counters: CountersCallback | None = None,
) -> CommandResult:
    """Build images without cache, then bring the stack up detached."""
    supervisor = supervisor or ProcessSupervisor()
    counters = counters or ProgressCounters()
    try:
        compose_path = ensure_compose_bundle(root)
    except OSError as exc:
        return CommandResult(success=False, message=f"Could not write compose file: {exc}")
    on_log(f"📄 Using {compose_path.name}", "info")

    on_log("🔨 Step 1/2: Building images (no cache)...", "info")
    on_log("📦 Executing: docker compose build --no-cache", "info")
    try:
        outcome, counters = await _compose_phase(
            supervisor,
            ["build", "--no-cache"],
            root,
            counters,
            build_phase=True,
            on_log=on_log,
            on_counters=on_counters,
        )
    except ProcessFailed as exc:
        return CommandResult(success=False, message=str(exc))
    if not outcome.success:
        return _phase_failed("build", outcome)

    on_log("✅ Build completed successfully!", "success")
    counters = replace(counters, progress=max(counters.progress, counters.build_share))
    if on_counters:
        on_counters(counters)

    on_log("🚀 Step 2/2: Starting services...", "info")
    on_log("📦 Executing: docker compose up -d", "info")
    try:
        outcome, counters = await _compose_phase(
            supervisor,
            ["up", "-d"],
            root,
            counters,
            build_phase=False,
            on_log=on_log,
            on_counters=on_counters,
        )
    except ProcessFailed as exc:
        return CommandResult(success=False, message=str(exc))
    if not outcome.success:
        return _phase_failed("up", outcome)

    return CommandResult(
        success=True,
        message="All services started",
        data={"completed_services": counters.completed_services},
    )


async def cmd_login(
    token: str,
    *,
    authenticator: RegistryAuthenticator,
    on_log: LogCallback = _noop_log,
) -> CommandResult:
    def on_line(stream: str, line: str) -> None:
        if line.strip():
            on_log(f"  {line}", "error" if stream == "warning" else "info")

    try:
        outcome = await authenticator.login(token, on_line=on_line)
    except InstallerError as exc:
        return CommandResult(success=False, message=str(exc))
    return CommandResult(
        success=True,
        message=f"Logged in as {outcome.username}",
        data={"username": outcome.username, "token": outcome.token, "warning": outcome.warning},
    )


async def cmd_check_updates(
    token: str | None,
    *,
    resolver: UpdateResolver,
) -> CommandResult:
    try:
        updates = await asyncio.to_thread(resolver.resolve, token=token)
    except InstallerError as exc:
        return CommandResult(success=False, message=str(exc))
    pending = sum(1 for info in updates if info.has_update)
    return CommandResult(
        success=True,
        message=f"{len(updates)} entries checked, {pending} with updates",
        data={"updates": updates},
    )


async def cmd_pull(
    reference: str,
    *,
    resolver: UpdateResolver,
    supervisor: ProcessSupervisor | None = None,
    on_log: LogCallback = _noop_log,
) -> CommandResult:
    """``docker pull`` the reference, then re-read the local creation time."""
    supervisor = supervisor or ProcessSupervisor()

    def on_line(stream: str, line: str) -> None:
        if not line.strip():
            return
        lower = line.lower()
        level = "error" if stream == "warning" or "error" in lower else "info"
        on_log(line.strip(), level)

    on_log(f"⬇️  docker pull {reference}", "info")
    try:
        outcome = await supervisor.run("docker", ["pull", reference], on_line=on_line)
    except ProcessFailed as exc:
        return CommandResult(success=False, message=str(exc))

    note = None
    local_created = None
    try:
        local_created = await asyncio.to_thread(resolver.inspector, reference)
    except Exception as exc:
        note = f"{INSPECT_FAILED_PREFIX}: {exc}"

    data = {"local_created": local_created, "note": note}
    if not outcome.success:
        return CommandResult(
            success=False,
            message=f"docker pull exited with status {outcome.returncode}",
            data=data,
            errors=[outcome.tail()],
        )
    return CommandResult(success=True, message=f"Pulled {reference}", data=data)


async def cmd_self_update(
    info: UpdateInfo,
    *,
    updater: SelfUpdater,
    on_progress: ProgressCallback | None = None,
    on_log: LogCallback = _noop_log,
) -> CommandResult:
    def on_line(stream: str, line: str) -> None:
        if line.strip():
            on_log(line.strip(), "error" if stream == "warning" else "info")

    try:
        outcome = await updater.update(info, on_progress=on_progress, on_line=on_line)
    except InstallerError as exc:
        return CommandResult(success=False, message=str(exc))
    logs = [outcome.warning] if outcome.warning else []
    return CommandResult(
        success=True,
        message=outcome.message,
        data={"package_path": str(outcome.package_path), "verified": outcome.verified},
        logs=logs,
    )


def cmd_write_config(template_key: str, root: Path) -> CommandResult:
    template = find_template(template_key)
    if template is None:
        return CommandResult(success=False, message=f"Unknown configuration template: {template_key}")
    try:
        path = write_config_file(template, root)
    except OSError as exc:
        return CommandResult(success=False, message=str(exc))
    return CommandResult(success=True, message=f"Wrote {path}", data={"path": str(path), "template": template.key})


def cmd_write_env(provider: str, api_key: str, openai_api_key: str, root: Path) -> CommandResult:
    content = render_env(provider, api_key, openai_api_key)
    try:
        path = write_env_file(content, root)
    except OSError as exc:
        return CommandResult(success=False, message=str(exc))
    return CommandResult(success=True, message=f"Wrote {path}", data={"path": str(path)})
