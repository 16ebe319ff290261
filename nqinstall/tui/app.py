"""InstallerApp — main Textual application.

The app owns the :class:`WizardMachine`. Keys become machine events, the
effects the machine returns are executed here (one long-running worker at a
time) and every outcome is fed back as another event.
"""

from __future__ import annotations

import logging
from pathlib import Path

from textual.app import App

from ..constants import CONFIG_FILE_NAME, ENV_FILE_NAME
from ..log_interpreter import ProgressCounters
from ..paths import find_file
from ..process import ProcessSupervisor
from ..registry_auth import RegistryAuthenticator, resolve_token
from ..self_update import SelfUpdater
from ..settings import TOKEN_PATH, Settings
from ..updates import UpdateResolver
from .commands import (
    cmd_check_updates,
    cmd_install,
    cmd_login,
    cmd_pull,
    cmd_self_update,
    cmd_write_config,
    cmd_write_env,
)
from .machine import (
    Effect,
    Event,
    Exit,
    FetchUpdates,
    FileKind,
    FileWritten,
    InstallFinished,
    Login,
    LoginFinished,
    LogLine,
    ProgressChanged,
    PullFinished,
    PullImage,
    RunInstall,
    RunSelfUpdate,
    SelfUpdateFinished,
    UpdatesLoaded,
    WizardMachine,
    WriteConfig,
    WriteEnv,
    make_machine,
)

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.1


class InstallerApp(App):
    """NQRust Analytics installer and updater."""

    CSS_PATH = "theme.tcss"
    TITLE = "NQRust Analytics Installer"

    def __init__(
        self,
        root: Path,
        settings: Settings | None = None,
        token_path: Path = TOKEN_PATH,
    ) -> None:
        super().__init__()
        self.root = root
        self.settings = settings or Settings()
        self.supervisor = ProcessSupervisor()
        self.authenticator = RegistryAuthenticator(self.settings, self.supervisor, token_path)
        self.resolver = UpdateResolver(self.settings)
        self.updater = SelfUpdater(self.settings, self.supervisor)
        token = resolve_token(path=token_path)
        self.machine: WizardMachine = make_machine(
            has_credential=bool(token),
            config_exists=find_file(CONFIG_FILE_NAME, root),
            env_exists=find_file(ENV_FILE_NAME, root),
            credential=token,
            build_share=self.settings.build_progress_share,
        )
        self._busy = False

    def on_mount(self) -> None:
        from .screens.wizard import WizardScreen

        logger.info("Installer started in %s (state %s)", self.root, self.machine.state.screen.value)
        self.push_screen(WizardScreen())
        self.set_interval(TICK_SECONDS, self._tick)

    def _tick(self) -> None:
        if self.machine.model.stop_requested:
            logger.info("Stop requested; exiting")
            self.exit()
            return
        self._redraw()

    def _redraw(self) -> None:
        refresh = getattr(self.screen, "refresh_view", None)
        if refresh is not None:
            refresh()

    # ── event loop glue ───────────────────────────────────────

    def send_event(self, event: Event) -> None:
        """Feed one event to the machine and run whatever it asks for."""
        transition = self.machine.handle(event)
        for effect in transition.effects:
            self._execute(effect)
        self._redraw()

    def _log(self, text: str, level: str = "info") -> None:
        self.send_event(LogLine(text, level))

    def _on_counters(self, counters: ProgressCounters) -> None:
        self.send_event(ProgressChanged(counters=counters))

    def _on_download_progress(self, message: str, percent: float | None) -> None:
        # Called from the download thread.
        self.call_from_thread(self.send_event, ProgressChanged(progress=percent, label=message))

    def _execute(self, effect: Effect) -> None:
        if isinstance(effect, Exit):
            self.exit()
            return
        if isinstance(effect, WriteConfig):
            result = cmd_write_config(effect.template_key, self.root)
            self.send_event(FileWritten(FileKind.CONFIG, result.success, result.message, effect.template_key))
            return
        if isinstance(effect, WriteEnv):
            result = cmd_write_env(effect.provider, effect.api_key, effect.openai_api_key, self.root)
            self.send_event(FileWritten(FileKind.ENV, result.success, result.message))
            return
        if self._busy:
            logger.warning("Ignoring %s: another operation is running", type(effect).__name__)
            return
        self._busy = True
        self.run_worker(self._run_operation(effect), exclusive=True, group="operation")

    async def _run_operation(self, effect: Effect) -> None:
        try:
            outcome = await self._perform(effect)
        except Exception as exc:
            logger.exception("Operation %s crashed", type(effect).__name__)
            outcome = self._failure_event(effect, str(exc))
        finally:
            self._busy = False
        self.send_event(outcome)

    async def _perform(self, effect: Effect) -> Event:
        model = self.machine.model
        if isinstance(effect, RunInstall):
            result = await cmd_install(
                self.root,
                supervisor=self.supervisor,
                counters=model.counters,
                on_log=self._log,
                on_counters=self._on_counters,
            )
            for err in result.errors:
                self._log(err, "error")
            return InstallFinished(result.success, result.message)

        if isinstance(effect, Login):
            result = await cmd_login(effect.token, authenticator=self.authenticator, on_log=self._log)
            if not result.success:
                return LoginFinished(False, result.message)
            return LoginFinished(
                True,
                result.message,
                username=result.data["username"],
                token=result.data["token"],
                warning=result.data["warning"],
            )

        if isinstance(effect, FetchUpdates):
            result = await cmd_check_updates(model.credential, resolver=self.resolver)
            if not result.success:
                return UpdatesLoaded(error=result.message)
            return UpdatesLoaded(tuple(result.data["updates"]))

        if isinstance(effect, PullImage):
            result = await cmd_pull(
                effect.reference,
                resolver=self.resolver,
                supervisor=self.supervisor,
                on_log=self._log,
            )
            return PullFinished(
                effect.index,
                result.success,
                local_created=result.data.get("local_created"),
                note=result.data.get("note"),
                message=result.message,
            )

        if isinstance(effect, RunSelfUpdate):
            info = model.updates[effect.index]
            result = await cmd_self_update(
                info,
                updater=self.updater,
                on_progress=self._on_download_progress,
                on_log=self._log,
            )
            for warning in result.logs:
                self._log(f"⚠️  {warning}", "warning")
            return SelfUpdateFinished(effect.index, result.success, result.message)

        raise TypeError(f"Unhandled effect {effect!r}")

    @staticmethod
    def _failure_event(effect: Effect, message: str) -> Event:
        if isinstance(effect, RunInstall):
            return InstallFinished(False, message)
        if isinstance(effect, Login):
            return LoginFinished(False, message)
        if isinstance(effect, FetchUpdates):
            return UpdatesLoaded(error=message)
        if isinstance(effect, PullImage):
            return PullFinished(effect.index, False, message=message)
        if isinstance(effect, RunSelfUpdate):
            return SelfUpdateFinished(effect.index, False, message)
        return LogLine(message, "error")
