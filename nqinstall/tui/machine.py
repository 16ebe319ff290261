"""Wizard state machine: events in, (state, effects) out.

The machine never touches the network, the filesystem or subprocesses. The
app executes the effects it returns and reports each outcome back as an
event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Union

from ..log_interpreter import ProgressCounters
from ..templates import provider_info, validate_env_values
from ..updates import UpdateInfo
from .state import (
    BUSY_SCREENS,
    TERMINAL_SCREENS,
    MenuOption,
    Prerequisites,
    Screen,
    WizardModel,
    WizardState,
    initial_option,
)

logger = logging.getLogger(__name__)

NO_TEMPLATES_MESSAGE = "No configuration templates available"


class Key(Enum):
    UP = "up"
    DOWN = "down"
    TAB = "tab"
    ENTER = "enter"
    ESCAPE = "escape"
    QUIT = "quit"
    FORCE_QUIT = "force_quit"
    SUBMIT = "submit"
    BACKSPACE = "backspace"
    CHAR = "char"
    REFRESH = "refresh"
    PULL = "pull"


# ── Events ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class KeyPressed:
    key: Key
    char: str = ""


@dataclass(frozen=True)
class LoginFinished:
    ok: bool
    message: str = ""
    username: str | None = None
    token: str | None = None
    warning: str | None = None


@dataclass(frozen=True)
class InstallFinished:
    ok: bool
    message: str = ""


@dataclass(frozen=True)
class UpdatesLoaded:
    updates: tuple[UpdateInfo, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class PullFinished:
    index: int
    ok: bool
    local_created: datetime | None = None
    note: str | None = None
    message: str = ""


@dataclass(frozen=True)
class SelfUpdateFinished:
    index: int
    ok: bool
    message: str = ""


class FileKind(Enum):
    CONFIG = "config"
    ENV = "env"


@dataclass(frozen=True)
class FileWritten:
    kind: FileKind
    ok: bool
    message: str = ""
    template_key: str | None = None


@dataclass(frozen=True)
class LogLine:
    text: str
    level: str = "info"


@dataclass(frozen=True)
class ProgressChanged:
    counters: ProgressCounters | None = None
    progress: float | None = None
    label: str | None = None


Event = Union[
    KeyPressed,
    LoginFinished,
    InstallFinished,
    UpdatesLoaded,
    PullFinished,
    SelfUpdateFinished,
    FileWritten,
    LogLine,
    ProgressChanged,
]


# ── Effects ────────────────────────────────────────────────────


@dataclass(frozen=True)
class RunInstall:
    pass


@dataclass(frozen=True)
class FetchUpdates:
    pass


@dataclass(frozen=True)
class PullImage:
    index: int
    reference: str


@dataclass(frozen=True)
class RunSelfUpdate:
    index: int


@dataclass(frozen=True)
class Login:
    token: str


@dataclass(frozen=True)
class WriteConfig:
    template_key: str


@dataclass(frozen=True)
class WriteEnv:
    provider: str
    api_key: str
    openai_api_key: str = ""


@dataclass(frozen=True)
class Exit:
    pass


Effect = Union[RunInstall, FetchUpdates, PullImage, RunSelfUpdate, Login, WriteConfig, WriteEnv, Exit]


@dataclass(frozen=True)
class Transition:
    state: WizardState
    effects: tuple[Effect, ...] = ()


def _cycle(index: int, size: int, key: Key) -> int:
    if size <= 0:
        return 0
    if key is Key.UP:
        return (index - 1) % size
    return (index + 1) % size


_NAV_KEYS = frozenset({Key.UP, Key.DOWN, Key.TAB})


class WizardMachine:
    """Single owner of :class:`WizardModel`; ``handle`` is the only mutator."""

    def __init__(self, model: WizardModel | None = None) -> None:
        self.model = model or WizardModel()
        prereqs = self.model.prereqs
        if self.model.credential and not prereqs.has_credential:
            self.model.prereqs = prereqs = replace(prereqs, has_credential=True)
        self.model.menu_selection = initial_option(prereqs)
        if prereqs.has_credential:
            self._enter_confirmation()
        else:
            self._enter(Screen.REGISTRY_SETUP)

    @property
    def state(self) -> WizardState:
        return self.model.state

    def handle(self, event: Event) -> Transition:
        effects = self._dispatch(event)
        return Transition(self.model.state, tuple(effects))

    # ── helpers ────────────────────────────────────────────────

    def _enter(self, screen: Screen) -> None:
        self.model.state = WizardState(screen)

    def _fail(self, message: str) -> None:
        logger.error("Wizard error: %s", message)
        self.model.state = WizardState.error(message)

    def _enter_confirmation(self) -> None:
        self._enter(Screen.CONFIRMATION)
        self._clamp_selection()

    def _clamp_selection(self) -> None:
        options = self.model.options
        if self.model.menu_selection not in options:
            self.model.menu_selection = options[0]

    def _set_prereqs(self, **changes: bool) -> None:
        self.model.prereqs = replace(self.model.prereqs, **changes)
        self._clamp_selection()

    def _log(self, text: str, level: str = "info") -> None:
        self.model.logs.push(text, level)

    # ── dispatch ───────────────────────────────────────────────

    def _dispatch(self, event: Event) -> list[Effect]:
        if isinstance(event, KeyPressed):
            return self._on_key(event)
        if isinstance(event, LogLine):
            self._log(event.text, event.level)
            return []
        if isinstance(event, ProgressChanged):
            self._on_progress(event)
            return []
        if isinstance(event, LoginFinished):
            return self._on_login_finished(event)
        if isinstance(event, InstallFinished):
            return self._on_install_finished(event)
        if isinstance(event, UpdatesLoaded):
            return self._on_updates_loaded(event)
        if isinstance(event, PullFinished):
            return self._on_pull_finished(event)
        if isinstance(event, SelfUpdateFinished):
            return self._on_self_update_finished(event)
        if isinstance(event, FileWritten):
            return self._on_file_written(event)
        raise TypeError(f"Unhandled event {event!r}")

    def _on_key(self, event: KeyPressed) -> list[Effect]:
        screen = self.model.state.screen
        busy = screen in BUSY_SCREENS or self.model.checking_updates
        if event.key is Key.FORCE_QUIT:
            self.model.stop_requested = True
            if busy:
                return []
            return [Exit()]
        if busy:
            return []
        if screen in TERMINAL_SCREENS:
            if event.key in (Key.QUIT, Key.ESCAPE):
                return [Exit()]
            return []

        handlers = {
            Screen.REGISTRY_SETUP: self._registry_key,
            Screen.CONFIRMATION: self._confirmation_key,
            Screen.CONFIG_SELECTION: self._config_key,
            Screen.ENV_SETUP: self._env_key,
            Screen.UPDATE_LIST: self._update_list_key,
        }
        return handlers[screen](event)

    # ── confirmation ───────────────────────────────────────────

    def _confirmation_key(self, event: KeyPressed) -> list[Effect]:
        model = self.model
        if event.key in _NAV_KEYS:
            options = model.options
            self._clamp_selection()
            index = options.index(model.menu_selection)
            model.menu_selection = options[_cycle(index, len(options), event.key)]
            return []
        if event.key in (Key.ESCAPE, Key.QUIT):
            return [Exit()]
        if event.key is Key.ENTER:
            return self._commit(model.menu_selection)
        return []

    def _open_config_selection(self) -> None:
        if not self.model.templates:
            self._fail(NO_TEMPLATES_MESSAGE)
            return
        self.model.config_index = 0
        self._enter(Screen.CONFIG_SELECTION)

    def _commit(self, option: MenuOption) -> list[Effect]:
        model = self.model
        if option is MenuOption.PROCEED:
            if not (model.prereqs.config_exists and model.prereqs.env_exists):
                return []
            model.counters = ProgressCounters(build_share=model.counters.build_share)
            model.logs.clear()
            self._log("🚀 Starting Analytics installation...")
            self._enter(Screen.INSTALLING)
            return [RunInstall()]
        if option is MenuOption.GENERATE_CONFIG:
            self._open_config_selection()
            return []
        if option is MenuOption.GENERATE_ENV:
            if not model.prereqs.config_exists or not model.env_form.provider:
                self._open_config_selection()
            else:
                self._enter(Screen.ENV_SETUP)
            return []
        if option is MenuOption.CHECK_UPDATES:
            if not model.prereqs.has_credential:
                model.registry_form.info_message = "A GHCR token is required to check for updates."
                self._enter(Screen.REGISTRY_SETUP)
                return []
            model.update_message = "Checking for updates..."
            model.checking_updates = True
            self._enter(Screen.UPDATE_LIST)
            return [FetchUpdates()]
        if option is MenuOption.UPDATE_TOKEN:
            model.registry_form.reset()
            self._enter(Screen.REGISTRY_SETUP)
            return []
        return [Exit()]

    # ── registry form ──────────────────────────────────────────

    def _registry_key(self, event: KeyPressed) -> list[Effect]:
        form = self.model.registry_form
        if form.busy:
            return []
        if form.editing:
            if event.key in (Key.ENTER, Key.ESCAPE):
                form.editing = False
            elif event.key is Key.CHAR:
                form.token += event.char
            elif event.key is Key.BACKSPACE:
                form.token = form.token[:-1]
            return []

        if event.key in _NAV_KEYS:
            form.current_item = _cycle(form.current_item, form.TOTAL_ITEMS, event.key)
            return []
        if event.key is Key.ENTER and form.on_input_field:
            form.editing = True
            return []
        if event.key is Key.SUBMIT or event.key is Key.ENTER:
            token = form.token.strip()
            if not token:
                form.error_message = "Personal access token is required"
                return []
            form.error_message = ""
            form.busy = True
            self._log("🔐 Verifying token and logging in to GHCR...")
            return [Login(token)]
        if event.key in (Key.ESCAPE, Key.QUIT):
            form.error_message = ""
            self._enter_confirmation()
        return []

    def _on_login_finished(self, event: LoginFinished) -> list[Effect]:
        model = self.model
        form = model.registry_form
        form.busy = False
        if not event.ok:
            form.error_message = event.message or "Login failed"
            self._log(f"❌ {form.error_message}", "error")
            return []
        model.credential = event.token
        model.username = event.username
        form.token = ""
        form.error_message = ""
        form.info_message = event.warning or ""
        self._log(f"✅ Logged in to GHCR as {event.username}", "success")
        if event.warning:
            self._log(f"⚠️  {event.warning}", "warning")
        self._set_prereqs(has_credential=True)
        self._enter_confirmation()
        return []

    # ── config selection ───────────────────────────────────────

    def _config_key(self, event: KeyPressed) -> list[Effect]:
        model = self.model
        total = len(model.templates)
        if total == 0:
            self._fail(NO_TEMPLATES_MESSAGE)
            return []
        model.config_index = min(model.config_index, total - 1)
        if event.key in _NAV_KEYS:
            model.config_index = _cycle(model.config_index, total, event.key)
            return []
        if event.key is Key.ENTER:
            return [WriteConfig(model.templates[model.config_index].key)]
        if event.key in (Key.ESCAPE, Key.QUIT):
            self._enter_confirmation()
        return []

    # ── env form ───────────────────────────────────────────────

    def _env_key(self, event: KeyPressed) -> list[Effect]:
        form = self.model.env_form
        if form.editing:
            if event.key in (Key.ENTER, Key.ESCAPE):
                form.editing = False
            elif event.key is Key.CHAR:
                form.set_current_value(form.current_value() + event.char)
            elif event.key is Key.BACKSPACE:
                form.set_current_value(form.current_value()[:-1])
            return []

        if event.key is Key.ENTER:
            form.editing = not provider_info(form.provider).is_local
            return []
        if event.key in _NAV_KEYS:
            form.current_field = _cycle(form.current_field, form.total_fields, event.key)
            return []
        if event.key is Key.SUBMIT:
            problem = validate_env_values(form.provider, form.api_key, form.openai_api_key)
            if problem:
                form.error_message = problem
                return []
            form.error_message = ""
            return [WriteEnv(form.provider, form.api_key.strip(), form.openai_api_key.strip())]
        if event.key in (Key.ESCAPE, Key.QUIT):
            self._enter_confirmation()
        return []

    def _on_file_written(self, event: FileWritten) -> list[Effect]:
        model = self.model
        if event.kind is FileKind.CONFIG:
            if not event.ok:
                self._fail(f"Failed to generate config.yaml: {event.message}")
                return []
            self._set_prereqs(config_exists=True)
            model.env_form.reset(event.template_key or "")
            self._log(f"✅ config.yaml written ({event.template_key})", "success")
            if not model.prereqs.env_exists:
                self._enter(Screen.ENV_SETUP)
            else:
                model.menu_selection = MenuOption.PROCEED
                self._enter_confirmation()
            return []

        if not event.ok:
            self._fail(f"Failed to generate .env: {event.message}")
            return []
        self._set_prereqs(env_exists=True)
        self._log("✅ .env written", "success")
        model.menu_selection = initial_option(model.prereqs)
        self._enter_confirmation()
        return []

    # ── install ────────────────────────────────────────────────

    def _on_progress(self, event: ProgressChanged) -> None:
        model = self.model
        if event.counters is not None:
            model.counters = event.counters
        if event.progress is not None or model.state.screen is Screen.UPDATE_PULLING:
            model.operation_progress = event.progress
        if event.label is not None:
            model.operation_label = event.label

    def _on_install_finished(self, event: InstallFinished) -> list[Effect]:
        model = self.model
        if event.ok:
            model.counters = replace(model.counters, progress=100.0)
            self._log("✅ All services started successfully!", "success")
            self._enter(Screen.SUCCESS)
        else:
            self._fail(f"Installation failed: {event.message}")
        return []

    # ── updates ────────────────────────────────────────────────

    def _update_list_key(self, event: KeyPressed) -> list[Effect]:
        model = self.model
        if event.key in _NAV_KEYS:
            model.update_index = _cycle(model.update_index, len(model.updates), event.key)
            return []
        if event.key is Key.REFRESH:
            model.update_message = "Refreshing..."
            model.checking_updates = True
            return [FetchUpdates()]
        if event.key in (Key.ESCAPE, Key.QUIT):
            model.update_message = ""
            self._enter_confirmation()
            return []
        if event.key in (Key.ENTER, Key.PULL):
            info = model.selected_update
            if info is None:
                return []
            model.operation_progress = None
            model.operation_label = ""
            self._enter(Screen.UPDATE_PULLING)
            if info.is_self:
                model.update_message = f"Updating installer to {info.latest_release_tag}..."
                return [RunSelfUpdate(model.update_index)]
            model.update_message = f"Pulling {info.pull_reference}..."
            return [PullImage(model.update_index, info.pull_reference)]
        return []

    def _on_updates_loaded(self, event: UpdatesLoaded) -> list[Effect]:
        model = self.model
        model.checking_updates = False
        if model.state.screen is not Screen.UPDATE_LIST:
            logger.warning("Dropping update check result outside the update list")
            return []
        if event.error:
            self._fail(f"Update check failed: {event.error}")
            return []
        model.updates = list(event.updates)
        model.update_index = min(model.update_index, max(len(model.updates) - 1, 0))
        pending = sum(1 for info in model.updates if info.has_update)
        model.update_message = f"{pending} update(s) available" if pending else "Everything is up to date"
        return []

    def _on_pull_finished(self, event: PullFinished) -> list[Effect]:
        model = self.model
        if 0 <= event.index < len(model.updates):
            info = model.updates[event.index]
            if event.ok:
                info.clear_local_error()
            if event.note:
                info.append_status(event.note)
            info.apply_local_created(event.local_created)
        model.operation_progress = None
        if not event.ok:
            self._log(f"❌ Pull failed: {event.message}", "error")
            self._fail(f"Pull failed: {event.message}")
            return []
        model.update_message = event.message or "Pull complete"
        self._log(f"✅ {model.update_message}", "success")
        self._enter(Screen.UPDATE_LIST)
        return []

    def _on_self_update_finished(self, event: SelfUpdateFinished) -> list[Effect]:
        model = self.model
        model.operation_progress = None
        if not event.ok:
            self._log(f"❌ Self-update failed: {event.message}", "error")
            self._fail(f"Self-update failed: {event.message}")
            return []
        model.update_message = event.message
        self._log(f"✅ {event.message}", "success")
        self._enter(Screen.UPDATE_LIST)
        return []


def make_machine(
    *,
    has_credential: bool,
    config_exists: bool,
    env_exists: bool,
    credential: str | None = None,
    build_share: float | None = None,
) -> WizardMachine:
    model = WizardModel(
        prereqs=Prerequisites(
            has_credential=has_credential,
            config_exists=config_exists,
            env_exists=env_exists,
        ),
        credential=credential,
    )
    if build_share is not None:
        model.counters = ProgressCounters(build_share=build_share)
    return WizardMachine(model)
