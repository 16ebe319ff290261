"""WizardScreen — renders the wizard model and forwards keys to the app."""

from __future__ import annotations

from rich.markup import escape
from textual import events
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import Static

from ...constants import COMPOSE_SERVICES
from ...templates import provider_info
from ...util import format_timestamp
from ..machine import Key, KeyPressed
from ..state import Screen as WizardScreenId, WizardModel
from ..widgets.header import InstallerHeader
from ..widgets.log_panel import LogPanel
from ..widgets.status_bar import StatusBar

_OK = "#39ff14"
_BAD = "#ff3366"
_WARN = "#ffaa00"
_DIM = "#8892a4"
_ACCENT = "#00ffcc"

_TITLES = {
    WizardScreenId.REGISTRY_SETUP: "GHCR Credentials",
    WizardScreenId.CONFIRMATION: "Installation",
    WizardScreenId.CONFIG_SELECTION: "Model Provider",
    WizardScreenId.ENV_SETUP: "Environment Setup",
    WizardScreenId.UPDATE_LIST: "Updates",
    WizardScreenId.UPDATE_PULLING: "Updating",
    WizardScreenId.INSTALLING: "Installing",
    WizardScreenId.SUCCESS: "Done",
    WizardScreenId.ERROR: "Error",
}

_HINTS = {
    WizardScreenId.REGISTRY_SETUP: "Enter: edit/submit  Ctrl+S: submit  Esc: skip",
    WizardScreenId.CONFIRMATION: "↑↓: navigate  Enter: select  Esc: cancel",
    WizardScreenId.CONFIG_SELECTION: "↑↓: navigate  Enter: generate config.yaml  Esc: back",
    WizardScreenId.ENV_SETUP: "Enter: edit  Ctrl+S: save  Esc: back",
    WizardScreenId.UPDATE_LIST: "Enter/P: pull or self-update  R: refresh  Esc: back",
    WizardScreenId.UPDATE_PULLING: "Ctrl+C: stop after this operation",
    WizardScreenId.INSTALLING: "Ctrl+C: stop after this operation",
    WizardScreenId.SUCCESS: "q / Esc / Ctrl+C: exit",
    WizardScreenId.ERROR: "q / Esc / Ctrl+C: exit",
}

_PLAIN_KEYS = {
    "up": Key.UP,
    "down": Key.DOWN,
    "tab": Key.TAB,
    "enter": Key.ENTER,
    "escape": Key.ESCAPE,
    "backspace": Key.BACKSPACE,
    "ctrl+c": Key.FORCE_QUIT,
    "ctrl+s": Key.SUBMIT,
}

_COMMAND_KEYS = {
    "q": Key.QUIT,
    "r": Key.REFRESH,
    "p": Key.PULL,
}


def translate_key(key: str, character: str | None, editing: bool) -> KeyPressed | None:
    """Map a Textual key name to a wizard key; letters are text while editing."""
    if key in _PLAIN_KEYS:
        return KeyPressed(_PLAIN_KEYS[key])
    printable = character if character and character.isprintable() and len(character) == 1 else None
    if editing and printable:
        return KeyPressed(Key.CHAR, printable)
    if key in _COMMAND_KEYS:
        return KeyPressed(_COMMAND_KEYS[key])
    if printable:
        return KeyPressed(Key.CHAR, printable)
    return None


def is_editing(model: WizardModel) -> bool:
    screen = model.state.screen
    if screen is WizardScreenId.REGISTRY_SETUP:
        return model.registry_form.editing
    if screen is WizardScreenId.ENV_SETUP:
        return model.env_form.editing
    return False


def progress_bar(percent: float | None, width: int = 40) -> str:
    if percent is None:
        return f"[{_DIM}]Progress: \\[{'░' * width}] working...[/]"
    pct = max(0.0, min(100.0, percent))
    filled = int(round(pct / 100.0 * width))
    bar = "█" * filled + "░" * (width - filled)
    return f"[{_ACCENT}]Progress: \\[{bar}] {pct:.0f}%[/]"


def _mask(value: str) -> str:
    return "•" * len(value)


def _field_line(label: str, value: str, selected: bool, editing: bool, secret: bool = True) -> str:
    shown = _mask(value) if secret else value
    cursor = "▌" if editing else ""
    marker = f"[{_ACCENT}]▶[/]" if selected else " "
    color = _WARN if editing else (_ACCENT if selected else _DIM)
    return f"{marker} [{color}]{escape(label)}:[/] {escape(shown)}{cursor}"


def render_registry(model: WizardModel) -> str:
    form = model.registry_form
    lines = [
        "[b]Connect to GitHub Container Registry[/b]",
        "",
        f"[{_DIM}]Provide a GitHub token with `read:packages` scope to pull GHCR images.[/]",
        f"[{_DIM}]We will detect your username automatically from the token.[/]",
        "",
        _field_line("Personal access token", form.token, form.current_item == 0, form.editing),
        "",
    ]
    label = "Submitting..." if form.busy else "Submit"
    marker = f"[{_ACCENT}]▶[/]" if form.current_item == 1 else " "
    lines.append(f"{marker} [b]{label}[/b]")
    lines.append("")
    if form.error_message:
        lines.append(f"[{_BAD}]{escape(form.error_message)}[/]")
    elif form.info_message:
        lines.append(f"[{_WARN}]{escape(form.info_message)}[/]")
    else:
        lines.append(f"[{_DIM}]Awaiting input...[/]")
    return "\n".join(lines)


def render_confirmation(model: WizardModel) -> str:
    prereqs = model.prereqs

    def status(present: bool, name: str) -> str:
        if present:
            return f"  [{_OK}]✓[/] {name}"
        return f"  [{_BAD}]✗[/] {name} [{_DIM}](missing)[/]"

    lines = [
        "[b]Configuration Files:[/b]",
        status(prereqs.config_exists, "config.yaml"),
        status(prereqs.env_exists, ".env"),
        "",
        "[b]Services to be started:[/b]",
    ]
    lines.extend(f"  • {service}" for service in COMPOSE_SERVICES)
    lines.append("")
    if not (prereqs.config_exists and prereqs.env_exists):
        lines.append(f"[{_WARN}]Please generate the missing files before proceeding.[/]")
        lines.append("")
    for option in model.options:
        if option is model.menu_selection:
            lines.append(f"[{_ACCENT} b]▶ {option.label}[/]")
        else:
            lines.append(f"  {option.label}")
    return "\n".join(lines)


def render_config_selection(model: WizardModel) -> str:
    if not model.templates:
        return f"[{_BAD}]No templates available[/]"
    lines = ["[b]Model providers[/b]", ""]
    for index, template in enumerate(model.templates):
        if index == model.config_index:
            lines.append(f"[{_ACCENT} b]▶ {escape(template.name)}[/]")
        else:
            lines.append(f"  {escape(template.name)}")
    selected = model.selected_template
    if selected is not None:
        lines += ["", f"[{_WARN}]Selected:[/] {escape(selected.description)}"]
    return "\n".join(lines)


def render_env_setup(model: WizardModel) -> str:
    form = model.env_form
    info = provider_info(form.provider)
    lines = [
        f"[b]Environment for {escape(info.api_key_label)}[/b]",
        "",
        f"[{_DIM}]Please provide the following information:[/]",
        "",
    ]
    if info.is_local:
        lines.append(f"[{_DIM}]Local provider: no API key is needed. Press Ctrl+S to write .env.[/]")
    else:
        lines.append(
            _field_line(f"{info.api_key_label} API Key", form.api_key, form.current_field == 0, form.editing and form.current_field == 0)
        )
        if info.needs_openai_embedding:
            lines.append(
                _field_line(
                    "OpenAI API Key (embeddings)",
                    form.openai_api_key,
                    form.current_field == 1,
                    form.editing and form.current_field == 1,
                )
            )
    if form.error_message:
        lines += ["", f"[{_BAD}]{escape(form.error_message)}[/]"]
    return "\n".join(lines)


def render_update_list(model: WizardModel) -> str:
    lines = ["[b]Tracked images and installer[/b]", ""]
    if not model.updates:
        lines.append(f"[{_DIM}]No GHCR-backed services found[/]")
    header = f"{'Service':<26} {'Current Tag':<12} {'Latest Release':<16} {'Remote Updated':<22} {'Local Image':<22} Status"
    if model.updates:
        lines.append(f"[b]{escape(header)}[/b]")
    for index, info in enumerate(model.updates):
        status_color = _WARN if info.has_update else (_BAD if info.status_note else _OK)
        remote = format_timestamp(info.latest_release_published if info.is_self else info.remote_latest_updated)
        local = "—" if info.is_self else format_timestamp(info.local_created)
        row = (
            f"{info.display_name:<26} {info.current_tag:<12} {info.latest_release_tag or '—':<16} "
            f"{remote:<22} {local:<22} "
        )
        marker = f"[{_ACCENT}]▶[/]" if index == model.update_index else " "
        lines.append(f"{marker} {escape(row)}[{status_color}]{escape(info.status_text)}[/]")
    if model.update_message:
        lines += ["", f"[{_WARN}]{escape(model.update_message)}[/]"]
    if model.state.screen is WizardScreenId.UPDATE_PULLING:
        lines += ["", progress_bar(model.operation_progress)]
        if model.operation_label:
            lines.append(f"[{_DIM}]{escape(model.operation_label)}[/]")
    return "\n".join(lines)


def render_installing(model: WizardModel) -> str:
    counters = model.counters
    if counters.current_service:
        current = f"Current: {counters.current_service} ({counters.completed_services}/{counters.total_services})"
    else:
        current = "Initializing..."
    return "\n".join(
        [
            "[b]Installing NQRust Analytics[/b]",
            "",
            progress_bar(counters.progress),
            f"[{_DIM}]{escape(current)}[/]",
        ]
    )


def render_success(model: WizardModel) -> str:
    return "\n".join(
        [
            f"[{_OK} b]Analytics has been successfully installed![/]",
            "",
            "All services are now running. You can access Analytics UI at:",
            f"[{_ACCENT}]http://localhost:3000[/]",
            "",
            progress_bar(100.0),
        ]
    )


def render_error(model: WizardModel) -> str:
    return "\n".join(
        [
            f"[{_BAD} b]An error occurred:[/]",
            "",
            escape(model.state.message or "Unknown error"),
            "",
            f"[{_DIM}]The log below shows the operations that led here.[/]",
        ]
    )


_RENDERERS = {
    WizardScreenId.REGISTRY_SETUP: render_registry,
    WizardScreenId.CONFIRMATION: render_confirmation,
    WizardScreenId.CONFIG_SELECTION: render_config_selection,
    WizardScreenId.ENV_SETUP: render_env_setup,
    WizardScreenId.UPDATE_LIST: render_update_list,
    WizardScreenId.UPDATE_PULLING: render_update_list,
    WizardScreenId.INSTALLING: render_installing,
    WizardScreenId.SUCCESS: render_success,
    WizardScreenId.ERROR: render_error,
}


def render_body(model: WizardModel) -> str:
    return _RENDERERS[model.state.screen](model)


class WizardScreen(Screen):
    """The single installer screen; content follows the machine's state."""

    BINDINGS = [
        Binding(name, f"wizard_key('{name}')", name, show=False, priority=True)
        for name in ("up", "down", "tab", "enter", "escape", "backspace", "ctrl+c", "ctrl+s")
    ]

    def compose(self) -> ComposeResult:
        yield InstallerHeader()
        with Vertical(id="wizard-content"):
            yield Static("", id="wizard-body")
        yield LogPanel(id="wizard-log")
        yield StatusBar()

    def on_mount(self) -> None:
        self.refresh_view()

    def _model(self) -> WizardModel:
        return self.app.machine.model  # type: ignore[attr-defined]

    def action_wizard_key(self, key: str) -> None:
        event = translate_key(key, None, is_editing(self._model()))
        if event is not None:
            self.app.send_event(event)  # type: ignore[attr-defined]

    def on_key(self, event: events.Key) -> None:
        translated = translate_key(event.key, event.character, is_editing(self._model()))
        if translated is None:
            return
        event.stop()
        event.prevent_default()
        self.app.send_event(translated)  # type: ignore[attr-defined]

    def refresh_view(self) -> None:
        model = self._model()
        screen = model.state.screen
        try:
            self.query_one("#wizard-body", Static).update(render_body(model))
            self.query_one("#wizard-log", LogPanel).sync(model.logs)
            header = self.query_one(InstallerHeader)
            header.step_title = _TITLES[screen]
            header.username = model.username or ""
            status = self.query_one(StatusBar)
            status.hint = _HINTS[screen]
            status.operation = model.operation_label if model.state.is_busy else ""
        except NoMatches:
            # Not mounted yet, or already torn down.
            pass
