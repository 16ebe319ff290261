"""State containers for the installer wizard."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..log_interpreter import LogBuffer, ProgressCounters
from ..templates import CONFIG_TEMPLATES, ConfigTemplate, provider_info
from ..updates import UpdateInfo


class Screen(Enum):
    REGISTRY_SETUP = "registry_setup"
    CONFIRMATION = "confirmation"
    CONFIG_SELECTION = "config_selection"
    ENV_SETUP = "env_setup"
    UPDATE_LIST = "update_list"
    UPDATE_PULLING = "update_pulling"
    INSTALLING = "installing"
    SUCCESS = "success"
    ERROR = "error"


BUSY_SCREENS = frozenset({Screen.INSTALLING, Screen.UPDATE_PULLING})
TERMINAL_SCREENS = frozenset({Screen.SUCCESS, Screen.ERROR})


@dataclass(frozen=True)
class WizardState:
    """Current screen; ``message`` is only carried by ERROR."""

    screen: Screen
    message: str | None = None

    @classmethod
    def error(cls, message: str) -> "WizardState":
        return cls(Screen.ERROR, message)

    @property
    def is_busy(self) -> bool:
        return self.screen in BUSY_SCREENS


class MenuOption(Enum):
    GENERATE_CONFIG = "generate_config"
    GENERATE_ENV = "generate_env"
    PROCEED = "proceed"
    CHECK_UPDATES = "check_updates"
    UPDATE_TOKEN = "update_token"
    CANCEL = "cancel"

    @property
    def label(self) -> str:
        return _MENU_LABELS[self]


_MENU_LABELS = {
    MenuOption.GENERATE_CONFIG: "Generate config.yaml",
    MenuOption.GENERATE_ENV: "Generate .env",
    MenuOption.PROCEED: "Proceed with installation",
    MenuOption.CHECK_UPDATES: "Check for updates",
    MenuOption.UPDATE_TOKEN: "Update GHCR token",
    MenuOption.CANCEL: "Cancel",
}


@dataclass(frozen=True)
class Prerequisites:
    has_credential: bool = False
    config_exists: bool = False
    env_exists: bool = False


def available_options(prereqs: Prerequisites) -> list[MenuOption]:
    """Options shown on the confirmation screen, in display order."""
    shown = {
        MenuOption.GENERATE_CONFIG: not prereqs.config_exists,
        MenuOption.GENERATE_ENV: not prereqs.env_exists,
        MenuOption.PROCEED: prereqs.config_exists and prereqs.env_exists,
        MenuOption.CHECK_UPDATES: True,
        MenuOption.UPDATE_TOKEN: prereqs.has_credential,
        MenuOption.CANCEL: True,
    }
    return [option for option in MenuOption if shown[option]]


def initial_option(prereqs: Prerequisites) -> MenuOption:
    """Config comes first, then env, then the install itself."""
    if not prereqs.config_exists:
        return MenuOption.GENERATE_CONFIG
    if not prereqs.env_exists:
        return MenuOption.GENERATE_ENV
    return MenuOption.PROCEED


@dataclass
class RegistryForm:
    """Token field (item 0) and submit button (item 1)."""

    TOTAL_ITEMS = 2

    token: str = ""
    current_item: int = 0
    editing: bool = False
    error_message: str = ""
    info_message: str = ""
    busy: bool = False

    @property
    def on_input_field(self) -> bool:
        return self.current_item == 0

    def reset(self) -> None:
        self.token = ""
        self.current_item = 0
        self.editing = False
        self.error_message = ""
        self.busy = False


@dataclass
class EnvForm:
    """Provider API key plus, for some providers, an OpenAI embedding key."""

    provider: str = ""
    api_key: str = ""
    openai_api_key: str = ""
    current_field: int = 0
    editing: bool = False
    error_message: str = ""

    @property
    def total_fields(self) -> int:
        return 2 if provider_info(self.provider).needs_openai_embedding else 1

    def reset(self, provider: str) -> None:
        self.provider = provider
        self.api_key = ""
        self.openai_api_key = ""
        self.current_field = 0
        self.editing = False
        self.error_message = ""

    def current_value(self) -> str:
        return self.openai_api_key if self.current_field == 1 else self.api_key

    def set_current_value(self, value: str) -> None:
        if self.current_field == 1:
            self.openai_api_key = value
        else:
            self.api_key = value


@dataclass
class WizardModel:
    """Everything the wizard shows; owned by the state machine."""

    state: WizardState = field(default_factory=lambda: WizardState(Screen.CONFIRMATION))
    prereqs: Prerequisites = field(default_factory=Prerequisites)
    menu_selection: MenuOption = MenuOption.GENERATE_CONFIG
    registry_form: RegistryForm = field(default_factory=RegistryForm)
    env_form: EnvForm = field(default_factory=EnvForm)
    templates: tuple[ConfigTemplate, ...] = CONFIG_TEMPLATES
    config_index: int = 0
    logs: LogBuffer = field(default_factory=LogBuffer)
    counters: ProgressCounters = field(default_factory=ProgressCounters)
    updates: list[UpdateInfo] = field(default_factory=list)
    update_index: int = 0
    update_message: str = ""
    checking_updates: bool = False
    operation_label: str = ""
    operation_progress: float | None = None
    credential: str | None = None
    username: str | None = None
    stop_requested: bool = False

    @property
    def options(self) -> list[MenuOption]:
        return available_options(self.prereqs)

    @property
    def selected_template(self) -> ConfigTemplate | None:
        if 0 <= self.config_index < len(self.templates):
            return self.templates[self.config_index]
        return None

    @property
    def selected_update(self) -> UpdateInfo | None:
        if 0 <= self.update_index < len(self.updates):
            return self.updates[self.update_index]
        return None
