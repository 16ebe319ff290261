"""StatusBar — bottom bar with key hints and the running operation."""

from __future__ import annotations

from rich.markup import escape
from textual.app import ComposeResult
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static


class StatusBar(Widget):
    """Single-line status bar at the bottom of the screen."""

    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        background: #111827;
        layout: horizontal;
        padding: 0 2;
    }
    StatusBar .hint-label {
        color: #8892a4;
        width: 1fr;
    }
    StatusBar .op-label {
        color: #ffaa00;
        width: auto;
    }
    """

    hint: reactive[str] = reactive("")
    operation: reactive[str] = reactive("")

    def compose(self) -> ComposeResult:
        yield Static("", classes="hint-label", id="sb-hint")
        yield Static("", classes="op-label", id="sb-op")

    def watch_hint(self, value: str) -> None:
        try:
            self.query_one("#sb-hint", Static).update(value)
        except NoMatches:
            pass

    def watch_operation(self, value: str) -> None:
        try:
            self.query_one("#sb-op", Static).update(escape(value))
        except NoMatches:
            pass
