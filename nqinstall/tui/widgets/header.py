"""InstallerHeader — one-line title bar."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

from ... import __version__


def header_grid(step_title: str, username: str) -> Table:
    grid = Table.grid(expand=True, padding=(0, 2))
    grid.add_column(no_wrap=True)
    grid.add_column(ratio=1, no_wrap=True)
    grid.add_column(justify="right", no_wrap=True)
    brand = Text.assemble(("NQRust Analytics", "bold #00ffcc"), (f" v{__version__}", "#4b5563"))
    user = f"ghcr: {username}" if username else "ghcr: not logged in"
    grid.add_row(
        brand,
        Text(step_title, style="bold #ff00aa"),
        Text(user, style="#00ffcc" if username else "#6b7280"),
    )
    return grid


class InstallerHeader(Widget):
    """Product and version on the left, the wizard step, the GHCR user on the right."""

    step_title: reactive[str] = reactive("")
    username: reactive[str] = reactive("")

    def render(self) -> Table:
        return header_grid(self.step_title, self.username)
