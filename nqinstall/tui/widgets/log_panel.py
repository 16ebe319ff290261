"""LogPanel — scrollable, color-coded installer transcript."""

from __future__ import annotations

from rich.markup import escape
from textual.widgets import RichLog

from ...constants import LOG_BUFFER_CAPACITY
from ...log_interpreter import LogBuffer, LogEntry, LogMark

_LEVEL_COLORS = {
    "success": "#39ff14",
    "error": "#ff3366",
    "warning": "#ffaa00",
    "info": "#8892a4",
}


class LogPanel(RichLog):
    """Mirrors the wizard's bounded log buffer."""

    can_focus = False

    DEFAULT_CSS = """
    LogPanel {
        background: #0a0e17;
        border: solid #1a3a4a;
        padding: 0 1;
        min-height: 6;
        max-height: 50%;
    }
    LogPanel:focus {
        border: solid #00ffcc;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(highlight=False, markup=True, wrap=True, max_lines=LOG_BUFFER_CAPACITY, **kwargs)
        self._mark: LogMark | None = None

    def write_entry(self, entry: LogEntry) -> None:
        color = _LEVEL_COLORS.get(entry.level, _LEVEL_COLORS["info"])
        self.write(f"[{color}]{escape(entry.text)}[/]")

    def sync(self, buffer: LogBuffer) -> None:
        """Append what was pushed since the last sync; redraw after a clear."""
        mark = buffer.mark()
        if mark == self._mark:
            return
        fresh = buffer.entries_since(self._mark)
        if fresh is None:
            self.clear()
            fresh = list(buffer)
        for entry in fresh:
            self.write_entry(entry)
        self._mark = mark
