"""Installer TUI — interactive wizard for the NQRust Analytics stack."""

from __future__ import annotations

from pathlib import Path

from ..settings import Settings


def launch_tui(root: Path, settings: Settings | None = None) -> int:
    """Launch the installer wizard against ``root``."""
    from .app import InstallerApp

    app = InstallerApp(root, settings=settings)
    app.run()
    return 0
