"""CLI entrypoint for the NQRust Analytics installer."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .errors import InstallerError
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .paths import project_root
from .settings import SETTINGS_PATH, load_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=os.path.basename(sys.argv[0]),
        description="Interactive installer and updater for NQRust Analytics",
    )
    parser.add_argument(
        "--root",
        help="Project directory holding docker-compose.yaml (default: nearest one above cwd)",
    )
    parser.add_argument("--log-file", default=DEFAULT_LOG_PATH, help="Where to write the installer log")
    parser.add_argument("--settings", default=str(SETTINGS_PATH), help="Path to settings.toml")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    log_path = configure_logging(args.log_file, level=level)
    try:
        settings = load_settings(Path(args.settings).expanduser())
        root = project_root(Path(args.root).expanduser() if args.root else None)
        logger.info("nqinstall %s, project root %s", __version__, root)

        from .tui import launch_tui

        return launch_tui(root, settings)
    except (InstallerError, OSError) as exc:
        logger.exception("Installer aborted")
        print(f"Error: {exc} (details in {log_path})")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
