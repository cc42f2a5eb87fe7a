"""Utility for initializing the Inventra snapshot store.

The module doubles as a script (``inventra-setup``) and as a library used by
tests or other tooling. It writes an empty, version-zero snapshot holding the
configured locations so that the first CLI command finds a workbook on disk.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import core_logic, data_manager, log

CONFIG_FILE = "config.ini"


def initialize_store(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the snapshot workbook described by ``config_path``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if a snapshot already exists under the configured key.

    Returns:
        Path: Location of the written workbook.
    """

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    gateway = data_manager.WorkbookGateway(settings.data_dir)

    destination = gateway.path_for(settings.snapshot_key)
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing snapshot: {destination}")

    snapshot = core_logic.bootstrap_snapshot(settings.locations)
    gateway.save(settings.snapshot_key, snapshot)
    log.info("Initialized snapshot store at '%s' with %d locations", destination, len(snapshot.locations))
    return destination


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Inventra snapshot store")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the stored snapshot if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Inventra Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = initialize_store(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing snapshot if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write snapshot: {exc}")
        return 1

    print(f"\n[SUCCESS] Created snapshot store at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
