#!/usr/bin/env python3
"""JobFlow storage maintenance.

Usage:
    python main.py migrate                  # Bring the store up to the current schema
    python main.py detect                   # Report which data generation is stored
    python main.py export backup.json       # Write a backup file
    python main.py import backup.json       # Merge a backup file into the store
    python main.py --store other.json migrate
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from jobflow.backup import BackupFormatError, create_backup_data, import_backup, parse_backup
from jobflow.config_loader import load_config
from jobflow.migration import detect_data_version, run_migration_if_needed
from jobflow.models import MigrationState
from jobflow.store import JsonFileStore, StoreError
from jobflow.utils import setup_logging

logger = logging.getLogger("jobflow")


async def run_migrate(store: JsonFileStore, legacy_keys: list[str], backup_key: str) -> None:
    report = await run_migration_if_needed(
        store, legacy_keys=legacy_keys, backup_key=backup_key
    )
    if report.state == MigrationState.UP_TO_DATE:
        print(f"  Schema version {report.from_version} is current. Nothing to do.")
        return

    print(f"\n{'=' * 40}")
    print(f"  Migration Complete")
    print(f"{'=' * 40}")
    print(f"  Version:     {report.from_version} -> {report.to_version}")
    print(f"  Legacy key:  {report.legacy_key or '-'}")
    print(f"  Inserted:    {report.inserted_count}")
    print(f"  Skipped:     {report.skipped_count}")
    print(f"  Connections: {report.connections_backfilled}")
    print(f"{'=' * 40}\n")


async def run_detect(store: JsonFileStore, legacy_keys: list[str]) -> None:
    version = await detect_data_version(store, legacy_keys)
    print(version.value)


async def run_export(store: JsonFileStore, out_path: Path) -> None:
    data = await create_backup_data(store)
    out_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info(
        "Exported %d postings and %d connections to %s",
        len(data["postings"]), len(data["connections"]), out_path,
    )


async def run_import(store: JsonFileStore, in_path: Path) -> bool:
    data = parse_backup(in_path.read_text(encoding="utf-8"))
    result = await import_backup(store, data)
    for error in result.errors:
        logger.warning(error)
    print(f"  Postings: {result.postings}  Connections: {result.connections}  Skipped: {result.skipped}")
    return result.success


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="JobFlow storage migration and backup tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Run 'migrate' once after upgrading, before anything else reads the store.",
    )
    parser.add_argument(
        "command",
        choices=["migrate", "detect", "export", "import"],
        help="Operation to run.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        help="Backup file for export/import.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: config.yaml if present).",
    )
    parser.add_argument(
        "--store",
        type=str,
        default=None,
        help="Path to the JSON store file (overrides config).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    config_path = Path(args.config or "config.yaml")
    config = load_config(config_path, required=args.config is not None)
    setup_logging(verbose=args.verbose, log_dir=config.log_dir)

    store = JsonFileStore(args.store or config.store_path)
    legacy_keys = config.migration.legacy_keys

    if args.command in ("export", "import") and not args.path:
        logger.error("The %s command needs a backup file path.", args.command)
        return 2

    try:
        if args.command == "migrate":
            asyncio.run(run_migrate(store, legacy_keys, config.migration.backup_key))
        elif args.command == "detect":
            asyncio.run(run_detect(store, legacy_keys))
        elif args.command == "export":
            asyncio.run(run_export(store, Path(args.path)))
        else:
            if not asyncio.run(run_import(store, Path(args.path))):
                return 1
    except (StoreError, BackupFormatError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
