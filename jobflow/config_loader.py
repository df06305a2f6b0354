"""Load and validate the YAML configuration file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from jobflow.store import LEGACY_KEYS, V1_BACKUP_KEY


@dataclass
class MigrationSettings:
    legacy_keys: list[str] = field(default_factory=lambda: list(LEGACY_KEYS))
    backup_key: str = V1_BACKUP_KEY


@dataclass
class Config:
    store_path: Path = Path("data/storage.json")
    log_dir: Path = Path("data")
    migration: MigrationSettings = field(default_factory=MigrationSettings)


def load_config(config_path: Path, required: bool = True) -> Config:
    """Load config.yaml and .env, validate fields, return Config.

    ``JOBFLOW_STORE_PATH`` in the environment overrides ``store.path``.
    """
    load_dotenv()

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    elif required:
        raise FileNotFoundError(
            f"Config not found: {config_path}\n"
            "Copy config.example.yaml to config.yaml and adjust the store path."
        )
    else:
        raw = {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config {config_path} must be a mapping at the top level")

    store = raw.get("store", {}) or {}
    logging_cfg = raw.get("logging", {}) or {}
    mig = raw.get("migration", {}) or {}

    legacy_keys = mig.get("legacy_keys", list(LEGACY_KEYS))
    if not isinstance(legacy_keys, list) or not all(isinstance(k, str) and k for k in legacy_keys):
        raise ValueError("migration.legacy_keys must be a list of non-empty strings")

    backup_key = mig.get("backup_key", V1_BACKUP_KEY)
    if not isinstance(backup_key, str) or not backup_key:
        raise ValueError("migration.backup_key must be a non-empty string")

    store_path = os.getenv("JOBFLOW_STORE_PATH") or store.get("path", "data/storage.json")

    return Config(
        store_path=Path(store_path),
        log_dir=Path(logging_cfg.get("dir", "data")),
        migration=MigrationSettings(legacy_keys=legacy_keys, backup_key=backup_key),
    )
