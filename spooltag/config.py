"""Reader configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_CATALOG_PRIMARY_URL = (
    "https://gitee.com/JackMoHeiHei/BambuRfidReader/raw/master/"
    "app/src/main/assets/filaments_color_codes.json"
)
DEFAULT_CATALOG_BACKUP_URL = (
    "https://raw.githubusercontent.com/m0h31h31/BambuRfidReader/refs/heads/master/"
    "app/src/main/assets/filaments_color_codes.json"
)


@dataclass
class ReaderConfig:
    # Transport stability (total auth attempts = 1 + retries)
    auth_retry_count: int = 2
    read_block_retry_count: int = 1
    inter_block_delay_ms: int = 0  # 5-10 helps on slow readers

    # Sector policy
    read_all_sectors: bool = False
    read_trailer: bool = True

    # Inventory
    default_remaining_percent: float = 100.0
    inventory_file_path: str = "data/inventory.json"

    # Catalog
    catalog_file_path: str = "data/filaments_color_codes.json"
    catalog_language: str = "en"
    catalog_primary_url: str = DEFAULT_CATALOG_PRIMARY_URL
    catalog_backup_url: str = DEFAULT_CATALOG_BACKUP_URL

    # Where full-tag dumps and key files are written (empty = disabled).
    # Dumps follow full reads; key files are written on any read when save_keys is set.
    dump_dir: str = ""
    save_keys: bool = False

    # Logging
    log_level: str = "INFO"


def _env(key: str, default: str) -> str:
    val = os.environ.get(key)
    if val is not None:
        return val
    return default


def _env_bool(key: str, default: bool) -> bool:
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int) -> int:
    val = os.environ.get(key)
    if val is None:
        return default
    return int(val)


def _env_float(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    return float(val)


def load_config() -> ReaderConfig:
    return ReaderConfig(
        auth_retry_count=_env_int("SPOOLTAG_AUTH_RETRY_COUNT", 2),
        read_block_retry_count=_env_int("SPOOLTAG_READ_BLOCK_RETRY_COUNT", 1),
        inter_block_delay_ms=_env_int("SPOOLTAG_INTER_BLOCK_DELAY_MS", 0),
        read_all_sectors=_env_bool("SPOOLTAG_READ_ALL_SECTORS", False),
        read_trailer=_env_bool("SPOOLTAG_READ_TRAILER", True),
        default_remaining_percent=_env_float("SPOOLTAG_DEFAULT_REMAINING_PERCENT", 100.0),
        inventory_file_path=_env("SPOOLTAG_INVENTORY_FILE_PATH", "data/inventory.json"),
        catalog_file_path=_env("SPOOLTAG_CATALOG_FILE_PATH", "data/filaments_color_codes.json"),
        catalog_language=_env("SPOOLTAG_CATALOG_LANGUAGE", "en"),
        catalog_primary_url=_env("SPOOLTAG_CATALOG_PRIMARY_URL", DEFAULT_CATALOG_PRIMARY_URL),
        catalog_backup_url=_env("SPOOLTAG_CATALOG_BACKUP_URL", DEFAULT_CATALOG_BACKUP_URL),
        dump_dir=_env("SPOOLTAG_DUMP_DIR", ""),
        save_keys=_env_bool("SPOOLTAG_SAVE_KEYS", False),
        log_level=_env("SPOOLTAG_LOG_LEVEL", "INFO"),
    )
