"""Configuration for a disk preparation run.

Values come from the same environment variables the update session exports
and can be overridden from the command line. The result is validated once,
before the engine is constructed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from system_update.domain.models import BOOT_START
from system_update.storage.exceptions import (
    DeviceNotFoundError,
    PreconditionError,
    TableFileMissingError,
)
from system_update.storage.mount import is_block_device


# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_SYSCONFDIR = "/etc"
DEFAULT_CONF_SUBDIR = "jedi_system_update"
DEFAULT_PARTITION_TABLE_FILE = "jedi_emmc_sfdisk.table"
DEFAULT_STAGING_DIR = "/tmp"
DEFAULT_RESCAN_ATTEMPTS = 10
DEFAULT_RESCAN_DELAY = 1.0
DEFAULT_RESTORE_MAX_ENTRIES = 2
CHECKSUM_SUFFIX = ".sha512"


@dataclass(frozen=True)
class PrepareSettings:
    target_device: str
    table_path: Path
    checksum_path: Path
    boot_start: int = BOOT_START
    staging_dir: Path = Path(DEFAULT_STAGING_DIR)
    rescan_attempts: int = DEFAULT_RESCAN_ATTEMPTS
    rescan_delay: float = DEFAULT_RESCAN_DELAY
    restore_max_entries: int = DEFAULT_RESTORE_MAX_ENTRIES

    @classmethod
    def from_environment(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        target_device: Optional[str] = None,
        table_file: Optional[str] = None,
        conf_dir: Optional[str] = None,
        staging_dir: Optional[str] = None,
    ) -> PrepareSettings:
        """Build settings from environment variables, keyword arguments win.

        A relative table file is looked up in the system update conf dir.
        """
        env = os.environ if env is None else env

        sysconfdir = env.get("SYSCONFDIR") or DEFAULT_SYSCONFDIR
        conf = Path(
            conf_dir
            or env.get("SYSTEM_UPDATE_CONF_DIR")
            or os.path.join(sysconfdir, DEFAULT_CONF_SUBDIR)
        )
        table = Path(
            table_file or env.get("PARTITION_TABLE_FILE") or DEFAULT_PARTITION_TABLE_FILE
        )
        if not table.is_absolute():
            table = conf / table

        return cls(
            target_device=target_device or env.get("TARGET_STORAGE_DEVICE", ""),
            table_path=table,
            checksum_path=table.with_name(table.name + CHECKSUM_SUFFIX),
            staging_dir=Path(
                staging_dir or env.get("SYSTEM_UPDATE_STAGING_DIR") or DEFAULT_STAGING_DIR
            ),
        )

    def validate(self, block_device_check: Optional[Callable[[str], bool]] = None) -> None:
        """Check the run preconditions; nothing has been touched when this raises.

        Raises:
            PreconditionError: If no target device is given
            ValueError: If a tuning value is out of range
            TableFileMissingError: If the table or checksum file does not exist
            DeviceNotFoundError: If the target is not a block device
        """
        if not self.target_device:
            raise PreconditionError("Missing mandatory argument <TARGET_STORAGE_DEVICE>.")
        if self.rescan_attempts < 1:
            raise ValueError(f"rescan_attempts must be at least 1, got {self.rescan_attempts}")
        if self.restore_max_entries < 1:
            raise ValueError(
                f"restore_max_entries must be at least 1, got {self.restore_max_entries}"
            )
        if not self.table_path.is_file():
            raise TableFileMissingError(str(self.table_path))
        if not self.checksum_path.is_file():
            raise TableFileMissingError(
                str(self.checksum_path), kind="Partition table checksum file"
            )
        check = block_device_check or is_block_device
        if not check(self.target_device):
            raise DeviceNotFoundError(self.target_device)
