"""Domain model for partition layouts, backups and provisioning outcomes.

Layouts are immutable snapshots: one read live from the device, one read from
the desired partition table file. Entries of both are joined by start sector.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional


BOOT_START = 2048
SECTOR_SIZE = 512
# sfdisk --show-size reports 1 KiB blocks
SECTORS_PER_BLOCK = 1024 // SECTOR_SIZE


# ==============================================================================
# Partition Table Domain
# ==============================================================================


@dataclass(frozen=True)
class PartitionEntry:
    """One row of a partition table.

    device_id is the partition device node when read from the disk, or the
    slot name used in the desired table file.
    """

    device_id: str
    start_sector: int
    size_sectors: int
    label: Optional[str] = None

    @property
    def end_sector(self) -> int:
        """First sector after the partition."""
        return self.start_sector + self.size_sectors

    def is_boot(self, boot_start: int = BOOT_START) -> bool:
        return self.start_sector == boot_start

    def same_slot(self, other: PartitionEntry) -> bool:
        """Entries of different layouts describe the same slot when they start together."""
        return self.start_sector == other.start_sector

    def same_geometry(self, other: PartitionEntry) -> bool:
        return (
            self.start_sector == other.start_sector
            and self.size_sectors == other.size_sectors
        )


class LayoutSource(Enum):
    CURRENT = "current"
    DESIRED = "desired"


@dataclass(frozen=True)
class Layout:
    """Ordered, read-only sequence of partition entries."""

    entries: tuple[PartitionEntry, ...]
    source: LayoutSource
    origin: str = ""  # device path or table file

    def __iter__(self) -> Iterator[PartitionEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def find_by_device(self, device_id: str) -> Optional[PartitionEntry]:
        for entry in self.entries:
            if entry.device_id == device_id:
                return entry
        return None

    def find_slot(self, other: PartitionEntry) -> Optional[PartitionEntry]:
        """Entry of this layout occupying the same slot as ``other`` from another layout."""
        for entry in self.entries:
            if entry.same_slot(other):
                return entry
        return None


# ==============================================================================
# Backup Domain
# ==============================================================================


@dataclass(frozen=True)
class BackupRecord:
    """Compressed archive holding the contents of one partition."""

    device: str
    archive: Path

    @classmethod
    def for_device(cls, staging_dir: Path, device: str) -> BackupRecord:
        """Deterministic archive path, e.g. /tmp/backup/dev/mmcblk2p1.tar.gz."""
        return cls(device=device, archive=Path(f"{staging_dir}/backup{device}.tar.gz"))


# ==============================================================================
# Provisioning Domain
# ==============================================================================


class ProvisionAction(Enum):
    FORMAT = "format"
    RESIZE = "resize"
    FALLBACK_FORMAT = "fallback-format"


@dataclass(frozen=True)
class FilesystemProfile:
    """Tool policy for one filesystem type."""

    fstype: str
    fsck_command: tuple[str, ...]
    fsck_ok_max: int
    resize_command: tuple[str, ...]

    def fsck_acceptable(self, returncode: int) -> bool:
        return 0 <= returncode <= self.fsck_ok_max


@dataclass(frozen=True)
class ProvisionResult:
    device: str
    label: str
    action: ProvisionAction
    fstype: str
