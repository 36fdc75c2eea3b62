"""Custom exceptions for disk preparation.

This module defines a hierarchy of exceptions so that callers can tell fatal
precondition, validation, repartition and provisioning failures apart.

Exception Hierarchy:
    StorageError (base)
        ├── PreconditionError
        │   ├── DeviceNotFoundError
        │   ├── TableFileMissingError
        │   └── ChecksumMismatchError
        ├── LayoutError
        │   ├── PartitionOutOfBoundsError
        │   ├── NoBootPartitionError
        │   ├── AmbiguousBootPartitionError
        │   └── EmptyLayoutError
        ├── RepartitionError
        │   ├── PartitionTableReadError
        │   ├── PartitionTableWriteError
        │   └── RescanRetriesExhaustedError
        ├── ProvisioningError
        │   ├── PartitionNodeMissingError
        │   ├── EmptyLabelError
        │   └── FormatOperationError
        └── MountError
            └── UnmountFailedError

Every StorageError that escapes the pipeline is fatal for the run. Per-partition
backup and restore problems are logged by the data preserver and never raised.

Usage:
    from system_update.storage.exceptions import NoBootPartitionError

    if not boot_entries:
        raise NoBootPartitionError(boot_start)
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from system_update.domain.models import PartitionEntry


class StorageError(Exception):
    """Base exception for all disk preparation errors."""


class PreconditionError(StorageError):
    """Base exception for inputs that are unusable before anything is touched."""


class DeviceNotFoundError(PreconditionError):
    """Target device is missing or is not a block device."""

    def __init__(self, device_name: str, reason: str = "does not exist"):
        self.device_name = device_name
        self.reason = reason
        super().__init__(f"Block device '{device_name}' {reason}")


class TableFileMissingError(PreconditionError):
    """Desired partition table or its checksum file is missing."""

    def __init__(self, path: str, kind: str = "Partition table file"):
        self.path = path
        self.kind = kind
        super().__init__(f"{kind} '{path}' does not exist")


class ChecksumMismatchError(PreconditionError):
    """Desired partition table failed checksum verification."""

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        msg = f"Partition table file '{path}' failed checksum verification"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class LayoutError(StorageError):
    """Base exception for a desired layout that cannot be applied."""


class PartitionOutOfBoundsError(LayoutError):
    """A desired partition ends beyond the end of the disk."""

    def __init__(self, entry: PartitionEntry, disk_sectors: int):
        self.entry = entry
        self.disk_sectors = disk_sectors
        super().__init__(
            f"Partition '{entry.device_id}' is beyond the size of the disk "
            f"({entry.end_sector} > {disk_sectors})"
        )


class NoBootPartitionError(LayoutError):
    """No desired partition starts at the boot partition offset."""

    def __init__(self, boot_start: int):
        self.boot_start = boot_start
        super().__init__(f"No boot partition at sector {boot_start} available")


class AmbiguousBootPartitionError(LayoutError):
    """More than one desired partition starts at the boot partition offset."""

    def __init__(self, boot_start: int, device_ids: list[str]):
        self.boot_start = boot_start
        self.device_ids = device_ids
        super().__init__(
            f"Multiple partitions start at boot sector {boot_start}: "
            f"{', '.join(device_ids)}"
        )


class EmptyLayoutError(LayoutError):
    """Desired partition table contains no usable entries."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        where = f" in '{path}'" if path else ""
        super().__init__(f"No partition entries found{where}")


class RepartitionError(StorageError):
    """Base exception for partition table read/write failures."""


class PartitionTableReadError(RepartitionError):
    """The partition table or disk size of the device could not be read."""

    def __init__(self, device_name: str, detail: str = ""):
        self.device_name = device_name
        self.detail = detail
        msg = f"Unable to read partition table of {device_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PartitionTableWriteError(RepartitionError):
    """Writing the desired partition table to the device failed."""

    def __init__(self, device_name: str, detail: str = ""):
        self.device_name = device_name
        self.detail = detail
        msg = f"Unable to write partition table to {device_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class RescanRetriesExhaustedError(RepartitionError):
    """The kernel did not pick up the new partition table in time."""

    def __init__(self, device_name: str, attempts: int):
        self.device_name = device_name
        self.attempts = attempts
        super().__init__(
            f"Partition table re-read of {device_name} failed after {attempts} attempts"
        )


class ProvisioningError(StorageError):
    """Base exception for per-partition filesystem provisioning failures."""


class PartitionNodeMissingError(ProvisioningError):
    """Partition device node does not exist or is not a block device."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"'{device_name}' is not a block device, cannot continue")


class EmptyLabelError(ProvisioningError):
    """The desired table has no label for a partition that must be formatted."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"Partition label for {device_name} is empty")


class FormatOperationError(ProvisioningError):
    """Creating a filesystem failed."""

    def __init__(self, message: str, device: Optional[str] = None):
        self.device = device
        super().__init__(message)


class MountError(StorageError):
    """Base exception for mount-related errors."""


class UnmountFailedError(MountError):
    """Failed to unmount a partition."""

    def __init__(self, device_name: str, detail: str = ""):
        self.device_name = device_name
        self.detail = detail
        msg = f"Failed to unmount {device_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
