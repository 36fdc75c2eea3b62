"""Safety validation of a desired layout before anything is written.

All validation functions raise specific exceptions from the exceptions module
rather than returning boolean values, making error handling more explicit.

Example:
    from system_update.storage.validation import validate_layout

    try:
        validate_layout(desired, disk_sectors)
        # Safe to repartition
    except LayoutError:
        # Refuse to touch the device
        raise
"""
from __future__ import annotations

from system_update.domain.models import BOOT_START, SECTORS_PER_BLOCK, Layout

from .exceptions import (
    AmbiguousBootPartitionError,
    EmptyLayoutError,
    NoBootPartitionError,
    PartitionOutOfBoundsError,
)


def disk_sectors_from_blocks(blocks: int) -> int:
    """Convert a 1 KiB block count (sfdisk --show-size) to 512 byte sectors."""
    return blocks * SECTORS_PER_BLOCK


def validate_partitions_fit(desired: Layout, disk_sectors: int) -> None:
    """Validate that every desired partition ends within the disk.

    Raises:
        PartitionOutOfBoundsError: For the first partition ending past the disk
    """
    for entry in desired:
        if entry.end_sector > disk_sectors:
            raise PartitionOutOfBoundsError(entry, disk_sectors)


def validate_boot_partition(desired: Layout, boot_start: int = BOOT_START) -> None:
    """Validate that exactly one desired partition starts at ``boot_start``.

    Raises:
        NoBootPartitionError: If no partition starts there
        AmbiguousBootPartitionError: If more than one does
    """
    boot_entries = [entry for entry in desired if entry.is_boot(boot_start)]
    if not boot_entries:
        raise NoBootPartitionError(boot_start)
    if len(boot_entries) > 1:
        raise AmbiguousBootPartitionError(
            boot_start, [entry.device_id for entry in boot_entries]
        )


def validate_layout(
    desired: Layout, disk_sectors: int, boot_start: int = BOOT_START
) -> None:
    """Run every layout check; the device must not be written when this raises.

    Raises:
        EmptyLayoutError: If the desired table has no partitions
        PartitionOutOfBoundsError: If a partition ends beyond the disk
        NoBootPartitionError: If no partition starts at ``boot_start``
        AmbiguousBootPartitionError: If several partitions start at ``boot_start``
    """
    if not desired:
        raise EmptyLayoutError(desired.origin or None)
    validate_partitions_fit(desired, disk_sectors)
    validate_boot_partition(desired, boot_start)
