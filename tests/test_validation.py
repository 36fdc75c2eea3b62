"""Tests for storage/validation.py - desired layout safety checks.

This test suite covers:
- Disk capacity check, including the exact boundary
- Boot partition presence and uniqueness
- Check ordering (capacity before boot)
- Block to sector conversion
"""

import pytest

from system_update.domain.models import Layout, LayoutSource, PartitionEntry
from system_update.storage.exceptions import (
    AmbiguousBootPartitionError,
    EmptyLayoutError,
    LayoutError,
    NoBootPartitionError,
    PartitionOutOfBoundsError,
)
from system_update.storage.validation import (
    disk_sectors_from_blocks,
    validate_boot_partition,
    validate_layout,
    validate_partitions_fit,
)


def layout(*entries):
    return Layout(entries=tuple(entries), source=LayoutSource.DESIRED, origin="test.table")


BOOT = PartitionEntry("p1", 2048, 524288, "boot")
DATA = PartitionEntry("p2", 526336, 8388608, "data")
DISK_END = DATA.end_sector


class TestDiskSectorsFromBlocks:
    def test_blocks_are_two_sectors(self):
        assert disk_sectors_from_blocks(7634944) == 15269888

    def test_zero(self):
        assert disk_sectors_from_blocks(0) == 0


class TestValidatePartitionsFit:
    def test_partition_ending_at_disk_end_fits(self):
        validate_partitions_fit(layout(BOOT, DATA), DISK_END)

    def test_partition_one_sector_too_large(self):
        """Test that one sector beyond capacity is rejected."""
        with pytest.raises(PartitionOutOfBoundsError) as exc_info:
            validate_partitions_fit(layout(BOOT, DATA), DISK_END - 1)

        assert exc_info.value.entry == DATA
        assert exc_info.value.disk_sectors == DISK_END - 1
        assert "beyond the size of the disk" in str(exc_info.value)


class TestValidateBootPartition:
    def test_boot_partition_present(self):
        validate_boot_partition(layout(BOOT, DATA))

    def test_no_boot_partition(self):
        with pytest.raises(NoBootPartitionError):
            validate_boot_partition(layout(DATA))

    def test_custom_boot_start(self):
        validate_boot_partition(layout(DATA), boot_start=526336)

    def test_two_boot_partitions(self):
        twin = PartitionEntry("p3", 2048, 1024, "boot2")
        with pytest.raises(AmbiguousBootPartitionError) as exc_info:
            validate_boot_partition(layout(BOOT, twin))
        assert exc_info.value.device_ids == ["p1", "p3"]


class TestValidateLayout:
    def test_valid_layout(self):
        validate_layout(layout(BOOT, DATA), DISK_END)

    def test_empty_layout(self):
        with pytest.raises(EmptyLayoutError, match="test.table"):
            validate_layout(layout(), DISK_END)

    def test_capacity_checked_before_boot(self):
        """Test that capacity violations are reported even without a boot partition."""
        with pytest.raises(PartitionOutOfBoundsError):
            validate_layout(layout(DATA), DISK_END - 1)

    def test_missing_boot(self):
        with pytest.raises(NoBootPartitionError):
            validate_layout(layout(DATA), DISK_END)

    def test_errors_are_layout_errors(self):
        with pytest.raises(LayoutError):
            validate_layout(layout(DATA), DISK_END)
