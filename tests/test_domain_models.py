"""Tests for domain/models.py."""

from pathlib import Path

import pytest

from system_update.domain.models import (
    BackupRecord,
    Layout,
    LayoutSource,
    PartitionEntry,
)


class TestPartitionEntry:
    def test_end_sector(self):
        assert PartitionEntry("p1", 2048, 524288).end_sector == 526336

    def test_is_boot(self):
        assert PartitionEntry("p1", 2048, 10).is_boot()
        assert not PartitionEntry("p2", 4096, 10).is_boot()
        assert PartitionEntry("p2", 4096, 10).is_boot(boot_start=4096)

    def test_same_slot_ignores_device_and_size(self):
        assert PartitionEntry("/dev/sda1", 2048, 10).same_slot(PartitionEntry("p1", 2048, 99))

    def test_same_geometry(self):
        a = PartitionEntry("/dev/sda1", 2048, 10, "boot")
        assert a.same_geometry(PartitionEntry("p1", 2048, 10))
        assert not a.same_geometry(PartitionEntry("p1", 2048, 11))

    def test_immutable(self):
        entry = PartitionEntry("p1", 2048, 10)
        with pytest.raises(AttributeError):
            entry.size_sectors = 20


class TestLayout:
    def test_lookup(self):
        boot = PartitionEntry("p1", 2048, 10)
        data = PartitionEntry("p2", 4096, 10)
        layout = Layout((boot, data), LayoutSource.DESIRED)

        assert list(layout) == [boot, data]
        assert layout.find_by_device("p2") == data
        assert layout.find_slot(PartitionEntry("/dev/sda1", 2048, 99)) == boot
        assert layout.find_by_device("p3") is None
        assert layout.find_slot(PartitionEntry("/dev/sda1", 1, 10)) is None


class TestBackupRecord:
    def test_archive_path_embeds_device_path(self):
        record = BackupRecord.for_device(Path("/tmp"), "/dev/mmcblk2p1")
        assert record.archive == Path("/tmp/backup/dev/mmcblk2p1.tar.gz")
        assert record.device == "/dev/mmcblk2p1"
