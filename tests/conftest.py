"""
Pytest configuration and shared fixtures for system-update-disk tests.

The engine talks to the device only through the tool interfaces in
system_update.storage.interfaces. The fakes below implement those interfaces
over an in-memory FakeStorage, so partition tables, filesystems, mounts and
archives can be exercised without block devices or root privileges.
"""

import json
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set
from unittest.mock import Mock

import pytest

from system_update import logging as logging_module
from system_update.config.settings import PrepareSettings
from system_update.domain.models import LayoutSource
from system_update.services.disk_prepare import DiskTools
from system_update.storage.exceptions import (
    FormatOperationError,
    PartitionTableReadError,
    PartitionTableWriteError,
    UnmountFailedError,
)
from system_update.storage.partition_table import parse_layout


DISK = "/dev/mmcblk0"

# 8 GiB eMMC in 1 KiB blocks
DISK_BLOCKS = 8 * 1024 * 1024

DESIRED_TABLE = """\
label: dos
unit: sectors

/dev/mmcblk0p1 : start=2048, size=524288, type=83, name=boot
/dev/mmcblk0p2 : start=526336, size=8388608, type=83, name=data
"""


# ==============================================================================
# Fake Storage
# ==============================================================================


@dataclass
class FakePartition:
    start: int
    size: int
    fstype: Optional[str] = None
    files: Dict[str, Optional[str]] = field(default_factory=dict)  # None = directory
    fsck_status: int = 0
    resize_ok: bool = True
    mountable: bool = True


class FakeStorage:
    """In-memory disk shared by all fake tools."""

    def __init__(self, disk: str = DISK, size_blocks: int = DISK_BLOCKS):
        self.disk = disk
        self.size_blocks = size_blocks
        self.partitions: Dict[str, FakePartition] = {}
        self.mounted: Dict[str, Path] = {}
        self.readable = True
        self.disk_present = True
        self.calls: List[tuple] = []

    def add_partition(self, number: int, start: int, size: int, **kwargs) -> FakePartition:
        partition = FakePartition(start=start, size=size, **kwargs)
        self.partitions[f"{self.disk}p{number}"] = partition
        return partition

    def node(self, number: int) -> str:
        return f"{self.disk}p{number}"

    def dump_text(self) -> str:
        lines = ["label: dos", "label-id: 0x1234abcd", f"device: {self.disk}", "unit: sectors", ""]
        for device, partition in self.partitions.items():
            lines.append(
                f"{device} : start= {partition.start}, size= {partition.size}, type=83"
            )
        return "\n".join(lines) + "\n"

    def apply_table(self, text: str) -> None:
        """Replace the table; partitions keep their filesystem when their start is unchanged."""
        by_start = {partition.start: partition for partition in self.partitions.values()}
        layout = parse_layout(text, LayoutSource.DESIRED)
        new_partitions = {}
        for number, entry in enumerate(layout, start=1):
            old = by_start.get(entry.start_sector)
            if old is not None:
                old.size = entry.size_sectors
                new_partitions[self.node(number)] = old
            else:
                new_partitions[self.node(number)] = FakePartition(
                    start=entry.start_sector, size=entry.size_sectors
                )
        self.partitions = new_partitions


class FakePartitionTable:
    """PartitionTableReader and PartitionTableWriter over FakeStorage."""

    def __init__(self, storage: FakeStorage, rescan_failures: int = 0, write_fails: bool = False):
        self.storage = storage
        self.rescan_failures = rescan_failures
        self.write_fails = write_fails
        self.writes: List[str] = []
        self.rescans = 0

    def dump(self, device: str) -> str:
        self.storage.calls.append(("dump", device))
        if not self.storage.readable:
            raise PartitionTableReadError(device, "unrecognised partition table type")
        return self.storage.dump_text()

    def disk_size_blocks(self, device: str) -> int:
        return self.storage.size_blocks

    def write(self, device: str, table_text: str) -> None:
        self.storage.calls.append(("write", device))
        if self.write_fails:
            raise PartitionTableWriteError(device, "Device or resource busy")
        self.writes.append(table_text)
        self.storage.apply_table(table_text)
        self.storage.readable = True

    def rescan(self, device: str) -> bool:
        self.rescans += 1
        self.storage.calls.append(("rescan", device))
        return self.rescans > self.rescan_failures


class FakeFilesystems:
    """FilesystemProbe, FilesystemChecker, FilesystemResizer and FilesystemFormatter."""

    def __init__(self, storage: FakeStorage, format_fails: bool = False):
        self.storage = storage
        self.format_fails = format_fails

    def fstype(self, partition: str) -> Optional[str]:
        return self.storage.partitions[partition].fstype

    def check(self, partition: str, fstype: str) -> int:
        self.storage.calls.append(("fsck", partition, fstype))
        return self.storage.partitions[partition].fsck_status

    def resize(self, partition: str, fstype: str) -> bool:
        self.storage.calls.append(("resize", partition, fstype))
        return self.storage.partitions[partition].resize_ok

    def format(self, partition: str, fstype: str, label: str) -> None:
        self.storage.calls.append(("mkfs", partition, fstype, label))
        if self.format_fails:
            raise FormatOperationError(f"Formatting {partition} failed", device=partition)
        target = self.storage.partitions[partition]
        target.fstype = fstype
        target.files = {"lost+found": None} if fstype == "ext4" else {}
        target.fsck_status = 0
        target.resize_ok = True


class FakeMounter:
    """Mounter copying partition files into and out of real mountpoints."""

    def __init__(self, storage: FakeStorage, missing_nodes: Optional[Set[str]] = None):
        self.storage = storage
        self.missing_nodes = missing_nodes or set()

    def is_block_device(self, path: str) -> bool:
        if path == self.storage.disk:
            return self.storage.disk_present
        return path in self.storage.partitions and path not in self.missing_nodes

    def is_mounted(self, device: str) -> bool:
        return device in self.storage.mounted

    def mount(self, device: str, mountpoint: Path) -> bool:
        self.storage.calls.append(("mount", device))
        partition = self.storage.partitions[device]
        if not partition.mountable or device in self.storage.mounted:
            return False
        for name, content in partition.files.items():
            if content is None:
                (mountpoint / name).mkdir()
            else:
                (mountpoint / name).write_text(content)
        self.storage.mounted[device] = mountpoint
        return True

    def unmount(self, device: str) -> None:
        self.storage.calls.append(("umount", device))
        mountpoint = self.storage.mounted.pop(device, None)
        if mountpoint is None:
            raise UnmountFailedError(device, "not mounted")
        if not mountpoint.is_dir():
            # mounted outside the engine, nothing to sync back
            return
        files: Dict[str, Optional[str]] = {}
        for entry in mountpoint.iterdir():
            if entry.is_dir():
                files[entry.name] = None
                shutil.rmtree(entry)
            else:
                files[entry.name] = entry.read_text()
                entry.unlink()
        self.storage.partitions[device].files = files


class FakeArchiver:
    """Archiver storing top-level entries as JSON."""

    def __init__(self, failing_archives: Optional[Set[str]] = None):
        self.failing_archives = failing_archives or set()
        self.created: List[Path] = []
        self.extracted: List[Path] = []

    def create(self, source_dir: Path, archive: Path) -> bool:
        if archive.name in self.failing_archives:
            archive.write_text("partial")
            return False
        entries = {
            entry.name: None if entry.is_dir() else entry.read_text()
            for entry in source_dir.iterdir()
        }
        archive.write_text(json.dumps(entries))
        self.created.append(archive)
        return True

    def extract(self, archive: Path, target_dir: Path) -> bool:
        entries = json.loads(archive.read_text())
        for name, content in entries.items():
            if content is None:
                (target_dir / name).mkdir(exist_ok=True)
            else:
                (target_dir / name).write_text(content)
        self.extracted.append(archive)
        return True


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def storage() -> FakeStorage:
    """A disk partitioned exactly like DESIRED_TABLE, both filesystems populated."""
    disk = FakeStorage()
    disk.add_partition(1, 2048, 524288, fstype="ext4", files={"lost+found": None, "uImage": "k"})
    disk.add_partition(2, 526336, 8388608, fstype="f2fs", files={"settings.json": "{}"})
    return disk


@pytest.fixture
def fake_table(storage) -> FakePartitionTable:
    return FakePartitionTable(storage)


@pytest.fixture
def fake_filesystems(storage) -> FakeFilesystems:
    return FakeFilesystems(storage)


@pytest.fixture
def fake_mounter(storage) -> FakeMounter:
    return FakeMounter(storage)


@pytest.fixture
def fake_archiver() -> FakeArchiver:
    return FakeArchiver()


@pytest.fixture
def fake_tools(fake_table, fake_filesystems, fake_mounter, fake_archiver) -> DiskTools:
    return DiskTools(
        table_reader=fake_table,
        table_writer=fake_table,
        probe=fake_filesystems,
        checker=fake_filesystems,
        resizer=fake_filesystems,
        formatter=fake_filesystems,
        mounter=fake_mounter,
        archiver=fake_archiver,
    )


@pytest.fixture
def table_file(tmp_path) -> Path:
    """Desired table with its checksum file in a conf dir."""
    conf_dir = tmp_path / "jedi_system_update"
    conf_dir.mkdir()
    table = conf_dir / "jedi_emmc_sfdisk.table"
    table.write_text(DESIRED_TABLE)
    (conf_dir / "jedi_emmc_sfdisk.table.sha512").write_text(
        "0" * 128 + "  jedi_emmc_sfdisk.table\n"
    )
    return table


@pytest.fixture
def settings(table_file, tmp_path) -> PrepareSettings:
    staging = tmp_path / "staging"
    staging.mkdir()
    return PrepareSettings(
        target_device=DISK,
        table_path=table_file,
        checksum_path=table_file.with_name(table_file.name + ".sha512"),
        staging_dir=staging,
        rescan_delay=0.0,
    )


@pytest.fixture
def completed_process():
    """Factory for subprocess.CompletedProcess results."""

    def make(returncode: int = 0, stdout: str = "", stderr: str = ""):
        return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)

    return make


@pytest.fixture
def mock_subprocess_run(mocker) -> Mock:
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")


@pytest.fixture
def log_records():
    """Capture loguru records emitted during a test."""
    records: list = []
    logging_module.logger.remove()
    handler_id = logging_module.logger.add(
        lambda message: records.append(message.record), level="TRACE"
    )
    yield records
    logging_module.logger.remove(handler_id)
