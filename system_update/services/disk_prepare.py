"""Disk preparation pipeline.

Brings the target device to the desired partition layout while keeping the
data on it:

    1. verify the desired table checksum
    2. compare the live table with the desired one, stop if they match
    3. validate the desired table against the disk size and boot convention
    4. back up every partition
    5. write the new table and wait for the kernel to re-read it
    6. resize or format the filesystem of every partition
    7. restore backups into partitions that ended up empty

Every step finishes before the next one starts. A StorageError raised by any
step ends the run; steps 4 and 7 only log per-partition problems.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from system_update.config.settings import PrepareSettings
from system_update.domain.models import BackupRecord, Layout, ProvisionResult
from system_update.logging import LoggerFactory
from system_update.storage.archive import TarArchiver
from system_update.storage.checksum import verify_table_checksum
from system_update.storage.exceptions import DeviceNotFoundError, PartitionTableReadError
from system_update.storage.filesystems import (
    BlkidProbe,
    FilesystemResizeTool,
    FsckChecker,
    MkfsFormatter,
)
from system_update.storage.interfaces import (
    Archiver,
    FilesystemChecker,
    FilesystemFormatter,
    FilesystemProbe,
    FilesystemResizer,
    Mounter,
    PartitionTableReader,
    PartitionTableWriter,
)
from system_update.storage.mount import SystemMounter
from system_update.storage.partition_table import (
    SfdiskPartitionTable,
    read_current_layout,
    read_desired_layout,
)
from system_update.storage.preserve import DataPreserver
from system_update.storage.provision import FilesystemProvisioner
from system_update.storage.repartition import Repartitioner
from system_update.storage.resize_decision import needs_resize
from system_update.storage.validation import disk_sectors_from_blocks, validate_layout


log = LoggerFactory.for_disk()


@dataclass
class DiskTools:
    """The external tools the pipeline works through."""

    table_reader: PartitionTableReader
    table_writer: PartitionTableWriter
    probe: FilesystemProbe
    checker: FilesystemChecker
    resizer: FilesystemResizer
    formatter: FilesystemFormatter
    mounter: Mounter
    archiver: Archiver

    @classmethod
    def system(cls) -> DiskTools:
        """Tools backed by sfdisk, blkid, fsck, mkfs, mount and tar."""
        sfdisk = SfdiskPartitionTable()
        return cls(
            table_reader=sfdisk,
            table_writer=sfdisk,
            probe=BlkidProbe(),
            checker=FsckChecker(),
            resizer=FilesystemResizeTool(),
            formatter=MkfsFormatter(),
            mounter=SystemMounter(),
            archiver=TarArchiver(),
        )


@dataclass
class PrepareReport:
    resize_needed: bool
    backups: list[BackupRecord] = field(default_factory=list)
    provisioned: list[ProvisionResult] = field(default_factory=list)
    restored: list[BackupRecord] = field(default_factory=list)


class DiskPreparer:
    def __init__(
        self,
        settings: PrepareSettings,
        tools: DiskTools,
        *,
        verify_checksum: Callable[[Path, Path], None] = verify_table_checksum,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.tools = tools
        self.verify_checksum = verify_checksum
        self.repartitioner = Repartitioner(
            tools.table_writer,
            rescan_attempts=settings.rescan_attempts,
            rescan_delay=settings.rescan_delay,
            sleep=sleep,
        )
        self.provisioner = FilesystemProvisioner(
            probe=tools.probe,
            checker=tools.checker,
            resizer=tools.resizer,
            formatter=tools.formatter,
            mounter=tools.mounter,
            boot_start=settings.boot_start,
        )
        self.preserver = DataPreserver(
            mounter=tools.mounter,
            archiver=tools.archiver,
            staging_dir=settings.staging_dir,
            max_entries=settings.restore_max_entries,
        )

    @property
    def device(self) -> str:
        return self.settings.target_device

    def _read_current_layout(self) -> Optional[Layout]:
        try:
            return read_current_layout(self.tools.table_reader, self.device)
        except PartitionTableReadError as error:
            log.warning(str(error))
            return None

    def _ensure_device_present(self) -> None:
        if not self.tools.mounter.is_block_device(self.device):
            raise DeviceNotFoundError(self.device, "disappeared during the update")

    def run(self) -> PrepareReport:
        """Run the whole pipeline.

        Raises:
            StorageError: On any fatal precondition, validation, repartition
                or provisioning failure
        """
        settings = self.settings
        self.verify_checksum(settings.table_path, settings.checksum_path)

        desired = read_desired_layout(settings.table_path)
        current = self._read_current_layout()

        if not needs_resize(current, desired):
            log.info("Partition resize not required.")
            return PrepareReport(resize_needed=False)

        disk_sectors = disk_sectors_from_blocks(
            self.tools.table_reader.disk_size_blocks(self.device)
        )
        validate_layout(desired, disk_sectors, settings.boot_start)
        log.info(
            f"Desired layout of {len(desired)} partition(s) fits {self.device} "
            f"({disk_sectors} sectors)"
        )

        backups = self.preserver.backup_data(current) if current else []
        if not backups:
            log.warning(f"No partition of {self.device} was backed up")

        self._ensure_device_present()
        table_text = settings.table_path.read_text(encoding="utf-8")
        self.repartitioner.apply(self.device, table_text)

        self._ensure_device_present()
        repartitioned = read_current_layout(self.tools.table_reader, self.device)
        provisioned = self.provisioner.provision_all(repartitioned, desired)

        restored = self.preserver.restore_data(repartitioned, backups)

        return PrepareReport(
            resize_needed=True,
            backups=backups,
            provisioned=provisioned,
            restored=restored,
        )
