"""Backup and restore of partition contents around a repartition.

Backup:
    Before the table is rewritten every partition is mounted on a scratch
    directory and archived to <staging>/backup<device>.tar.gz. A partition
    whose archive cannot be written continues without a backup; its data will
    not survive a reformat.

Restore:
    After provisioning every partition backed up by this run is mounted again and
    the archive is unpacked, but only if the filesystem looks empty: fewer
    than ``max_entries`` entries in its root (a fresh ext4 has lost+found).
    A partition that kept its data through an in-place resize is therefore
    left untouched. Restore problems are logged and never stop the run.

Archives are left in the staging directory afterwards.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from system_update.domain.models import BackupRecord, Layout
from system_update.logging import LoggerFactory

from .exceptions import UnmountFailedError
from .interfaces import Archiver, Mounter


log = LoggerFactory.for_backup()

DEFAULT_STAGING_DIR = Path("/tmp")
RESTORE_MAX_ENTRIES = 2


def count_root_entries(mountpoint: Path) -> int:
    """Number of entries directly below ``mountpoint``, the root itself excluded."""
    with os.scandir(mountpoint) as entries:
        return sum(1 for _ in entries)


def looks_empty(mountpoint: Path, max_entries: int = RESTORE_MAX_ENTRIES) -> bool:
    return count_root_entries(mountpoint) < max_entries


class DataPreserver:
    def __init__(
        self,
        *,
        mounter: Mounter,
        archiver: Archiver,
        staging_dir: Path = DEFAULT_STAGING_DIR,
        max_entries: int = RESTORE_MAX_ENTRIES,
    ):
        self.mounter = mounter
        self.archiver = archiver
        self.staging_dir = Path(staging_dir)
        self.max_entries = max_entries

    def record_for(self, device: str) -> BackupRecord:
        return BackupRecord.for_device(self.staging_dir, device)

    @contextmanager
    def _scratch_mountpoint(self) -> Iterator[Path]:
        mountpoint = Path(tempfile.mkdtemp(prefix="prepare-disk-"))
        try:
            yield mountpoint
        finally:
            # rmdir only: the directory may still hold a mounted filesystem
            try:
                mountpoint.rmdir()
            except OSError as error:
                log.warning(f"Unable to remove scratch mountpoint {mountpoint}: {error}")

    def _release(self, device: str) -> None:
        if self.mounter.is_mounted(device):
            log.info(f"Unmounting {device}")
            self.mounter.unmount(device)

    def backup_data(self, current: Layout) -> list[BackupRecord]:
        """Archive every mountable partition of ``current``.

        Raises:
            UnmountFailedError: If a partition cannot be released; the table
                must not be rewritten under a mounted filesystem
        """
        records = []
        with self._scratch_mountpoint() as mountpoint:
            for partition in current:
                record = self._backup_partition(partition.device_id, mountpoint)
                if record is not None:
                    records.append(record)
        log.info(f"Backed up {len(records)} partition(s)")
        return records

    def _backup_partition(self, device: str, mountpoint: Path) -> Optional[BackupRecord]:
        if not self.mounter.is_block_device(device):
            log.debug(f"{device} is not a block device, nothing to back up")
            return None

        self._release(device)

        if not self.mounter.mount(device, mountpoint):
            log.info(f"{device} cannot be mounted, nothing to back up")
            return None

        record = self.record_for(device)
        try:
            log.info(f"Backing up {device} as {record.archive}")
            try:
                record.archive.parent.mkdir(parents=True, exist_ok=True)
                archived = self.archiver.create(mountpoint, record.archive)
            except OSError as error:
                log.warning(f"Unable to write {record.archive}: {error}")
                archived = False
            if not archived:
                log.warning(
                    f"Backup of {device} failed, removing backup. Partition will be empty."
                )
                record.archive.unlink(missing_ok=True)
                return None
        finally:
            self.mounter.unmount(device)
        return record

    def restore_data(
        self, current: Layout, records: Iterable[BackupRecord]
    ) -> list[BackupRecord]:
        """Unpack this run's backups into partitions of ``current`` that look empty.

        Archives left in the staging directory by an earlier run are ignored.

        Args:
            current: Layout after repartitioning
            records: Backups taken by backup_data during this run

        Returns:
            The records that were restored
        """
        by_device = {record.device: record for record in records}
        restored = []
        with self._scratch_mountpoint() as mountpoint:
            for partition in current:
                record = by_device.get(partition.device_id)
                if record is None or not record.archive.is_file():
                    continue
                if self._restore_partition(record, mountpoint):
                    restored.append(record)
        log.info(f"Restored {len(restored)} partition(s)")
        return restored

    def _restore_partition(self, record: BackupRecord, mountpoint: Path) -> bool:
        device = record.device
        if not self.mounter.is_block_device(device):
            log.warning(f"{device} disappeared, cannot restore {record.archive}")
            return False

        try:
            self._release(device)
        except UnmountFailedError as error:
            log.warning(f"Cannot restore {record.archive}: {error}")
            return False

        if not self.mounter.mount(device, mountpoint):
            log.warning(f"Cannot mount {device}, backup {record.archive} not restored")
            return False

        restored = False
        try:
            if not looks_empty(mountpoint, self.max_entries):
                log.info(f"{device} is not empty, keeping its data instead of {record.archive}")
            else:
                log.info(f"Restoring backup {record.archive} to {device}")
                restored = self.archiver.extract(record.archive, mountpoint)
                if not restored:
                    log.warning(f"Restoring backup '{record.archive}' to '{device}' failed.")
        except OSError as error:
            log.warning(f"Restoring backup '{record.archive}' to '{device}' failed: {error}")
            restored = False
        finally:
            try:
                self.mounter.unmount(device)
            except UnmountFailedError as error:
                log.warning(str(error))
        return restored
