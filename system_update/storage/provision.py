"""Filesystem provisioning of the partitions created by the repartitioner.

Every physical partition of the re-read layout is joined to the desired table
by start sector to recover its label, then gets one of:

    format:           no filesystem signature, create ext4 on the boot slot
                      and f2fs everywhere else
    resize:           signature found, consistency check passed and the
                      filesystem was grown/shrunk to the new partition size
    fallback-format:  check rejected, resize failed or filesystem type
                      unknown, the partition is formatted fresh and its data
                      is gone (only a backup archive can bring it back)

A missing partition node or empty label aborts the whole run; a partition is
never formatted without knowing exactly which one it is.
"""

from __future__ import annotations

from typing import Optional

from system_update.domain.models import (
    BOOT_START,
    Layout,
    PartitionEntry,
    ProvisionAction,
    ProvisionResult,
)
from system_update.logging import LoggerFactory

from .exceptions import EmptyLabelError, PartitionNodeMissingError
from .filesystems import BOOT_FSTYPE, DATA_FSTYPE, get_profile
from .interfaces import (
    FilesystemChecker,
    FilesystemFormatter,
    FilesystemProbe,
    FilesystemResizer,
    Mounter,
)


log = LoggerFactory.for_partition()


class FilesystemProvisioner:
    def __init__(
        self,
        *,
        probe: FilesystemProbe,
        checker: FilesystemChecker,
        resizer: FilesystemResizer,
        formatter: FilesystemFormatter,
        mounter: Mounter,
        boot_start: int = BOOT_START,
    ):
        self.probe = probe
        self.checker = checker
        self.resizer = resizer
        self.formatter = formatter
        self.mounter = mounter
        self.boot_start = boot_start

    def fresh_fstype(self, entry: PartitionEntry) -> str:
        """Filesystem created on a partition without a usable filesystem."""
        return BOOT_FSTYPE if entry.is_boot(self.boot_start) else DATA_FSTYPE

    def provision_all(self, current: Layout, desired: Layout) -> list[ProvisionResult]:
        """Provision every partition of ``current`` that has a slot in ``desired``."""
        results = []
        for partition in current:
            slot = desired.find_slot(partition)
            if slot is None:
                log.debug(
                    f"{partition.device_id} at sector {partition.start_sector} "
                    "is not in the desired table, leaving it alone"
                )
                continue
            results.append(self.provision(partition, slot.label))
        return results

    def provision(self, partition: PartitionEntry, label: Optional[str]) -> ProvisionResult:
        device = partition.device_id

        if not self.mounter.is_block_device(device):
            raise PartitionNodeMissingError(device)
        if not label:
            raise EmptyLabelError(device)

        if self.mounter.is_mounted(device):
            log.info(f"Unmounting {device}")
            self.mounter.unmount(device)

        fstype = self.probe.fstype(device)
        if fstype is None:
            new_fstype = self.fresh_fstype(partition)
            log.info(f"Formatting {device} as {new_fstype} with label '{label}'")
            self.formatter.format(device, new_fstype, label)
            return ProvisionResult(device, label, ProvisionAction.FORMAT, new_fstype)

        log.info(f"Attempting to resize {fstype} filesystem on {device}")
        if self._check_and_resize(device, fstype):
            return ProvisionResult(device, label, ProvisionAction.RESIZE, fstype)

        new_fstype = self.fresh_fstype(partition)
        log.warning(
            f"Resize of {device} failed, formatting as {new_fstype} instead. "
            "Existing data on this partition is lost."
        )
        self.formatter.format(device, new_fstype, label)
        return ProvisionResult(device, label, ProvisionAction.FALLBACK_FORMAT, new_fstype)

    def _check_and_resize(self, device: str, fstype: str) -> bool:
        profile = get_profile(fstype)
        if profile is None:
            log.warning(f"No resize support for {fstype} on {device}")
            return False

        status = self.checker.check(device, fstype)
        if not profile.fsck_acceptable(status):
            log.warning(
                f"Consistency check of {device} returned {status} "
                f"(accepted up to {profile.fsck_ok_max})"
            )
            return False

        return self.resizer.resize(device, fstype)
