"""Filesystem probing, checking, resizing and formatting.

Supported Filesystems:
    ext4:   Boot partition filesystem, created without extents and 64bit
            features so the bootloader can read it.
    f2fs:   Flash-friendly filesystem used for every other partition.

Consistency Check Policy:
    fsck.ext4 exits 1 when it corrected errors, which is acceptable before a
    resize. fsck.f2fs must exit 0.

Operations:
    - BlkidProbe.fstype(): Detect the filesystem signature of a partition
    - FsckChecker.check(): Run the filesystem specific consistency check
    - FilesystemResizeTool.resize(): Resize a filesystem to its partition
    - MkfsFormatter.format(): Create a fresh, labelled filesystem
"""

from __future__ import annotations

from typing import Optional

from system_update.domain.models import FilesystemProfile
from system_update.logging import LoggerFactory

from .command_runner import run_command
from .exceptions import FormatOperationError


log = LoggerFactory.for_partition()

BOOT_FSTYPE = "ext4"
DATA_FSTYPE = "f2fs"

# reported by FsckChecker when the check could not run; never acceptable
FSCK_NOT_RUN = -1

FILESYSTEM_PROFILES: dict[str, FilesystemProfile] = {
    "ext4": FilesystemProfile(
        fstype="ext4",
        fsck_command=("fsck.ext4", "-f", "-y"),
        fsck_ok_max=1,
        resize_command=("resize2fs",),
    ),
    "f2fs": FilesystemProfile(
        fstype="f2fs",
        fsck_command=("fsck.f2fs", "-f", "-p", "-y"),
        fsck_ok_max=0,
        resize_command=("resize.f2fs",),
    ),
}


def get_profile(fstype: Optional[str]) -> Optional[FilesystemProfile]:
    if not fstype:
        return None
    return FILESYSTEM_PROFILES.get(fstype)


def build_mkfs_command(fstype: str, label: str, partition: str) -> list[str]:
    """Build the mkfs command line for a supported filesystem."""
    if fstype == "ext4":
        return ["mkfs.ext4", "-F", "-L", label, "-O", "^extents,^64bit", partition]
    if fstype == "f2fs":
        return ["mkfs.f2fs", "-f", "-l", label, partition]
    raise ValueError(f"Unsupported filesystem type: {fstype}")


class BlkidProbe:
    """FilesystemProbe backed by blkid."""

    def fstype(self, partition: str) -> Optional[str]:
        # blkid exits 2 when no signature is found
        try:
            result = run_command(["blkid", "-o", "value", "-s", "TYPE", partition])
        except OSError as error:
            log.warning(f"Unable to run blkid on {partition}: {error}")
            return None
        fstype = (result.stdout or "").strip()
        if result.returncode != 0 or not fstype:
            return None
        return fstype


class FsckChecker:
    """FilesystemChecker running fsck.<fstype>."""

    def check(self, partition: str, fstype: str) -> int:
        profile = get_profile(fstype)
        if profile is None:
            raise ValueError(f"Unsupported filesystem type: {fstype}")
        try:
            result = run_command([*profile.fsck_command, partition], log_output=False)
        except OSError as error:
            log.warning(f"Unable to run {profile.fsck_command[0]}: {error}")
            return FSCK_NOT_RUN
        return result.returncode


class FilesystemResizeTool:
    """FilesystemResizer running resize2fs or resize.f2fs."""

    def resize(self, partition: str, fstype: str) -> bool:
        profile = get_profile(fstype)
        if profile is None:
            raise ValueError(f"Unsupported filesystem type: {fstype}")
        try:
            result = run_command([*profile.resize_command, partition])
        except OSError as error:
            log.warning(f"Unable to run {profile.resize_command[0]}: {error}")
            return False
        if result.returncode != 0:
            log.warning(
                f"{profile.resize_command[0]} {partition} failed with code {result.returncode}"
            )
            return False
        return True


class MkfsFormatter:
    """FilesystemFormatter running mkfs.<fstype>."""

    def format(self, partition: str, fstype: str, label: str) -> None:
        command = build_mkfs_command(fstype, label, partition)
        try:
            result = run_command(command)
        except OSError as error:
            raise FormatOperationError(
                f"Unable to run {command[0]}: {error}", device=partition
            ) from error
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "mkfs failed"
            raise FormatOperationError(
                f"Formatting {partition} as {fstype} failed: {message}",
                device=partition,
            )
