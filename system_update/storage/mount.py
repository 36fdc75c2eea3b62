"""Mount handling for partitions of the target device.

Mount state is read from /proc/mounts every time it is asked for, never
cached: another process may mount or unmount partitions during a run.

Functions:
    - validate_device_path(): Reject non /dev/ paths and shell metacharacters
    - is_block_device(): Check that a path is an existing block device node
    - is_mounted(): Check /proc/mounts for a device
    - SystemMounter: Mounter implementation using mount(8) and umount(8)
"""

from __future__ import annotations

import os
import stat
import subprocess
from pathlib import Path

from system_update.logging import LoggerFactory

from .command_runner import run_command
from .exceptions import UnmountFailedError


log = LoggerFactory.for_system()

PROC_MOUNTS = Path("/proc/mounts")
_INVALID_CHARS = (";", "&", "|", "$", "`", "\n", "\r", " ")


def validate_device_path(device: str) -> None:
    """Validate a device node path.

    Raises:
        ValueError: If the path is not under /dev/ or contains invalid characters
    """
    if not isinstance(device, str) or not device.startswith("/dev/"):
        raise ValueError(f"Invalid device path: {device}")
    if any(char in device for char in _INVALID_CHARS):
        raise ValueError(f"Device path contains invalid characters: {device}")


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def _same_device(mount_source: str, device: str) -> bool:
    if mount_source == device:
        return True
    if not mount_source.startswith("/"):
        return False
    return os.path.realpath(mount_source) == os.path.realpath(device)


def is_mounted(device: str, mounts_path: Path = PROC_MOUNTS) -> bool:
    """Check whether ``device`` is the source of any active mount."""
    try:
        with open(mounts_path, "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if parts and _same_device(parts[0], device):
                    return True
    except FileNotFoundError:
        return False
    return False


class SystemMounter:
    """Mounter backed by mount(8), umount(8) and /proc/mounts."""

    def __init__(self, mounts_path: Path = PROC_MOUNTS):
        self.mounts_path = mounts_path

    def is_block_device(self, path: str) -> bool:
        return is_block_device(path)

    def is_mounted(self, device: str) -> bool:
        return is_mounted(device, self.mounts_path)

    def mount(self, device: str, mountpoint: Path) -> bool:
        validate_device_path(device)
        try:
            result = run_command(["mount", device, str(mountpoint)])
        except OSError as error:
            log.warning(f"Unable to run mount for {device}: {error}")
            return False
        if result.returncode != 0:
            log.warning(
                f"Failed to mount {device} on {mountpoint}: {(result.stderr or '').strip()}"
            )
            return False
        return True

    def unmount(self, device: str) -> None:
        validate_device_path(device)
        try:
            result = run_command(["umount", device])
        except (OSError, subprocess.SubprocessError) as error:
            raise UnmountFailedError(device, str(error)) from error
        if result.returncode != 0:
            raise UnmountFailedError(device, (result.stderr or "").strip())
        log.debug(f"Unmounted {device}")
