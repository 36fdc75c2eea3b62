"""Narrow interfaces over the external partitioning, filesystem and archive tools.

Every engine component receives these collaborators instead of calling
subprocess directly. The subprocess-backed implementations live in
partition_table, filesystems, mount and archive; tests provide in-memory fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol


class PartitionTableReader(Protocol):
    def dump(self, device: str) -> str:
        """Return the partition table of ``device`` as sfdisk dump text.

        Raises:
            PartitionTableReadError: If the table cannot be read
        """

    def disk_size_blocks(self, device: str) -> int:
        """Return the size of ``device`` in 1 KiB blocks.

        Raises:
            PartitionTableReadError: If the size cannot be read
        """


class PartitionTableWriter(Protocol):
    def write(self, device: str, table_text: str) -> None:
        """Replace the whole partition table of ``device``.

        Raises:
            PartitionTableWriteError: If the table could not be written
        """

    def rescan(self, device: str) -> bool:
        """Ask the kernel to re-read the partition table, True on success."""


class FilesystemProbe(Protocol):
    def fstype(self, partition: str) -> Optional[str]:
        """Filesystem type found on ``partition``, None when there is no signature."""


class FilesystemChecker(Protocol):
    def check(self, partition: str, fstype: str) -> int:
        """Run the consistency check and return its exit status."""


class FilesystemResizer(Protocol):
    def resize(self, partition: str, fstype: str) -> bool:
        """Grow or shrink the filesystem to the partition size, True on success."""


class FilesystemFormatter(Protocol):
    def format(self, partition: str, fstype: str, label: str) -> None:
        """Create a fresh filesystem.

        Raises:
            FormatOperationError: If the filesystem could not be created
        """


class Mounter(Protocol):
    def is_block_device(self, path: str) -> bool: ...

    def is_mounted(self, device: str) -> bool: ...

    def mount(self, device: str, mountpoint: Path) -> bool:
        """Mount ``device`` read-write on ``mountpoint``, True on success."""

    def unmount(self, device: str) -> None:
        """Unmount ``device``.

        Raises:
            UnmountFailedError: If the device stays mounted
        """


class Archiver(Protocol):
    def create(self, source_dir: Path, archive: Path) -> bool:
        """Write a compressed archive of the contents of ``source_dir``."""

    def extract(self, archive: Path, target_dir: Path) -> bool:
        """Unpack ``archive`` into ``target_dir``."""
