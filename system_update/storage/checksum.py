"""SHA512 verification of the desired partition table file."""

from __future__ import annotations

import shutil
from pathlib import Path

from system_update.logging import LoggerFactory

from .command_runner import run_command
from .exceptions import ChecksumMismatchError, TableFileMissingError


log = LoggerFactory.for_disk()


def verify_table_checksum(table_path: Path, checksum_path: Path) -> None:
    """Verify ``table_path`` against a sha512sum checksum file.

    The checksum file lists paths relative to its own directory, so
    sha512sum runs from there.

    Raises:
        TableFileMissingError: If either file is missing
        ChecksumMismatchError: If verification fails
    """
    if not table_path.is_file():
        raise TableFileMissingError(str(table_path))
    if not checksum_path.is_file():
        raise TableFileMissingError(str(checksum_path), kind="Partition table checksum file")

    sha512sum = shutil.which("sha512sum")
    if not sha512sum:
        raise ChecksumMismatchError(str(table_path), "sha512sum not found")

    result = run_command(
        [sha512sum, "--check", "--status", "--warn", checksum_path.name],
        cwd=checksum_path.parent,
    )
    if result.returncode != 0:
        raise ChecksumMismatchError(
            str(table_path), (result.stderr or "").strip() or "checksum mismatch"
        )
    log.debug(f"Checksum of {table_path} verified")
