"""gzip compressed tar archives of partition contents."""

from __future__ import annotations

from pathlib import Path

from system_update.logging import LoggerFactory

from .command_runner import run_command


log = LoggerFactory.for_backup()


class TarArchiver:
    """Archiver backed by tar(1).

    Archives are taken relative to the mount root (``-C <dir> .``) so they can
    be unpacked into any mountpoint.
    """

    def create(self, source_dir: Path, archive: Path) -> bool:
        try:
            result = run_command(
                ["tar", "-czf", str(archive), "-C", str(source_dir), "."],
                log_output=False,
            )
        except OSError as error:
            log.warning(f"Unable to run tar: {error}")
            return False
        return result.returncode == 0

    def extract(self, archive: Path, target_dir: Path) -> bool:
        try:
            result = run_command(
                ["tar", "-xzf", str(archive), "-C", str(target_dir), "."],
                log_output=False,
            )
        except OSError as error:
            log.warning(f"Unable to run tar: {error}")
            return False
        return result.returncode == 0
