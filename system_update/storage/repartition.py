"""Apply the desired partition table and wait for the kernel to pick it up."""

from __future__ import annotations

import time
from typing import Callable

from system_update.logging import LoggerFactory

from .exceptions import RescanRetriesExhaustedError
from .interfaces import PartitionTableWriter
from .retry import retry_call


log = LoggerFactory.for_disk()

RESCAN_ATTEMPTS = 10
RESCAN_DELAY_SECONDS = 1.0


class Repartitioner:
    """Full-table replace of the device partition table.

    Partitions missing from the new table are destroyed. Re-reading the table
    can race with udev creating the partition nodes, so the rescan is retried.
    """

    def __init__(
        self,
        writer: PartitionTableWriter,
        *,
        rescan_attempts: int = RESCAN_ATTEMPTS,
        rescan_delay: float = RESCAN_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.writer = writer
        self.rescan_attempts = rescan_attempts
        self.rescan_delay = rescan_delay
        self.sleep = sleep

    def apply(self, device: str, table_text: str) -> None:
        """Write ``table_text`` to ``device`` and wait for the kernel to re-read it.

        Raises:
            PartitionTableWriteError: If writing the table failed
            RescanRetriesExhaustedError: If the kernel never accepted the new table
        """
        log.info(f"Writing partition table to {device}")
        self.writer.write(device, table_text)

        synced = retry_call(
            lambda: self.writer.rescan(device),
            attempts=self.rescan_attempts,
            delay=self.rescan_delay,
            description=f"Partition table re-read of {device}",
            sleep=self.sleep,
        )
        if not synced:
            raise RescanRetriesExhaustedError(device, self.rescan_attempts)
        log.info(f"Partition table of {device} updated")
