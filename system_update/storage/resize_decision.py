"""Decide whether the device already carries the desired partition layout."""

from __future__ import annotations

from typing import Optional

from system_update.domain.models import Layout, PartitionEntry
from system_update.logging import LoggerFactory


log = LoggerFactory.for_disk()


def _match_current(current: Layout, wanted: PartitionEntry) -> Optional[PartitionEntry]:
    # Same device first; table slot names may differ from the real node names,
    # so fall back to the start sector join key.
    return current.find_by_device(wanted.device_id) or current.find_slot(wanted)


def needs_resize(current: Optional[Layout], desired: Layout) -> bool:
    """Return True unless every desired partition already exists with the same geometry.

    ``current`` is None when the live table could not be read, which always
    requires re-provisioning.
    """
    if current is None:
        log.info("Current partition table unavailable, resize required")
        return True

    for wanted in desired:
        existing = _match_current(current, wanted)
        if existing is None:
            log.info(
                f"No partition matching {wanted.device_id} at sector "
                f"{wanted.start_sector}, resize required"
            )
            return True
        if not existing.same_geometry(wanted):
            log.info(
                f"Partition {existing.device_id} is {existing.start_sector}+"
                f"{existing.size_sectors}, wanted {wanted.start_sector}+"
                f"{wanted.size_sectors}, resize required"
            )
            return True

    return False
