"""Partition table parsing and sfdisk access.

This module turns sfdisk dump text into Layout objects and wraps the sfdisk
and partprobe commands behind the PartitionTableReader/Writer interfaces.

Row grammar (one partition per line)::

    /dev/mmcblk2p1 : start=2048, size=524288, type=83, name="boot"

Whitespace, ':', '=' and ',' all separate fields; double-quoted values are a
single field. Comment rows (leading '#') and rows whose start or size is not
an integer are skipped, which also drops the header rows of a dump
(``label: dos``, ``unit: sectors``, ...). Skipping is never an error.
"""
from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Optional

from system_update.domain.models import Layout, LayoutSource, PartitionEntry
from system_update.logging import LoggerFactory

from .command_runner import run_command
from .exceptions import (
    PartitionTableReadError,
    PartitionTableWriteError,
    TableFileMissingError,
)


log = LoggerFactory.for_disk()

_TOKEN_PATTERN = re.compile(r'"([^"]*)"|([^\s:=,"]+)')

# sfdisk row keys that carry a value; anything else (e.g. "bootable") is a flag
_VALUE_KEYS = {"start", "size", "type", "id", "uuid", "name", "attrs"}


def tokenize_row(line: str) -> list[str]:
    """Split a table row into fields, keeping quoted values together."""
    tokens = []
    for match in _TOKEN_PATTERN.finditer(line):
        quoted, bare = match.groups()
        tokens.append(quoted if quoted is not None else bare)
    return tokens


def _parse_int(value: Optional[str]) -> Optional[int]:
    # plain decimal sector counts only; int() would also take "2_048" or "+5"
    if value is None or not (value.isascii() and value.isdigit()):
        return None
    return int(value)


def _parse_fields(tokens: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    index = 0
    while index < len(tokens):
        key = tokens[index].lower()
        if key in _VALUE_KEYS and index + 1 < len(tokens):
            fields.setdefault(key, tokens[index + 1])
            index += 2
        else:
            index += 1
    return fields


def parse_row(line: str) -> Optional[PartitionEntry]:
    """Parse one table row, returning None for comments and malformed rows."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    tokens = tokenize_row(stripped)
    if len(tokens) < 2:
        return None

    fields = _parse_fields(tokens[1:])
    start = _parse_int(fields.get("start"))
    size = _parse_int(fields.get("size"))
    if start is None or size is None:
        return None

    label = fields.get("name") or None
    return PartitionEntry(
        device_id=tokens[0],
        start_sector=start,
        size_sectors=size,
        label=label,
    )


def parse_layout(text: str, source: LayoutSource, origin: str = "") -> Layout:
    """Parse table text into a Layout, skipping non-partition rows."""
    entries = []
    for line in text.splitlines():
        entry = parse_row(line)
        if entry is not None:
            entries.append(entry)
    return Layout(entries=tuple(entries), source=source, origin=origin)


def read_desired_layout(table_path: Path) -> Layout:
    """Read the desired layout from a partition table file."""
    try:
        text = Path(table_path).read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise TableFileMissingError(str(table_path)) from error
    layout = parse_layout(text, LayoutSource.DESIRED, origin=str(table_path))
    log.debug(f"Desired layout from {table_path}: {len(layout)} partition(s)")
    return layout


def read_current_layout(reader, device: str) -> Layout:
    """Read the live layout of ``device`` through a PartitionTableReader."""
    text = reader.dump(device)
    layout = parse_layout(text, LayoutSource.CURRENT, origin=device)
    log.debug(f"Current layout of {device}: {len(layout)} partition(s)")
    return layout


class SfdiskPartitionTable:
    """PartitionTableReader and PartitionTableWriter backed by sfdisk and partprobe."""

    def dump(self, device: str) -> str:
        try:
            result = run_command(["sfdisk", "--quiet", "--dump", device])
        except OSError as error:
            raise PartitionTableReadError(device, str(error)) from error
        if result.returncode != 0:
            raise PartitionTableReadError(device, (result.stderr or "").strip())
        return result.stdout

    def disk_size_blocks(self, device: str) -> int:
        try:
            result = run_command(["sfdisk", "--quiet", "--show-size", device])
        except OSError as error:
            raise PartitionTableReadError(device, str(error)) from error
        blocks = _parse_int((result.stdout or "").strip())
        if result.returncode != 0 or blocks is None:
            raise PartitionTableReadError(
                device, (result.stderr or "").strip() or "unable to determine disk size"
            )
        return blocks

    def write(self, device: str, table_text: str) -> None:
        try:
            result = run_command(["sfdisk", "--quiet", device], input_text=table_text)
        except OSError as error:
            raise PartitionTableWriteError(device, str(error)) from error
        if result.returncode != 0:
            raise PartitionTableWriteError(
                device, (result.stderr or result.stdout or "").strip()
            )

    def rescan(self, device: str) -> bool:
        partprobe = shutil.which("partprobe") or "partprobe"
        try:
            result = run_command([partprobe, device])
        except OSError as error:
            log.warning(f"Unable to run partprobe: {error}")
            return False
        return result.returncode == 0
