"""Command execution utilities for the external partitioning and filesystem tools."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

from system_update.logging import LoggerFactory


log = LoggerFactory.for_command()
output_log = LoggerFactory.for_command_output()


def run_command(
    command: Sequence[str],
    input_text: Optional[str] = None,
    log_output: bool = True,
    cwd: Optional[Union[str, Path]] = None,
) -> subprocess.CompletedProcess:
    """Run a command to completion and return its result without checking it.

    There is no timeout: a hanging tool hangs the run.
    """
    log.debug(f"Running command: {' '.join(command)}")
    result = subprocess.run(
        list(command),
        input=input_text,
        text=True,
        capture_output=True,
        cwd=cwd,
    )
    if result.stdout and (log_output or result.returncode != 0):
        output_log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        output_log.trace(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")
    return result


__all__ = ["run_command"]
