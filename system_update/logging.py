from __future__ import annotations

import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger


def _should_log_command_output(record) -> bool:
    """Keep raw command stdout/stderr out of the console unless tracing."""
    tags = record["extra"].get("tags", [])

    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "command-output" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup console logging and optional log files for a disk preparation run.

    Logging Tiers:
    - CRITICAL/ERROR: Fatal failures, the run stops
    - WARNING: Degraded outcomes (backup skipped, fallback reformat)
    - SUCCESS/INFO: Decisions and outcomes of every step
    - DEBUG: Command execution
    - TRACE: Raw command output

    Log Files (only when log_dir is given):
    - prepare.log: INFO+ events
    - debug.log: DEBUG+ events when --debug or --trace is enabled

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Directory for log files, console only when None
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "SYSTEM"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # The update session collects stderr, keep it uncoloured
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=None if trace else _should_log_command_output,
        colorize=False,
        format=(
            "{time:HH:mm:ss} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{message}"
        ),
    )

    if log_dir is None:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_dir / "prepare.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <22} | "
            "{message}"
        ),
    )

    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <22} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["backup", "storage"])
        source: Source component (e.g., "disk", "backup")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "prepare-disk")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("prepare-disk", device="/dev/mmcblk2") as log:
            log.info("Partition resize not required")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source="disk", job_id=job_id, tags=[operation])

        log.info(f"{operation} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(f"{operation} completed", duration_seconds=round(duration, 2))
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation} failed: {e}",
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_disk() -> Logger:
        """Logger for partition table reading, validation and repartitioning."""
        return logger.bind(source="disk", tags=["disk", "storage"])

    @staticmethod
    def for_partition() -> Logger:
        """Logger for per-partition filesystem provisioning."""
        return logger.bind(source="partition", tags=["partition", "filesystem"])

    @staticmethod
    def for_backup() -> Logger:
        """Logger for backup and restore of partition contents."""
        return logger.bind(source="backup", tags=["backup", "storage"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_command_output() -> Logger:
        """Logger for raw stdout/stderr of external commands."""
        return logger.bind(source="command", tags=["command", "command-output"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, configuration)."""
        return logger.bind(source="system", tags=["system"])
