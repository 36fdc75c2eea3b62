"""prepare-disk: bring the target storage device to the desired partition layout.

Warning: this is destructive. Partitions that cannot be backed up lose their
data when they have to be reformatted.
"""

import argparse
import sys
from pathlib import Path

from system_update.config.settings import PrepareSettings
from system_update.logging import LoggerFactory, operation_context, setup_logging
from system_update.services.disk_prepare import DiskPreparer, DiskTools
from system_update.storage.exceptions import StorageError


log = LoggerFactory.for_system()

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prepare-disk",
        description="Prepare the target storage device to a predefined disk layout.",
        epilog=(
            "The partition table file and target device can also be passed through "
            "the PARTITION_TABLE_FILE and TARGET_STORAGE_DEVICE environment variables. "
            "Warning: this command is destructive and may destroy your data."
        ),
    )
    parser.add_argument(
        "-d", "--device", help="target storage device for the update (mandatory)"
    )
    parser.add_argument(
        "-t", "--table", help="partition table file, relative to the conf dir (mandatory)"
    )
    parser.add_argument(
        "-c", "--conf-dir", help="system update configuration directory"
    )
    parser.add_argument(
        "--staging-dir", help="directory receiving the backup archives (default: /tmp)"
    )
    parser.add_argument(
        "--log-dir", type=Path, help="also write log files to this directory"
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log raw command output")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)

    settings = PrepareSettings.from_environment(
        target_device=args.device,
        table_file=args.table,
        conf_dir=args.conf_dir,
        staging_dir=args.staging_dir,
    )
    try:
        settings.validate()
    except (StorageError, ValueError) as error:
        log.error(f"{error}, cannot continue.")
        return EXIT_FAILURE

    try:
        with operation_context("prepare-disk", device=settings.target_device):
            report = DiskPreparer(settings, DiskTools.system()).run()
    except StorageError:
        # already logged by operation_context
        return EXIT_FAILURE
    except Exception as error:
        log.opt(exception=error).debug("Unexpected error during disk preparation")
        log.error(f"{type(error).__name__}: {error}, cannot continue.")
        return EXIT_FAILURE

    if report.resize_needed:
        log.info(
            f"{len(report.provisioned)} partition(s) provisioned, "
            f"{len(report.restored)} of {len(report.backups)} backup(s) restored"
        )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
