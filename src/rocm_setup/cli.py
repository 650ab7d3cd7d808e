#!/usr/bin/env python3
"""
ROCm Setup CLI

Installs ROCm with a rollback snapshot, or restores that snapshot.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from common.exceptions import ConfigError, SetupError
from common.logging_config import setup_logging
from utils.command import CommandRunner

from .config import SystemPaths, load_config
from .installer import DriverInstaller
from .rollback import RollbackManager, RollbackStatus
from .snapshot import SnapshotManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rocm-setup",
        description="Install ROCm on Ubuntu with a rollback snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rocm-setup                       # Snapshot current state, then install ROCm
  rocm-setup --rollback            # Restore the snapshot taken by the last install
  rocm-setup --config rocm.json    # Override versions, packages or paths
        """,
    )
    parser.add_argument("--rollback", action="store_true",
                        help="Restore the rollback snapshot instead of installing")
    parser.add_argument("-c", "--config", type=Path, help="JSON configuration file")
    parser.add_argument("--log", type=Path, help="Log file (default: ~/rocm_install.log)")
    parser.add_argument("--snapshot-dir", type=Path,
                        help="Snapshot directory (default: ~/rocm_rollback)")
    parser.add_argument("--system-root", type=Path, help=argparse.SUPPRESS)
    parser.add_argument("--no-sudo", action="store_true",
                        help="Run privileged commands without sudo")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def cmd_install(installer: DriverInstaller) -> int:
    """Snapshot then install."""
    report = installer.run()
    if report.snapshot is not None:
        logger.info(f"Rollback snapshot: {report.snapshot.path}")
    return 0


def cmd_rollback(manager: RollbackManager) -> int:
    """Restore the snapshot."""
    result = manager.restore()
    if result.status == RollbackStatus.COMPLETE:
        logger.info(f"Restored: {', '.join(result.restored)}")
    if result.requires_reboot:
        logger.info("A reboot is required for group and environment changes to take effect.")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        setup_logging(level=logging.INFO)
        logger.error(str(e))
        return 1

    if args.log:
        config.log_file = args.log
    if args.snapshot_dir:
        config.snapshot_dir = args.snapshot_dir
    if args.system_root:
        config.paths = SystemPaths.under(args.system_root)
    if args.no_sudo:
        config.use_sudo = False

    errors = config.validate()
    if errors:
        setup_logging(level=logging.INFO)
        for error in errors:
            logger.error(error)
        return 1

    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=level, log_file=config.log_file)

    runner = CommandRunner(use_sudo=config.use_sudo)
    snapshots = SnapshotManager(config.snapshot_dir, config.paths, runner)

    try:
        if args.rollback:
            return cmd_rollback(RollbackManager(snapshots, config.paths, runner))
        return cmd_install(DriverInstaller(config, runner=runner, snapshot_manager=snapshots))
    except SetupError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
