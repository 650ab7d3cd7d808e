#!/usr/bin/env python3
"""
PyTorch Provisioning CLI

Command-line interface for the ROCm PyTorch/torchvision environment setup.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from common.exceptions import ConfigError, SetupError
from common.logging_config import setup_logging

from .config import load_config
from .pipeline import Provisioner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="torch-provision",
        description="Install PyTorch and torchvision with ROCm support into a virtual environment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  torch-provision                        # Default environment at ~/deepseek-env
  torch-provision --venv ~/envs/rocm     # Different environment location
  torch-provision --config provision.json --strict
        """,
    )
    parser.add_argument("-c", "--config", type=Path, help="JSON configuration file")
    parser.add_argument("--log", type=Path, help="Log file (default: ~/pytorch_rocm_install.log)")
    parser.add_argument("--venv", type=Path, help="Virtual environment directory")
    parser.add_argument("--strict", action="store_true",
                        help="Fail when verification reports any issue")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


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
    if args.venv:
        config.venv_dir = args.venv
    if args.strict:
        config.strict_verification = True

    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=level, log_file=config.log_file)

    try:
        Provisioner(config).run()
    except SetupError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
