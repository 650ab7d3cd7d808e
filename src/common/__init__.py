"""
Common Utilities

Shared exceptions, logging and decorators for the setup tools.
"""

from .exceptions import (
    SetupError, CommandError, SnapshotError, SnapshotCorruptError, RollbackError,
    DriverInstallError, ProvisionError, DownloadError, StrategyError,
    InstallFailure, VerificationError, ConfigError, InvalidConfigError,
    MissingConfigError,
)
from .decorators import timed
from .logging_config import setup_logging, LOG_FORMAT, DATE_FORMAT

__all__ = [
    # Exceptions
    "SetupError", "CommandError", "SnapshotError", "SnapshotCorruptError",
    "RollbackError", "DriverInstallError", "ProvisionError", "DownloadError",
    "StrategyError", "InstallFailure", "VerificationError", "ConfigError",
    "InvalidConfigError", "MissingConfigError",
    # Decorators
    "timed",
    # Logging
    "setup_logging", "LOG_FORMAT", "DATE_FORMAT",
]
