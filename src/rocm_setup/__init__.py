"""
ROCm Driver Setup

Installs the ROCm GPU runtime on Ubuntu with a rollback safety net:
- Snapshot of package selections, APT sources and /etc/environment
- Halt-on-failure install sequence with an aggregated report
- Restore of the snapshot with ``rocm-setup --rollback``
"""

from .config import DriverConfig, RocmRepository, SystemPaths, load_config
from .snapshot import Snapshot, SnapshotManager, ARTIFACTS, SNAPSHOT_FORMAT_VERSION
from .rollback import RollbackManager, RollbackResult, RollbackStatus
from .installer import (
    DriverInstaller,
    InstallReport,
    InstallStep,
    StepOutcome,
    StepStatus,
)

__all__ = [
    "DriverConfig",
    "RocmRepository",
    "SystemPaths",
    "load_config",
    "Snapshot",
    "SnapshotManager",
    "ARTIFACTS",
    "SNAPSHOT_FORMAT_VERSION",
    "RollbackManager",
    "RollbackResult",
    "RollbackStatus",
    "DriverInstaller",
    "InstallReport",
    "InstallStep",
    "StepOutcome",
    "StepStatus",
]
