#!/usr/bin/env python3
"""
ROCm Setup Rollback Manager

Restores package selections and APT/environment configuration from the
snapshot taken before the driver install.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from common.exceptions import CommandError, RollbackError
from utils.command import CommandRunner
from utils.system_files import remove_system_path, replace_system_file, replace_system_tree

from .config import SystemPaths
from .snapshot import (
    ENVIRONMENT_FILE,
    SELECTIONS_FILE,
    SOURCES_DIR,
    SOURCES_FILE,
    Snapshot,
    SnapshotManager,
)

logger = logging.getLogger(__name__)

NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class RollbackStatus(Enum):
    """Status of rollback operation."""
    IDLE = "idle"
    PREPARING = "preparing"
    RESTORING = "restoring"
    COMPLETE = "complete"
    NOTHING_TO_RESTORE = "nothing_to_restore"
    FAILED = "failed"


@dataclass
class RollbackResult:
    """Result of a rollback operation."""
    status: RollbackStatus
    message: str
    requires_reboot: bool = False
    restored: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (RollbackStatus.COMPLETE, RollbackStatus.NOTHING_TO_RESTORE)


class RollbackManager:
    """
    Restores the system from the rollback snapshot.

    The restore is not transactional: if a step fails, the steps before it
    stay applied and RollbackError names the failing step.
    """

    def __init__(
        self,
        snapshot_manager: SnapshotManager,
        paths: SystemPaths,
        runner: CommandRunner,
    ):
        self.snapshot_manager = snapshot_manager
        self.paths = paths
        self.runner = runner
        self.status = RollbackStatus.IDLE
        self._progress_callback: Optional[Callable[[RollbackStatus, str], None]] = None

    def set_progress_callback(
        self,
        callback: Callable[[RollbackStatus, str], None],
    ):
        """Set callback for status updates."""
        self._progress_callback = callback

    def _notify(self, status: RollbackStatus, message: str):
        """Log and forward a status change."""
        self.status = status
        logger.info(message)
        if self._progress_callback:
            self._progress_callback(status, message)

    def restore(self) -> RollbackResult:
        """
        Restore the captured state.

        Returns:
            RollbackResult; NOTHING_TO_RESTORE when no snapshot exists.

        Raises:
            SnapshotCorruptError: The snapshot is not well-formed (nothing touched).
            RollbackError: A restore step failed.
        """
        self._notify(RollbackStatus.PREPARING, "Initiating rollback...")

        snapshot = self.snapshot_manager.load()
        if snapshot is None:
            self._notify(
                RollbackStatus.NOTHING_TO_RESTORE,
                "No rollback snapshot found. Nothing to restore.",
            )
            return RollbackResult(
                status=RollbackStatus.NOTHING_TO_RESTORE,
                message="Nothing to restore",
            )

        logger.info(f"Using snapshot from {snapshot.created:%Y-%m-%d %H:%M:%S} ({snapshot.age_str})")
        restored: List[str] = []

        self._notify(RollbackStatus.RESTORING, "Restoring package selections...")
        self._restore_selections(snapshot)
        restored.append(SELECTIONS_FILE)

        self._notify(RollbackStatus.RESTORING, "Restoring APT sources...")
        self._restore_path(snapshot, SOURCES_DIR, self.paths.apt_sources_dir)
        self._restore_path(snapshot, SOURCES_FILE, self.paths.apt_sources_list)
        restored.extend([SOURCES_DIR, SOURCES_FILE])

        self._notify(RollbackStatus.RESTORING, "Restoring environment variables...")
        self._restore_path(snapshot, ENVIRONMENT_FILE, self.paths.environment_file)
        restored.append(ENVIRONMENT_FILE)

        self._notify(RollbackStatus.COMPLETE, "Rollback complete. Please reboot your system.")
        return RollbackResult(
            status=RollbackStatus.COMPLETE,
            message="Rollback successful. Reboot required.",
            requires_reboot=True,
            restored=restored,
        )

    def _restore_selections(self, snapshot: Snapshot) -> None:
        selections = snapshot.artifact(SELECTIONS_FILE).read_bytes()
        steps = [
            ("clearing package selections", ["dpkg", "--clear-selections"], None),
            ("applying saved package selections", ["dpkg", "--set-selections"], selections),
            ("reconciling installed packages", ["apt-get", "dselect-upgrade", "-y"], None),
        ]
        for description, argv, data in steps:
            try:
                self.runner.run(argv, privileged=True, input=data, env=NONINTERACTIVE)
            except CommandError as e:
                self._fail(description, e)

    def _restore_path(self, snapshot: Snapshot, name: str, destination) -> None:
        try:
            if not snapshot.has(name):
                logger.info(f"{destination} did not exist at capture time, removing it")
                remove_system_path(destination, self.runner)
            elif snapshot.artifact(name).is_dir():
                replace_system_tree(snapshot.artifact(name), destination, self.runner)
            else:
                replace_system_file(snapshot.artifact(name), destination, self.runner)
        except (OSError, CommandError) as e:
            self._fail(f"restoring {destination}", e)

    def _fail(self, step: str, cause: Exception) -> None:
        self._notify(RollbackStatus.FAILED, f"Rollback failed while {step}: {cause}")
        raise RollbackError(step, cause=cause)
