#!/usr/bin/env python3
"""
ROCm Driver Installer

Installs the ROCm runtime from AMD's APT repository after taking a
rollback snapshot.

Workflow:
1. Capture rollback snapshot
2. Refresh package index and upgrade
3. Install kernel headers and prerequisites
4. Register the ROCm repository (signing key + source list)
5. Install ROCm packages
6. Add the invoking user to the video and render groups
7. Extend PATH and set the GFX override
8. Run rocminfo / clinfo

The run halts on the first failing step. The InstallReport lists every
declared step as succeeded, failed or not run.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import requests
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from common.exceptions import (
    DriverInstallError,
    SetupError,
    SnapshotCorruptError,
    SnapshotError,
)
from utils.command import CommandRunner
from utils.system_files import set_environment_variable, write_system_file

from .config import DriverConfig
from .snapshot import Snapshot, SnapshotManager

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class StepStatus(Enum):
    """Outcome of a declared install step."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_RUN = "not_run"


@dataclass
class InstallStep:
    """A named, order-dependent install step."""
    step_id: str
    description: str
    action: Callable[[], None]


@dataclass
class StepOutcome:
    step_id: str
    description: str
    status: StepStatus = StepStatus.NOT_RUN
    error: Optional[str] = None


@dataclass
class InstallReport:
    """Aggregated result of a driver install run."""
    outcomes: List[StepOutcome] = field(default_factory=list)
    snapshot: Optional[Snapshot] = None

    def _with(self, status: StepStatus) -> List[str]:
        return [o.step_id for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> List[str]:
        return self._with(StepStatus.SUCCEEDED)

    @property
    def failed(self) -> List[str]:
        return self._with(StepStatus.FAILED)

    @property
    def not_run(self) -> List[str]:
        return self._with(StepStatus.NOT_RUN)

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and len(self.succeeded) == len(self.outcomes)

    def summary(self) -> str:
        parts = [f"{len(self.succeeded)}/{len(self.outcomes)} steps succeeded"]
        if self.failed:
            parts.append(f"failed: {', '.join(self.failed)}")
        if self.not_run:
            parts.append(f"not run: {', '.join(self.not_run)}")
        return "; ".join(parts)


class DriverInstaller:
    """
    Runs the ROCm install sequence.

    Args:
        config: Driver configuration.
        runner: Command runner (sudo elevation, logging).
        snapshot_manager: Defaults to one rooted at ``config.snapshot_dir``.
        session: HTTP session used to fetch the repository signing key.
        kernel_release: Defaults to the running kernel.
    """

    def __init__(
        self,
        config: DriverConfig,
        runner: Optional[CommandRunner] = None,
        snapshot_manager: Optional[SnapshotManager] = None,
        session: Optional[requests.Session] = None,
        kernel_release: Optional[str] = None,
    ):
        self.config = config
        self.runner = runner or CommandRunner(use_sudo=config.use_sudo)
        self.snapshot_manager = snapshot_manager or SnapshotManager(
            config.snapshot_dir, config.paths, self.runner
        )
        self.session = session or requests.Session()
        self.kernel_release = kernel_release or platform.release()
        self._templates = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def steps(self) -> List[InstallStep]:
        """Declared install steps, in execution order."""
        groups = " and ".join(self.config.groups)
        return [
            InstallStep("update_system", "Updating system packages", self._update_system),
            InstallStep("install_prerequisites", "Installing prerequisites", self._install_prerequisites),
            InstallStep("add_repository", "Adding ROCm repository", self._add_repository),
            InstallStep("install_rocm", "Installing ROCm", self._install_rocm),
            InstallStep("add_user_groups", f"Adding user to {groups} groups", self._add_user_groups),
            InstallStep("configure_environment", "Configuring environment variables", self._configure_environment),
            InstallStep("verify_installation", "Verifying ROCm installation", self._verify_installation),
        ]

    def run(self) -> InstallReport:
        """
        Capture a snapshot, then run every step in order.

        Returns:
            InstallReport with every step succeeded.

        Raises:
            DriverInstallError: A step failed, or no snapshot could be
                guaranteed before the first mutation. ``error.report``
                holds the aggregated outcome.
        """
        steps = self.steps()
        report = InstallReport(outcomes=[StepOutcome(s.step_id, s.description) for s in steps])

        logger.info("Starting ROCm installation...")
        report.snapshot = self._ensure_snapshot(report)

        for index, (step, outcome) in enumerate(zip(steps, report.outcomes), start=1):
            logger.info(f"Step {index}/{len(steps)}: {step.description}...")
            try:
                step.action()
            except (SetupError, OSError, requests.RequestException, TemplateError) as e:
                outcome.status = StepStatus.FAILED
                outcome.error = str(e)
                logger.error(f"Step {step.step_id} failed: {e}")
                logger.error(f"Installation halted. {report.summary()}")
                logger.error("Run 'rocm-setup --rollback' to restore the previous state.")
                raise DriverInstallError(step.step_id, report=report, cause=e) from e
            outcome.status = StepStatus.SUCCEEDED

        logger.info(report.summary())
        logger.info("ROCm installation complete. Please reboot your system.")
        return report

    def _ensure_snapshot(self, report: InstallReport) -> Snapshot:
        try:
            return self.snapshot_manager.capture()
        except SnapshotError as e:
            try:
                previous = self.snapshot_manager.load()
            except SnapshotCorruptError:
                previous = None
            if previous is None:
                logger.error(f"{e}; refusing to modify the system without a snapshot")
                raise DriverInstallError("snapshot", report=report, cause=e) from e
            logger.warning(
                f"{e}; keeping the previous snapshot from {previous.created:%Y-%m-%d %H:%M:%S}"
            )
            return previous

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _apt(self, *args: str) -> None:
        self.runner.run(["apt-get", *args], privileged=True, env=NONINTERACTIVE)

    def _update_system(self) -> None:
        self._apt("update")
        if self.config.upgrade_system:
            self._apt("upgrade", "-y")

    def _install_prerequisites(self) -> None:
        packages = [p.format(kernel=self.kernel_release) for p in self.config.prerequisites]
        self._apt("install", "-y", *packages)

    def _add_repository(self) -> None:
        repo = self.config.repository
        keyrings = self.config.paths.apt_keyrings_dir
        keyring = keyrings / repo.keyring_name

        self.runner.run(["mkdir", "-p", str(keyrings)], privileged=True)

        logger.info(f"Fetching signing key from {repo.key_url}")
        response = self.session.get(repo.key_url, timeout=self.config.key_timeout)
        response.raise_for_status()
        self.runner.run(
            ["gpg", "--dearmor", "--yes", "-o", str(keyring)],
            privileged=True,
            input=response.content,
        )

        entry = self._templates.get_template("rocm.list.j2").render(
            repository=repo,
            keyring=keyring,
        )
        list_file = self.config.paths.apt_sources_dir / repo.list_name
        write_system_file(list_file, entry, self.runner)
        logger.info(f"Wrote {list_file}: {entry.strip()}")

        self._apt("update")

    def _install_rocm(self) -> None:
        self._apt("install", "-y", *self.config.packages)

    def _add_user_groups(self) -> None:
        user = self.config.user or os.environ.get("SUDO_USER") or getpass.getuser()
        for group in self.config.groups:
            self.runner.run(["usermod", "-a", "-G", group, user], privileged=True)
            logger.info(f"Added {user} to group {group} (effective after next login)")

    def _configure_environment(self) -> None:
        script = self._templates.get_template("rocm-profile.sh.j2").render(
            path_entries=self.config.path_entries,
        )
        write_system_file(self.config.paths.profile_script, script, self.runner)

        for key, value in self.config.environment_overrides.items():
            set_environment_variable(self.config.paths.environment_file, key, value, self.runner)
            logger.info(f"Set {key}={value} in {self.config.paths.environment_file}")

    def _verify_installation(self) -> None:
        for tool in self.config.verify_commands:
            result = self.runner.run([tool])
            for line in result.stdout.splitlines():
                logger.info(f"{Path(tool).name}: {line}")
