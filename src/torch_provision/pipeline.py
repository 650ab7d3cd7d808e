#!/usr/bin/env python3
"""
PyTorch Provisioner

Creates the virtual environment, installs PyTorch and torchvision with
ROCm support and verifies the result.

Workflow:
1. Create (or reuse) the virtual environment
2. Install PyTorch: ROCm wheel index, else build from source
3. Install torchvision: downloaded ROCm wheel, else build from source
4. Import both inside the environment and report versions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from utils.command import CommandRunner

from .components import framework_core_target, vision_library_target
from .config import ProvisionConfig
from .environment import Environment, EnvironmentProvisioner
from .strategies import ArtifactDownloader
from .tiered import InstallResult, TieredInstaller
from .verifier import InstallationVerifier, VerificationReport

logger = logging.getLogger(__name__)


@dataclass
class ProvisionReport:
    """Outcome of a provisioning run."""
    environment: Environment
    results: List[InstallResult] = field(default_factory=list)
    verification: Optional[VerificationReport] = None


class Provisioner:
    """
    Runs the fixed provisioning pipeline.

    Environment creation, a component whose every strategy failed and
    verification are fatal: their errors propagate to the caller.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        runner: Optional[CommandRunner] = None,
        downloader: Optional[ArtifactDownloader] = None,
    ):
        self.config = config
        self.runner = runner or CommandRunner(use_sudo=config.use_sudo)
        self.downloader = downloader or ArtifactDownloader(timeout=config.download_timeout)
        self.provisioner = EnvironmentProvisioner(self.runner, config.python_executable)
        self.installer = TieredInstaller()
        self.verifier = InstallationVerifier(
            self.runner,
            expected_vision_version=config.torchvision_version,
            strict=config.strict_verification,
        )

    def run(self) -> ProvisionReport:
        logger.info("Starting PyTorch and torchvision installation with ROCm support...")

        env = self.provisioner.create(self.config.venv_dir)
        report = ProvisionReport(environment=env)

        targets = [
            framework_core_target(self.config, self.runner),
            vision_library_target(self.config, env, self.runner, self.downloader),
        ]
        for target in targets:
            report.results.append(self.installer.install(target, env))

        report.verification = self.verifier.verify(env)

        logger.info(
            "Installation complete. PyTorch and torchvision are installed with ROCm "
            f"support in the virtual environment at {env.path}."
        )
        logger.info(f"Activate the virtual environment using: {env.activate_hint}")
        return report
