"""
Installation Verifier

Imports the installed packages inside the environment and checks the
versions and accelerator availability they report.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from common.exceptions import CommandError, VerificationError
from utils.command import CommandRunner

from .environment import Environment

logger = logging.getLogger(__name__)

CHECK_SCRIPT = """\
import json
import torch
import torchvision
print(json.dumps({
    "torch": torch.__version__,
    "torchvision": torchvision.__version__,
    "accelerator_available": bool(torch.cuda.is_available()),
    "hip": getattr(torch.version, "hip", None),
}))
"""


@dataclass
class VerificationReport:
    """What the environment reported about its installation."""
    torch_version: str
    torchvision_version: str
    accelerator_available: bool
    hip_version: Optional[str] = None
    issues: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.issues


class InstallationVerifier:
    """
    Runs the smoke check in an environment.

    Args:
        runner: Command runner.
        expected_vision_version: torchvision version the run installed.
        strict: Treat any issue as fatal.
    """

    def __init__(
        self,
        runner: CommandRunner,
        expected_vision_version: Optional[str] = None,
        strict: bool = False,
    ):
        self.runner = runner
        self.expected_vision_version = expected_vision_version
        self.strict = strict

    def verify(self, env: Environment) -> VerificationReport:
        """
        Verify the installation.

        Raises:
            VerificationError: The check could not run, its output was not
                understood, or (strict mode) it reported issues.
        """
        logger.info("Verifying PyTorch and torchvision installation...")
        try:
            result = self.runner.run([str(env.python), "-c", CHECK_SCRIPT])
        except CommandError as e:
            raise VerificationError("PyTorch or torchvision is not working correctly", cause=e)

        lines = result.stdout.strip().splitlines()
        try:
            data = json.loads(lines[-1])
            report = VerificationReport(
                torch_version=str(data["torch"]),
                torchvision_version=str(data["torchvision"]),
                accelerator_available=bool(data["accelerator_available"]),
                hip_version=data.get("hip"),
            )
        except (IndexError, ValueError, KeyError, TypeError) as e:
            raise VerificationError(f"unexpected check output: {result.stdout!r}", cause=e)

        logger.info(f"PyTorch version: {report.torch_version}")
        logger.info(f"torchvision version: {report.torchvision_version}")
        logger.info(f"ROCm available: {report.accelerator_available}")
        if report.hip_version:
            logger.info(f"HIP version: {report.hip_version}")

        if not report.accelerator_available:
            report.issues.append("no ROCm device is visible to PyTorch")
        if self.expected_vision_version and not report.torchvision_version.startswith(
            self.expected_vision_version
        ):
            report.issues.append(
                f"torchvision {report.torchvision_version} installed, "
                f"expected {self.expected_vision_version}"
            )

        for issue in report.issues:
            logger.warning(issue)
        if self.strict and report.issues:
            raise VerificationError("; ".join(report.issues))

        return report
