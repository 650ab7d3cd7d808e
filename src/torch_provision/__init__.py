"""
PyTorch Provisioning with ROCm

Sets up an isolated environment with PyTorch and torchvision:
- Virtual environment creation (reused when already present)
- Prebuilt wheels first, source builds as fallback
- Smoke check of versions and accelerator availability
"""

from .config import ProvisionConfig, SourceBuild, load_config
from .environment import Environment, EnvironmentProvisioner
from .strategies import (
    ArtifactDownloader,
    DownloadedWheelStrategy,
    IndexWheelStrategy,
    SourceBuildStrategy,
    Strategy,
    StrategyKind,
)
from .tiered import InstallResult, InstallTarget, TieredInstaller
from .verifier import InstallationVerifier, VerificationReport
from .pipeline import ProvisionReport, Provisioner

__all__ = [
    "ProvisionConfig",
    "SourceBuild",
    "load_config",
    "Environment",
    "EnvironmentProvisioner",
    "ArtifactDownloader",
    "DownloadedWheelStrategy",
    "IndexWheelStrategy",
    "SourceBuildStrategy",
    "Strategy",
    "StrategyKind",
    "InstallResult",
    "InstallTarget",
    "TieredInstaller",
    "InstallationVerifier",
    "VerificationReport",
    "ProvisionReport",
    "Provisioner",
]
