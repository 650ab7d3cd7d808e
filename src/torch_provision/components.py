"""
Install targets for the framework core (PyTorch) and vision library
(torchvision).
"""

from __future__ import annotations

import dataclasses
import platform
from urllib.parse import quote

from utils.command import CommandRunner

from .config import ProvisionConfig
from .environment import Environment
from .strategies import (
    ArtifactDownloader,
    DownloadedWheelStrategy,
    IndexWheelStrategy,
    SourceBuildStrategy,
)
from .tiered import InstallTarget

FRAMEWORK_CORE = "PyTorch"
VISION_LIBRARY = "torchvision"


def vision_wheel_name(config: ProvisionConfig, env: Environment) -> str:
    """Wheel filename for the platform/interpreter/ROCm triple."""
    return (
        f"torchvision-{config.torchvision_version}+rocm{config.rocm_version}"
        f"-{env.python_tag}-{env.python_tag}-linux_{platform.machine()}.whl"
    )


def framework_core_target(
    config: ProvisionConfig,
    runner: CommandRunner,
) -> InstallTarget:
    index_url = config.torch_index_url.format(rocm_version=config.rocm_version)

    build = dataclasses.replace(
        config.pytorch_build,
        build_env={**config.pytorch_build.build_env, "PYTORCH_ROCM_ARCH": config.rocm_arch},
    )

    return InstallTarget(
        component=FRAMEWORK_CORE,
        strategies=[
            IndexWheelStrategy(config.torch_package, index_url, runner),
            SourceBuildStrategy(build, config.work_dir / build.name, runner),
        ],
    )


def vision_library_target(
    config: ProvisionConfig,
    env: Environment,
    runner: CommandRunner,
    downloader: ArtifactDownloader,
) -> InstallTarget:
    wheel = vision_wheel_name(config, env)
    url = config.torchvision_wheel_url.format(
        rocm_version=config.rocm_version,
        wheel=quote(wheel),
    )

    build = config.torchvision_build
    if build.ref:
        build = dataclasses.replace(build, ref=build.ref.format(version=config.torchvision_version))

    return InstallTarget(
        component=VISION_LIBRARY,
        strategies=[
            DownloadedWheelStrategy(url, config.work_dir / wheel, downloader, runner),
            SourceBuildStrategy(build, config.work_dir / build.name, runner),
        ],
    )
