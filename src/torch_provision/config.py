"""
Provisioning Configuration - Dataclasses for the PyTorch/torchvision run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

from common.exceptions import InvalidConfigError, MissingConfigError

logger = logging.getLogger(__name__)


@dataclass
class SourceBuild:
    """
    How to build a component from its source tree.

    Command arguments may use ``{python}`` and ``{pip}``, which expand to
    the environment's interpreter and pip.
    """
    repo_url: str
    ref: Optional[str] = None
    recursive: bool = False
    build_packages: List[str] = field(default_factory=list)
    prepare_commands: List[List[str]] = field(default_factory=list)
    build_command: List[str] = field(default_factory=lambda: ["{python}", "setup.py", "install"])
    build_env: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.repo_url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")


def _pytorch_build() -> SourceBuild:
    return SourceBuild(
        repo_url="https://github.com/pytorch/pytorch.git",
        recursive=True,
        build_packages=["git", "cmake", "ninja-build", "libopenblas-dev", "libnuma-dev"],
        prepare_commands=[
            ["git", "submodule", "sync"],
            ["git", "submodule", "update", "--init", "--recursive"],
            ["{pip}", "install", "-r", "requirements.txt"],
            ["{python}", "tools/amd_build/build_amd.py"],
        ],
        build_env={"USE_ROCM": "1", "USE_NINJA": "1"},
    )


def _torchvision_build() -> SourceBuild:
    return SourceBuild(
        repo_url="https://github.com/pytorch/vision.git",
        ref="v{version}",
        build_packages=["libjpeg-dev", "libopenblas-dev", "libnuma-dev", "git"],
    )


@dataclass
class ProvisionConfig:
    """
    Complete provisioning configuration.

    It can be serialized to/from JSON for repeatable runs.
    """
    venv_dir: Path = field(default_factory=lambda: Path.home() / "deepseek-env")
    log_file: Path = field(default_factory=lambda: Path.home() / "pytorch_rocm_install.log")
    work_dir: Path = field(default_factory=lambda: Path.home() / "torch-build")
    python_executable: str = "python3"

    rocm_version: str = "6.3"
    # RX 580 (Polaris)
    rocm_arch: str = "gfx803"

    torch_package: str = "torch"
    torch_index_url: str = "https://download.pytorch.org/whl/rocm{rocm_version}"
    torchvision_version: str = "0.18.0"
    torchvision_wheel_url: str = "https://download.pytorch.org/whl/rocm{rocm_version}/{wheel}"

    pytorch_build: SourceBuild = field(default_factory=_pytorch_build)
    torchvision_build: SourceBuild = field(default_factory=_torchvision_build)

    download_timeout: float = 60.0
    strict_verification: bool = False
    use_sudo: Optional[bool] = None

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages. Empty if valid.
        """
        errors = []

        if not self.rocm_version:
            errors.append("ROCm version is required")

        if not self.torchvision_version:
            errors.append("torchvision version is required")

        if "{wheel}" not in self.torchvision_wheel_url:
            errors.append("torchvision_wheel_url must contain {wheel}")

        if self.download_timeout <= 0:
            errors.append("download_timeout must be positive")

        return errors

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, SourceBuild):
                value = {sf.name: getattr(value, sf.name) for sf in fields(SourceBuild)}
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProvisionConfig":
        """Create ProvisionConfig from dictionary."""
        config = cls()
        known = {f.name: f for f in fields(cls)}

        for key, value in data.items():
            if key not in known:
                raise InvalidConfigError(key, value, "unknown setting")

            current = getattr(config, key)
            if isinstance(current, Path):
                value = Path(value).expanduser()
            elif isinstance(current, SourceBuild):
                merged = {sf.name: getattr(current, sf.name) for sf in fields(SourceBuild)}
                try:
                    merged.update(value)
                    value = SourceBuild(**merged)
                except TypeError as e:
                    raise InvalidConfigError(key, value, str(e))
            setattr(config, key, value)

        return config


def load_config(path: Optional[Path] = None) -> ProvisionConfig:
    """
    Load a ProvisionConfig from a JSON file, or return defaults.

    Raises:
        MissingConfigError: The file does not exist.
        InvalidConfigError: The file is not valid JSON or fails validation.
    """
    if path is None:
        return ProvisionConfig()

    path = Path(path)
    if not path.exists():
        raise MissingConfigError(str(path))

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidConfigError(str(path), "<file>", f"not valid JSON: {e}")

    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), type(data).__name__, "expected a JSON object")

    config = ProvisionConfig.from_dict(data)
    errors = config.validate()
    if errors:
        raise InvalidConfigError(str(path), "<file>", "; ".join(errors))

    logger.debug(f"Loaded provisioning configuration from {path}")
    return config
