"""
Driver Setup Configuration - Dataclasses for the ROCm install run.
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
class SystemPaths:
    """System files touched by install and rollback."""
    apt_sources_list: Path = Path("/etc/apt/sources.list")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    apt_keyrings_dir: Path = Path("/etc/apt/keyrings")
    environment_file: Path = Path("/etc/environment")
    profile_script: Path = Path("/etc/profile.d/rocm.sh")

    @classmethod
    def under(cls, root: Path) -> "SystemPaths":
        """Default layout relocated below ``root`` (used for chroots and tests)."""
        default = cls()
        return cls(**{
            f.name: Path(root) / getattr(default, f.name).relative_to("/")
            for f in fields(cls)
        })


@dataclass
class RocmRepository:
    """APT repository serving ROCm packages."""
    version: str = "6.3.1"
    suite: str = "noble"
    component: str = "main"
    arch: str = "amd64"
    base_url: str = "https://repo.radeon.com/rocm/apt"
    key_url: str = "https://repo.radeon.com/rocm/rocm.gpg.key"
    keyring_name: str = "rocm.gpg"
    list_name: str = "rocm.list"

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.version}"


# JSON shape of each setting accepted by DriverConfig.from_dict()
_SETTING_TYPES = {
    "paths": "object",
    "repository": "object",
    "snapshot_dir": "string",
    "log_file": "string",
    "upgrade_system": "boolean",
    "prerequisites": "list of strings",
    "packages": "list of strings",
    "groups": "list of strings",
    "user": "string or null",
    "path_entries": "list of strings",
    "environment_overrides": "object of strings",
    "verify_commands": "list of strings",
    "key_timeout": "number",
    "use_sudo": "boolean or null",
}


def _has_type(value, expected: str) -> bool:
    if expected.endswith(" or null") and value is None:
        return True
    kind = expected.replace(" or null", "")
    if kind == "object":
        return isinstance(value, dict)
    if kind == "object of strings":
        return isinstance(value, dict) and all(isinstance(v, str) for v in value.values())
    if kind == "list of strings":
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    if kind == "string":
        return isinstance(value, str)
    if kind == "boolean":
        return isinstance(value, bool)
    if kind == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return False


@dataclass
class DriverConfig:
    """
    Complete driver installation configuration.

    It can be serialized to/from JSON so that a run can be repeated with
    the same settings.
    """
    paths: SystemPaths = field(default_factory=SystemPaths)
    repository: RocmRepository = field(default_factory=RocmRepository)
    snapshot_dir: Path = field(default_factory=lambda: Path.home() / "rocm_rollback")
    log_file: Path = field(default_factory=lambda: Path.home() / "rocm_install.log")

    upgrade_system: bool = True
    # {kernel} expands to the running kernel release
    prerequisites: List[str] = field(default_factory=lambda: [
        "linux-headers-{kernel}",
        "linux-modules-extra-{kernel}",
        "libnuma-dev",
    ])
    packages: List[str] = field(default_factory=lambda: ["rocm", "rocm-dev"])
    groups: List[str] = field(default_factory=lambda: ["video", "render"])
    user: Optional[str] = None

    path_entries: List[str] = field(default_factory=lambda: [
        "/opt/rocm/bin",
        "/opt/rocm/opencl/bin",
    ])
    # RX 580 (Polaris) needs the gfx803 override
    environment_overrides: Dict[str, str] = field(default_factory=lambda: {
        "HSA_OVERRIDE_GFX_VERSION": "8.0.3",
    })
    verify_commands: List[str] = field(default_factory=lambda: [
        "/opt/rocm/bin/rocminfo",
        "/opt/rocm/opencl/bin/clinfo",
    ])

    key_timeout: float = 60.0
    use_sudo: Optional[bool] = None

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages. Empty if valid.
        """
        errors = []

        if not self.packages:
            errors.append("At least one package to install is required")

        if not self.repository.version:
            errors.append("ROCm repository version is required")

        for key in self.environment_overrides:
            if not key or "=" in key or " " in key:
                errors.append(f"Invalid environment variable name: {key!r}")

        if self.snapshot_dir.resolve() in (Path("/"), Path.home().resolve()):
            errors.append(f"Refusing to use {self.snapshot_dir} as snapshot directory")

        return errors

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "paths": {f.name: str(getattr(self.paths, f.name)) for f in fields(SystemPaths)},
            "repository": {f.name: getattr(self.repository, f.name) for f in fields(RocmRepository)},
            "snapshot_dir": str(self.snapshot_dir),
            "log_file": str(self.log_file),
            "upgrade_system": self.upgrade_system,
            "prerequisites": list(self.prerequisites),
            "packages": list(self.packages),
            "groups": list(self.groups),
            "user": self.user,
            "path_entries": list(self.path_entries),
            "environment_overrides": dict(self.environment_overrides),
            "verify_commands": list(self.verify_commands),
            "key_timeout": self.key_timeout,
            "use_sudo": self.use_sudo,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DriverConfig":
        """Create DriverConfig from dictionary."""
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                raise InvalidConfigError(key, data[key], "unknown setting")

        for key, value in data.items():
            expected = _SETTING_TYPES.get(key)
            if expected is not None and not _has_type(value, expected):
                raise InvalidConfigError(key, value, f"expected {expected}")

        config = cls()
        try:
            if "paths" in data:
                config.paths = SystemPaths(**{k: Path(v) for k, v in data["paths"].items()})
            if "repository" in data:
                config.repository = RocmRepository(**data["repository"])
        except TypeError as e:
            raise InvalidConfigError("paths/repository", data, str(e))

        for name in ("snapshot_dir", "log_file"):
            if name in data:
                setattr(config, name, Path(data[name]).expanduser())

        for name in (
            "upgrade_system", "prerequisites", "packages", "groups", "user",
            "path_entries", "environment_overrides", "verify_commands",
            "key_timeout", "use_sudo",
        ):
            if name in data:
                setattr(config, name, data[name])

        return config


def load_config(path: Optional[Path] = None) -> DriverConfig:
    """
    Load a DriverConfig from a JSON file, or return defaults.

    Raises:
        MissingConfigError: The file does not exist.
        InvalidConfigError: The file is not valid JSON or fails validation.
    """
    if path is None:
        return DriverConfig()

    path = Path(path)
    if not path.exists():
        raise MissingConfigError(str(path))

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidConfigError(str(path), "<file>", f"not valid JSON: {e}")

    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), type(data).__name__, "expected a JSON object")

    config = DriverConfig.from_dict(data)
    errors = config.validate()
    if errors:
        raise InvalidConfigError(str(path), "<file>", "; ".join(errors))

    logger.debug(f"Loaded driver configuration from {path}")
    return config
