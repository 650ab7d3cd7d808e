"""
Environment Provisioner - creates the isolated Python environment.

Re-running against an existing virtual environment reuses it. A path that
holds anything else is rejected.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from common.exceptions import CommandError, ProvisionError
from utils.command import CommandRunner

logger = logging.getLogger(__name__)

TAG_SCRIPT = "import sys; print(f'cp{sys.version_info.major}{sys.version_info.minor}')"


@dataclass(frozen=True)
class Environment:
    """Handle to a provisioned virtual environment."""
    path: Path
    python_tag: str

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"

    @property
    def python(self) -> Path:
        return self.bin_dir / "python3"

    @property
    def pip(self) -> Path:
        return self.bin_dir / "pip"

    @property
    def activate_hint(self) -> str:
        return f"source {self.bin_dir / 'activate'}"


def _nearest_existing(path: Path) -> Path:
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path("/")


class EnvironmentProvisioner:
    """
    Creates virtual environments with ``python -m venv``.

    Args:
        runner: Command runner.
        python_executable: Interpreter used to create environments.
    """

    def __init__(self, runner: CommandRunner, python_executable: str = "python3"):
        self.runner = runner
        self.python_executable = python_executable

    def create(self, path: Union[str, Path]) -> Environment:
        """
        Create (or reuse) a virtual environment at ``path``.

        Raises:
            ProvisionError: Interpreter missing, path not writable, or venv
                creation failed.
        """
        path = Path(path).expanduser().absolute()
        logger.info("Creating virtual environment...")

        interpreter = shutil.which(self.python_executable)
        if interpreter is None:
            raise ProvisionError(str(path), f"interpreter {self.python_executable!r} not found")

        if (path / "pyvenv.cfg").is_file():
            logger.info(f"Reusing existing virtual environment at {path}")
        else:
            self._check_target(path)
            try:
                self.runner.run([interpreter, "-m", "venv", str(path)])
            except CommandError as e:
                raise ProvisionError(str(path), "venv creation failed", cause=e)

        env = Environment(path=path, python_tag="")
        if not env.python.exists():
            raise ProvisionError(str(path), f"{env.python} missing after creation")

        try:
            tag = self.runner.run([str(env.python), "-c", TAG_SCRIPT]).stdout.strip()
        except CommandError as e:
            raise ProvisionError(str(path), "environment interpreter does not run", cause=e)
        if not tag.startswith("cp"):
            raise ProvisionError(str(path), f"unexpected interpreter tag {tag!r}")

        logger.info(f"Virtual environment created at {path}.")
        return Environment(path=path, python_tag=tag)

    def _check_target(self, path: Path) -> None:
        if path.exists():
            if not path.is_dir():
                raise ProvisionError(str(path), "path exists and is not a directory")
            if any(path.iterdir()):
                raise ProvisionError(str(path), "directory is not empty and is not a virtual environment")

        anchor = _nearest_existing(path)
        if not anchor.is_dir() or not os.access(anchor, os.W_OK | os.X_OK):
            raise ProvisionError(str(path), f"{anchor} is not writable")
