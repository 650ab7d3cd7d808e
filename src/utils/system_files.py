"""
System file operations with sudo fallback.

Each helper first tries a direct write (works when running as root or on
user-owned paths) and falls back to privileged commands on PermissionError.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Union

from .atomic_write import atomic_write_text
from .command import CommandRunner

logger = logging.getLogger(__name__)


def write_system_file(
    path: Union[str, Path],
    content: str,
    runner: CommandRunner,
    mode: int = 0o644,
) -> None:
    """
    Write to a system file, using sudo if necessary.

    Args:
        path: System file path
        content: Content to write
        runner: Runner used for the privileged fallback
        mode: File permissions
    """
    path = Path(path)
    try:
        atomic_write_text(path, content, mode)
        return
    except PermissionError:
        logger.debug(f"Direct write to {path} denied, retrying with privileges")

    runner.run(["mkdir", "-p", str(path.parent)], privileged=True)
    runner.run(["tee", str(path)], privileged=True, input=content)
    runner.run(["chmod", oct(mode)[2:], str(path)], privileged=True)


def set_environment_variable(
    env_file: Union[str, Path],
    key: str,
    value: str,
    runner: CommandRunner,
) -> bool:
    """
    Set ``KEY=value`` in a pam_env style environment file.

    An existing assignment of the key is replaced instead of duplicated.

    Returns:
        True if the file content changed.
    """
    env_file = Path(env_file)
    lines = env_file.read_text(encoding="utf-8").splitlines() if env_file.exists() else []
    assignment = f"{key}={value}"

    updated = []
    found = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(f"{key}=") or stripped.startswith(f"export {key}="):
            if not found:
                updated.append(assignment)
                found = True
            continue
        updated.append(line)
    if not found:
        updated.append(assignment)

    if updated == lines:
        logger.info(f"{key} already set in {env_file}")
        return False

    write_system_file(env_file, "\n".join(updated) + "\n", runner)
    return True


def remove_system_path(path: Union[str, Path], runner: CommandRunner) -> None:
    """Remove a file or directory tree, using sudo if necessary."""
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except PermissionError:
        runner.run(["rm", "-rf", str(path)], privileged=True)


def replace_system_file(
    source: Union[str, Path],
    destination: Union[str, Path],
    runner: CommandRunner,
) -> None:
    """Overwrite ``destination`` with a copy of ``source``."""
    source, destination = Path(source), Path(destination)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    except PermissionError:
        runner.run(["cp", "-a", str(source), str(destination)], privileged=True)


def replace_system_tree(
    source: Union[str, Path],
    destination: Union[str, Path],
    runner: CommandRunner,
) -> None:
    """Replace the directory ``destination`` with a copy of ``source``."""
    source, destination = Path(source), Path(destination)
    remove_system_path(destination, runner)
    try:
        shutil.copytree(source, destination, symlinks=True)
    except PermissionError:
        runner.run(["cp", "-a", str(source), str(destination)], privileged=True)
