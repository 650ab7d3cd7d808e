"""
Atomic file operations.

Ensures file writes are atomic - either complete successfully or no change.
Uses write-to-temp-then-rename pattern for POSIX atomicity guarantees.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Union


def _fsync_directory(path: Path) -> None:
    try:
        dir_fd = os.open(str(path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError):
        # O_DIRECTORY not available on all platforms
        pass


def atomic_write_bytes(path: Union[str, Path], content: bytes, mode: int = 0o644) -> None:
    """
    Write binary content to file atomically.

    On POSIX systems, rename() is atomic within the same filesystem, so the
    temp file is created next to the destination.

    Args:
        path: Destination file path
        content: Binary content to write
        mode: File permissions (default 0o644)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())  # Ensure written to disk

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
        _fsync_directory(path.parent)

    except Exception:
        # Clean up temp file on failure
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: Union[str, Path], content: str, mode: int = 0o644) -> None:
    """
    Write text content to file atomically.

    Args:
        path: Destination file path
        content: Text content to write
        mode: File permissions (default 0o644)
    """
    atomic_write_bytes(path, content.encode("utf-8"), mode)


def atomic_write_json(
    path: Union[str, Path],
    data: Any,
    indent: int = 2,
    mode: int = 0o644,
) -> None:
    """
    Write JSON data to file atomically.

    Args:
        path: Destination file path
        data: JSON-serializable data
        indent: JSON indentation (default 2)
        mode: File permissions (default 0o644)
    """
    content = json.dumps(data, indent=indent, ensure_ascii=False, sort_keys=True)
    atomic_write_text(path, content + '\n', mode)


def replace_directory(staging: Union[str, Path], target: Union[str, Path]) -> None:
    """
    Swap a fully written staging directory into place.

    The previous target (if any) is renamed aside first and deleted only
    after the staging directory has been renamed onto the target path.
    Both paths must live on the same filesystem.

    Args:
        staging: Completed directory to install
        target: Destination directory path
    """
    staging = Path(staging)
    target = Path(target)
    previous = None

    if target.exists():
        previous = Path(tempfile.mkdtemp(dir=target.parent, prefix=f".{target.name}.old."))
        # mkdtemp reserves the name; rename needs it gone
        previous.rmdir()
        os.rename(target, previous)

    try:
        os.rename(staging, target)
    except OSError:
        if previous is not None:
            os.rename(previous, target)
        raise

    _fsync_directory(target.parent)

    if previous is not None:
        shutil.rmtree(previous, ignore_errors=True)
