#!/usr/bin/env python3
"""
ROCm Setup Snapshot Manager

Captures package selections and APT/environment configuration before the
driver install so that ``rocm-setup --rollback`` can put them back.
"""

from __future__ import annotations

import hashlib
import json
import logging
import platform
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

from common.exceptions import SetupError, SnapshotCorruptError, SnapshotError
from utils.atomic_write import atomic_write_json, atomic_write_text, replace_directory
from utils.command import CommandRunner

from .config import SystemPaths

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1

SELECTIONS_FILE = "dpkg_selections.txt"
SOURCES_DIR = "sources.list.d"
SOURCES_FILE = "sources.list"
ENVIRONMENT_FILE = "environment"
MANIFEST_FILE = "snapshot.json"

ARTIFACTS = (SELECTIONS_FILE, SOURCES_DIR, SOURCES_FILE, ENVIRONMENT_FILE)


def _digest(path: Path) -> str:
    """SHA-256 of a file, or of every entry below a directory."""
    h = hashlib.sha256()
    if path.is_dir():
        for entry in sorted(path.rglob("*")):
            h.update(str(entry.relative_to(path)).encode("utf-8") + b"\0")
            if entry.is_symlink():
                h.update(b"link:" + str(entry.readlink()).encode("utf-8"))
            elif entry.is_file():
                h.update(entry.read_bytes())
            else:
                h.update(b"dir")
            h.update(b"\0")
    else:
        h.update(path.read_bytes())
    return h.hexdigest()


@dataclass(frozen=True)
class Snapshot:
    """A captured system state, identified by its directory."""
    path: Path
    created: datetime
    format_version: int = SNAPSHOT_FORMAT_VERSION
    kernel: str = ""
    checksums: Dict[str, str] = field(default_factory=dict)
    missing: Tuple[str, ...] = ()

    def artifact(self, name: str) -> Path:
        return self.path / name

    def has(self, name: str) -> bool:
        """True if the artifact was present on the system at capture time."""
        return name not in self.missing

    @property
    def age_str(self) -> str:
        """Get human-readable age."""
        delta = datetime.now() - self.created
        if delta.days > 0:
            return f"{delta.days} days ago"
        elif delta.seconds > 3600:
            return f"{delta.seconds // 3600} hours ago"
        elif delta.seconds > 60:
            return f"{delta.seconds // 60} minutes ago"
        else:
            return "Just now"

    def to_manifest(self) -> dict:
        return {
            "format_version": self.format_version,
            "created": self.created.isoformat(timespec="seconds"),
            "kernel": self.kernel,
            "artifacts": dict(self.checksums),
            "missing": list(self.missing),
        }


class SnapshotManager:
    """
    Manages the single rollback snapshot.

    Capture is atomic: artifacts are written to a staging directory next to
    the snapshot location and swapped in only once complete, so an
    interrupted capture leaves the previous snapshot as it was.
    """

    def __init__(self, root: Path, paths: SystemPaths, runner: CommandRunner):
        self.root = Path(root)
        self.paths = paths
        self.runner = runner

    @property
    def exists(self) -> bool:
        return self.root.is_dir()

    def _sources(self) -> Dict[str, Path]:
        return {
            SOURCES_DIR: self.paths.apt_sources_dir,
            SOURCES_FILE: self.paths.apt_sources_list,
            ENVIRONMENT_FILE: self.paths.environment_file,
        }

    def capture(self) -> Snapshot:
        """
        Capture package selections and configuration files.

        Returns:
            The new Snapshot.

        Raises:
            SnapshotError: Capture failed, or the snapshot location holds
                something other than a snapshot. Either way nothing on disk
                is changed.
        """
        logger.info("Creating rollback snapshot...")
        if self.root.exists() and not (self.root / MANIFEST_FILE).is_file():
            if not self.root.is_dir() or any(self.root.iterdir()):
                raise SnapshotError(
                    f"Refusing to replace {self.root}: it exists and is not a rollback snapshot"
                )
        self.root.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=self.root.parent, prefix=f".{self.root.name}.staging."))

        try:
            result = self.runner.run(["dpkg", "--get-selections"])
            atomic_write_text(staging / SELECTIONS_FILE, result.stdout)

            missing = []
            for name, source in self._sources().items():
                target = staging / name
                if source.is_dir():
                    shutil.copytree(source, target, symlinks=True)
                elif source.is_file():
                    shutil.copy2(source, target)
                else:
                    logger.warning(f"{source} does not exist, recording it as absent")
                    missing.append(name)

            snapshot = Snapshot(
                path=self.root,
                created=datetime.now().replace(microsecond=0),
                kernel=platform.release(),
                checksums={
                    name: _digest(staging / name)
                    for name in ARTIFACTS if name not in missing
                },
                missing=tuple(missing),
            )
            atomic_write_json(staging / MANIFEST_FILE, snapshot.to_manifest())
            replace_directory(staging, self.root)

        except (OSError, SetupError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise SnapshotError(f"Failed to capture snapshot in {self.root}", cause=e)

        logger.info(f"Rollback snapshot created in {self.root}.")
        return snapshot

    def load(self) -> Optional[Snapshot]:
        """
        Load and validate the stored snapshot.

        Returns:
            The Snapshot, or None if no snapshot directory exists.

        Raises:
            SnapshotCorruptError: The directory exists but is not well-formed.
        """
        if not self.exists:
            return None

        manifest_path = self.root / MANIFEST_FILE
        if not manifest_path.is_file():
            raise SnapshotCorruptError(str(self.root), f"{MANIFEST_FILE} is missing")

        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            version = int(manifest["format_version"])
            created = datetime.fromisoformat(manifest["created"])
            checksums = dict(manifest["artifacts"])
            missing = tuple(manifest.get("missing", []))
        except (ValueError, KeyError, TypeError) as e:
            raise SnapshotCorruptError(str(self.root), f"unreadable manifest: {e}")

        if version > SNAPSHOT_FORMAT_VERSION:
            raise SnapshotCorruptError(
                str(self.root), f"format version {version} is newer than {SNAPSHOT_FORMAT_VERSION}"
            )

        if SELECTIONS_FILE in missing:
            raise SnapshotCorruptError(str(self.root), "package selections were not captured")

        for name in ARTIFACTS:
            if name in missing:
                continue
            artifact = self.root / name
            if name not in checksums or not artifact.exists():
                raise SnapshotCorruptError(str(self.root), f"artifact {name} is missing")
            if _digest(artifact) != checksums[name]:
                raise SnapshotCorruptError(str(self.root), f"artifact {name} does not match its checksum")

        return Snapshot(
            path=self.root,
            created=created,
            format_version=version,
            kernel=manifest.get("kernel", ""),
            checksums=checksums,
            missing=missing,
        )
