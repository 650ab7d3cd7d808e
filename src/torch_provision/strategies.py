"""
Acquisition strategies for installing a component into an environment.

Every strategy either completes or raises StrategyError; the tiered
installer decides what to try next.
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import List, Optional

import requests

from common.decorators import timed
from common.exceptions import CommandError, DownloadError, StrategyError
from utils.command import CommandRunner

from .config import SourceBuild
from .environment import Environment

logger = logging.getLogger(__name__)

NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class StrategyKind(Enum):
    """How a component is acquired."""
    PREBUILT = "prebuilt-artifact"
    SOURCE_BUILD = "source-build"


class ArtifactDownloader:
    """
    Streams a URL to a local file.

    The file appears at its destination only after the whole body was
    received; partial downloads are removed.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        chunk_size: int = 8192,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def fetch(self, url: str, destination: Path) -> Path:
        """
        Download ``url`` to ``destination``.

        Raises:
            DownloadError: Network failure or HTTP error status.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading {url}")

        fd, temp_path = tempfile.mkstemp(
            dir=destination.parent,
            prefix=f".{destination.name}.",
            suffix=".part",
        )
        try:
            with os.fdopen(fd, "wb") as f:
                response = self.session.get(url, stream=True, timeout=self.timeout)
                try:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                finally:
                    response.close()
            os.replace(temp_path, destination)
        except requests.RequestException as e:
            _discard(temp_path)
            raise DownloadError(url, str(e))
        except OSError:
            _discard(temp_path)
            raise

        logger.info(f"Downloaded {destination.name}")
        return destination


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except OSError:
        pass


class Strategy(ABC):
    """One way of getting a component into an environment."""

    kind: StrategyKind

    @property
    @abstractmethod
    def description(self) -> str:
        """Short human-readable label for logs."""

    @abstractmethod
    def run(self, component: str, env: Environment) -> None:
        """Install the component or raise StrategyError."""

    def _fail(self, component: str, reason: str, cause: Optional[Exception] = None) -> None:
        raise StrategyError(component, self.kind.value, reason, cause=cause)


class IndexWheelStrategy(Strategy):
    """``pip install <package> --index-url <index>``."""

    kind = StrategyKind.PREBUILT

    def __init__(self, package: str, index_url: str, runner: CommandRunner):
        self.package = package
        self.index_url = index_url
        self.runner = runner

    @property
    def description(self) -> str:
        return f"prebuilt wheel from {self.index_url}"

    def run(self, component: str, env: Environment) -> None:
        try:
            self.runner.run([str(env.pip), "install", self.package, "--index-url", self.index_url])
        except CommandError as e:
            self._fail(component, "pip could not install a prebuilt wheel", e)


class DownloadedWheelStrategy(Strategy):
    """
    Download a named wheel from a fixed location, then install the file.

    A failed download and a failed install of the downloaded file are the
    same outcome: the prebuilt strategy failed.
    """

    kind = StrategyKind.PREBUILT

    def __init__(
        self,
        url: str,
        destination: Path,
        downloader: ArtifactDownloader,
        runner: CommandRunner,
    ):
        self.url = url
        self.destination = Path(destination)
        self.downloader = downloader
        self.runner = runner

    @property
    def description(self) -> str:
        return f"prebuilt wheel {self.destination.name}"

    def run(self, component: str, env: Environment) -> None:
        try:
            wheel = self.downloader.fetch(self.url, self.destination)
        except (DownloadError, OSError) as e:
            self._fail(component, "wheel download failed", e)

        logger.info(f"Installing {component} from {wheel.name}...")
        try:
            self.runner.run([str(env.pip), "install", str(wheel)])
        except CommandError as e:
            self._fail(component, "pip could not install the downloaded wheel", e)


class SourceBuildStrategy(Strategy):
    """Clone, prepare and build a component with the environment's interpreter."""

    kind = StrategyKind.SOURCE_BUILD

    def __init__(self, build: SourceBuild, checkout_dir: Path, runner: CommandRunner):
        self.build = build
        self.checkout_dir = Path(checkout_dir)
        self.runner = runner

    @property
    def description(self) -> str:
        return f"source build of {self.build.repo_url}"

    def _expand(self, argv: List[str], env: Environment) -> List[str]:
        return [a.format(python=env.python, pip=env.pip) for a in argv]

    @timed
    def run(self, component: str, env: Environment) -> None:
        build = self.build
        try:
            if build.build_packages:
                self.runner.run(
                    ["apt-get", "install", "-y", *build.build_packages],
                    privileged=True,
                    env=NONINTERACTIVE,
                )

            if (self.checkout_dir / ".git").is_dir():
                logger.info(f"Reusing existing checkout at {self.checkout_dir}")
            else:
                self.checkout_dir.parent.mkdir(parents=True, exist_ok=True)
                clone = ["git", "clone"]
                if build.recursive:
                    clone.append("--recursive")
                self.runner.run([*clone, build.repo_url, str(self.checkout_dir)])

            if build.ref:
                self.runner.run(["git", "checkout", build.ref], cwd=self.checkout_dir)

            for argv in build.prepare_commands:
                self.runner.run(self._expand(argv, env), cwd=self.checkout_dir, env=build.build_env)

            self.runner.run(
                self._expand(build.build_command, env),
                cwd=self.checkout_dir,
                env=build.build_env,
            )
        except (CommandError, OSError) as e:
            self._fail(component, "build from source failed", e)

        logger.info(f"{component} built and installed successfully.")
