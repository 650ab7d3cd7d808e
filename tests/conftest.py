"""
Pytest configuration and shared fixtures for the setup tool tests.

Provides a fake command runner and a throwaway system tree so that no
real package manager, sudo or network call is ever made.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union
from unittest.mock import MagicMock

import pytest
import requests

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from utils.command import CommandResult, CommandRunner  # noqa: E402


SELECTIONS = "adduser\t\t\t\t\tinstall\nbash\t\t\t\t\t\tinstall\nlibnuma-dev\t\t\t\t\tdeinstall\n"
SIGNING_KEY = b"-----BEGIN PGP PUBLIC KEY BLOCK-----\nfake\n-----END PGP PUBLIC KEY BLOCK-----\n"


# ============ Fake command runner ============

@dataclass
class RecordedCall:
    argv: List[str]
    env: Optional[dict]
    cwd: Optional[str]
    input: Optional[bytes]

    @property
    def line(self) -> str:
        return " ".join(self.argv)


class FakeRunner(CommandRunner):
    """
    CommandRunner that records commands instead of executing them.

    Responses are registered with ``on()``; the most recent matching
    registration wins, anything unmatched succeeds with empty output.
    """

    def __init__(self):
        super().__init__(use_sudo=False)
        self.calls: List[RecordedCall] = []
        self._responses = []

    def on(
        self,
        match: Union[str, Callable[[List[str]], bool]],
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Optional[Callable[[List[str], Optional[str]], None]] = None,
    ) -> None:
        if isinstance(match, str):
            text = match
            match = lambda argv: text in " ".join(argv)  # noqa: E731
        self._responses.insert(0, (match, returncode, stdout, stderr, effect))

    def _execute(self, argv, *, env, cwd, input):
        self.calls.append(RecordedCall(list(argv), dict(env) if env else None,
                                       str(cwd) if cwd else None, input))
        for match, returncode, stdout, stderr, effect in self._responses:
            if match(argv):
                if effect:
                    effect(argv, cwd)
                return CommandResult(argv=argv, returncode=returncode, stdout=stdout, stderr=stderr)
        return CommandResult(argv=argv, returncode=0, stdout="", stderr="")

    @property
    def lines(self) -> List[str]:
        return [c.line for c in self.calls]

    def find(self, text: str) -> List[RecordedCall]:
        return [c for c in self.calls if text in c.line]


@pytest.fixture
def fake_runner() -> FakeRunner:
    runner = FakeRunner()
    runner.on("dpkg --get-selections", stdout=SELECTIONS)
    return runner


def _make_venv(argv, cwd):
    path = Path(argv[-1])
    (path / "bin").mkdir(parents=True, exist_ok=True)
    (path / "bin" / "python3").write_text("#!/bin/sh\n")
    (path / "bin" / "pip").write_text("#!/bin/sh\n")
    (path / "pyvenv.cfg").write_text("home = /usr/bin\n")


@pytest.fixture
def venv_runner(fake_runner) -> FakeRunner:
    """Runner whose ``python -m venv`` creates a minimal environment layout."""
    fake_runner.on("-m venv", effect=_make_venv)
    fake_runner.on("sys.version_info", stdout="cp312\n")
    return fake_runner


# ============ System tree fixtures ============

@pytest.fixture
def system_root(tmp_path: Path) -> Path:
    """A fake / with the files the driver installer touches."""
    root = tmp_path / "root"
    apt = root / "etc/apt"
    (apt / "sources.list.d").mkdir(parents=True)
    (apt / "sources.list").write_text("# See sources.list.d/ubuntu.sources\n")
    (apt / "sources.list.d/ubuntu.sources").write_text(
        "Types: deb\nURIs: http://archive.ubuntu.com/ubuntu\nSuites: noble noble-updates\n"
        "Components: main restricted universe multiverse\n"
    )
    (apt / "sources.list.d/vscode.list").write_text(
        "deb [arch=amd64] https://packages.microsoft.com/repos/code stable main\n"
    )
    (root / "etc/environment").write_text(
        'PATH="/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"\n'
    )
    (root / "etc/profile.d").mkdir(parents=True)
    return root


@pytest.fixture
def system_paths(system_root: Path):
    from rocm_setup.config import SystemPaths
    return SystemPaths.under(system_root)


@pytest.fixture
def driver_config(tmp_path: Path, system_paths):
    from rocm_setup.config import DriverConfig
    return DriverConfig(
        paths=system_paths,
        snapshot_dir=tmp_path / "rocm_rollback",
        log_file=tmp_path / "rocm_install.log",
        user="tester",
        use_sudo=False,
    )


# ============ HTTP fixtures ============

def make_response(content: bytes = b"", status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.content = content
    response.iter_content.return_value = [content[i:i + 4] for i in range(0, len(content), 4)]
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status} Client Error: Not Found for url"
        )
    return response


@pytest.fixture
def key_session() -> MagicMock:
    session = MagicMock()
    session.get.return_value = make_response(SIGNING_KEY)
    return session


@pytest.fixture
def not_found_session() -> MagicMock:
    session = MagicMock()
    session.get.return_value = make_response(status=404)
    return session


# ============ Logging ============

@pytest.fixture(autouse=True)
def reset_logging():
    """Close handlers installed by setup_logging() so log files are released."""
    from common.logging_config import LOG_FORMAT

    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.formatter is not None and handler.formatter._fmt == LOG_FORMAT:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(logging.WARNING)


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "integration: end-to-end runs against a fake system tree"
    )
    config.addinivalue_line(
        "markers", "requires_non_root: permission checks that root bypasses"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on environment."""
    skip_root = pytest.mark.skip(reason="Permission checks do not apply to root")

    for item in items:
        if "requires_non_root" in item.keywords:
            try:
                if os.getuid() == 0:
                    item.add_marker(skip_root)
            except AttributeError:
                item.add_marker(skip_root)
