"""
External command execution with consistent logging and sudo elevation.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

from common.exceptions import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: list
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def _running_as_root() -> bool:
    try:
        return os.geteuid() == 0
    except AttributeError:
        return False


class CommandRunner:
    """
    Runs commands, prefixing privileged ones with sudo when needed.

    Every command blocks until it exits; there is no timeout.

    Args:
        use_sudo: Prefix privileged commands with ``sudo``. ``None`` means
            only when not already running as root.
        dry_run: Log commands without executing them.
    """

    def __init__(self, use_sudo: Optional[bool] = None, dry_run: bool = False):
        if use_sudo is None:
            use_sudo = not _running_as_root()
        self.use_sudo = use_sudo
        self.dry_run = dry_run

    def run(
        self,
        argv: Sequence[str],
        *,
        privileged: bool = False,
        check: bool = True,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Union[str, os.PathLike]] = None,
        input: Optional[Union[str, bytes]] = None,
    ) -> CommandResult:
        """
        Run a command.

        Args:
            argv: Command and arguments
            privileged: Needs root (adds sudo when configured)
            check: Raise CommandError on a nonzero exit
            env: Extra environment variables
            cwd: Working directory
            input: Data fed to stdin

        Returns:
            CommandResult with decoded output.
        """
        argv_list = [str(a) for a in argv]
        if privileged and self.use_sudo:
            if env:
                # sudo resets the environment; pass the extras explicitly
                argv_list = ["sudo", "env", *[f"{k}={v}" for k, v in env.items()], *argv_list]
            else:
                argv_list = ["sudo", *argv_list]

        logger.debug("CMD %s", format_argv(argv_list))

        if self.dry_run:
            return CommandResult(argv=argv_list, returncode=0, stdout="", stderr="")

        if isinstance(input, str):
            input = input.encode("utf-8")

        result = self._execute(argv_list, env=env, cwd=cwd, input=input)

        # one record per line keeps every log file line timestamped
        for line in result.stdout.splitlines():
            logger.debug("STDOUT %s", line)
        for line in result.stderr.splitlines():
            logger.debug("STDERR %s", line)

        if check and result.returncode != 0:
            raise CommandError(argv_list, result.returncode, result.stderr)

        return result

    def _execute(
        self,
        argv: list,
        *,
        env: Optional[Mapping[str, str]],
        cwd: Optional[Union[str, os.PathLike]],
        input: Optional[bytes],
    ) -> CommandResult:
        try:
            proc = subprocess.run(
                argv,
                input=input,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=dict(os.environ, **(env or {})),
            )
        except FileNotFoundError as e:
            return CommandResult(argv=argv, returncode=127, stdout="", stderr=str(e))

        return CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=proc.stdout.decode("utf-8", errors="replace"),
            stderr=proc.stderr.decode("utf-8", errors="replace"),
        )
