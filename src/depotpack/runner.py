"""Narrow seam between depotpack and the external commands it drives."""

from __future__ import annotations

import os
import subprocess  # noqa: S404
from typing import TYPE_CHECKING, Protocol

from depotpack.exceptions import CommandError, CommandNotFoundError
from depotpack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path


class CommandRunner(Protocol):
    """Run a command to completion and return its standard output lines.

    Implementations raise ``CommandNotFoundError`` when the program cannot be
    started and ``CommandError`` on a non-zero exit status.
    """

    @property
    def environment(self) -> Mapping[str, str]:
        """Environment the child processes receive."""
        ...

    def run(self, argv: Sequence[str], *, cwd: Path | None = None) -> list[str]: ...


class SubprocessRunner:
    """``CommandRunner`` backed by :func:`subprocess.run`."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(os.environ if env is None else env)

    @property
    def environment(self) -> Mapping[str, str]:
        return self._env

    def run(self, argv: Sequence[str], *, cwd: Path | None = None) -> list[str]:
        """Run ``argv`` and return its output split into lines.

        Args:
            argv (Sequence[str]): program and arguments
            cwd (Path | None): working directory of the child, defaults to ours

        Raises:
            CommandNotFoundError: if the program cannot be launched
            CommandError: if the program exits with a non-zero status

        Returns:
            list[str]: standard output, one entry per line, without line terminators
        """
        command = tuple(argv)
        logger.debug("run", command=list(command), cwd=str(cwd) if cwd else None)
        try:
            out = subprocess.run(  # noqa: S603
                command,
                cwd=str(cwd) if cwd else None,
                env=self._env,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise CommandNotFoundError(command=command) from exc
        if out.returncode != 0:
            raise CommandError(
                command=command,
                returncode=out.returncode,
                stdout=out.stdout,
                stderr=out.stderr,
            )
        return split_lines(out.stdout)


def split_lines(text: str) -> list[str]:
    """Split command output on ``\\n`` only, dropping the final terminator.

    Unlike :meth:`str.splitlines`, form feeds and other separators inside a
    change description stay part of their line.
    """
    lines = text.split("\n")
    if lines and not lines[-1]:
        lines.pop()
    return lines
