"""Wrappers around the external helper binaries.

The pipeline only needs ``run(args) -> CommandResult`` from a process
runner, so tests substitute a fake runner and never spawn processes.

* ``carbites split <car> --size <N>MB --strategy treewalk`` writes
  ``<base>-<index>.car`` chunks next to the source archive.
* ``ipfs-car --list-roots <car>`` prints the archive's root CID(s).
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from w3s.exceptions import ExternalToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured result of an external process."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandRunner(Protocol):
    def run(self, args: Sequence[str]) -> CommandResult: ...


class SubprocessRunner:
    """Runs commands with :func:`subprocess.run`, capturing text output."""

    def run(self, args: Sequence[str]) -> CommandResult:
        argv = [str(a) for a in args]
        logger.debug("Running %s", " ".join(argv))
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise ExternalToolError(
                f"Executable not found: {argv[0]}", args_list=argv
            ) from exc
        return CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )


def _check(result: CommandResult, name: str) -> CommandResult:
    if result.returncode != 0:
        stderr = result.stderr.strip()
        raise ExternalToolError(
            f"{name} exited with status {result.returncode}"
            + (f": {stderr}" if stderr else ""),
            args_list=result.args,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result


def split_car(
    runner: CommandRunner,
    archive: Path,
    size_mb: int,
    strategy: str,
    binary: str,
) -> CommandResult:
    """Split *archive* into ``size_mb`` chunks with carbites.

    Raises:
        ExternalToolError: If carbites is missing or exits non-zero.
    """
    args = [binary, "split", str(archive), "--size", f"{size_mb}MB", "--strategy", strategy]
    return _check(runner.run(args), "carbites split")


def list_roots(runner: CommandRunner, archive: Path, binary: str) -> str:
    """Return the root CID of *archive* as printed by ``ipfs-car --list-roots``.

    Surrounding whitespace is stripped; the rest of the output is returned
    unchanged.

    Raises:
        ExternalToolError: If ipfs-car is missing or exits non-zero.
    """
    result = _check(runner.run([binary, "--list-roots", str(archive)]), "ipfs-car")
    return result.stdout.strip()
