"""Command runners for external collaborators (type-checker, linter, git)."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from taskgate.errors import ToolUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecResult:
    """Result envelope for subprocess execution."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined stdout and stderr, in that order."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


def run_command(
    argv: list[str],
    *,
    cwd: Path,
    timeout: float | None = None,
) -> ExecResult:
    """Run a command to completion; a non-zero exit is data, not an exception.

    Raises:
        ToolUnavailable: If the executable cannot be found or times out
    """
    logger.debug("exec: %s (cwd=%s)", " ".join(argv), cwd)
    try:
        completed = subprocess.run(
            argv, cwd=cwd, capture_output=True, text=True, check=False, timeout=timeout
        )
    except FileNotFoundError as e:
        raise ToolUnavailable(argv[0], f"executable not found ({e})") from e
    except subprocess.TimeoutExpired as e:
        raise ToolUnavailable(argv[0], f"timed out after {timeout}s") from e

    return ExecResult(
        argv=tuple(argv),
        cwd=cwd.resolve(),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


def run_git(
    args: list[str],
    *,
    repo_root: Path,
) -> ExecResult:
    """git subcommand run from the repository root."""
    return run_command(["git", *args], cwd=repo_root)
