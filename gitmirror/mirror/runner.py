"""
Git Runner — Execute one git command under a wall-clock timeout.

Each command runs in its own session so a timeout can kill the whole
process group (git spawns ssh and remote helpers). Failures never raise:
start errors, non-zero exits and timeouts all come back as a
CommandResult with ok=False.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


@dataclass
class CommandResult:
    """Outcome of a single git invocation."""

    args: List[str]
    returncode: Optional[int] = None  # None if the process never ran to exit
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None

    def describe_error(self) -> str:
        """Short human-readable reason for a failure."""
        if self.error:
            return self.error
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            return f"exit status {self.returncode}: {detail}"
        return f"exit status {self.returncode}"


def run_git(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: float = DEFAULT_TIMEOUT,
    git: str = "git",
) -> CommandResult:
    """
    Run ``git <args>`` and wait for it, at most ``timeout`` seconds.

    ``cwd`` is required for commands that act on an existing repository
    and omitted for clone.
    """
    cmd = [git] + list(args)
    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    if cwd is not None:
        # A broken mirror must not fall through to an enclosing repository
        env["GIT_CEILING_DIRECTORIES"] = str(Path(cwd).absolute().parent)
    start = time.monotonic()

    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",  # hook output and ref names need not be UTF-8
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        return CommandResult(
            args=cmd,
            error=f"failed to start {cmd[0]}: {e}",
            duration_seconds=time.monotonic() - start,
        )

    with proc:
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(proc)
            stdout, stderr = proc.communicate()
            return CommandResult(
                args=cmd,
                returncode=proc.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
                error=f"timed out after {timeout}s",
                duration_seconds=time.monotonic() - start,
            )

    return CommandResult(
        args=cmd,
        returncode=proc.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        duration_seconds=time.monotonic() - start,
    )


def _kill_process_group(proc: subprocess.Popen) -> None:
    """SIGKILL the child's process group; fall back to the child alone."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except (AttributeError, OSError) as e:
        # No process groups on this platform
        logger.debug(f"killpg failed for pid {proc.pid}: {e}")
        proc.kill()
