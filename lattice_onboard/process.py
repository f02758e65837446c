"""External command execution.

Every shell-out made during onboarding goes through ProcessRunner so the
steps can be exercised without touching the host.
"""

import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import StepFailed

logger = logging.getLogger("lattice-onboard")

# Exit codes used when the command never produced one
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        """Short human-readable failure description."""
        detail = (self.stderr or self.stdout).strip().splitlines()
        tail = detail[-1] if detail else ""
        cmd = " ".join(self.args)
        if tail:
            return f"`{cmd}` exited with {self.returncode}: {tail}"
        return f"`{cmd}` exited with {self.returncode}"


@dataclass
class LaunchedProcess:
    """A detached process we started but do not own."""
    pid: int
    started_at: float
    args: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"pid": self.pid, "started_at": self.started_at, "args": self.args}

    @classmethod
    def from_dict(cls, data: dict) -> "LaunchedProcess":
        return cls(
            pid=int(data["pid"]),
            started_at=float(data.get("started_at", 0.0)),
            args=list(data.get("args", [])),
        )


class ProcessRunner:
    """Runs external commands with a bounded timeout."""

    def __init__(self, timeout: float = 900.0):
        """Initialize runner.

        Args:
            timeout: Default timeout in seconds for run()
        """
        self.timeout = timeout

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """Run a command and capture its output.

        Never raises for a failing command: a missing executable or a
        timeout is reported as a non-zero return code.

        Args:
            args: Command and arguments
            timeout: Override of the default timeout

        Returns:
            CommandResult with exit status and captured output
        """
        args = [str(a) for a in args]
        logger.debug(f"Running: {' '.join(args)}")

        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(args=args, returncode=EXIT_NOT_FOUND, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(
                args=args,
                returncode=EXIT_TIMEOUT,
                stderr=f"timed out after {timeout or self.timeout:.0f}s",
            )
        except OSError as e:
            return CommandResult(args=args, returncode=1, stderr=str(e))

        return CommandResult(
            args=args,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def check(self, step: str, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """Run a command that must succeed.

        Raises:
            StepFailed: if the command exits non-zero
        """
        result = self.run(args, timeout=timeout)
        if not result.success:
            raise StepFailed(step, result.describe())
        return result

    def spawn_detached(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        log_path: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> LaunchedProcess:
        """Start a process in the background and return without waiting.

        The child gets its own session (process group on Windows) so it
        outlives this process.

        Raises:
            OSError: if the process could not be started
        """
        args = [str(a) for a in args]
        logger.debug(f"Spawning detached: {' '.join(args)}")

        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True

        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, "ab") as log_file:
                proc = subprocess.Popen(
                    args,
                    cwd=str(cwd) if cwd else None,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    env=child_env,
                    **kwargs,
                )
        else:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=child_env,
                **kwargs,
            )

        return LaunchedProcess(pid=proc.pid, started_at=time.time(), args=args)
