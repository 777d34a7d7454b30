"""Shell command execution."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60

# Conventional shell exit codes for launch failures.
EXIT_TIMEOUT = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Captured result of a finished command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def first_line(self) -> str:
        """First non-empty line of stdout, or of stderr when stdout is empty."""
        for text in (self.stdout, self.stderr):
            for line in text.splitlines():
                if line.strip():
                    return line.strip()
        return ""


class SubprocessRunner:
    """Runs commands with :mod:`subprocess`.

    Satisfies the ShellRunner protocol structurally. Non-zero exits are
    returned, not raised; launch failures and timeouts map to the usual
    shell codes 127/126/124.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def run(
        self, args: list[str], cwd: Path | None = None, timeout: float | None = None
    ) -> CommandResult:
        """Run a command and capture its output.

        Args:
            args: Program and arguments.
            cwd: Working directory.
            timeout: Seconds before the command is killed (runner default if None).

        Returns:
            CommandResult with exit code and decoded output.
        """
        limit = timeout or self.timeout
        logger.debug("Running %s", args)
        try:
            completed = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=limit,
            )
        except FileNotFoundError as e:
            return CommandResult(EXIT_NOT_FOUND, stderr=str(e))
        except PermissionError as e:
            return CommandResult(EXIT_NOT_EXECUTABLE, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(EXIT_TIMEOUT, stderr=f"timed out after {limit}s")
        except OSError as e:
            return CommandResult(EXIT_NOT_EXECUTABLE, stderr=str(e))
        return CommandResult(completed.returncode, completed.stdout or "", completed.stderr or "")
