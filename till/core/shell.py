"""External command execution."""

import shlex
import shutil
import subprocess
from typing import Optional, Sequence

from .models import CommandResult
from ..config import get_settings
from ..utils.logging_config import get_logger, PerfTimer

logger = get_logger('shell')

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124

SLOW_COMMAND_MS = 1000


class CommandRunner:
    """Runs external tools and reports the outcome without raising."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, args: Sequence[str], input_text: Optional[str] = None,
            timeout: Optional[float] = None) -> CommandResult:
        """
        Run a command given as an argument list.

        Args:
            args: Program and arguments. Never interpreted by a shell.
            input_text: Text fed to the command's stdin.
            timeout: Seconds before the command is killed.

        Returns:
            CommandResult. Missing binaries and timeouts are reported in it.
        """
        args = [str(a) for a in args]
        if timeout is None:
            timeout = self.timeout if self.timeout is not None else get_settings().command_timeout_seconds

        try:
            with PerfTimer(f"run {' '.join(args)}", logger, threshold_ms=SLOW_COMMAND_MS):
                proc = subprocess.run(
                    args,
                    input=input_text,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                    check=False,
                )
        except FileNotFoundError:
            logger.debug(f"Command not found: {args[0]}")
            return CommandResult(args, EXIT_NOT_FOUND, missing=True)
        except PermissionError as e:
            logger.warning(f"Cannot execute {args[0]}: {e}")
            return CommandResult(args, EXIT_NOT_EXECUTABLE, stderr=str(e))
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {timeout}s: {' '.join(args)}")
            return CommandResult(args, EXIT_TIMEOUT, timed_out=True)
        except OSError as e:
            logger.error(f"Failed to run {' '.join(args)}: {e}")
            return CommandResult(args, EXIT_NOT_EXECUTABLE, stderr=str(e))

        if proc.returncode != 0:
            logger.debug(f"{' '.join(args)} exited {proc.returncode}: {proc.stderr.strip()}")
        return CommandResult(args, proc.returncode, proc.stdout or "", proc.stderr or "")

    def which(self, name: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(name)

    def has(self, name: str) -> bool:
        return self.which(name) is not None

    def succeeds(self, args: Sequence[str]) -> bool:
        """Check a command runs and exits 0."""
        return self.run(args).ok


def run_with_timeout(command: str, timeout_ms: int,
                     runner: Optional[CommandRunner] = None) -> CommandResult:
    """
    Run a command line with a deadline.

    Args:
        command: Command line, split with shell-style quoting rules.
        timeout_ms: Deadline in milliseconds.
        runner: Runner to use (defaults to a fresh CommandRunner).

    Returns:
        CommandResult; timed_out is set when the deadline was hit.
    """
    runner = runner or CommandRunner()
    try:
        args = shlex.split(command)
    except ValueError as e:
        logger.error(f"Cannot parse command {command!r}: {e}")
        return CommandResult([command], EXIT_NOT_FOUND, stderr=str(e))
    if not args:
        return CommandResult([], EXIT_NOT_FOUND, missing=True)
    return runner.run(args, timeout=timeout_ms / 1000.0)
