"""Data models for the Till platform layer."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import MAX_PORT, MIN_PORT

# Job names end up in file names, unit names and crontab tags
JOB_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9._-]*$')

# A newline in a job field would split a crontab entry or a unit directive
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class Platform(Enum):
    MACOS = "macOS"
    LINUX = "Linux"
    BSD = "BSD"
    OTHER = "Unknown"


class SchedulerType(Enum):
    NONE = "none"
    LAUNCHD = "launchd"
    SYSTEMD = "systemd"
    CRON = "cron"
    INIT = "init"


class ConflictChoice(Enum):
    """The four ways an interactive caller can resolve port conflicts."""
    KILL = "kill"
    SUGGEST = "suggest"
    MANUAL = "manual"
    ABORT = "abort"


@dataclass
class PortProcessInfo:
    """A process found bound to a port."""
    pid: int
    name: str = ""
    command: str = ""
    port: int = 0

    @property
    def display_name(self) -> str:
        """Get a display-friendly name."""
        if self.name:
            return self.name
        if self.command:
            return self.command[:100] + ("..." if len(self.command) > 100 else "")
        return f"PID {self.pid}"


@dataclass
class PortConflict:
    """An occupied port inside a range that was expected to be free."""
    port: int
    owner: PortProcessInfo

    @property
    def pid(self) -> int:
        return self.owner.pid

    def describe(self) -> str:
        return f"port {self.port}: {self.owner.display_name} (PID {self.owner.pid})"


@dataclass
class ScheduleConfig:
    """A recurring job to materialize with the OS scheduler."""
    name: str
    command: str
    working_dir: Optional[str] = None
    log_file: Optional[str] = None
    error_file: Optional[str] = None
    schedule_spec: Optional[str] = None  # "HH:MM" or scheduler-native syntax
    user_level: bool = True

    def validation_error(self) -> Optional[str]:
        """Return why this config cannot be installed, or None if it can."""
        if not is_valid_job_name(self.name):
            return f"invalid job name: {self.name!r}"
        if not self.command or not self.command.strip():
            return f"job {self.name} has no command"
        for attr in ('command', 'working_dir', 'log_file', 'error_file', 'schedule_spec'):
            value = getattr(self, attr)
            if value and CONTROL_CHARS.search(value):
                return f"job {self.name} has control characters in {attr}"
        return None


@dataclass
class PlatformCapabilities:
    """Which scheduling and probing tools this host offers right now."""
    has_launchd: bool = False
    has_systemd: bool = False
    has_cron: bool = False
    has_lsof: bool = False
    has_netstat: bool = False
    has_ss: bool = False
    has_sockstat: bool = False
    has_timeout_cmd: bool = False

    @property
    def probe_tools(self) -> list[str]:
        """Names of the available port-probing tools."""
        tools = [('lsof', self.has_lsof), ('ss', self.has_ss),
                 ('netstat', self.has_netstat), ('sockstat', self.has_sockstat)]
        return [name for name, present in tools if present]


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    missing: bool = False  # binary not found
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def lines(self) -> list[str]:
        return self.stdout.splitlines()


def is_valid_job_name(name: Optional[str]) -> bool:
    """Check a job name is safe to embed in file names and crontab tags."""
    return bool(name) and JOB_NAME_PATTERN.match(name) is not None


def validate_port(port: int) -> int:
    """Raise ValueError unless port is a valid TCP port number."""
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Port must be an integer, got {port!r}")
    if not MIN_PORT <= port <= MAX_PORT:
        raise ValueError(f"Port {port} out of range {MIN_PORT}-{MAX_PORT}")
    return port
