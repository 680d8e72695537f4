"""Discovery of the process that owns a TCP port."""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

import psutil

from .models import Platform, PortProcessInfo, validate_port
from .platform_info import current_platform
from .shell import CommandRunner
from ..utils.logging_config import get_logger, timed

logger = get_logger('port_probe')

PROC_ROOT = Path("/proc")

SS_PID_PATTERN = re.compile(r'pid=(\d+)')
SS_NAME_PATTERN = re.compile(r'users:\(\("([^"]*)"')
NETSTAT_OWNER_PATTERN = re.compile(r'^(\d+)/(.*)$')


def read_proc_metadata(pid: int, proc_root: Path = PROC_ROOT) -> Optional[tuple[str, str]]:
    """
    Read name and command line for a PID from /proc.

    Returns:
        (name, command) or None if /proc has no readable entry for the PID.
    """
    base = proc_root / str(pid)
    try:
        name = (base / "comm").read_text(encoding='utf-8', errors='replace').rstrip('\n')
    except OSError:
        return None

    try:
        raw = (base / "cmdline").read_bytes()
        command = raw.replace(b'\0', b' ').decode('utf-8', errors='replace').rstrip()
    except OSError:
        command = ""
    return name, command


def ps_metadata(pid: int, runner: CommandRunner) -> tuple[str, str]:
    """Name and command line for a PID via ps. Empty strings if unknown."""
    name_result = runner.run(['ps', '-p', str(pid), '-o', 'comm='])
    name = name_result.stdout.strip() if name_result.ok else ""
    command_result = runner.run(['ps', '-p', str(pid), '-o', 'command='])
    command = command_result.stdout.strip() if command_result.ok else ""
    return name, command


def _local_port_matches(address: str, port: int) -> bool:
    """True if an address like '0.0.0.0:8080' or '[::]:8080' is on port."""
    _, sep, tail = address.rpartition(':')
    return bool(sep) and tail == str(port)


class PortOwnerStrategy(ABC):
    """One way of asking the OS who owns a port."""

    name = ""
    binary: Optional[str] = None

    def __init__(self, runner: Optional[CommandRunner] = None, proc_root: Path = PROC_ROOT):
        self.runner = runner or CommandRunner()
        self.proc_root = proc_root

    def available(self) -> bool:
        """Whether the tool behind this strategy can be used on this host."""
        return self.binary is None or self.runner.has(self.binary)

    @abstractmethod
    def find(self, port: int) -> Optional[PortProcessInfo]:
        """Return the first owner of port, or None if this tool sees none."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class LsofStrategy(PortOwnerStrategy):
    """lsof -t prints bare PIDs; ps fills in name and command."""

    name = "lsof"
    binary = "lsof"

    def find(self, port: int) -> Optional[PortProcessInfo]:
        result = self.runner.run(['lsof', '-i', f':{port}', '-P', '-n', '-t'])
        if result.missing:
            return None

        for line in result.lines:
            line = line.strip()
            if line.isdigit() and int(line) > 0:
                pid = int(line)
                name, command = ps_metadata(pid, self.runner)
                return PortProcessInfo(pid=pid, name=name, command=command, port=port)
        return None


class SsStrategy(PortOwnerStrategy):
    """Parse `ss -tulpn`, the fastest option on Linux."""

    name = "ss"
    binary = "ss"

    def find(self, port: int) -> Optional[PortProcessInfo]:
        result = self.runner.run(['ss', '-tulpn'])
        if not result.ok:
            return None

        for line in result.lines:
            fields = line.split()
            if len(fields) < 5 or not _local_port_matches(fields[4], port):
                continue
            match = SS_PID_PATTERN.search(line)
            if not match:
                continue

            pid = int(match.group(1))
            proc = read_proc_metadata(pid, self.proc_root)
            if proc is not None:
                name, command = proc
            else:
                name_match = SS_NAME_PATTERN.search(line)
                name, command = (name_match.group(1) if name_match else ""), ""
            return PortProcessInfo(pid=pid, name=name, command=command, port=port)
        return None


class NetstatStrategy(PortOwnerStrategy):
    """Parse the PID/Program column of `netstat -tulpn`."""

    name = "netstat"
    binary = "netstat"

    def find(self, port: int) -> Optional[PortProcessInfo]:
        result = self.runner.run(['netstat', '-tulpn'])
        if not result.ok:
            return None

        for line in result.lines:
            fields = line.split()
            if len(fields) < 6 or not _local_port_matches(fields[3], port):
                continue

            for column in fields[5:]:
                match = NETSTAT_OWNER_PATTERN.match(column)
                if match:
                    pid = int(match.group(1))
                    proc = read_proc_metadata(pid, self.proc_root)
                    name, command = proc if proc is not None else (match.group(2), "")
                    return PortProcessInfo(pid=pid, name=name, command=command, port=port)
        return None


class SockstatStrategy(PortOwnerStrategy):
    """BSD sockstat: USER COMMAND PID FD PROTO LOCAL FOREIGN."""

    name = "sockstat"
    binary = "sockstat"

    def find(self, port: int) -> Optional[PortProcessInfo]:
        result = self.runner.run(['sockstat', '-4', '-l', '-p', str(port)])
        if not result.ok:
            return None

        for line in result.lines[1:]:  # header
            fields = line.split()
            if len(fields) < 3 or not fields[2].isdigit():
                continue
            pid = int(fields[2])
            name, command = ps_metadata(pid, self.runner)
            return PortProcessInfo(pid=pid, name=name or fields[1], command=command, port=port)
        return None


class PsutilStrategy(PortOwnerStrategy):
    """In-process fallback using psutil's connection table."""

    name = "psutil"

    def find(self, port: int) -> Optional[PortProcessInfo]:
        try:
            connections = psutil.net_connections(kind='inet')
        except psutil.AccessDenied:
            logger.debug("AccessDenied when getting network connections")
            return None

        candidates = [c for c in connections if c.laddr and c.laddr.port == port and c.pid]
        # Prefer listening process
        candidates.sort(key=lambda c: c.status != psutil.CONN_LISTEN)
        if not candidates:
            return None

        pid = candidates[0].pid
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                name = proc.name()
                try:
                    command = " ".join(proc.cmdline())
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    command = ""
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            name, command = "", ""
        return PortProcessInfo(pid=pid, name=name, command=command, port=port)


def default_strategies(plat: Optional[Platform] = None,
                       runner: Optional[CommandRunner] = None) -> list[PortOwnerStrategy]:
    """The fixed, ordered strategy list for a platform."""
    plat = plat or current_platform()
    runner = runner or CommandRunner()

    if plat == Platform.MACOS:
        order = [LsofStrategy]
    elif plat == Platform.LINUX:
        order = [SsStrategy, LsofStrategy, NetstatStrategy]
    elif plat == Platform.BSD:
        order = [SockstatStrategy]
    else:
        order = []
    return [cls(runner) for cls in order] + [PsutilStrategy(runner)]


class PortProbe:
    """Finds which process, if any, is bound to a port."""

    def __init__(self, strategies: Optional[Iterable[PortOwnerStrategy]] = None,
                 runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()
        if strategies is None:
            strategies = default_strategies(runner=self.runner)
        self.strategies = list(strategies)
        logger.debug(f"PortProbe initialized with {self.strategies}")

    def find_owner(self, port: int) -> Optional[PortProcessInfo]:
        """
        Find the process using a port.

        Args:
            port: Port number in [1, 65535].

        Returns:
            Owner reported by the first strategy that finds one, or None.
        """
        validate_port(port)
        for strategy in self.strategies:
            if not strategy.available():
                logger.debug(f"{strategy.name} not available, skipping")
                continue
            try:
                info = strategy.find(port)
            except (OSError, ValueError) as e:
                logger.warning(f"{strategy.name} failed probing port {port}: {e}")
                continue
            if info is not None and info.pid > 0:
                logger.debug(f"Port {port} owned by PID {info.pid} ({info.name}) via {strategy.name}")
                return info
        return None

    def is_available(self, port: int) -> bool:
        """Check if a port has no owning process."""
        return self.find_owner(port) is None

    @timed(threshold_ms=5000)
    def list_port_processes(self, start_port: int, end_port: int) -> list[PortProcessInfo]:
        """Owners of ports in [start_port, end_port], one entry per PID."""
        validate_port(start_port)
        validate_port(end_port)
        processes: list[PortProcessInfo] = []
        seen: set[int] = set()

        for port in range(start_port, end_port + 1):
            info = self.find_owner(port)
            if info is not None and info.pid not in seen:
                seen.add(info.pid)
                processes.append(info)
        return processes

    def find_available_port(self, start_port: int, end_port: int) -> Optional[int]:
        """First free port in [start_port, end_port], or None."""
        validate_port(start_port)
        validate_port(end_port)
        for port in range(start_port, end_port + 1):
            if self.is_available(port):
                return port
        return None

    def get_process_info(self, pid: int) -> Optional[PortProcessInfo]:
        """
        Look up name and command for a PID.

        Tries /proc, then ps, then psutil. The returned port is 0.
        """
        if pid <= 0:
            return None

        proc = read_proc_metadata(pid)
        if proc is not None:
            return PortProcessInfo(pid=pid, name=proc[0], command=proc[1])

        name, command = ps_metadata(pid, self.runner)
        if name:
            return PortProcessInfo(pid=pid, name=name, command=command)

        try:
            process = psutil.Process(pid)
            with process.oneshot():
                return PortProcessInfo(pid=pid, name=process.name(),
                                       command=" ".join(process.cmdline()))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
