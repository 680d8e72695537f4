"""Shared fixtures and fakes for the platform layer tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Union

import pytest

from till import config
from till.core.models import CommandResult, PortProcessInfo
from till.core.port_probe import PortOwnerStrategy
from till.core.shell import CommandRunner


def ok(stdout: str = "") -> CommandResult:
    return CommandResult([], 0, stdout=stdout)


def fail(returncode: int = 1, stderr: str = "") -> CommandResult:
    return CommandResult([], returncode, stderr=stderr)


def sudo_rm(args, input_text) -> CommandResult:
    """Handler for `sudo rm [-f] paths...` that really deletes the files."""
    for arg in args[2:]:
        if not arg.startswith('-'):
            Path(arg).unlink(missing_ok=True)
    return ok()


Handler = Union[CommandResult, Callable[[list[str], Optional[str]], CommandResult]]


class FakeRunner(CommandRunner):
    """Scripted command runner. Unscripted commands behave as missing binaries."""

    def __init__(self, binaries=()):
        super().__init__()
        self.binaries = set(binaries)
        self.calls: list[list[str]] = []
        self.inputs: list[Optional[str]] = []
        self._handlers: list[tuple[tuple[str, ...], Handler]] = []

    def on(self, *prefix: str, result: Handler):
        """Answer commands starting with prefix. Later registrations win."""
        self._handlers.append((tuple(prefix), result))
        return self

    def run(self, args, input_text=None, timeout=None) -> CommandResult:
        args = [str(a) for a in args]
        self.calls.append(args)
        self.inputs.append(input_text)
        for prefix, handler in reversed(self._handlers):
            if tuple(args[:len(prefix)]) == prefix:
                result = handler(args, input_text) if callable(handler) else handler
                return CommandResult(args, result.returncode, result.stdout, result.stderr,
                                     result.missing, result.timed_out)
        return CommandResult(args, 127, missing=True)

    def which(self, name: str) -> Optional[str]:
        return f"/usr/bin/{name}" if name in self.binaries else None

    def commands(self, program: str) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] == program]


class FakeCrontab:
    """In-memory crontab behind `crontab -l` and `crontab -`."""

    def __init__(self, content: Optional[str] = None):
        self.content = content
        self.writes = 0

    def attach(self, runner: FakeRunner) -> FakeCrontab:
        runner.binaries.add('crontab')
        runner.on('crontab', '-l', result=self._list)
        runner.on('crontab', '-', result=self._replace)
        return self

    def _list(self, args, input_text):
        if self.content is None:
            return fail(1, "no crontab for tester")
        return ok(self.content)

    def _replace(self, args, input_text):
        self.content = input_text or ""
        self.writes += 1
        return ok()

    @property
    def lines(self) -> list[str]:
        return (self.content or "").splitlines()


class FakeSystemctl:
    """Tracks which timers are running in each scope."""

    def __init__(self):
        self.active: dict[bool, set[str]] = {True: set(), False: set()}
        self.fail_on: set[str] = set()

    def attach(self, runner: FakeRunner) -> FakeSystemctl:
        runner.binaries.add('systemctl')
        runner.on('systemctl', result=self._handle)
        runner.on('sudo', 'systemctl', result=lambda args, stdin: self._handle(args[1:], stdin))
        return self

    def _handle(self, args, input_text):
        user = '--user' in args
        rest = [a for a in args[1:] if a != '--user']
        action = rest[0]
        unit = rest[1] if len(rest) > 1 else None

        if action in self.fail_on:
            return fail(1, f"{action} refused")
        if action == 'start':
            self.active[user].add(unit)
        elif action == 'stop':
            if unit not in self.active[user]:
                return fail(5, f"Unit {unit} not loaded.")
            self.active[user].discard(unit)
        elif action == 'list-timers':
            if unit in self.active[user]:
                return ok(f"NEXT LEFT LAST PASSED UNIT ACTIVATES\n"
                          f"Tue 2026-10-20 03:30:00 UTC 21h - - {unit} {unit[:-6]}.service\n")
            return ok("0 timers listed.\n")
        return ok()


class FakeLaunchctl:
    def __init__(self):
        self.loaded: set[str] = set()

    def attach(self, runner: FakeRunner) -> FakeLaunchctl:
        runner.on('launchctl', result=self._handle)
        runner.on('sudo', 'launchctl', result=lambda args, stdin: self._handle(args[1:], stdin))
        return self

    def _handle(self, args, input_text):
        action, path = args[1], args[2]
        if action == 'load':
            self.loaded.add(path)
            return ok()
        if path not in self.loaded:
            return fail(1, "Could not find specified service")
        self.loaded.discard(path)
        return ok()


class FakeStrategy(PortOwnerStrategy):
    """Port owners from a dict, editable mid-test."""

    name = "fake"

    def __init__(self, owners: Optional[dict[int, PortProcessInfo]] = None, available: bool = True):
        super().__init__(runner=FakeRunner())
        self.owners = dict(owners or {})
        self._available = available
        self.probed: list[int] = []

    def available(self) -> bool:
        return self._available

    def find(self, port: int) -> Optional[PortProcessInfo]:
        self.probed.append(port)
        return self.owners.get(port)

    def occupy(self, ports, pid: int, name: str = "busy"):
        for port in ports:
            self.owners[port] = PortProcessInfo(pid=pid, name=name, port=port)

    def release_pid(self, pid: int):
        self.owners = {p: o for p, o in self.owners.items() if o.pid != pid}


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Never read the developer's real settings file."""
    monkeypatch.setenv(config.SETTINGS_ENV_VAR, str(tmp_path / "no-such-settings.yaml"))
    config.reset_settings()
    yield
    config.reset_settings()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path
