import os
import socket
import stat
from types import SimpleNamespace

import pytest

from till.core import platform_info
from till.core.models import Platform

from conftest import FakeRunner, fail, ok


@pytest.mark.parametrize("system,expected", [
    ("darwin", Platform.MACOS),
    ("linux", Platform.LINUX),
    ("freebsd13", Platform.BSD),
    ("openbsd7", Platform.BSD),
    ("win32", Platform.OTHER),
    ("sunos5", Platform.OTHER),
])
def test_current_platform(system, expected):
    assert platform_info.current_platform(system) == expected


def test_linux_capabilities():
    runner = FakeRunner(binaries={'crontab', 'ss', 'timeout'})
    runner.on('systemctl', '--version', result=ok("systemd 252\n"))

    caps = platform_info.get_capabilities(runner, Platform.LINUX)

    assert caps.has_systemd
    assert caps.has_cron
    assert caps.has_ss
    assert not caps.has_lsof
    assert not caps.has_netstat
    assert not caps.has_launchd
    assert caps.has_timeout_cmd


def test_linux_without_running_systemd():
    runner = FakeRunner(binaries={'systemctl'})
    runner.on('systemctl', '--version', result=fail(1))
    assert not platform_info.get_capabilities(runner, Platform.LINUX).has_systemd


def test_macos_capabilities():
    runner = FakeRunner(binaries={'lsof', 'crontab'})
    caps = platform_info.get_capabilities(runner, Platform.MACOS)
    assert caps.has_launchd
    assert caps.has_lsof
    assert not caps.has_systemd
    assert not caps.has_cron


def test_bsd_capabilities():
    runner = FakeRunner(binaries={'crontab', 'sockstat'})
    caps = platform_info.get_capabilities(runner, Platform.BSD)
    assert caps.has_cron
    assert caps.has_sockstat
    assert not caps.has_netstat
    assert caps.probe_tools == ["sockstat"]


def test_other_platform_only_checks_cron():
    caps = platform_info.get_capabilities(FakeRunner(binaries={'crontab', 'lsof'}), Platform.OTHER)
    assert caps.has_cron
    assert not caps.has_lsof


def test_platform_version_reads_os_release(tmp_path, monkeypatch):
    release = tmp_path / "os-release"
    release.write_text('NAME="Ubuntu"\nVERSION="22.04.3 LTS (Jammy Jellyfish)"\n')
    monkeypatch.setattr(platform_info, 'OS_RELEASE', release)
    monkeypatch.setattr(platform_info, 'current_platform', lambda system=None: Platform.LINUX)

    assert platform_info.platform_version(FakeRunner()) == "22.04.3 LTS (Jammy Jellyfish)"


def test_platform_version_falls_back_to_uname(tmp_path, monkeypatch):
    monkeypatch.setattr(platform_info, 'OS_RELEASE', tmp_path / "missing")
    monkeypatch.setattr(platform_info, 'current_platform', lambda system=None: Platform.LINUX)
    runner = FakeRunner().on('uname', '-r', result=ok("6.1.0-18-amd64\n"))

    assert platform_info.platform_version(runner) == "6.1.0-18-amd64"


def test_platform_version_unknown(monkeypatch):
    monkeypatch.setattr(platform_info, 'current_platform', lambda system=None: Platform.OTHER)
    assert platform_info.platform_version(FakeRunner()) == "Unknown"


def test_home_dir_prefers_env(tmp_path, monkeypatch):
    monkeypatch.setenv('HOME', str(tmp_path))
    assert platform_info.home_dir() == tmp_path


def test_config_dir_uses_xdg_on_linux(tmp_path, monkeypatch):
    monkeypatch.setattr(platform_info, 'current_platform', lambda system=None: Platform.LINUX)
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path / "xdg"))
    assert platform_info.config_dir() == tmp_path / "xdg"


def test_config_dir_on_macos(tmp_path, monkeypatch):
    monkeypatch.setattr(platform_info, 'current_platform', lambda system=None: Platform.MACOS)
    monkeypatch.setenv('HOME', str(tmp_path))
    assert platform_info.config_dir() == tmp_path / "Library" / "Application Support"


def test_temp_dir_prefers_tmpdir(tmp_path, monkeypatch):
    monkeypatch.setenv('TMPDIR', str(tmp_path))
    assert platform_info.temp_dir() == tmp_path


def test_mkdir_p_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    assert platform_info.mkdir_p(target)
    assert target.is_dir()
    assert platform_info.mkdir_p(target)


def test_mkdir_p_reports_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    assert not platform_info.mkdir_p(blocker / "child")


@pytest.fixture
def strict_umask():
    previous = os.umask(0o077)
    try:
        yield
    finally:
        os.umask(previous)


def test_mkdir_p_sets_mode_on_every_created_level(tmp_path, strict_umask):
    target = tmp_path / "a" / "b" / "c"
    assert platform_info.mkdir_p(target, 0o755)

    for directory in (tmp_path / "a", tmp_path / "a" / "b", target):
        assert stat.S_IMODE(directory.stat().st_mode) == 0o755


def test_make_dirs_leaves_existing_parents_alone(tmp_path, strict_umask):
    tmp_path.chmod(0o700)
    platform_info.make_dirs(tmp_path / "x" / "y", 0o755)

    assert stat.S_IMODE(tmp_path.stat().st_mode) == 0o700
    assert stat.S_IMODE((tmp_path / "x").stat().st_mode) == 0o755


def test_set_permissions(tmp_path):
    path = tmp_path / "job.sh"
    path.write_text("#!/bin/sh\n")

    assert platform_info.set_permissions(path, 0o750)
    assert stat.S_IMODE(path.stat().st_mode) == 0o750
    assert not platform_info.set_permissions(tmp_path / "missing", 0o644)


def fake_addrs(monkeypatch):
    addrs = {
        "lo": [SimpleNamespace(family=socket.AF_INET, address="127.0.0.1")],
        "eth0": [
            SimpleNamespace(family=socket.AF_INET6, address="fe80::1"),
            SimpleNamespace(family=socket.AF_INET, address="10.0.0.5"),
            SimpleNamespace(family=socket.AF_INET, address="10.0.0.6"),
        ],
        "wg0": [SimpleNamespace(family=socket.AF_INET6, address="fd00::2")],
    }
    monkeypatch.setattr(platform_info.psutil, "net_if_addrs", lambda: addrs)


def test_get_interfaces(monkeypatch):
    fake_addrs(monkeypatch)
    assert platform_info.get_interfaces() == ["eth0", "lo", "wg0"]


def test_get_interface_ip(monkeypatch):
    fake_addrs(monkeypatch)
    assert platform_info.get_interface_ip("eth0") == "10.0.0.5"
    assert platform_info.get_interface_ip("lo") == "127.0.0.1"
    assert platform_info.get_interface_ip("wg0") is None
    assert platform_info.get_interface_ip("missing0") is None


def test_open_url_on_macos():
    runner = FakeRunner(binaries={"open"})
    runner.on("open", result=ok())

    assert platform_info.open_url("http://localhost:8100", runner, Platform.MACOS)
    assert runner.calls == [["open", "http://localhost:8100"]]


def test_open_url_falls_back_to_browser_on_linux():
    runner = FakeRunner(binaries={"firefox", "chromium"})
    runner.on("firefox", result=ok())

    assert platform_info.open_url("http://localhost:8100", runner, Platform.LINUX)
    assert runner.calls == [["firefox", "http://localhost:8100"]]


def test_open_url_reports_failure():
    runner = FakeRunner(binaries={"xdg-open"})
    runner.on("xdg-open", result=fail(4, "no handler"))
    assert not platform_info.open_url("http://localhost:8100", runner, Platform.LINUX)

    assert not platform_info.open_url("http://localhost:8100", FakeRunner(), Platform.LINUX)
    assert not platform_info.open_url("http://localhost:8100", FakeRunner(), Platform.OTHER)


def test_host_facts_are_sane():
    assert platform_info.cpu_count() >= 1
    assert platform_info.memory_mb() > 0
    assert platform_info.executable_path()
    assert isinstance(platform_info.is_admin(), bool)
