"""Host platform detection and capability probing."""

import os
import platform
import socket
import sys
from pathlib import Path
from typing import Optional

import psutil

from .models import Platform, PlatformCapabilities
from .shell import CommandRunner
from ..config import DIR_MODE
from ..utils.logging_config import get_logger

logger = get_logger('platform_info')

OS_RELEASE = Path("/etc/os-release")


def current_platform(system: Optional[str] = None) -> Platform:
    """Map sys.platform (or an explicit value) to a Platform."""
    system = system if system is not None else sys.platform
    if system == 'darwin':
        return Platform.MACOS
    if system.startswith('linux'):
        return Platform.LINUX
    if system.startswith(('freebsd', 'netbsd', 'openbsd', 'dragonfly')):
        return Platform.BSD
    return Platform.OTHER


def platform_name() -> str:
    return current_platform().value


def platform_version(runner: Optional[CommandRunner] = None) -> str:
    """OS version string, e.g. '22.04.3 LTS (Jammy Jellyfish)' or '14.2'."""
    plat = current_platform()

    if plat == Platform.LINUX:
        version = _os_release_version()
        if version:
            return version
    elif plat == Platform.MACOS:
        version = platform.mac_ver()[0]
        if version:
            return version

    runner = runner or CommandRunner()
    result = runner.run(['uname', '-r'])
    if result.ok and result.stdout.strip():
        return result.stdout.strip()
    return "Unknown"


def _os_release_version() -> Optional[str]:
    try:
        with open(OS_RELEASE, 'r', encoding='utf-8') as f:
            for line in f:
                if line.startswith('VERSION='):
                    return line.split('=', 1)[1].strip().strip('"') or None
    except OSError:
        pass
    return None


def get_capabilities(runner: Optional[CommandRunner] = None,
                     plat: Optional[Platform] = None) -> PlatformCapabilities:
    """
    Probe which scheduling and port-probing tools are usable right now.

    Results are not cached; tools may be installed or removed between calls.
    """
    runner = runner or CommandRunner()
    plat = plat or current_platform()
    caps = PlatformCapabilities()

    if plat == Platform.MACOS:
        caps.has_launchd = True
        caps.has_lsof = runner.has('lsof')
    elif plat == Platform.LINUX:
        caps.has_systemd = runner.succeeds(['systemctl', '--version'])
        caps.has_cron = runner.has('crontab')
        caps.has_lsof = runner.has('lsof')
        caps.has_ss = runner.has('ss')
        caps.has_netstat = runner.has('netstat')
    elif plat == Platform.BSD:
        caps.has_cron = runner.has('crontab')
        caps.has_netstat = runner.has('netstat')
        caps.has_sockstat = runner.has('sockstat')
    else:
        caps.has_cron = runner.has('crontab')

    caps.has_timeout_cmd = runner.has('timeout')
    logger.debug(f"Capabilities: {caps}")
    return caps


def home_dir() -> Path:
    """User home, from $HOME or the password database."""
    home = os.environ.get('HOME')
    if home:
        return Path(home)
    return Path.home()


def config_dir() -> Path:
    if current_platform() == Platform.MACOS:
        return home_dir() / "Library" / "Application Support"
    xdg = os.environ.get('XDG_CONFIG_HOME')
    if xdg:
        return Path(xdg)
    return home_dir() / ".config"


def temp_dir() -> Path:
    for var in ('TMPDIR', 'TEMP', 'TMP'):
        value = os.environ.get(var)
        if value:
            return Path(value)
    return Path("/tmp")


def make_dirs(path: Path, mode: int = DIR_MODE):
    """
    Create a directory and any missing parents, each with the given mode.

    Raises:
        OSError: if a component cannot be created.
    """
    path = Path(path)
    missing = []
    while not path.exists() and path.parent != path:
        missing.append(path)
        path = path.parent

    for directory in reversed(missing):
        try:
            directory.mkdir(mode=mode)
        except FileExistsError:
            continue
        # mkdir's mode is filtered through the umask
        os.chmod(directory, mode)


def mkdir_p(path: Path, mode: int = DIR_MODE) -> bool:
    """Create a directory and its parents. Returns False on failure."""
    try:
        make_dirs(path, mode)
        return True
    except OSError as e:
        logger.error(f"Cannot create directory {path}: {e}")
        return False


def is_admin() -> bool:
    """True when running as root."""
    geteuid = getattr(os, 'geteuid', None)
    return geteuid is not None and geteuid() == 0


def cpu_count() -> int:
    return psutil.cpu_count(logical=True) or 1


def memory_mb() -> int:
    return int(psutil.virtual_memory().total / (1024 * 1024))


def executable_path() -> str:
    """Path of the running interpreter's executable."""
    try:
        return psutil.Process().exe()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return sys.executable


def set_permissions(path: Path, mode: int) -> bool:
    """chmod a path. Returns False on failure."""
    try:
        os.chmod(path, mode)
        return True
    except OSError as e:
        logger.error(f"Cannot set mode {oct(mode)} on {path}: {e}")
        return False


def get_interfaces() -> list[str]:
    """Names of the host's network interfaces, sorted."""
    return sorted(psutil.net_if_addrs())


def get_interface_ip(interface: str) -> Optional[str]:
    """First IPv4 address of an interface, or None."""
    for addr in psutil.net_if_addrs().get(interface, []):
        if addr.family == socket.AF_INET:
            return addr.address
    return None


# Browser launchers tried in order when there is no desktop opener
URL_OPENERS = {
    Platform.MACOS: ['open'],
    Platform.LINUX: ['xdg-open', 'firefox', 'chromium'],
    Platform.BSD: ['xdg-open'],
}


def open_url(url: str, runner: Optional[CommandRunner] = None,
             plat: Optional[Platform] = None) -> bool:
    """Open a URL with the platform's opener. False if none is installed or it fails."""
    runner = runner or CommandRunner()
    plat = plat or current_platform()

    for opener in URL_OPENERS.get(plat, []):
        if runner.has(opener):
            return runner.run([opener, url]).ok
    logger.warning(f"No program available to open {url}")
    return False
