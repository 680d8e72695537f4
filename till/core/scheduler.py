"""OS scheduler detection and the scheduler facade."""

from pathlib import Path
from typing import Optional

from .cron import CronBackend
from .launchd import LaunchdBackend
from .models import Platform, ScheduleConfig, SchedulerType
from .platform_info import current_platform
from .scheduler_backend import NullBackend, SchedulerBackend
from .shell import CommandRunner
from .systemd import SystemdBackend
from ..utils.logging_config import get_logger

logger = get_logger('scheduler')

BACKENDS = {
    SchedulerType.LAUNCHD: LaunchdBackend,
    SchedulerType.SYSTEMD: SystemdBackend,
    SchedulerType.CRON: CronBackend,
}


def detect(runner: Optional[CommandRunner] = None,
           plat: Optional[Platform] = None) -> SchedulerType:
    """
    Work out which scheduler this host uses.

    macOS always uses launchd. Linux prefers systemd when systemctl works,
    then cron. Elsewhere only cron is considered.
    """
    runner = runner or CommandRunner()
    plat = plat or current_platform()

    if plat == Platform.MACOS:
        return SchedulerType.LAUNCHD
    if plat == Platform.LINUX and runner.succeeds(['systemctl', '--version']):
        return SchedulerType.SYSTEMD
    if runner.has('crontab'):
        return SchedulerType.CRON
    return SchedulerType.NONE


def create_backend(scheduler_type: SchedulerType, runner: Optional[CommandRunner] = None,
                   home: Optional[Path] = None, **kwargs) -> SchedulerBackend:
    """Instantiate the backend for a scheduler type."""
    cls = BACKENDS.get(scheduler_type)
    if cls is None:
        return NullBackend(scheduler_type, runner=runner, home=home, **kwargs)
    return cls(runner=runner, home=home, **kwargs)


class SchedulerAdapter:
    """
    Installs and queries recurring jobs with whatever scheduler the host has.

    The scheduler is detected once, on first use.
    """

    def __init__(self, backend: Optional[SchedulerBackend] = None,
                 runner: Optional[CommandRunner] = None, home: Optional[Path] = None):
        self.runner = runner or CommandRunner()
        self.home = home
        self._backend = backend

    @property
    def backend(self) -> SchedulerBackend:
        if self._backend is None:
            scheduler_type = detect(self.runner)
            logger.info(f"Detected scheduler: {scheduler_type.value}")
            self._backend = create_backend(scheduler_type, runner=self.runner, home=self.home)
        return self._backend

    @property
    def scheduler_type(self) -> SchedulerType:
        return self.backend.scheduler_type

    def install(self, config: ScheduleConfig) -> bool:
        return self.backend.install(config)

    def remove(self, name: str) -> bool:
        return self.backend.remove(name)

    def exists(self, name: str) -> bool:
        return self.backend.exists(name)

    def list_jobs(self) -> list[str]:
        return self.backend.list_jobs()
