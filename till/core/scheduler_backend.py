"""Common behaviour for OS scheduler backends."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .models import ScheduleConfig, SchedulerType, is_valid_job_name
from .platform_info import home_dir, is_admin, make_dirs
from .shell import CommandRunner
from ..config import JOB_PREFIX
from ..utils.logging_config import get_logger

logger = get_logger('scheduler')


class SchedulerBackend(ABC):
    """
    Installs, removes and queries named recurring jobs for one OS mechanism.

    Every public method reports a plain result and never raises for
    operational problems. Failures are not rolled back: if an install
    writes files and a later step fails, the files stay and remove() is
    the way to clean up.
    """

    scheduler_type = SchedulerType.NONE

    def __init__(self, runner: Optional[CommandRunner] = None,
                 home: Optional[Path] = None, admin: Optional[bool] = None):
        self.runner = runner or CommandRunner()
        self.home = Path(home) if home is not None else home_dir()
        self.admin = is_admin() if admin is None else admin

    def install(self, config: ScheduleConfig) -> bool:
        """Install or replace the job described by config."""
        error = config.validation_error()
        if error:
            logger.error(f"Cannot install job: {error}")
            return False
        try:
            ok = self._install(config)
        except OSError as e:
            logger.error(f"Installing {self.scheduler_type.value} job {config.name} failed: {e}")
            return False
        if ok:
            logger.info(f"Installed {self.scheduler_type.value} job {config.name}")
        else:
            logger.error(f"Failed to install {self.scheduler_type.value} job {config.name}")
        return ok

    def remove(self, name: str) -> bool:
        """Remove the job's OS artifacts."""
        if not is_valid_job_name(name):
            logger.error(f"Cannot remove job: invalid job name {name!r}")
            return False
        try:
            ok = self._remove(name)
        except OSError as e:
            logger.error(f"Removing {self.scheduler_type.value} job {name} failed: {e}")
            return False
        if ok:
            logger.info(f"Removed {self.scheduler_type.value} job {name}")
        else:
            logger.warning(f"Could not remove {self.scheduler_type.value} job {name}")
        return ok

    def exists(self, name: str) -> bool:
        """Whether the job is currently installed."""
        if not is_valid_job_name(name):
            return False
        try:
            return self._exists(name)
        except OSError as e:
            logger.warning(f"Checking {self.scheduler_type.value} job {name} failed: {e}")
            return False

    def list_jobs(self) -> list[str]:
        """Names of installed Till jobs, sorted."""
        try:
            return sorted(set(self._list_jobs()))
        except OSError as e:
            logger.warning(f"Listing {self.scheduler_type.value} jobs failed: {e}")
            return []

    @abstractmethod
    def _install(self, config: ScheduleConfig) -> bool: ...

    @abstractmethod
    def _remove(self, name: str) -> bool: ...

    @abstractmethod
    def _exists(self, name: str) -> bool: ...

    @abstractmethod
    def _list_jobs(self) -> list[str]: ...

    def _privileged(self, args: list[str]) -> list[str]:
        """Prefix sudo unless already root."""
        return list(args) if self.admin else ['sudo', *args]

    def _write_file(self, path: Path, content: str):
        make_dirs(path.parent)
        path.write_text(content, encoding='utf-8')
        logger.debug(f"Wrote {path}")

    @staticmethod
    def unit_name(name: str) -> str:
        return f"{JOB_PREFIX}-{name}"

    @staticmethod
    def scope_name(user_level: bool) -> str:
        return "user" if user_level else "system"


class NullBackend(SchedulerBackend):
    """Used when no supported scheduler is present. Every change fails."""

    def __init__(self, scheduler_type: SchedulerType = SchedulerType.NONE, **kwargs):
        super().__init__(**kwargs)
        self.scheduler_type = scheduler_type

    def _install(self, config: ScheduleConfig) -> bool:
        logger.error(f"No usable scheduler ({self.scheduler_type.value}) for job {config.name}")
        return False

    def _remove(self, name: str) -> bool:
        return False

    def _exists(self, name: str) -> bool:
        return False

    def _list_jobs(self) -> list[str]:
        return []
