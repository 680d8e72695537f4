"""Linux systemd backend: a oneshot service plus a timer per job."""

from pathlib import Path
from typing import Optional

from .models import ScheduleConfig, SchedulerType
from .schedule_spec import systemd_calendar
from .scheduler_backend import SchedulerBackend
from ..config import SYSTEMD_SYSTEM_DIR, SYSTEMD_USER_DIR
from ..utils.logging_config import get_logger

logger = get_logger('systemd')


def render_service(config: ScheduleConfig) -> str:
    lines = [
        "[Unit]",
        f"Description=Till {config.name} Service",
        "",
        "[Service]",
        "Type=oneshot",
        f"ExecStart={config.command}",
    ]
    if config.working_dir:
        lines.append(f"WorkingDirectory={config.working_dir}")
    if config.log_file:
        lines.append(f"StandardOutput=append:{config.log_file}")
    if config.error_file:
        lines.append(f"StandardError=append:{config.error_file}")
    return "\n".join(lines) + "\n"


def render_timer(config: ScheduleConfig) -> str:
    unit = SchedulerBackend.unit_name(config.name)
    lines = [
        "[Unit]",
        f"Description=Till {config.name} Timer",
        f"Requires={unit}.service",
        "",
        "[Timer]",
        f"OnCalendar={systemd_calendar(config.schedule_spec)}",
        "Persistent=true",
        "",
        "[Install]",
        "WantedBy=timers.target",
    ]
    return "\n".join(lines) + "\n"


class SystemdBackend(SchedulerBackend):
    """Units go to ~/.config/systemd/user (user) or /etc/systemd/system (system)."""

    scheduler_type = SchedulerType.SYSTEMD

    def __init__(self, system_dir: Optional[Path] = None, **kwargs):
        super().__init__(**kwargs)
        self.user_dir = self.home / SYSTEMD_USER_DIR
        self.system_dir = Path(system_dir) if system_dir is not None else Path(SYSTEMD_SYSTEM_DIR)

    def unit_paths(self, name: str, user_level: bool = True) -> tuple[Path, Path]:
        """(service, timer) file paths for a job at one scope."""
        directory = self.user_dir if user_level else self.system_dir
        unit = self.unit_name(name)
        return directory / f"{unit}.service", directory / f"{unit}.timer"

    def _systemctl(self, user_level: bool, *args: str) -> list[str]:
        if user_level:
            return ['systemctl', '--user', *args]
        return self._privileged(['systemctl', *args])

    def _install(self, config: ScheduleConfig) -> bool:
        # A job lives at one scope; moving it retires the other copy first
        other = not config.user_level
        if self._has_units(config.name, other):
            logger.info(f"Moving job {config.name} out of {self.scope_name(other)} scope")
            if not self._remove_at(config.name, other):
                return False

        service_path, timer_path = self.unit_paths(config.name, config.user_level)
        self._write_file(service_path, render_service(config))
        self._write_file(timer_path, render_timer(config))

        timer = f"{self.unit_name(config.name)}.timer"
        steps = [('daemon-reload',), ('enable', timer), ('start', timer)]
        for step in steps:
            result = self.runner.run(self._systemctl(config.user_level, *step))
            if not result.ok:
                logger.error(f"systemctl {' '.join(step)} failed for {config.name}: "
                             f"{result.stderr.strip()}")
                return False
        return True

    def _remove(self, name: str) -> bool:
        scopes = [level for level in (True, False) if self._has_units(name, level)]
        if scopes:
            return all([self._remove_at(name, level) for level in scopes])

        # No unit files, but a timer may still be loaded
        timer = f"{self.unit_name(name)}.timer"
        stopped = False
        for user_level in (True, False):
            if self.runner.run(self._systemctl(user_level, 'stop', timer)).ok:
                self.runner.run(self._systemctl(user_level, 'disable', timer))
                stopped = True
        return stopped

    def _has_units(self, name: str, user_level: bool) -> bool:
        return any(path.exists() for path in self.unit_paths(name, user_level))

    def _remove_at(self, name: str, user_level: bool) -> bool:
        """Stop, disable and delete the units at one scope."""
        timer = f"{self.unit_name(name)}.timer"
        self.runner.run(self._systemctl(user_level, 'stop', timer))
        self.runner.run(self._systemctl(user_level, 'disable', timer))
        return self._delete_units(*self.unit_paths(name, user_level), user_level)

    def _delete_units(self, service_path: Path, timer_path: Path, user_level: bool) -> bool:
        present = [p for p in (service_path, timer_path) if p.exists()]
        if user_level or self.admin:
            for path in present:
                path.unlink()
            return True
        return self.runner.run(['sudo', 'rm', '-f', *[str(p) for p in present]]).ok

    def _exists(self, name: str) -> bool:
        unit = self.unit_name(name)
        for user_level in (True, False):
            args = ['systemctl', *(['--user'] if user_level else []),
                    'list-timers', f"{unit}.timer", '--no-pager']
            result = self.runner.run(args)
            if result.ok and unit in result.stdout:
                return True
        return False

    def _list_jobs(self) -> list[str]:
        prefix = self.unit_name('')
        names = []
        for directory in (self.user_dir, self.system_dir):
            if not directory.is_dir():
                continue
            for path in directory.glob(f"{prefix}*.timer"):
                names.append(path.stem[len(prefix):])
        return names
