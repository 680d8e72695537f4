"""macOS launchd backend: one property-list file per job."""

from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from .models import ScheduleConfig, SchedulerType
from .schedule_spec import launchd_interval
from .scheduler_backend import SchedulerBackend
from ..config import LAUNCHD_LABEL_PREFIX, LAUNCHD_SYSTEM_DIR, LAUNCHD_USER_DIR
from ..utils.logging_config import get_logger

logger = get_logger('launchd')

PLIST_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" '
    '"http://www.apple.com/DTDs/PropertyList-1.0.dtd">\n'
    '<plist version="1.0">\n'
    '<dict>\n'
)
PLIST_FOOTER = '</dict>\n</plist>\n'


def job_label(name: str) -> str:
    return f"{LAUNCHD_LABEL_PREFIX}.{name}"


def render_plist(config: ScheduleConfig) -> str:
    """
    Build the launchd property list for a job.

    ProgramArguments is the command split on whitespace, so an argument
    that itself contains spaces cannot be expressed.
    """
    lines = [
        '    <key>Label</key>',
        f'    <string>{escape(job_label(config.name))}</string>',
        '    <key>ProgramArguments</key>',
        '    <array>',
    ]
    lines += [f'        <string>{escape(arg)}</string>' for arg in config.command.split()]
    lines.append('    </array>')

    optional_keys = [
        ('WorkingDirectory', config.working_dir),
        ('StandardOutPath', config.log_file),
        ('StandardErrorPath', config.error_file),
    ]
    for key, value in optional_keys:
        if value:
            lines.append(f'    <key>{key}</key>')
            lines.append(f'    <string>{escape(value)}</string>')

    if config.schedule_spec:
        hour, minute = launchd_interval(config.schedule_spec)
        lines += [
            '    <key>StartCalendarInterval</key>',
            '    <dict>',
            '        <key>Hour</key>',
            f'        <integer>{hour}</integer>',
            '        <key>Minute</key>',
            f'        <integer>{minute}</integer>',
            '    </dict>',
        ]

    lines += ['    <key>RunAtLoad</key>', '    <false/>']
    return PLIST_HEADER + '\n'.join(lines) + '\n' + PLIST_FOOTER


class LaunchdBackend(SchedulerBackend):
    """Jobs live in ~/Library/LaunchAgents (user) or /Library/LaunchDaemons (system)."""

    scheduler_type = SchedulerType.LAUNCHD

    def __init__(self, system_dir: Optional[Path] = None, **kwargs):
        super().__init__(**kwargs)
        self.user_dir = self.home / LAUNCHD_USER_DIR
        self.system_dir = Path(system_dir) if system_dir is not None else Path(LAUNCHD_SYSTEM_DIR)

    def plist_path(self, name: str, user_level: bool = True) -> Path:
        directory = self.user_dir if user_level else self.system_dir
        return directory / f"{job_label(name)}.plist"

    def _install(self, config: ScheduleConfig) -> bool:
        # A job lives at one scope; moving it retires the other copy first
        other = not config.user_level
        if self.plist_path(config.name, other).exists():
            logger.info(f"Moving job {config.name} out of {self.scope_name(other)} scope")
            if not self._remove_at(config.name, other):
                return False

        path = self.plist_path(config.name, config.user_level)
        self._write_file(path, render_plist(config))

        launchctl = ['launchctl'] if config.user_level else self._privileged(['launchctl'])
        # Unloading fails when the job was never loaded; that is fine
        self.runner.run([*launchctl, 'unload', str(path)])
        return self.runner.run([*launchctl, 'load', str(path)]).ok

    def _remove(self, name: str) -> bool:
        scopes = [level for level in (True, False) if self.plist_path(name, level).exists()]
        if not scopes:
            logger.debug(f"No plist found for job {name}")
            return False
        return all([self._remove_at(name, level) for level in scopes])

    def _remove_at(self, name: str, user_level: bool) -> bool:
        """Unload and delete the plist at one scope."""
        path = self.plist_path(name, user_level)
        if user_level:
            self.runner.run(['launchctl', 'unload', str(path)])
            path.unlink()
            return True

        self.runner.run(self._privileged(['launchctl', 'unload', str(path)]))
        if self.admin:
            path.unlink()
            return True
        return self.runner.run(['sudo', 'rm', str(path)]).ok

    def _exists(self, name: str) -> bool:
        return (self.plist_path(name, user_level=True).exists()
                or self.plist_path(name, user_level=False).exists())

    def _list_jobs(self) -> list[str]:
        prefix = f"{LAUNCHD_LABEL_PREFIX}."
        names = []
        for directory in (self.user_dir, self.system_dir):
            if not directory.is_dir():
                continue
            for path in directory.glob(f"{prefix}*.plist"):
                names.append(path.name[len(prefix):-len('.plist')])
        return names
