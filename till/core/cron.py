"""Cron backend: a tagged line in the user's crontab per job."""

import shlex
from typing import Optional

from .models import ScheduleConfig, SchedulerType
from .schedule_spec import cron_schedule
from .scheduler_backend import SchedulerBackend
from ..utils.logging_config import get_logger

logger = get_logger('cron')

TAG_PREFIX = "# "


def job_tag(name: str) -> str:
    return f"{TAG_PREFIX}{SchedulerBackend.unit_name(name)}"


def build_cron_line(config: ScheduleConfig) -> str:
    """
    Build the crontab entry for a job.

    Output goes to log_file (stderr to error_file, or merged when there is
    no error_file). Without a log_file nothing is redirected.
    """
    workdir = shlex.quote(config.working_dir) if config.working_dir else "$HOME"
    line = f"{cron_schedule(config.schedule_spec)} cd {workdir} && {config.command}"
    if config.log_file:
        line += f" >> {shlex.quote(config.log_file)}"
        line += f" 2>> {shlex.quote(config.error_file)}" if config.error_file else " 2>&1"
    return line


def strip_job(lines: list[str], name: str) -> list[str]:
    """Drop a job's tag and the entry line that follows it."""
    tag = job_tag(name)
    kept: list[str] = []
    skip_next = False
    for line in lines:
        if skip_next:
            skip_next = False
            if not line.lstrip().startswith('#'):
                continue
        if line.strip() == tag:
            skip_next = True
            continue
        kept.append(line)
    return kept


class CronBackend(SchedulerBackend):
    """Edits the crontab with a read-filter-write of `crontab -l` / `crontab -`."""

    scheduler_type = SchedulerType.CRON

    def read_crontab(self) -> Optional[list[str]]:
        """
        Current crontab lines.

        Returns:
            Lines, an empty list when the user has no crontab yet, or None
            if crontab cannot be run at all.
        """
        result = self.runner.run(['crontab', '-l'])
        if result.missing or result.timed_out:
            logger.error("crontab is not available")
            return None
        if not result.ok:
            # "no crontab for <user>"
            return []
        return result.lines

    def write_crontab(self, lines: list[str]) -> bool:
        content = "\n".join(lines) + "\n" if lines else ""
        result = self.runner.run(['crontab', '-'], input_text=content)
        if not result.ok:
            logger.error(f"crontab - failed: {result.stderr.strip()}")
        return result.ok

    def _install(self, config: ScheduleConfig) -> bool:
        lines = self.read_crontab()
        if lines is None:
            return False
        lines = strip_job(lines, config.name)
        lines += [job_tag(config.name), build_cron_line(config)]
        return self.write_crontab(lines)

    def _remove(self, name: str) -> bool:
        lines = self.read_crontab()
        if lines is None:
            return False
        return self.write_crontab(strip_job(lines, name))

    def _exists(self, name: str) -> bool:
        lines = self.read_crontab() or []
        tag = job_tag(name)
        return any(line.strip() == tag for line in lines)

    def _list_jobs(self) -> list[str]:
        prefix = job_tag('')
        return [line.strip()[len(prefix):] for line in self.read_crontab() or []
                if line.strip().startswith(prefix) and len(line.strip()) > len(prefix)]
