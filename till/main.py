#!/usr/bin/env python3
"""
Till Platform Report

Prints what the platform layer sees on this host:
- OS, version and hardware
- Port probing tools and scheduler tooling
- The active scheduler and the Till jobs it holds
"""

import sys

from rich.console import Console
from rich.table import Table

from . import __version__
from .core import SchedulerAdapter
from .core import platform_info
from .core.shell import CommandRunner
from .utils.logging_config import setup_logging, get_log_file_path


def build_report(runner: CommandRunner, scheduler: SchedulerAdapter) -> Table:
    """Collect platform facts into a two-column table."""
    caps = platform_info.get_capabilities(runner)

    table = Table(title=f"Till {__version__} platform report")
    table.add_column("Item")
    table.add_column("Value")
    table.add_row("Platform", f"{platform_info.platform_name()} {platform_info.platform_version(runner)}")
    table.add_row("CPUs", str(platform_info.cpu_count()))
    table.add_row("Memory", f"{platform_info.memory_mb()} MB")
    table.add_row("Administrator", "yes" if platform_info.is_admin() else "no")
    table.add_row("Port probe tools", ", ".join(caps.probe_tools) or "none (psutil only)")
    table.add_row("launchd / systemd / cron",
                  " / ".join("yes" if f else "no" for f in (caps.has_launchd, caps.has_systemd, caps.has_cron)))
    table.add_row("timeout command", "yes" if caps.has_timeout_cmd else "no")
    table.add_row("Active scheduler", scheduler.scheduler_type.value)
    table.add_row("Till jobs", ", ".join(scheduler.list_jobs()) or "none")
    return table


def main():
    """Main entry point for the platform report."""
    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("Till platform report starting")
    logger.info(f"Log file: {get_log_file_path()}")
    logger.info("=" * 60)

    runner = CommandRunner()
    scheduler = SchedulerAdapter(runner=runner)

    console = Console()
    console.print(build_report(runner, scheduler))

    logger.info("Till platform report finished")
    sys.exit(0)


if __name__ == "__main__":
    main()
