"""Graceful process termination."""

import asyncio
import signal
import time
from typing import Callable, Optional

import psutil

from ..config import get_settings
from ..utils.logging_config import get_logger

logger = get_logger('process_controller')

# Not every platform defines SIGKILL
FORCE_SIGNAL = getattr(signal, 'SIGKILL', signal.SIGTERM)


class ProcessController:
    """Terminates processes: SIGTERM, poll, SIGKILL, final check."""

    def __init__(self, poll_interval_ms: Optional[int] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.poll_interval_ms = poll_interval_ms or get_settings().poll_interval_ms
        self._sleep = sleep
        logger.debug(f"ProcessController initialized (poll={self.poll_interval_ms}ms)")

    def exists(self, pid: int) -> bool:
        """
        Check whether a process is alive.

        Zombies count as gone. A process we are not allowed to inspect
        still exists.
        """
        if pid <= 0:
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def terminate(self, pid: int, timeout_ms: Optional[int] = None) -> bool:
        """
        Stop a process, escalating to SIGKILL after timeout_ms.

        Args:
            pid: Process ID, must be positive.
            timeout_ms: Grace period after SIGTERM.

        Returns:
            True if the process is gone (including if it never existed).
        """
        timeout_ms = self._check_args(pid, timeout_ms)
        started = self._send(pid, signal.SIGTERM)
        if started is not None:
            return started

        waited = 0
        while waited < timeout_ms:
            if not self.exists(pid):
                logger.info(f"Process {pid} exited after SIGTERM ({waited}ms)")
                return True
            self._sleep(self.poll_interval_ms / 1000)
            waited += self.poll_interval_ms

        self._escalate(pid)
        self._sleep(self.poll_interval_ms / 1000)
        return self._survived_check(pid)

    async def terminate_async(self, pid: int, timeout_ms: Optional[int] = None) -> bool:
        """Same escalation as terminate(), yielding to the event loop between ticks."""
        timeout_ms = self._check_args(pid, timeout_ms)
        started = self._send(pid, signal.SIGTERM)
        if started is not None:
            return started

        waited = 0
        while waited < timeout_ms:
            if not self.exists(pid):
                logger.info(f"Process {pid} exited after SIGTERM ({waited}ms)")
                return True
            await asyncio.sleep(self.poll_interval_ms / 1000)
            waited += self.poll_interval_ms

        self._escalate(pid)
        await asyncio.sleep(self.poll_interval_ms / 1000)
        return self._survived_check(pid)

    def _check_args(self, pid: int, timeout_ms: Optional[int]) -> int:
        if pid <= 0:
            raise ValueError(f"Invalid PID {pid}")
        if timeout_ms is None:
            timeout_ms = get_settings().kill_timeout_ms
        return max(0, timeout_ms)

    def _send(self, pid: int, sig: int) -> Optional[bool]:
        """
        Deliver a signal.

        Returns:
            True if the process is already gone, False if signalling was
            refused, None if the signal was delivered.
        """
        try:
            psutil.Process(pid).send_signal(sig)
            logger.debug(f"Sent signal {sig} to PID {pid}")
            return None
        except psutil.NoSuchProcess:
            logger.debug(f"PID {pid} does not exist, nothing to terminate")
            return True
        except psutil.AccessDenied:
            logger.error(f"Access denied sending signal {sig} to PID {pid}")
            return False

    def _escalate(self, pid: int):
        logger.warning(f"Process {pid} still running after SIGTERM, sending SIGKILL")
        self._send(pid, FORCE_SIGNAL)

    def _survived_check(self, pid: int) -> bool:
        if self.exists(pid):
            logger.error(f"Process {pid} survived SIGKILL")
            return False
        logger.info(f"Process {pid} force killed")
        return True
