"""Handle around a spawned child process.

Wraps ``subprocess.Popen`` with the operations the supervisor needs:
non-blocking and bounded waits returning :class:`ExitStatus`, and a kill that
takes down the child's whole process group.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import time

from isofork.models import ExitStatus

logger = logging.getLogger(__name__)


class ChildWrapper:
    """Exclusive owner of one spawned child for the duration of a launch.

    Args:
        process: The running child.
        process_group: Whether the child leads its own process group, in
            which case :meth:`kill` signals the group.
    """

    def __init__(self, process: subprocess.Popen[bytes], *, process_group: bool = False) -> None:
        self._process = process
        self._process_group = process_group

    @property
    def pid(self) -> int:
        """OS process id of the child."""
        return self._process.pid

    @property
    def inner(self) -> subprocess.Popen[bytes]:
        """The underlying ``Popen`` (e.g. to use piped stdio)."""
        return self._process

    def try_wait(self) -> ExitStatus | None:
        """Return the exit status if the child has exited, else ``None``."""
        returncode = self._process.poll()
        if returncode is None:
            return None
        return ExitStatus.from_returncode(returncode)

    def wait(self) -> ExitStatus:
        """Block until the child exits."""
        return ExitStatus.from_returncode(self._process.wait())

    def wait_timeout(self, timeout: float, poll_interval: float) -> ExitStatus | None:
        """Poll until the child exits or *timeout* seconds have elapsed.

        Args:
            timeout: Deadline in seconds, measured from the call.
            poll_interval: Sleep between polls in seconds.

        Returns:
            The exit status, or ``None`` if the deadline passed first.
        """
        deadline = time.monotonic() + timeout
        while True:
            status = self.try_wait()
            if status is not None:
                return status
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(poll_interval, remaining))

    def kill(self) -> None:
        """Forcibly terminate the child (SIGKILL to its process group on POSIX).

        A child that already exited is not an error.
        """
        if self._process.poll() is not None:
            return
        if self._process_group and hasattr(os, "killpg"):
            try:
                pgid = os.getpgid(self.pid)
            except ProcessLookupError:
                return
            logger.debug("Killing process group %d", pgid)
            with contextlib.suppress(ProcessLookupError):
                os.killpg(pgid, signal.SIGKILL)
            return
        logger.debug("Killing child %d", self.pid)
        with contextlib.suppress(ProcessLookupError):
            self._process.kill()

    def is_running(self) -> bool:
        """True until the child has been reaped."""
        return self._process.poll() is None

    def __repr__(self) -> str:
        return f"ChildWrapper(pid={self.pid})"
