"""Supervisor: wait for the child, enforce the timeout, produce the verdict.

The verdict depends on two signals: the child's exit status and the completion
marker. A zero exit code is not a pass on its own; the marker must also be
present.

==================  ==============  =================
Exit                Marker          Verdict
==================  ==============  =================
code 0              present         passed
code 0              absent          body incomplete
nonzero code        (ignored)       non-zero exit
signal              (ignored)       signaled
==================  ==============  =================
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from isofork.config import current_config
from isofork.models import ExitStatus, FailureReason, Verdict

if TYPE_CHECKING:
    from isofork.child import ChildWrapper
    from isofork.cmdline import ChildCommand
    from isofork.completion import CompletionMarker

logger = logging.getLogger(__name__)


def no_configure_child(command: ChildCommand) -> None:  # noqa: ARG001
    """Configure hook that leaves the child command unchanged."""


def classify_exit(
    status: ExitStatus, marker_present: bool, elapsed_seconds: float
) -> Verdict:
    """Turn an observed exit into a verdict.

    Args:
        status: How the child terminated.
        marker_present: Whether the completion marker was written.
        elapsed_seconds: Time spent supervising.

    Returns:
        The verdict for the launch.
    """
    if status.signal is not None:
        return Verdict.failed(
            FailureReason.SIGNALED, elapsed_seconds=elapsed_seconds, exit_status=status
        )
    if not status.success:
        return Verdict.failed(
            FailureReason.NON_ZERO_EXIT,
            elapsed_seconds=elapsed_seconds,
            exit_status=status,
        )
    if not marker_present:
        return Verdict.failed(
            FailureReason.BODY_INCOMPLETE,
            elapsed_seconds=elapsed_seconds,
            exit_status=status,
        )
    return Verdict.passed_after(elapsed_seconds, status)


def supervise_child(
    child: ChildWrapper,
    completion: CompletionMarker,
    timeout_ms: int = 0,
    *,
    poll_interval_ms: int | None = None,
) -> Verdict:
    """Wait for *child* and classify how it ended.

    With ``timeout_ms <= 0`` this blocks until the child exits. Otherwise the
    child's status is polled every ``poll_interval_ms`` (default from the
    active ``ForkConfig``); if the deadline passes first the child's process
    group is killed and a timeout verdict is returned.

    Args:
        child: Handle to the running child.
        completion: Marker the child writes after its body returns.
        timeout_ms: Wall-clock limit in milliseconds; 0 disables it.
        poll_interval_ms: Override for the polling interval.

    Returns:
        The verdict. OS errors while waiting or killing yield a
        ``SUPERVISION_ERROR`` verdict instead of raising.
    """
    start = time.monotonic()
    try:
        if timeout_ms <= 0:
            status = child.wait()
        else:
            interval = poll_interval_ms or current_config().poll_interval_ms
            status = child.wait_timeout(timeout_ms / 1000, interval / 1000)
            if status is None:
                elapsed = time.monotonic() - start
                logger.warning(
                    "Child %d exceeded %d ms timeout after %.3fs; killing",
                    child.pid,
                    timeout_ms,
                    elapsed,
                )
                child.kill()
                killed = child.wait()
                return Verdict.failed(
                    FailureReason.TIMEOUT,
                    elapsed_seconds=elapsed,
                    exit_status=killed,
                    detail=f"timeout of {timeout_ms} ms",
                )
    except OSError as exc:
        logger.error("Supervising child %d failed: %s", child.pid, exc)
        return Verdict.failed(
            FailureReason.SUPERVISION_ERROR,
            elapsed_seconds=time.monotonic() - start,
            detail=str(exc),
        )

    elapsed = time.monotonic() - start
    verdict = classify_exit(status, completion.read_marker(), elapsed)
    logger.debug("Child %d finished: %s", child.pid, verdict.describe())
    return verdict
