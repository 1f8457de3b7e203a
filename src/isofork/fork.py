"""Entry operation: run one test body in a fresh child process.

Every registered test calls :func:`fork`. What happens depends on the
execution context:

- **Driver**: spawn a child re-running only this test, supervise it, and
  raise if the verdict is a failure.
- **Child, targeted**: run the body in-process and record completion.
- **Child, not targeted**: do nothing; another registration owns this child.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from isofork.cmdline import ChildCommand
from isofork.completion import CompletionMarker, write_marker
from isofork.context import (
    MARKER_ENV,
    SELECT_ENV,
    ChildContext,
    DriverContext,
    current_context,
)
from isofork.errors import ChildFailedError, SpawnError, SupervisionError
from isofork.models import FailureReason, ForkTestId, TestIdentity

if TYPE_CHECKING:
    from collections.abc import Callable

    from isofork.child import ChildWrapper
    from isofork.context import ExecutionContext
    from isofork.models import Verdict

    ConfigureChild = Callable[[ChildCommand], None]
    Supervise = Callable[[ChildWrapper, CompletionMarker], Verdict]

logger = logging.getLogger(__name__)


def fork(
    test_name: str,
    fork_id: ForkTestId,
    configure_child: ConfigureChild,
    supervise: Supervise,
    body: Callable[[], object],
    *,
    context: ExecutionContext | None = None,
) -> None:
    """Run *body* for the test ``(fork_id, test_name)`` in an isolated process.

    Args:
        test_name: Selection string naming the test for the harness.
        fork_id: Registration-site id disambiguating same-named tests.
        configure_child: Hook customizing the child command before spawn.
            It cannot override the reserved environment variables.
        supervise: Hook that waits for the child and returns a verdict.
        body: The test body; only ever called in the targeted child.
        context: Execution context; defaults to :func:`current_context`.

    Raises:
        SpawnError: The child process could not be started.
        SupervisionError: The child could not be waited on or killed.
        ChildFailedError: The child's verdict was a failure.
    """
    identity = TestIdentity(fork_id=fork_id, test_name=test_name)
    ctx = current_context() if context is None else context

    if isinstance(ctx, ChildContext):
        _run_in_child(ctx, identity, body)
        return
    _run_in_driver(ctx, identity, configure_child, supervise)


def _run_in_child(
    ctx: ChildContext, identity: TestIdentity, body: Callable[[], object]
) -> None:
    if not ctx.is_target(identity):
        logger.debug("Skipping %s: child selected %s", identity.test_name, ctx.selection)
        return
    body()
    write_marker(ctx.marker_path)


def _run_in_driver(
    ctx: DriverContext,
    identity: TestIdentity,
    configure_child: ConfigureChild,
    supervise: Supervise,
) -> None:
    test_name = identity.test_name
    with CompletionMarker.create() as marker:
        command = ChildCommand.for_test(test_name, ctx.harness_args)
        configure_child(command)
        # applied after the hook so it cannot override them
        command.env[SELECT_ENV] = identity.encode()
        command.env[MARKER_ENV] = marker.path

        try:
            child = command.spawn()
        except OSError as exc:
            logger.error("Could not spawn child for %s: %s", test_name, exc)
            msg = f"{test_name}: could not spawn child process: {exc}"
            raise SpawnError(
                msg, diagnostics={"test_name": test_name, "argv": command.argv}
            ) from exc

        logger.info("Launched %s in child %d", test_name, child.pid)
        try:
            verdict = supervise(child, marker)
        finally:
            _reap(child)

    if verdict.passed:
        logger.info("%s passed in %.3fs", test_name, verdict.elapsed_seconds)
        return
    logger.info("%s failed: %s", test_name, verdict.describe())
    if verdict.reason is FailureReason.SUPERVISION_ERROR:
        raise SupervisionError(test_name, verdict)
    raise ChildFailedError(test_name, verdict)


def _reap(child: ChildWrapper) -> None:
    """Kill and reap a child still running when supervision ended."""
    if not child.is_running():
        return
    logger.warning("Child %d still running after supervision; killing", child.pid)
    try:
        child.kill()
        child.wait()
    except OSError as exc:
        logger.error("Could not reap child %d: %s", child.pid, exc)
