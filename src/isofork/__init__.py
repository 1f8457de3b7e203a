"""Run tests in isolated child processes.

A crash, ``os.abort()``, raw ``os._exit()`` or hang in one test cannot take
down the harness or any other test: each registered body runs in a fresh
re-invocation of the test runner, and its verdict is derived from the child's
exit status plus a completion marker file.
"""

from __future__ import annotations

from isofork.child import ChildWrapper
from isofork.cmdline import ChildCommand
from isofork.completion import CompletionMarker
from isofork.errors import (
    ChildFailedError,
    ContextError,
    ForkError,
    SpawnError,
    SupervisionError,
)
from isofork.fork import fork
from isofork.identity import fork_test_id
from isofork.models import (
    ExitStatus,
    FailureReason,
    ForkConfig,
    ForkTestId,
    TestIdentity,
    Verdict,
    VerdictStatus,
)
from isofork.sugar import fork_test
from isofork.supervisor import no_configure_child, supervise_child

__all__ = [
    "ChildCommand",
    "ChildFailedError",
    "ChildWrapper",
    "CompletionMarker",
    "ContextError",
    "ExitStatus",
    "FailureReason",
    "ForkConfig",
    "ForkError",
    "ForkTestId",
    "SpawnError",
    "SupervisionError",
    "TestIdentity",
    "Verdict",
    "VerdictStatus",
    "fork",
    "fork_test",
    "fork_test_id",
    "no_configure_child",
    "supervise_child",
]
