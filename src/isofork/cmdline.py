"""Child command construction: re-invoke the test harness for one test.

The child is the current interpreter running ``python -m pytest`` with the
test's selection string as its only positional argument. Of the driver's own
harness arguments only those that change how a test is loaded are forwarded;
paths, keyword/marker filters and parallelism flags are dropped so that the
child runs exactly one test.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import IO, TYPE_CHECKING, Any

from isofork.child import ChildWrapper

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Harness options (taking one value) forwarded to the child.
_FORWARDED_OPTIONS: frozenset[str] = frozenset(
    {
        "-p",
        "-c",
        "-o",
        "-W",
        "--rootdir",
        "--import-mode",
        "--confcutdir",
        "--config-file",
        "--override-ini",
        "--pythonwarnings",
        "--isofork-config",
    }
)
_SHORT_FORWARDED = frozenset(o for o in _FORWARDED_OPTIONS if not o.startswith("--"))

# Options (taking one value) dropped together with their value.
_DROPPED_VALUE_OPTIONS: frozenset[str] = frozenset(
    {"-k", "-m", "-n", "--numprocesses", "--dist", "--maxfail", "--deselect", "--ignore"}
)

_BASE_ARGS: tuple[str, ...] = ("-m", "pytest", "-q", "-s", "-p", "no:cacheprovider")

_Stdio = int | IO[Any] | None


def child_argv(test_name: str, harness_args: Iterable[str] = ()) -> list[str]:
    """Build the argv that runs only *test_name*.

    Args:
        test_name: pytest selection string (``<path>::<node suffix>``).
        harness_args: The driver's harness invocation arguments.

    Returns:
        A complete argv starting with ``sys.executable``.
    """
    forwarded: list[str] = []
    args = iter(harness_args)
    for arg in args:
        # short form with the value attached, e.g. -Werror or -pxdist
        if arg[:2] in _SHORT_FORWARDED and len(arg) > 2:
            forwarded.append(arg)
            continue
        option, eq, _ = arg.partition("=")
        if option in _FORWARDED_OPTIONS:
            if eq:
                forwarded.append(arg)
                continue
            value = next(args, None)
            if value is not None:
                forwarded.extend((arg, value))
            continue
        if option in _DROPPED_VALUE_OPTIONS and not eq:
            next(args, None)
    return [sys.executable, *_BASE_ARGS, *forwarded, test_name]


class ChildCommand:
    """Mutable description of the child process, open to caller customization.

    Attributes:
        argv: Program and arguments.
        env: Environment for the child; starts as a copy of ``os.environ``.
        cwd: Working directory, or ``None`` to inherit.
        stdin: Standard input (``None`` inherits).
        stdout: Standard output (``None`` inherits).
        stderr: Standard error (``None`` inherits).
    """

    def __init__(self, argv: list[str], env: dict[str, str] | None = None) -> None:
        self.argv = list(argv)
        self.env: dict[str, str] = dict(os.environ) if env is None else dict(env)
        self.cwd: str | os.PathLike[str] | None = None
        self.stdin: _Stdio = None
        self.stdout: _Stdio = None
        self.stderr: _Stdio = None

    @classmethod
    def for_test(cls, test_name: str, harness_args: Iterable[str] = ()) -> ChildCommand:
        """Return a command re-invoking the harness for *test_name*."""
        return cls(child_argv(test_name, harness_args))

    def spawn(self) -> ChildWrapper:
        """Start the child in its own session (POSIX) and wrap it.

        Raises:
            OSError: If the process cannot be started.
        """
        new_session = os.name == "posix"
        logger.debug("Spawning child: %s", " ".join(self.argv))
        process = subprocess.Popen(  # noqa: S603
            self.argv,
            env=self.env,
            cwd=self.cwd,
            stdin=self.stdin,
            stdout=self.stdout,
            stderr=self.stderr,
            start_new_session=new_session,
        )
        return ChildWrapper(process, process_group=new_session)

    def __repr__(self) -> str:
        return f"ChildCommand({self.argv!r}, cwd={self.cwd!r})"
