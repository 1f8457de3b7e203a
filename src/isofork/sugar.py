"""``@fork_test``: run a pytest test function in its own process.

Usage::

    from isofork import fork_test

    @fork_test
    def test_something():
        assert 1 + 1 == 2

    @fork_test(timeout_ms=1000)
    def test_bounded():
        do_some_expensive_computation()

If the child exits unsuccessfully for any reason, including signals,
``os._exit()`` before the body finished, or the timeout, the test fails with a
``ForkError``. The wrapper keeps the test's signature, so fixtures and
parametrization work; fixtures are set up in both driver and child but only
used by the child. ``async def`` tests are run with ``asyncio.run`` inside
the child.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import TYPE_CHECKING, Any, TypeVar, overload

from isofork.config import current_config
from isofork.fork import fork
from isofork.identity import current_test_name
from isofork.models import ForkTestId
from isofork.supervisor import no_configure_child, supervise_child

if TYPE_CHECKING:
    from collections.abc import Callable

    from isofork.cmdline import ChildCommand

F = TypeVar("F", bound="Callable[..., Any]")


def make_body(
    func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
) -> Callable[[], None]:
    """Bind a test function to its arguments as a zero-argument body."""
    if inspect.iscoroutinefunction(func):

        def run_async() -> None:
            asyncio.run(func(*args, **kwargs))

        return run_async

    def run() -> None:
        func(*args, **kwargs)

    return run


def _decorate(
    func: F,
    timeout_ms: int | None,
    configure_child: Callable[[ChildCommand], None],
) -> F:
    fork_id = ForkTestId.for_function(func)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        timeout = current_config().default_timeout_ms if timeout_ms is None else timeout_ms
        fork(
            current_test_name(func),
            fork_id,
            configure_child,
            functools.partial(supervise_child, timeout_ms=timeout),
            make_body(func, args, kwargs),
        )

    wrapper.__isofork_id__ = fork_id  # type: ignore[attr-defined]
    return wrapper  # type: ignore[return-value]


@overload
def fork_test(func: F) -> F: ...


@overload
def fork_test(
    *,
    timeout_ms: int | None = None,
    configure_child: Callable[[ChildCommand], None] | None = None,
) -> Callable[[F], F]: ...


def fork_test(
    func: F | None = None,
    *,
    timeout_ms: int | None = None,
    configure_child: Callable[[ChildCommand], None] | None = None,
) -> F | Callable[[F], F]:
    """Decorate a test so its body runs in a separate process.

    Args:
        func: The test function (when used without parentheses).
        timeout_ms: Per-test timeout in milliseconds; ``None`` uses the
            configured default, 0 disables it.
        configure_child: Optional hook customizing the child command.

    Raises:
        ValueError: If *timeout_ms* is negative.
    """
    if timeout_ms is not None and timeout_ms < 0:
        msg = f"timeout_ms must be >= 0, got {timeout_ms}"
        raise ValueError(msg)
    hook = configure_child or no_configure_child

    if func is not None:
        return _decorate(func, timeout_ms, hook)

    def decorator(f: F) -> F:
        return _decorate(f, timeout_ms, hook)

    return decorator
