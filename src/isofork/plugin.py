"""pytest plugin: configuration, logging, and the ``isofork`` marker.

Registered through the ``pytest11`` entry point, so it is active whenever the
package is installed. Tests marked ``@pytest.mark.isofork`` (optionally with
``timeout_ms=...``) run in a child process exactly like ``@fork_test``.
"""

from __future__ import annotations

import functools
import inspect
import os
from typing import Any

import pytest

from isofork.config import (
    configure_logging,
    current_config,
    install_config,
    load_config,
)
from isofork.context import context_from_environ, install_context
from isofork.fork import fork
from isofork.identity import install_rootdir, selection_for_node
from isofork.models import ForkConfig, ForkTestId
from isofork.sugar import make_body
from isofork.supervisor import no_configure_child, supervise_child

_MARKER = "isofork"


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register the ``--isofork-config`` option and ini keys."""
    group = parser.getgroup("isofork", "process-isolated tests")
    group.addoption(
        "--isofork-config",
        default=None,
        help="Path to an isofork YAML configuration file.",
    )
    parser.addini(
        "isofork_config",
        help="Path to an isofork YAML configuration file.",
        default="",
    )
    parser.addini(
        "isofork_timeout_ms",
        help="Default per-test timeout in milliseconds for forked tests (0 = none).",
        default="",
    )


def _resolve_config(config: pytest.Config) -> ForkConfig:
    overrides: dict[str, Any] = {}
    timeout = config.getini("isofork_timeout_ms")
    if timeout:
        overrides["default_timeout_ms"] = int(timeout)

    path = config.getoption("isofork_config")
    if not path and config.getini("isofork_config"):
        # ini paths are relative to the ini file
        base = config.inipath.parent if config.inipath else config.rootpath
        path = str(base / config.getini("isofork_config"))
    if path:
        return load_config(path, **overrides)
    return ForkConfig(**overrides)


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config: pytest.Config) -> None:
    """Install configuration, logging and the execution context."""
    config.addinivalue_line(
        "markers",
        f"{_MARKER}(timeout_ms=None): run the test in a separate process",
    )
    fork_config = _resolve_config(config)
    install_config(fork_config)
    configure_logging(fork_config)
    install_context(
        context_from_environ(os.environ, harness_args=config.invocation_params.args)
    )
    install_rootdir(config.rootpath)


def pytest_unconfigure(config: pytest.Config) -> None:  # noqa: ARG001
    """Drop the process-wide state installed at configure time."""
    install_context(None)
    install_config(None)
    install_rootdir(None)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``isofork``-marked tests through :func:`isofork.fork.fork`."""
    marker = pyfuncitem.get_closest_marker(_MARKER)
    func = pyfuncitem.obj
    if marker is None or hasattr(func, "__isofork_id__"):
        return None

    timeout_ms = marker.kwargs.get("timeout_ms")
    if timeout_ms is None:
        timeout_ms = current_config().default_timeout_ms
    funcargs = {
        name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
    }
    fork(
        selection_for_node(pyfuncitem.path, pyfuncitem.nodeid),
        ForkTestId.for_function(inspect.unwrap(func)),
        no_configure_child,
        functools.partial(supervise_child, timeout_ms=int(timeout_ms)),
        make_body(func, (), funcargs),
    )
    return True
