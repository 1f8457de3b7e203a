"""Shared fixtures for the isofork test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
import sys
import textwrap
from typing import Any

from isofork.cmdline import ChildCommand
from isofork.completion import CompletionMarker
from isofork.config import install_config
from isofork.context import DriverContext, current_context
from isofork.models import (
    ExitStatus,
    FailureReason,
    ForkConfig,
    Verdict,
    VerdictStatus,
)
import pytest

# ---------------------------------------------------------------------------
# Factory functions (plain functions, importable from conftest)
# ---------------------------------------------------------------------------


def make_verdict(**overrides: Any) -> Verdict:
    """Build a valid passed Verdict with sensible defaults.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed Verdict instance.
    """
    defaults: dict[str, Any] = {
        "status": VerdictStatus.PASSED,
        "reason": None,
        "exit_status": ExitStatus(code=0),
        "elapsed_seconds": 0.25,
        "detail": None,
    }
    defaults.update(overrides)
    return Verdict(**defaults)


def make_failed_verdict(
    reason: FailureReason = FailureReason.NON_ZERO_EXIT, **overrides: Any
) -> Verdict:
    """Build a valid failed Verdict."""
    defaults: dict[str, Any] = {
        "status": VerdictStatus.FAILED,
        "reason": reason,
        "exit_status": ExitStatus(code=1),
    }
    defaults.update(overrides)
    return make_verdict(**defaults)


def make_config(**overrides: Any) -> ForkConfig:
    """Build a valid ForkConfig with sensible defaults."""
    defaults: dict[str, Any] = {}
    defaults.update(overrides)
    return ForkConfig(**defaults)


def python_command(source: str) -> ChildCommand:
    """Return a command running *source* with the current interpreter."""
    return ChildCommand([sys.executable, "-c", textwrap.dedent(source)])


def in_driver() -> bool:
    """True in the process pytest was started in, False in a forked child."""
    return isinstance(current_context(), DriverContext)


# Writes the completion marker exactly like a child whose body returned.
COMPLETE_SCRIPT = (
    "import os\n"
    "from isofork.completion import write_marker\n"
    "write_marker(os.environ[\"ISOFORK_MARKER\"])\n"
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def marker(tmp_path: Path) -> Iterator[CompletionMarker]:
    """Provide a fresh completion marker inside ``tmp_path``."""
    with CompletionMarker.create(str(tmp_path)) as m:
        yield m


@pytest.fixture()
def fork_config() -> Iterator[ForkConfig]:
    """Install a ForkConfig with a fast poll interval for the test duration."""
    config = make_config(poll_interval_ms=5)
    install_config(config)
    yield config
    install_config(None)
