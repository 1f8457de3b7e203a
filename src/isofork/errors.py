"""Exception hierarchy for forked test launches.

``ChildFailedError`` is an ordinary test failure. ``SpawnError`` and
``SupervisionError`` mean the harness itself is broken, and ``ContextError``
means the reserved environment variables are inconsistent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from isofork.models import Verdict


class ForkError(Exception):
    """Base class for launch failures, with diagnostic context.

    Attributes:
        diagnostics: Structured information about the failed launch
            (test name, pid, verdict fields).
    """

    def __init__(self, message: str, *, diagnostics: dict[str, Any] | None = None) -> None:
        """Initialize with a message and structured diagnostics.

        Args:
            message: Human-readable error description.
            diagnostics: Structured context for debugging.
        """
        super().__init__(message)
        self.diagnostics: dict[str, Any] = dict(diagnostics or {})


class ContextError(ForkError):
    """The reserved environment variables do not describe a valid child."""


class SpawnError(ForkError):
    """The child process could not be started."""


class _VerdictError(ForkError):
    """A launch ended with a failed verdict."""

    def __init__(self, test_name: str, verdict: Verdict) -> None:
        """Initialize from the test name and its failed verdict."""
        super().__init__(
            f"{test_name}: {verdict.describe()}",
            diagnostics={"test_name": test_name, **verdict.model_dump(mode="json")},
        )
        self.verdict = verdict


class SupervisionError(_VerdictError):
    """The supervisor could not wait on or kill the child."""


class ChildFailedError(_VerdictError):
    """The test body failed: nonzero exit, signal, incomplete body or timeout."""
