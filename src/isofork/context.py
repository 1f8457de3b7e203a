"""Driver/child execution context.

Whether this process is a driver (spawns children) or the child launched for
one particular test is decided once, from two reserved environment variables,
and then passed around as an explicit value instead of being re-read from the
environment on every call.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator

from isofork.errors import ContextError
from isofork.models import TestIdentity

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

SELECT_ENV = "ISOFORK_SELECT"
MARKER_ENV = "ISOFORK_MARKER"


class DriverContext(BaseModel):
    """This process spawns and supervises children.

    Attributes:
        harness_args: Arguments the test harness was invoked with; the
            child command keeps the ones needed to load a test identically.
    """

    model_config = ConfigDict(frozen=True)

    harness_args: tuple[str, ...] = ()


class ChildContext(BaseModel):
    """This process was launched to run exactly one selected body.

    Attributes:
        selection: Encoded ``TestIdentity`` of the targeted body.
        marker_path: Completion marker file to write once the body returns.
    """

    model_config = ConfigDict(frozen=True)

    selection: str
    marker_path: str

    @field_validator("selection")
    @classmethod
    def _selection_decodes(cls, v: str) -> str:
        """Validate that the selection is an encoded TestIdentity."""
        TestIdentity.decode(v)
        return v

    @property
    def target(self) -> TestIdentity:
        """The identity this child was launched for."""
        return TestIdentity.decode(self.selection)

    def is_target(self, identity: TestIdentity) -> bool:
        """Return True if *identity* is the body this child was launched for."""
        return identity == self.target


ExecutionContext = DriverContext | ChildContext


def context_from_environ(
    environ: Mapping[str, str],
    harness_args: Iterable[str] = (),
) -> ExecutionContext:
    """Build the execution context from an environment mapping.

    Args:
        environ: Environment to inspect, usually ``os.environ``.
        harness_args: Harness invocation arguments recorded for a driver.

    Returns:
        A ``ChildContext`` when the selection variable is set, otherwise a
        ``DriverContext``.

    Raises:
        ContextError: If the selection variable is set without a marker path
            or does not decode to a test identity.
    """
    selection = environ.get(SELECT_ENV)
    if selection is None:
        return DriverContext(harness_args=tuple(harness_args))

    marker_path = environ.get(MARKER_ENV)
    if not marker_path:
        msg = f"{SELECT_ENV} is set but {MARKER_ENV} is missing"
        raise ContextError(msg, diagnostics={"selection": selection})
    try:
        return ChildContext(selection=selection, marker_path=marker_path)
    except ValueError as exc:
        msg = f"{SELECT_ENV} is not a valid test selection: {selection!r}"
        raise ContextError(msg, diagnostics={"selection": selection}) from exc


_current: ExecutionContext | None = None


def current_context() -> ExecutionContext:
    """Return the process-wide context, reading the environment on first use."""
    global _current
    if _current is None:
        _current = context_from_environ(os.environ)
        logger.debug("Execution context resolved: %r", _current)
    return _current


def install_context(context: ExecutionContext | None) -> None:
    """Replace the process-wide context; ``None`` re-reads it on next use."""
    global _current
    _current = context
