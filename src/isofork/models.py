"""Core data models for process-isolated test launches.

Defines the shared Pydantic models and enums used by every other module:
test identities, child exit statuses, launch verdicts and the engine
configuration. All models are frozen; a value is built once per launch and
never mutated afterwards.
"""

from __future__ import annotations

from enum import StrEnum
import signal as _signal
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ---------------------------------------------------------------------------
# Test identity
# ---------------------------------------------------------------------------


class ForkTestId(BaseModel):
    """Opaque, hashable tag unique to one registration site.

    Two registrations sharing a ``test_name`` still get distinct ids, so the
    child never runs the wrong body. Build instances with
    :func:`isofork.identity.fork_test_id` or :meth:`for_function`.

    Attributes:
        value: Hex digest derived from the registration site.
    """

    model_config = ConfigDict(frozen=True)

    value: str

    @field_validator("value")
    @classmethod
    def _must_be_hex(cls, v: str) -> str:
        """Reject empty or non-hex values; ``:`` must never appear."""
        if not v or any(c not in "0123456789abcdef" for c in v):
            msg = f"fork id must be a non-empty lowercase hex string, got {v!r}"
            raise ValueError(msg)
        return v

    @classmethod
    def for_function(cls, func: Any) -> ForkTestId:
        """Return the id of the definition site of *func*."""
        from isofork.identity import site_digest

        code = func.__code__
        return cls(
            value=site_digest(code.co_filename, code.co_firstlineno, code.co_qualname)
        )

    def __str__(self) -> str:
        return self.value


class TestIdentity(BaseModel):
    """The ``(fork_id, test_name)`` pair selecting exactly one body.

    Attributes:
        fork_id: Registration-site tag.
        test_name: Human-readable name, also used as the harness selection
            argument when re-invoking the test runner.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True)

    fork_id: ForkTestId
    test_name: str

    @field_validator("test_name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        """Validate that the test name is non-empty."""
        if not v.strip():
            msg = "test_name must not be empty"
            raise ValueError(msg)
        return v

    def encode(self) -> str:
        """Encode as the value of the selection environment variable."""
        return f"{self.fork_id.value}:{self.test_name}"

    @classmethod
    def decode(cls, encoded: str) -> TestIdentity:
        """Parse a value produced by :meth:`encode`.

        Raises:
            ValueError: If *encoded* has no ``:`` separator or an invalid id.
        """
        fork_id, sep, test_name = encoded.partition(":")
        if not sep:
            msg = f"malformed test selection: {encoded!r}"
            raise ValueError(msg)
        return cls(fork_id=ForkTestId(value=fork_id), test_name=test_name)


# ---------------------------------------------------------------------------
# Exit status & verdict
# ---------------------------------------------------------------------------


class ExitStatus(BaseModel):
    """How a child process terminated.

    Exactly one of ``code`` and ``signal`` is set.

    Attributes:
        code: Exit code when the process exited on its own.
        signal: Signal number when the process was terminated by a signal.
    """

    model_config = ConfigDict(frozen=True)

    code: int | None = None
    signal: int | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> ExitStatus:
        """Validate that exactly one of code/signal is present."""
        if (self.code is None) == (self.signal is None):
            msg = "ExitStatus requires exactly one of code or signal"
            raise ValueError(msg)
        return self

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        """Map a ``Popen.returncode`` (negative for signals) to a status."""
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        """True when the process exited with code 0."""
        return self.code == 0

    def describe(self) -> str:
        """Return e.g. ``exit code 3`` or ``signal 6 (SIGABRT)``."""
        if self.signal is not None:
            try:
                name = _signal.Signals(self.signal).name
            except ValueError:
                return f"signal {self.signal}"
            return f"signal {self.signal} ({name})"
        return f"exit code {self.code}"


class VerdictStatus(StrEnum):
    """Final classification of one launch."""

    PASSED = "passed"
    FAILED = "failed"


class FailureReason(StrEnum):
    """Why a launch failed.

    ``SUPERVISION_ERROR`` means the harness itself could not wait on or kill
    the child; every other reason is an ordinary test failure.
    """

    NON_ZERO_EXIT = "non_zero_exit"
    SIGNALED = "signaled"
    BODY_INCOMPLETE = "body_incomplete"
    TIMEOUT = "timeout"
    SUPERVISION_ERROR = "supervision_error"


class Verdict(BaseModel):
    """Pass/fail outcome of a single launch.

    Attributes:
        status: Passed or failed.
        reason: Failure reason; ``None`` exactly when passed.
        exit_status: How the child terminated, if it was observed.
        elapsed_seconds: Wall-clock time spent supervising the child.
        detail: Optional free-form context (e.g. the OS error text).
    """

    model_config = ConfigDict(frozen=True)

    status: VerdictStatus
    reason: FailureReason | None = None
    exit_status: ExitStatus | None = None
    elapsed_seconds: float = 0.0
    detail: str | None = None

    @model_validator(mode="after")
    def _reason_matches_status(self) -> Verdict:
        """Validate that a reason is present if and only if the launch failed."""
        if self.status is VerdictStatus.PASSED and self.reason is not None:
            msg = "a passed verdict cannot carry a failure reason"
            raise ValueError(msg)
        if self.status is VerdictStatus.FAILED and self.reason is None:
            msg = "a failed verdict requires a failure reason"
            raise ValueError(msg)
        return self

    @classmethod
    def passed_after(
        cls, elapsed_seconds: float, exit_status: ExitStatus | None = None
    ) -> Verdict:
        """Build a passed verdict."""
        return cls(
            status=VerdictStatus.PASSED,
            exit_status=exit_status,
            elapsed_seconds=elapsed_seconds,
        )

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        *,
        elapsed_seconds: float = 0.0,
        exit_status: ExitStatus | None = None,
        detail: str | None = None,
    ) -> Verdict:
        """Build a failed verdict."""
        return cls(
            status=VerdictStatus.FAILED,
            reason=reason,
            exit_status=exit_status,
            elapsed_seconds=elapsed_seconds,
            detail=detail,
        )

    @property
    def passed(self) -> bool:
        """True for a passed verdict."""
        return self.status is VerdictStatus.PASSED

    def describe(self) -> str:
        """Render a one-line human-readable explanation."""
        status = self.exit_status.describe() if self.exit_status else "unknown status"
        match self.reason:
            case None:
                text = f"child passed in {self.elapsed_seconds:.3f}s"
            case FailureReason.BODY_INCOMPLETE:
                text = (
                    f"child exited with {status} but the test body did not "
                    "run to completion"
                )
            case FailureReason.NON_ZERO_EXIT:
                text = f"child failed with {status}"
            case FailureReason.SIGNALED:
                text = f"child was terminated by {status}"
            case FailureReason.TIMEOUT:
                text = (
                    f"child timed out after {self.elapsed_seconds:.3f}s "
                    "and was killed"
                )
            case FailureReason.SUPERVISION_ERROR:
                text = "could not supervise child process"
        if self.detail:
            text = f"{text}: {self.detail}"
        return text


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ForkConfig(BaseModel):
    """Engine configuration.

    Attributes:
        default_timeout_ms: Timeout applied when a call site does not set one;
            0 disables the timeout.
        poll_interval_ms: Sleep between exit-status polls while a timeout is
            in effect.
        log_level: Logging level string for the ``isofork`` logger.
        log_file: Optional log file path.
    """

    model_config = ConfigDict(frozen=True)

    default_timeout_ms: int = 0
    poll_interval_ms: int = 10
    log_level: str = "WARNING"
    log_file: str | None = None

    @field_validator("default_timeout_ms")
    @classmethod
    def _timeout_not_negative(cls, v: int) -> int:
        """Validate that the timeout is >= 0."""
        if v < 0:
            msg = "default_timeout_ms must be >= 0"
            raise ValueError(msg)
        return v

    @field_validator("poll_interval_ms")
    @classmethod
    def _poll_interval_in_range(cls, v: int) -> int:
        """Validate that the poll interval stays within 1..100 ms."""
        if not 1 <= v <= 100:
            msg = "poll_interval_ms must be between 1 and 100"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, v: str) -> str:
        """Validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"unknown log level: {v!r}"
            raise ValueError(msg)
        return level
