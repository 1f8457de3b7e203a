"""Completion channel: a temp file the child writes once its body returns.

The driver creates the file empty before spawning and reads it only after the
child has exited. If the child dies before reaching :func:`write_marker` the
file stays empty, which is how "exited 0 without finishing" is told apart from
"ran to completion".
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
from types import TracebackType

logger = logging.getLogger(__name__)

MARKER_VALUE = b"ok"


def write_marker(path: str | os.PathLike[str]) -> None:
    """Record that the body completed (child side, at most once).

    Args:
        path: Marker file path taken from the child's environment.
    """
    with open(path, "wb") as f:
        f.write(MARKER_VALUE)
        f.flush()


class CompletionMarker:
    """Driver-side handle to one launch's completion marker file."""

    def __init__(self, path: str) -> None:
        self.path = path

    @classmethod
    def create(cls, directory: str | None = None) -> CompletionMarker:
        """Allocate a new, empty marker file with a unique name.

        ``mkstemp`` creates the file exclusively, so concurrent launches can
        never share a path.

        Args:
            directory: Directory to create the file in; system temp dir if
                ``None``.
        """
        fd, path = tempfile.mkstemp(prefix="isofork-", suffix=".done", dir=directory)
        os.close(fd)
        logger.debug("Created completion marker %s", path)
        return cls(path)

    def read_marker(self) -> bool:
        """Return True if the child wrote the marker.

        Only meaningful after the child has exited. A missing file reads as
        absent.
        """
        try:
            return Path(self.path).read_bytes() == MARKER_VALUE
        except FileNotFoundError:
            return False

    def remove(self) -> None:
        """Delete the marker file; failure is logged, never raised."""
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove completion marker %s: %s", self.path, exc)

    def __enter__(self) -> CompletionMarker:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()

    def __repr__(self) -> str:
        return f"CompletionMarker({self.path!r})"
