"""Registration-site identity and test naming.

A ``ForkTestId`` is derived from where a test is registered, not from its
programmer-supplied name, so identically named tests in different scopes can
never select each other's body in a child process. Digests depend only on the
source location, which makes them stable across every process started from the
same source tree.
"""

from __future__ import annotations

import hashlib
import inspect
import os
from pathlib import Path
import sys
from typing import TYPE_CHECKING, Any

from isofork.models import ForkTestId

if TYPE_CHECKING:
    from collections.abc import Mapping

_DIGEST_SIZE = 16

# Set by pytest while a test runs, e.g. "tests/test_x.py::TestA::test_b[1] (call)".
_CURRENT_TEST_ENV = "PYTEST_CURRENT_TEST"

# Node ids are relative to this directory; installed by the pytest plugin.
_rootdir: Path | None = None


def install_rootdir(rootdir: str | os.PathLike[str] | None) -> None:
    """Record the harness rootdir node ids are relative to; ``None`` resets."""
    global _rootdir
    _rootdir = None if rootdir is None else Path(rootdir)


def site_digest(filename: str, *parts: object) -> str:
    """Hash a source location into a short hex digest.

    Args:
        filename: Source file of the registration site.
        *parts: Further location components (line, offset, qualified name).

    Returns:
        A lowercase hex string of ``2 * _DIGEST_SIZE`` characters.
    """
    h = hashlib.blake2b(digest_size=_DIGEST_SIZE)
    h.update(os.path.abspath(filename).encode("utf-8", errors="surrogateescape"))
    for part in parts:
        h.update(b"\0")
        h.update(str(part).encode("utf-8", errors="surrogateescape"))
    return h.hexdigest()


def fork_test_id() -> ForkTestId:
    """Return an id unique to the line *and* expression calling this function.

    The caller's bytecode offset is part of the digest, so two calls on the
    same source line still produce different ids.
    """
    frame = sys._getframe(1)
    code = frame.f_code
    return ForkTestId(
        value=site_digest(code.co_filename, frame.f_lineno, frame.f_lasti, code.co_qualname)
    )


def _node_suffix(nodeid: str) -> str:
    """Drop the file part of a pytest node id."""
    _, sep, suffix = nodeid.partition("::")
    return suffix if sep else nodeid


def selection_for_node(path: str | os.PathLike[str], nodeid: str) -> str:
    """Build the test name for a collected pytest item.

    Args:
        path: Filesystem path of the item's module.
        nodeid: The item's node id, relative to the pytest rootdir.

    Returns:
        ``"<absolute path>::<suffix>"``, usable as a pytest selection
        argument from any working directory.
    """
    return f"{Path(path).resolve()}::{_node_suffix(nodeid)}"


def current_test_name(
    func: Any,
    environ: Mapping[str, str] | None = None,
    rootdir: str | os.PathLike[str] | None = None,
) -> str:
    """Name the test currently running *func*.

    While pytest is running a test the whole selection comes from
    ``PYTEST_CURRENT_TEST``: its file part is resolved against the rootdir,
    so a test inherited from a base class or a decorated helper imported
    from another module selects the node pytest actually collected.
    Otherwise the name is derived from where *func* is defined.

    Args:
        func: The decorated test function.
        environ: Environment to read; defaults to ``os.environ``.
        rootdir: Directory node ids are relative to; defaults to the one
            installed by the plugin, then the working directory.
    """
    env = os.environ if environ is None else environ
    current = env.get(_CURRENT_TEST_ENV)
    if current:
        # strip the trailing " (setup)" / " (call)" phase marker
        nodeid = current.rsplit(" ", 1)[0]
        if rootdir is not None:
            base = Path(rootdir)
        else:
            base = _rootdir if _rootdir is not None else Path.cwd()
        return selection_for_node(base / nodeid.partition("::")[0], nodeid)
    source = inspect.getsourcefile(func) or func.__code__.co_filename
    qualname = func.__qualname__.replace(".<locals>", "").replace(".", "::")
    return f"{Path(source).resolve()}::{qualname}"
