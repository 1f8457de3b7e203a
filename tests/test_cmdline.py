"""Tests for child command construction."""

from __future__ import annotations

import os
from pathlib import Path
import subprocess
import sys

from hypothesis import given, settings, strategies as st
from isofork.child import ChildWrapper
from isofork.cmdline import ChildCommand, child_argv
import pytest

from tests.conftest import python_command

_NAME = "/abs/tests/test_x.py::test_y"


@pytest.mark.unit
class TestChildArgv:
    """child_argv re-invokes the harness for exactly one test."""

    def test_base_command(self) -> None:
        """The child runs ``python -m pytest`` on the selection only."""
        argv = child_argv(_NAME)
        assert argv[0] == sys.executable
        assert argv[1:3] == ["-m", "pytest"]
        assert "-s" in argv
        assert argv[-1] == _NAME
        assert argv.count(_NAME) == 1

    def test_cache_provider_disabled(self) -> None:
        """The child does not write pytest's cache."""
        argv = child_argv(_NAME)
        i = argv.index("no:cacheprovider")
        assert argv[i - 1] == "-p"

    def test_positional_paths_dropped(self) -> None:
        """The driver's own test paths never reach the child."""
        argv = child_argv(_NAME, ["tests", "tests/test_other.py::test_z"])
        assert "tests" not in argv
        assert "tests/test_other.py::test_z" not in argv

    @pytest.mark.parametrize(
        "args",
        [
            ["-k", "slow"],
            ["-kslow"],
            ["-n4"],
            ["-m", "unit"],
            ["-n", "4"],
            ["--maxfail", "2"],
            ["--lf"],
            ["-x"],
            ["--deselect", "tests/test_x.py::test_a"],
        ],
    )
    def test_filters_and_parallelism_dropped(self, args: list[str]) -> None:
        """Selection and parallelism options (and their values) are dropped."""
        assert child_argv(_NAME, args) == child_argv(_NAME)

    @pytest.mark.parametrize(
        "args",
        [
            ["-p", "myplugin"],
            ["-o", "xfail_strict=true"],
            ["--rootdir", "/abs"],
            ["--rootdir=/abs"],
            ["--import-mode=importlib"],
            ["-W", "error"],
            ["--isofork-config", "isofork.yaml"],
            ["-Werror"],
            ["-pxdist"],
            ["-oxfail_strict=true"],
            ["-Werror", "-pxdist", "-c", "cfg.ini"],
        ],
    )
    def test_loading_options_forwarded(self, args: list[str]) -> None:
        """Options affecting how the test loads are kept, in order."""
        base = child_argv(_NAME)[:-1]
        argv = child_argv(_NAME, args)
        assert argv[: len(base)] == base
        assert argv[len(base) : -1] == args
        assert argv[-1] == _NAME

    @given(
        noise=st.lists(st.sampled_from(["tests", "-q", "--lf", "-x", "-kslow"]), max_size=6),
        attached=st.lists(
            st.sampled_from(["-Werror", "-pxdist", "-oxfail_strict=true", "-cpytest.ini"]),
            max_size=4,
        ),
    )
    @settings(max_examples=50)
    def test_attached_values_survive_noise(self, noise: list[str], attached: list[str]) -> None:
        """Property: attached short options reach the child, in order."""
        base = child_argv(_NAME)[:-1]
        assert child_argv(_NAME, [*noise, *attached])[len(base) : -1] == attached

    def test_forwarded_option_missing_value(self) -> None:
        """A trailing option without value is ignored."""
        assert child_argv(_NAME, ["-p"])[-1] == _NAME

    @given(
        args=st.lists(
            st.sampled_from(["-k", "expr", "-m", "-n", "2", "tests", "-q", "--lf"]),
            max_size=12,
        )
    )
    @settings(max_examples=50)
    def test_selection_is_always_last_and_unique(self, args: list[str]) -> None:
        """Property: whatever the driver ran with, the child selects one test."""
        assert child_argv(_NAME, args) == child_argv(_NAME)


@pytest.mark.unit
class TestChildCommand:
    """ChildCommand defaults and spawning."""

    def test_defaults_inherit(self) -> None:
        """Environment is copied; cwd and stdio inherit."""
        command = ChildCommand.for_test(_NAME)
        assert command.env == dict(os.environ)
        assert command.env is not os.environ
        assert command.cwd is None
        assert command.stdin is None
        assert command.stdout is None
        assert command.stderr is None

    def test_env_is_a_copy(self) -> None:
        """Editing the command's env does not touch this process."""
        command = ChildCommand.for_test(_NAME)
        command.env["ISOFORK_TEST_ONLY"] = "1"
        assert "ISOFORK_TEST_ONLY" not in os.environ

    def test_spawn_returns_wrapper(self) -> None:
        """spawn() starts the process and wraps it."""
        command = python_command("import sys; sys.exit(7)")
        child = command.spawn()
        assert isinstance(child, ChildWrapper)
        status = child.wait()
        assert status.code == 7

    def test_spawn_uses_env_and_cwd(self, tmp_path: Path) -> None:
        """Configured env, cwd and stdout are applied."""
        command = python_command(
            "import os; print(os.getcwd()); print(os.environ['ISOFORK_TEST_ONLY'])"
        )
        command.env["ISOFORK_TEST_ONLY"] = "hello"
        command.cwd = tmp_path
        command.stdout = subprocess.PIPE
        child = command.spawn()
        out, _ = child.inner.communicate(timeout=30)
        cwd_line, env_line = out.decode().splitlines()
        assert os.path.samefile(cwd_line, tmp_path)
        assert env_line == "hello"

    @pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX-only")
    def test_spawn_starts_new_process_group(self) -> None:
        """The child leads its own process group."""
        command = python_command("import os; print(os.getpgid(0) == os.getpid())")
        command.stdout = subprocess.PIPE
        child = command.spawn()
        out, _ = child.inner.communicate(timeout=30)
        assert out.decode().strip() == "True"

    def test_spawn_missing_executable_raises_oserror(self) -> None:
        """Spawn failures surface as OSError."""
        command = ChildCommand(["/nonexistent/isofork-binary"])
        with pytest.raises(OSError):
            command.spawn()
