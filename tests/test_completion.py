"""Tests for the completion marker channel."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import os
from pathlib import Path

from isofork.completion import MARKER_VALUE, CompletionMarker, write_marker
import pytest


@pytest.mark.unit
class TestCompletionMarker:
    """CompletionMarker creation, reading and cleanup."""

    def test_created_empty(self, marker: CompletionMarker) -> None:
        """A new marker exists and is empty."""
        assert Path(marker.path).exists()
        assert Path(marker.path).read_bytes() == b""

    def test_absent_until_written(self, marker: CompletionMarker) -> None:
        """An empty marker reads as absent."""
        assert marker.read_marker() is False

    def test_present_after_write(self, marker: CompletionMarker) -> None:
        """write_marker makes the marker present."""
        write_marker(marker.path)
        assert marker.read_marker() is True
        assert Path(marker.path).read_bytes() == MARKER_VALUE

    def test_other_content_is_absent(self, marker: CompletionMarker) -> None:
        """Only the exact constant counts as completion."""
        Path(marker.path).write_bytes(b"partial")
        assert marker.read_marker() is False

    def test_missing_file_is_absent(self, marker: CompletionMarker) -> None:
        """A deleted marker reads as absent instead of raising."""
        os.unlink(marker.path)
        assert marker.read_marker() is False

    def test_created_in_directory(self, tmp_path: Path) -> None:
        """The marker is allocated in the requested directory."""
        m = CompletionMarker.create(str(tmp_path))
        assert Path(m.path).parent == tmp_path
        assert Path(m.path).name.startswith("isofork-")
        m.remove()

    def test_context_manager_removes(self, tmp_path: Path) -> None:
        """Leaving the with-block deletes the file."""
        with CompletionMarker.create(str(tmp_path)) as m:
            path = m.path
        assert not Path(path).exists()

    def test_remove_is_idempotent(self, tmp_path: Path) -> None:
        """Removing twice is not an error."""
        m = CompletionMarker.create(str(tmp_path))
        m.remove()
        m.remove()
        assert not Path(m.path).exists()

    def test_remove_failure_is_logged(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failing unlink is logged, never raised."""
        m = CompletionMarker.create(str(tmp_path))

        def deny(path: str) -> None:
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr("isofork.completion.os.unlink", deny)
        with caplog.at_level("WARNING", logger="isofork.completion"):
            m.remove()
        assert any("Could not remove" in r.getMessage() for r in caplog.records)

    def test_concurrent_creates_are_unique(self, tmp_path: Path) -> None:
        """Markers allocated concurrently never share a path."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            markers = list(
                pool.map(lambda _: CompletionMarker.create(str(tmp_path)), range(64))
            )
        assert len({m.path for m in markers}) == 64
        for m in markers:
            m.remove()
