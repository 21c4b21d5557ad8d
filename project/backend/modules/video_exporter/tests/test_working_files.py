"""
Unit tests for the working file registry.
"""
import asyncio
import pytest
from uuid import uuid4

from modules.video_exporter.working_files import WorkingFileRegistry, working_files


class TestWorkingFileRegistry:
    """Tests for WorkingFileRegistry."""

    def test_new_path_is_unique_and_registered(self, tmp_path):
        """Fresh identifier per file, inside the temp root."""
        registry = WorkingFileRegistry(uuid4(), root=tmp_path)

        first = registry.new_path("clip", ".mp4")
        second = registry.new_path("clip", ".mp4")

        assert first != second
        assert first.parent == tmp_path
        assert first.name.endswith("_clip.mp4")
        assert registry.paths == [first, second]
        assert not first.exists()

    def test_register_is_idempotent(self, tmp_path):
        """Registering twice keeps one entry."""
        registry = WorkingFileRegistry(uuid4(), root=tmp_path)
        path = tmp_path / "external.mp3"

        registry.register(path)
        registry.register(str(path))

        assert len(registry) == 1

    def test_release_all_removes_files_and_empties(self, tmp_path):
        """Every registered file is deleted exactly once."""
        registry = WorkingFileRegistry(uuid4(), root=tmp_path)
        written = registry.new_path("a", ".bin")
        written.write_bytes(b"data")
        never_written = registry.new_path("b", ".bin")

        removed = registry.release_all()

        assert removed == 1
        assert len(registry) == 0
        assert not written.exists()
        assert not never_written.exists()
        assert registry.release_all() == 0

    def test_separate_jobs_do_not_collide(self, tmp_path):
        """Two jobs sharing a root never share a path."""
        a = WorkingFileRegistry(uuid4(), root=tmp_path)
        b = WorkingFileRegistry(uuid4(), root=tmp_path)

        paths_a = {a.new_path("clip", ".mp4") for _ in range(20)}
        paths_b = {b.new_path("clip", ".mp4") for _ in range(20)}

        assert paths_a.isdisjoint(paths_b)


class TestWorkingFilesContext:
    """Tests for the working_files context manager."""

    @pytest.mark.asyncio
    async def test_cleanup_on_success(self, tmp_path):
        """Files are gone after the block."""
        async with working_files(uuid4(), tmp_path) as registry:
            path = registry.new_path("x", ".txt")
            path.write_text("hello")

        assert not path.exists()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_cleanup_on_error(self, tmp_path):
        """Files are gone even when the block raises."""
        with pytest.raises(RuntimeError):
            async with working_files(uuid4(), tmp_path) as registry:
                path = registry.new_path("x", ".txt")
                path.write_text("hello")
                raise RuntimeError("stage failed")

        assert not path.exists()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_concurrent_registration(self, tmp_path):
        """Parallel coroutines and executor threads register without loss."""
        loop = asyncio.get_running_loop()
        async with working_files(uuid4(), tmp_path) as registry:
            async def from_coroutine(i):
                registry.new_path(f"c{i}", ".tmp").write_bytes(b"1")

            def from_thread(i):
                registry.new_path(f"t{i}", ".tmp").write_bytes(b"1")

            await asyncio.gather(
                *(from_coroutine(i) for i in range(25)),
                *(loop.run_in_executor(None, from_thread, i) for i in range(25))
            )
            assert len(registry) == 50

        assert list(tmp_path.iterdir()) == []
