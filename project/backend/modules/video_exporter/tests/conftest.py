"""
Pytest fixtures for video exporter tests.
"""
import pytest
from pathlib import Path
from uuid import uuid4

from shared.models.export import ExportJob, RenderMode, SceneAsset

from modules.video_exporter.downloader import SceneFiles
from modules.video_exporter.working_files import WorkingFileRegistry


@pytest.fixture
def sample_job_id():
    """Create a sample job ID."""
    return uuid4()


@pytest.fixture
def registry(tmp_path, sample_job_id):
    """Working file registry rooted in the test's temp directory."""
    return WorkingFileRegistry(sample_job_id, root=tmp_path / "work")


@pytest.fixture
def make_scene():
    """Factory for scenes with sensible URLs."""
    def _make_scene(index: int, duration: float = 5.0, **overrides) -> SceneAsset:
        data = {
            "index": index,
            "duration_seconds": duration,
            "image_url": f"https://cdn.example.com/scene{index}.png",
        }
        data.update(overrides)
        return SceneAsset(**data)
    return _make_scene


@pytest.fixture
def make_job(make_scene):
    """Factory for export jobs of N equal scenes."""
    def _make_job(count: int = 3, render_mode: RenderMode = RenderMode.STATIC, scenes=None, **overrides) -> ExportJob:
        return ExportJob(
            scenes=scenes if scenes is not None else [make_scene(i) for i in range(count)],
            render_mode=render_mode,
            **overrides
        )
    return _make_job


@pytest.fixture
def make_scene_files(tmp_path):
    """Factory for downloaded scene files that exist on disk."""
    def _make_scene_files(index: int, image: bool = True, video: bool = False, narration: bool = False) -> SceneFiles:
        paths = {}
        for kind, wanted, suffix in (("image", image, ".png"), ("video", video, ".mp4"), ("narration", narration, ".mp3")):
            if wanted:
                path = tmp_path / f"scene{index}_{kind}{suffix}"
                path.write_bytes(b"x" * 2048)
                paths[kind] = path
        return SceneFiles(index=index, **paths)
    return _make_scene_files


def touch_output(command) -> Path:
    """Create the output file an FFmpeg command would have written."""
    output = Path(command.output if hasattr(command, "output") else command[-1])
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(b"rendered" * 256)
    return output


@pytest.fixture
def fake_ffmpeg():
    """Side effect for a patched run_ffmpeg_command that writes each output file."""
    async def _run(command, job_id, error_cls=None, scene_index=None, timeout=None):
        touch_output(command)
    return _run
