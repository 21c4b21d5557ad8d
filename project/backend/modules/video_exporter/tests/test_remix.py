"""
Unit tests for volume remix.
"""
import pytest
from pathlib import Path
from unittest.mock import patch, AsyncMock

from modules.video_exporter.remix import build_remix_command, remix
from shared.errors import AssetFetchError, AudioMergeError, ExportError
from shared.models.export import ExportResult, RemixJob

REMIX = "modules.video_exporter.remix"


@pytest.fixture
def remix_job():
    return RemixJob(
        video_url="https://storage.example.com/job/video_base.mp4",
        voiceover_url="https://storage.example.com/job/voiceover.m4a",
        music_url="https://storage.example.com/job/music.mp3",
        voice_volume=70,
        music_volume=10
    )


def fake_fetch():
    async def _fetch(url, kind, registry, job_id, client, label=None):
        path = registry.new_path(label, Path(url).suffix)
        path.write_bytes(b"x" * 2048)
        return path
    return _fetch


def test_remix_command():
    """Voice and looped music mixed at the requested levels, video copied."""
    cmd = build_remix_command(
        Path("v.mp4"), Path("n.m4a"), Path("m.mp3"), 70, 10, Path("out.mp4")
    ).render()
    graph = cmd[cmd.index("-filter_complex") + 1]

    assert "[1:a]volume=0.7[voice]" in graph
    assert "volume=0.1[music]" in graph
    assert "aloop=loop=-1" in graph
    assert "duration=first" in graph
    assert cmd.count("-map") == 2
    assert cmd[cmd.index("-c:v") + 1] == "copy"


class TestRemix:
    """Tests for the remix entry point."""

    @pytest.mark.asyncio
    async def test_remix_uploads_and_cleans_up(self, remix_job, tmp_path, fake_ffmpeg):
        """Mixed video is finalized; working files are removed."""
        finalize = AsyncMock(return_value=ExportResult(
            artifact_url="https://storage.example.com/final.mp4", duration_seconds=10.0, size_bytes=2048
        ))
        with patch(f"{REMIX}.require_ffmpeg"), \
                patch(f"{REMIX}.fetch_asset", side_effect=fake_fetch()) as mock_fetch, \
                patch(f"{REMIX}.run_ffmpeg_command", new_callable=AsyncMock, side_effect=fake_ffmpeg) as mock_run, \
                patch(f"{REMIX}.finalize", finalize):
            result = await remix(remix_job, storage=AsyncMock(), temp_root=tmp_path / "work")

        assert result.artifact_url == "https://storage.example.com/final.mp4"
        assert mock_fetch.call_count == 3
        assert mock_run.call_args.kwargs["error_cls"] is AudioMergeError
        assert finalize.call_args.kwargs["output_format"] == "mp4"
        assert list((tmp_path / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_fetch_failure(self, remix_job, tmp_path):
        """Download failures keep their fetching stage."""
        async def failing_fetch(url, kind, registry, job_id, client, label=None):
            raise AssetFetchError(f"404 for {url}", job_id=job_id)

        with patch(f"{REMIX}.require_ffmpeg"), \
                patch(f"{REMIX}.fetch_asset", side_effect=failing_fetch):
            with pytest.raises(AssetFetchError) as exc_info:
                await remix(remix_job, storage=AsyncMock(), temp_root=tmp_path / "work")

        assert exc_info.value.stage == "fetching"

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, remix_job, tmp_path):
        """Unknown errors carry the stage they happened in."""
        with patch(f"{REMIX}.require_ffmpeg"), \
                patch(f"{REMIX}.fetch_asset", side_effect=fake_fetch()), \
                patch(f"{REMIX}.run_ffmpeg_command", new_callable=AsyncMock, side_effect=OSError("disk full")):
            with pytest.raises(ExportError) as exc_info:
                await remix(remix_job, storage=AsyncMock(), temp_root=tmp_path / "work")

        assert exc_info.value.stage == "merging_audio"
        assert list((tmp_path / "work").iterdir()) == []
