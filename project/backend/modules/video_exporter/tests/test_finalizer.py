"""
Unit tests for the export finalizer.
"""
import pytest
from pathlib import Path
from unittest.mock import patch, AsyncMock, MagicMock

from modules.video_exporter.finalizer import (
    VolumeControlAssets,
    build_format_command,
    build_muted_copy_command,
    finalize,
)
from shared.errors import UploadError

FINALIZER = "modules.video_exporter.finalizer"


@pytest.fixture
def storage():
    """Storage client returning a URL per uploaded path."""
    client = MagicMock()
    client.upload_path = AsyncMock(side_effect=lambda local, remote: f"https://storage.example.com/{remote}")
    return client


@pytest.fixture
def composed(tmp_path):
    video = tmp_path / "composed.mp4"
    video.write_bytes(b"v" * 4096)
    return video


class TestCommandBuilders:
    """Tests for finalizer command builders."""

    def test_mov_is_remux(self):
        """MOV keeps both streams."""
        cmd = build_format_command(Path("a.mp4"), "mov", Path("a.mov")).render()

        assert cmd[cmd.index("-c") + 1] == "copy"

    def test_webm_reencodes(self):
        """WebM needs VP9/Opus."""
        cmd = build_format_command(Path("a.mp4"), "webm", Path("a.webm")).render()

        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-c:a") + 1] == "libopus"

    def test_unknown_format(self):
        """Only mov and webm need conversion."""
        with pytest.raises(ValueError):
            build_format_command(Path("a.mp4"), "avi", Path("a.avi"))

    def test_muted_copy(self):
        """Video copied, audio dropped."""
        cmd = build_muted_copy_command(Path("a.mp4"), Path("b.mp4")).render()

        assert cmd[-3:] == ["copy", "-an", "b.mp4"]


class TestFinalize:
    """Tests for finalize."""

    @pytest.mark.asyncio
    async def test_uploads_mp4_and_reports_metadata(self, composed, storage, registry, sample_job_id):
        """URL, probed duration and on-disk size."""
        with patch(f"{FINALIZER}.get_media_duration", new=AsyncMock(return_value=15.04)), \
                patch(f"{FINALIZER}.run_ffmpeg_command", new_callable=AsyncMock) as mock_run:
            result = await finalize(composed, sample_job_id, storage, registry, expected_duration=15.0)

        assert result.artifact_url == f"https://storage.example.com/{sample_job_id}/final.mp4"
        assert result.duration_seconds == pytest.approx(15.04)
        assert result.size_bytes == 4096
        assert result.video_base_url is None
        mock_run.assert_not_called()
        storage.upload_path.assert_awaited_once_with(composed, f"{sample_job_id}/final.mp4")

    @pytest.mark.asyncio
    async def test_probe_failure_uses_timeline_duration(self, composed, storage, registry, sample_job_id):
        """Unknown probe result falls back to the expected duration."""
        with patch(f"{FINALIZER}.get_media_duration", new=AsyncMock(return_value=None)):
            result = await finalize(composed, sample_job_id, storage, registry, expected_duration=12.5)

        assert result.duration_seconds == pytest.approx(12.5)

    @pytest.mark.asyncio
    async def test_converts_to_webm(self, composed, storage, registry, sample_job_id, fake_ffmpeg):
        """Converted file is uploaded under the requested extension."""
        with patch(f"{FINALIZER}.get_media_duration", new=AsyncMock(return_value=10.0)), \
                patch(f"{FINALIZER}.run_ffmpeg_command", new_callable=AsyncMock, side_effect=fake_ffmpeg):
            result = await finalize(composed, sample_job_id, storage, registry, output_format="webm")

        assert result.artifact_url.endswith("/final.webm")
        uploaded = storage.upload_path.call_args.args[0]
        assert uploaded.suffix == ".webm"
        assert uploaded in registry.paths

    @pytest.mark.asyncio
    async def test_volume_control_assets(self, composed, storage, registry, sample_job_id, fake_ffmpeg, tmp_path):
        """Narration, music and a muted copy are uploaded alongside."""
        narration = tmp_path / "narration.mp3"
        music = tmp_path / "music.mp3"
        with patch(f"{FINALIZER}.get_media_duration", new=AsyncMock(return_value=10.0)), \
                patch(f"{FINALIZER}.run_ffmpeg_command", new_callable=AsyncMock, side_effect=fake_ffmpeg) as mock_run:
            result = await finalize(
                composed, sample_job_id, storage, registry,
                volume_assets=VolumeControlAssets(narration=narration, music=music)
            )

        assert result.video_base_url == f"https://storage.example.com/{sample_job_id}/video_base.mp4"
        assert result.voiceover_url == f"https://storage.example.com/{sample_job_id}/voiceover.mp3"
        assert result.music_url == f"https://storage.example.com/{sample_job_id}/music.mp3"
        assert "-an" in mock_run.call_args.args[0].render()
        assert storage.upload_path.await_count == 4

    @pytest.mark.asyncio
    async def test_missing_video_raises(self, storage, registry, sample_job_id, tmp_path):
        """Nothing to upload is an upload failure."""
        with pytest.raises(UploadError, match="not found"):
            await finalize(tmp_path / "missing.mp4", sample_job_id, storage, registry)

        storage.upload_path.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_video_raises(self, storage, registry, sample_job_id, tmp_path):
        """Zero-byte output is never uploaded."""
        empty = tmp_path / "empty.mp4"
        empty.touch()

        with pytest.raises(UploadError, match="empty"):
            await finalize(empty, sample_job_id, storage, registry)

    @pytest.mark.asyncio
    async def test_upload_failure_propagates(self, composed, storage, registry, sample_job_id):
        """Storage errors surface with the finalizing stage."""
        storage.upload_path = AsyncMock(side_effect=UploadError("bucket missing"))
        with patch(f"{FINALIZER}.get_media_duration", new=AsyncMock(return_value=10.0)):
            with pytest.raises(UploadError) as exc_info:
                await finalize(composed, sample_job_id, storage, registry)

        assert exc_info.value.stage == "finalizing"
