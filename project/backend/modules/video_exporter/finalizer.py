"""
Export finalizer for video exporter module.

Converts the composed video to the requested container, uploads it (plus the
optional volume-control side artifacts) and reports the result metadata.
"""
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from uuid import UUID

from shared.errors import UploadError
from shared.logging import get_logger
from shared.models.export import ExportResult
from shared.storage import StorageClient

from .ffmpeg_command import FFmpegCommand
from .utils import get_media_duration, run_ffmpeg_command
from .working_files import WorkingFileRegistry

logger = get_logger("video_exporter.finalizer")

WEBM_VIDEO_CODEC = "libvpx-vp9"
WEBM_AUDIO_CODEC = "libopus"
WEBM_CRF = 32
WEBM_AUDIO_BITRATE = "128k"


@dataclass(frozen=True)
class VolumeControlAssets:
    """Separate tracks uploaded so the client can re-mix volumes later."""

    narration: Path
    music: Path


def _format_options(output_format: str) -> List[str]:
    if output_format == "mov":
        return ["-c", "copy", "-movflags", "+faststart"]
    if output_format == "webm":
        return [
            "-c:v", WEBM_VIDEO_CODEC,
            "-crf", str(WEBM_CRF),
            "-b:v", "0",
            "-c:a", WEBM_AUDIO_CODEC,
            "-b:a", WEBM_AUDIO_BITRATE,
        ]
    raise ValueError(f"Unsupported output format: {output_format}")


def build_format_command(video: Path, output_format: str, output: Path) -> FFmpegCommand:
    """
    Container conversion from the composed MP4.

    MOV is a stream-copy remux; WebM is re-encoded to VP9/Opus.
    """
    return FFmpegCommand(output=output, output_options=_format_options(output_format)).add_input(video)


def build_muted_copy_command(video: Path, output: Path) -> FFmpegCommand:
    """Video stream copied, audio dropped."""
    return FFmpegCommand(output=output, output_options=["-c:v", "copy", "-an"]).add_input(video)


async def convert_format(
    video: Path,
    output_format: str,
    registry: WorkingFileRegistry,
    job_id: UUID
) -> Path:
    """Return the video in the requested container (MP4 passes through)."""
    if output_format == "mp4":
        return video
    output = registry.new_path("final", f".{output_format}")
    await run_ffmpeg_command(build_format_command(video, output_format, output), job_id, error_cls=UploadError)
    logger.info(f"Converted video to {output_format}", extra={"job_id": str(job_id), "format": output_format})
    return output


async def _upload_volume_control_assets(
    video: Path,
    assets: VolumeControlAssets,
    storage: StorageClient,
    registry: WorkingFileRegistry,
    job_id: UUID
) -> dict:
    muted = registry.new_path("video_base", video.suffix)
    await run_ffmpeg_command(build_muted_copy_command(video, muted), job_id, error_cls=UploadError)

    urls = {
        "video_base_url": await storage.upload_path(muted, f"{job_id}/video_base{video.suffix}"),
        "voiceover_url": await storage.upload_path(assets.narration, f"{job_id}/voiceover{assets.narration.suffix}"),
        "music_url": await storage.upload_path(assets.music, f"{job_id}/music{assets.music.suffix}"),
    }
    logger.info("Uploaded volume-control assets", extra={"job_id": str(job_id)})
    return urls


async def finalize(
    video: Path,
    job_id: UUID,
    storage: StorageClient,
    registry: WorkingFileRegistry,
    output_format: str = "mp4",
    expected_duration: Optional[float] = None,
    volume_assets: Optional[VolumeControlAssets] = None
) -> ExportResult:
    """
    Upload the composed video and report its metadata.

    Cleanup is owned by the caller's working file registry, which releases
    every file whether this succeeds or raises.

    Args:
        video: Composed video with audio (and captions, if requested)
        job_id: Job ID, also the storage folder
        storage: Storage client
        registry: Job's working file registry
        output_format: "mp4", "mov" or "webm"
        expected_duration: Timeline duration, used if probing the output fails
        volume_assets: Narration and music to upload alongside a muted copy

    Returns:
        ExportResult with the artifact URL, duration and size

    Raises:
        UploadError: If conversion or upload fails
    """
    start = time.time()
    final = await convert_format(video, output_format, registry, job_id)

    if not final.exists():
        raise UploadError(f"Final video not found: {final}", job_id=job_id)
    size_bytes = final.stat().st_size
    if size_bytes == 0:
        raise UploadError(f"Final video is empty: {final}", job_id=job_id)

    duration = await get_media_duration(final)
    if duration is None:
        duration = expected_duration or 0.0
        logger.warning(
            f"Could not probe final duration, using timeline duration {duration:.2f}s",
            extra={"job_id": str(job_id)}
        )

    artifact_url = await storage.upload_path(final, f"{job_id}/final.{output_format}")

    extra_urls = {}
    if volume_assets is not None:
        extra_urls = await _upload_volume_control_assets(final, volume_assets, storage, registry, job_id)

    logger.info(
        f"Export finalized ({size_bytes / 1024 / 1024:.2f} MB, {duration:.2f}s)",
        extra={
            "job_id": str(job_id),
            "size_bytes": size_bytes,
            "duration": duration,
            "elapsed": time.time() - start,
        }
    )
    return ExportResult(
        artifact_url=artifact_url,
        duration_seconds=duration,
        size_bytes=size_bytes,
        **extra_urls
    )
