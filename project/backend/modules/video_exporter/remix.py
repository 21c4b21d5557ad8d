"""
Volume remix for video exporter module.

Rebuilds an exported video's soundtrack from its saved volume-control
assets (muted video, narration, music) at new voice and music levels.
"""
import asyncio
import time
from pathlib import Path
from typing import Optional, Union

from shared.errors import AudioMergeError, ExportError
from shared.logging import get_logger, set_job_id, set_stage
from shared.models.export import ExportResult, RemixJob
from shared.storage import StorageClient

from .config import OUTPUT_AUDIO_BITRATE, OUTPUT_AUDIO_CODEC
from .downloader import build_http_client, fetch_asset
from .ffmpeg_command import FFmpegCommand, aloop_forever, amix, graph, volume_from_percent
from .finalizer import finalize
from .process import Stage
from .utils import require_ffmpeg, run_ffmpeg_command
from .working_files import working_files

logger = get_logger("video_exporter.remix")


def build_remix_command(
    video: Path,
    narration: Path,
    music: Path,
    voice_volume: int,
    music_volume: int,
    output: Path
) -> FFmpegCommand:
    """Mix narration and looped music onto the muted video; video copied."""
    return (
        FFmpegCommand(
            output=output,
            filter_complex=[
                graph(["1:a"], volume_from_percent(voice_volume), "voice"),
                graph(["2:a"], f"{aloop_forever()},{volume_from_percent(music_volume)}", "music"),
                graph(["voice", "music"], amix(2, "first"), "aout"),
            ],
            maps=["0:v", "[aout]"],
            output_options=["-c:v", "copy", "-c:a", OUTPUT_AUDIO_CODEC, "-b:a", OUTPUT_AUDIO_BITRATE]
        )
        .add_input(video)
        .add_input(narration)
        .add_input(music)
    )


async def remix(
    job: RemixJob,
    storage: Optional[StorageClient] = None,
    temp_root: Optional[Union[str, Path]] = None
) -> ExportResult:
    """
    Re-mix a video's narration and music at new volumes and upload the result.

    Args:
        job: Remix request
        storage: Storage client (created on demand when omitted)
        temp_root: Working directory override

    Returns:
        ExportResult for the remixed video

    Raises:
        ExportError: Any failure, with its stage; working files are already removed
    """
    set_job_id(job.job_id)
    require_ffmpeg()
    start_time = time.time()
    current = Stage.FETCHING

    try:
        async with working_files(job.job_id, temp_root) as registry:
            set_stage(current.value)
            async with build_http_client() as client:
                results = await asyncio.gather(
                    fetch_asset(job.video_url, "video", registry, job.job_id, client, label="remix_video"),
                    fetch_asset(job.voiceover_url, "audio", registry, job.job_id, client, label="remix_voice"),
                    fetch_asset(job.music_url, "audio", registry, job.job_id, client, label="remix_music"),
                    return_exceptions=True
                )
            for fetched in results:
                if isinstance(fetched, BaseException):
                    raise fetched
            video, narration, music = results

            current = Stage.MERGING_AUDIO
            set_stage(current.value)
            mixed = registry.new_path("remix", ".mp4")
            command = build_remix_command(video, narration, music, job.voice_volume, job.music_volume, mixed)
            await run_ffmpeg_command(command, job.job_id, error_cls=AudioMergeError)

            current = Stage.FINALIZING
            set_stage(current.value)
            result = await finalize(
                mixed,
                job.job_id,
                storage or StorageClient(),
                registry,
                output_format=job.output_format
            )
    except ExportError as e:
        logger.error(f"Remix failed: {e}", extra={"job_id": str(job.job_id)}, exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected remix failure: {e}", extra={"job_id": str(job.job_id)}, exc_info=True)
        raise ExportError(f"Unexpected error: {e}", stage=current.value, job_id=job.job_id) from e
    finally:
        set_stage(None)

    logger.info(
        f"Remix completed in {time.time() - start_time:.2f}s",
        extra={
            "job_id": str(job.job_id),
            "voice_volume": job.voice_volume,
            "music_volume": job.music_volume,
        }
    )
    return result
