"""
Main entry point for video exporter module.

Runs an export job through a fixed stage order: fetch assets, build the
silent timeline, merge audio, burn captions, then upload. Every working file
is removed when the job ends, on success, failure or cancellation.
"""
import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from shared.errors import ExportCancelledError, ExportError
from shared.logging import get_logger, set_job_id, set_stage
from shared.models.export import ExportJob, ExportResult
from shared.storage import StorageClient

from .audio_mixer import AudioMix, merge_audio, trim_music
from .captions import burn_captions
from .config import get_output_dimensions
from .downloader import SceneFiles, build_http_client, fetch_asset, fetch_scene_assets
from .finalizer import VolumeControlAssets, finalize
from .timeline_builder import Timeline, build_timeline, validate_scene_assets
from .utils import require_ffmpeg
from .working_files import WorkingFileRegistry, working_files

logger = get_logger("video_exporter.process")


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    FETCHING = "fetching"
    BUILDING_TIMELINE = "building_timeline"
    MERGING_AUDIO = "merging_audio"
    BURNING_CAPTIONS = "burning_captions"
    FINALIZING = "finalizing"


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


@dataclass
class ExportContext:
    """Mutable state handed from one stage to the next within a single job."""

    job: ExportJob
    registry: WorkingFileRegistry
    width: int
    height: int
    rng: Optional[random.Random] = None
    storage: Optional[StorageClient] = None
    files: Optional[List[SceneFiles]] = None
    music: Optional[Path] = None
    timeline: Optional[Timeline] = None
    audio: Optional[AudioMix] = None
    video: Optional[Path] = None
    result: Optional[ExportResult] = None


async def _fetch(ctx: ExportContext) -> None:
    job = ctx.job
    async with build_http_client() as client:
        scene_task = fetch_scene_assets(job, ctx.registry, client)
        if job.background_music_url:
            music_task = fetch_asset(job.background_music_url, "audio", ctx.registry, job.job_id, client, label="music")
            results = await asyncio.gather(scene_task, music_task, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            ctx.files, ctx.music = results
        else:
            ctx.files = await scene_task


async def _build_timeline(ctx: ExportContext) -> None:
    ctx.timeline = await build_timeline(ctx.job, ctx.files, ctx.registry, ctx.width, ctx.height, rng=ctx.rng)
    ctx.video = ctx.timeline.video


async def _merge_audio(ctx: ExportContext) -> None:
    job = ctx.job
    timeline = ctx.timeline
    music = ctx.music
    if music is not None and job.trim_music_to_video:
        music = await trim_music(music, timeline.total_duration, ctx.registry, job.job_id)
        ctx.music = music

    ctx.audio = await merge_audio(
        timeline.video,
        timeline.narration,
        timeline.scene_durations,
        ctx.registry,
        job.job_id,
        music=music,
        voice_volume=job.voice_volume,
        music_volume=job.music_volume
    )
    ctx.video = ctx.audio.video


async def _burn_captions(ctx: ExportContext) -> None:
    job = ctx.job
    if not job.captions_enabled:
        return
    if ctx.audio.narration_track is None:
        logger.warning("Captions requested but no narration present, skipping", extra={"job_id": str(job.job_id)})
        return
    audio_speeds = {index: sync.audio_speed_factor for index, sync in ctx.timeline.sync_results.items()}
    ctx.video = await burn_captions(
        ctx.video,
        job.ordered_scenes,
        ctx.timeline.scene_durations,
        ctx.registry,
        job.job_id,
        audio_speeds=audio_speeds
    )


async def _finalize(ctx: ExportContext) -> None:
    job = ctx.job
    volume_assets = None
    if job.save_volume_control_assets and ctx.audio.narration_track is not None and ctx.music is not None:
        volume_assets = VolumeControlAssets(narration=ctx.audio.narration_track, music=ctx.music)

    storage = ctx.storage or StorageClient()
    ctx.result = await finalize(
        ctx.video,
        job.job_id,
        storage,
        ctx.registry,
        output_format=job.output_format,
        expected_duration=ctx.timeline.total_duration,
        volume_assets=volume_assets
    )


STAGE_HANDLERS: Dict[Stage, Callable[[ExportContext], Awaitable[None]]] = {
    Stage.FETCHING: _fetch,
    Stage.BUILDING_TIMELINE: _build_timeline,
    Stage.MERGING_AUDIO: _merge_audio,
    Stage.BURNING_CAPTIONS: _burn_captions,
    Stage.FINALIZING: _finalize,
}


def check_cancelled(cancel_event: Optional[asyncio.Event], stage: Stage, job_id) -> None:
    """
    Raise if the caller asked to stop.

    Raises:
        ExportCancelledError: If cancel_event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise ExportCancelledError(f"Export cancelled before {stage.value}", stage=stage.value, job_id=job_id)


async def process(
    job: ExportJob,
    cancel_event: Optional[asyncio.Event] = None,
    rng: Optional[random.Random] = None,
    storage: Optional[StorageClient] = None,
    temp_root: Optional[Union[str, Path]] = None
) -> ExportResult:
    """
    Export one job to a single uploaded media file.

    Args:
        job: Validated export job
        cancel_event: Optional signal checked between stages
        rng: Random source for automatic transitions (seed it for repeatable output)
        storage: Storage client (created on demand when omitted)
        temp_root: Working directory override (default: settings.export_temp_dir)

    Returns:
        ExportResult with the artifact URL, duration and size

    Raises:
        ConfigError: If FFmpeg is not installed
        ExportError: Any stage failure, naming the stage and scene where known;
            working files are already removed when this propagates
    """
    set_job_id(job.job_id)
    set_stage(None)
    require_ffmpeg()
    validate_scene_assets(job)
    width, height = get_output_dimensions(job.output_quality, job.aspect_ratio)

    start_time = time.time()
    current: Optional[Stage] = None
    logger.info(
        f"Starting export ({job.render_mode.value}, {len(job.scenes)} scenes, {width}x{height})",
        extra={
            "job_id": str(job.job_id),
            "render_mode": job.render_mode.value,
            "scene_count": len(job.scenes),
            "width": width,
            "height": height,
        }
    )

    try:
        async with working_files(job.job_id, temp_root) as registry:
            ctx = ExportContext(job=job, registry=registry, width=width, height=height, rng=rng, storage=storage)
            for stage in STAGE_ORDER:
                check_cancelled(cancel_event, stage, job.job_id)
                current = stage
                set_stage(stage.value)
                stage_start = time.time()
                logger.info(f"Stage {stage.value} started", extra={"job_id": str(job.job_id)})
                await STAGE_HANDLERS[stage](ctx)
                logger.info(
                    f"Stage {stage.value} completed in {time.time() - stage_start:.2f}s",
                    extra={"job_id": str(job.job_id), "elapsed": time.time() - stage_start}
                )
    except ExportError as e:
        logger.error(f"Export failed: {e}", extra={"job_id": str(job.job_id)}, exc_info=True)
        raise
    except Exception as e:
        logger.error(f"Unexpected export failure: {e}", extra={"job_id": str(job.job_id)}, exc_info=True)
        raise ExportError(
            f"Unexpected error: {e}",
            stage=current.value if current else None,
            job_id=job.job_id
        ) from e
    finally:
        set_stage(None)

    logger.info(
        f"Export completed in {time.time() - start_time:.2f}s",
        extra={
            "job_id": str(job.job_id),
            "artifact_url": ctx.result.artifact_url,
            "duration": ctx.result.duration_seconds,
            "size_bytes": ctx.result.size_bytes,
            "total_time": time.time() - start_time,
        }
    )
    return ctx.result
