"""
Timeline construction for video exporter module.

Turns ordered scenes into one silent video track using the job's render
mode: static images with a short cross-fade, animated images joined by
creative transitions, or generated clips synced to their narration and
concatenated.
"""
import asyncio
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Dict, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from shared.errors import TimelineBuildError
from shared.logging import get_logger
from shared.models.export import ExportJob, RenderMode, SceneAsset, SyncResult

from .animations import build_animated_clip_command
from .config import (
    END_PADDING_SECONDS,
    FFMPEG_CLIP_PRESET,
    FFMPEG_CRF,
    FFMPEG_PRESET,
    OUTPUT_FPS,
    OUTPUT_PIX_FMT,
    OUTPUT_VIDEO_CODEC,
    STATIC_TRANSITION,
    STATIC_TRANSITION_DURATION,
)
from .downloader import SceneFiles
from .ffmpeg_command import FFmpegCommand, concat, fmt, graph, scale_crop
from .speed_sync import adjust_audio_speed, adjust_video_speed, calculate_dual_speed_sync
from .transitions import (
    HARD_CUT_DURATION,
    build_xfade_graph,
    is_hard_cut,
    plan_transitions,
    xfade_name,
)
from .utils import get_media_duration, run_ffmpeg_command
from .working_files import WorkingFileRegistry

logger = get_logger("video_exporter.timeline_builder")

T = TypeVar("T")


@dataclass(frozen=True)
class Timeline:
    """Silent video track plus what later stages need to line up with it."""

    video: Path
    scene_durations: List[float]
    narration: List[Optional[Path]]
    sync_results: Dict[int, SyncResult] = field(default_factory=dict)

    @property
    def total_duration(self) -> float:
        return sum(self.scene_durations)


def validate_scene_assets(job: ExportJob) -> None:
    """
    Check every scene has the visual input its render mode needs.

    Raises:
        TimelineBuildError: Naming the first scene missing its asset
    """
    for scene in job.ordered_scenes:
        if job.render_mode == RenderMode.GENERATED_VIDEO:
            if not scene.video_url and not scene.image_url:
                raise TimelineBuildError(
                    "Scene has neither video_url nor image_url",
                    scene_index=scene.index,
                    job_id=job.job_id
                )
        elif not scene.image_url:
            raise TimelineBuildError(
                f"Scene requires image_url in {job.render_mode.value} mode",
                scene_index=scene.index,
                job_id=job.job_id
            )


def scene_durations_with_padding(scenes: Sequence[SceneAsset], pad_end: bool) -> List[float]:
    """Target duration per scene; the last one gains the end padding when narrated."""
    durations = [scene.duration_seconds for scene in scenes]
    if pad_end and durations:
        durations[-1] += END_PADDING_SECONDS
    return durations


async def _gather_in_order(tasks: Sequence[Awaitable[T]]) -> List[T]:
    """Run all tasks to completion, then raise the first failure in order."""
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


def build_static_clip_command(image: Path, output: Path, duration: float, width: int, height: int) -> FFmpegCommand:
    """Still image held for ``duration`` seconds, no motion."""
    return FFmpegCommand(
        output=output,
        video_filters=[scale_crop(width, height)],
        output_options=[
            "-r", str(OUTPUT_FPS),
            "-pix_fmt", OUTPUT_PIX_FMT,
            "-c:v", OUTPUT_VIDEO_CODEC,
            "-preset", FFMPEG_CLIP_PRESET,
            "-crf", str(FFMPEG_CRF),
        ]
    ).add_input(image, "-loop", "1", "-t", fmt(duration))


def _final_video_options() -> List[str]:
    return [
        "-r", str(OUTPUT_FPS),
        "-pix_fmt", OUTPUT_PIX_FMT,
        "-c:v", OUTPUT_VIDEO_CODEC,
        "-preset", FFMPEG_PRESET,
        "-crf", str(FFMPEG_CRF),
        "-an",
    ]


def build_xfade_command(
    clips: Sequence[Path],
    clip_durations: Sequence[float],
    joins: Sequence[Tuple[str, float]],
    output: Path
) -> FFmpegCommand:
    """Join clips with chained xfade transitions."""
    command = FFmpegCommand(
        output=output,
        filter_complex=build_xfade_graph(clip_durations, joins),
        maps=["[outv]"],
        output_options=_final_video_options()
    )
    for clip in clips:
        command.add_input(clip)
    return command


def build_concat_command(
    clips: Sequence[Path],
    output: Path,
    trim_durations: Optional[Sequence[float]] = None
) -> FFmpegCommand:
    """
    Join clips back to back with the concat filter.

    Args:
        clips: Clips in playback order
        output: Joined video path
        trim_durations: Optional per-clip length to cut each input to first
    """
    chains = []
    labels = []
    if trim_durations is not None:
        for i, duration in enumerate(trim_durations):
            chains.append(graph([f"{i}:v"], f"trim=duration={fmt(duration)},setpts=PTS-STARTPTS", f"t{i}"))
            labels.append(f"t{i}")
    else:
        labels = [f"{i}:v" for i in range(len(clips))]
    chains.append(graph(labels, concat(len(clips)), "outv"))

    command = FFmpegCommand(
        output=output,
        filter_complex=chains,
        maps=["[outv]"],
        output_options=_final_video_options()
    )
    for clip in clips:
        command.add_input(clip)
    return command


def _clamp_join(duration: float, incoming_duration: float) -> float:
    """A join may not consume more than half the incoming scene."""
    return max(HARD_CUT_DURATION, min(duration, incoming_duration / 2))


async def _join_with_transitions(
    clips: List[Path],
    clip_durations: List[float],
    joins: List[Tuple[str, float]],
    registry: WorkingFileRegistry,
    job_id: UUID
) -> Path:
    if len(clips) == 1:
        return clips[0]
    output = registry.new_path("timeline", ".mp4")
    command = build_xfade_command(clips, clip_durations, joins, output)
    await run_ffmpeg_command(command, job_id, error_cls=TimelineBuildError)
    return output


async def _build_static(
    scenes: Sequence[SceneAsset],
    files: Sequence[SceneFiles],
    durations: List[float],
    registry: WorkingFileRegistry,
    job_id: UUID,
    width: int,
    height: int
) -> Path:
    joins: List[Tuple[str, float]] = []
    clip_durations = []
    for i, duration in enumerate(durations):
        if i < len(durations) - 1:
            join = _clamp_join(STATIC_TRANSITION_DURATION, durations[i + 1])
            joins.append((STATIC_TRANSITION, join))
            # Overlap comes out of the extended outgoing clip, not the scene
            clip_durations.append(duration + join)
        else:
            clip_durations.append(duration)

    async def render(i: int) -> Path:
        output = registry.new_path(f"scene{scenes[i].index}_static", ".mp4")
        command = build_static_clip_command(files[i].image, output, clip_durations[i], width, height)
        await run_ffmpeg_command(command, job_id, error_cls=TimelineBuildError, scene_index=scenes[i].index)
        return output

    clips = await _gather_in_order([render(i) for i in range(len(scenes))])
    return await _join_with_transitions(clips, clip_durations, joins, registry, job_id)


def resolve_joins(
    job: ExportJob,
    scenes: Sequence[SceneAsset],
    durations: Sequence[float],
    rng: Optional[random.Random] = None
) -> List[Tuple[str, float]]:
    """
    Transition and duration for each of the N-1 joins of an animated timeline.

    Scenes without an explicit transition get one planned from mood and
    narration when the job asks for automatic transitions; otherwise they cut.
    """
    planned = {}
    if job.auto_transitions:
        planned = {p.index: p for p in plan_transitions(scenes, job.pacing, rng)}

    joins = []
    for i, scene in enumerate(scenes[:-1]):
        transition = scene.transition_to_next
        duration = scene.transition_duration_seconds
        if transition is None and scene.index in planned:
            transition = planned[scene.index].transition
            duration = planned[scene.index].duration
        if is_hard_cut(transition):
            joins.append(("fade", HARD_CUT_DURATION))
        else:
            joins.append((xfade_name(transition), _clamp_join(duration, durations[i + 1])))
    return joins


async def _build_animated(
    job: ExportJob,
    scenes: Sequence[SceneAsset],
    files: Sequence[SceneFiles],
    durations: List[float],
    registry: WorkingFileRegistry,
    width: int,
    height: int,
    rng: Optional[random.Random] = None
) -> Path:
    joins = resolve_joins(job, scenes, durations, rng)
    clip_durations = [
        duration + (joins[i][1] if i < len(joins) else 0.0)
        for i, duration in enumerate(durations)
    ]

    async def render(i: int) -> Path:
        scene = scenes[i]
        output = registry.new_path(f"scene{scene.index}_animated", ".mp4")
        command = build_animated_clip_command(
            files[i].image, output, clip_durations[i], width, height,
            animation=scene.animation_name,
            effect=scene.visual_effect_name
        )
        await run_ffmpeg_command(command, job.job_id, error_cls=TimelineBuildError, scene_index=scene.index)
        return output

    clips = await _gather_in_order([render(i) for i in range(len(scenes))])
    if len(clips) == 1:
        return clips[0]

    try:
        return await _join_with_transitions(clips, clip_durations, joins, registry, job.job_id)
    except TimelineBuildError as e:
        logger.warning(
            f"Transition join failed, falling back to plain concatenation: {e}",
            extra={"job_id": str(job.job_id)}
        )

    output = registry.new_path("timeline_concat", ".mp4")
    command = build_concat_command(clips, output, trim_durations=durations)
    await run_ffmpeg_command(command, job.job_id, error_cls=TimelineBuildError)
    return output


async def _probe_required(path: Path, what: str, scene_index: int, job_id: UUID) -> float:
    duration = await get_media_duration(path)
    if duration is None:
        raise TimelineBuildError(f"Could not read {what} duration", scene_index=scene_index, job_id=job_id)
    return duration


async def _build_generated_video(
    job: ExportJob,
    scenes: Sequence[SceneAsset],
    files: Sequence[SceneFiles],
    registry: WorkingFileRegistry,
    width: int,
    height: int
) -> Tuple[Path, List[float], List[Optional[Path]], Dict[int, SyncResult]]:
    pad_end = job.has_narration
    last = len(scenes) - 1

    # Every sync is computed before any clip is rendered
    plans = []
    sync_results: Dict[int, SyncResult] = {}
    for i, (scene, scene_files) in enumerate(zip(scenes, files)):
        narration_duration = None
        if scene_files.narration is not None:
            narration_duration = await _probe_required(scene_files.narration, "narration", scene.index, job.job_id)

        if scene_files.video is not None:
            if narration_duration is not None:
                video_duration = await _probe_required(scene_files.video, "video", scene.index, job.job_id)
                sync = calculate_dual_speed_sync(video_duration, narration_duration)
                sync_results[scene.index] = sync
                logger.info(
                    f"Scene {scene.index} sync: {sync.method.value}",
                    extra={
                        "job_id": str(job.job_id),
                        "scene_index": scene.index,
                        "video_duration": video_duration,
                        "audio_duration": narration_duration,
                        "target_duration": sync.target_duration_seconds,
                        "video_speed": sync.video_speed_factor,
                        "audio_speed": sync.audio_speed_factor,
                    }
                )
                duration = sync.target_duration_seconds
            else:
                sync = None
                duration = scene.duration_seconds
        else:
            # Hybrid scene: animate the image for as long as its narration runs
            sync = None
            duration = narration_duration or scene.duration_seconds
        if pad_end and i == last:
            duration += END_PADDING_SECONDS
        plans.append((scene, scene_files, sync, duration))

    async def render(scene: SceneAsset, scene_files: SceneFiles, sync: Optional[SyncResult], duration: float):
        output = registry.new_path(f"scene{scene.index}_clip", ".mp4")
        narration = scene_files.narration
        if scene_files.video is not None:
            speed = sync.video_speed_factor if sync else 1.0
            await adjust_video_speed(
                scene_files.video, output, speed, width, height,
                job.job_id, scene.index, target_duration=duration
            )
            if sync and narration is not None:
                narration = await adjust_audio_speed(
                    narration,
                    registry.new_path(f"scene{scene.index}_narration_synced", ".mp3"),
                    sync.audio_speed_factor,
                    job.job_id,
                    scene.index
                )
        else:
            command = build_animated_clip_command(
                scene_files.image, output, duration, width, height,
                animation=scene.animation_name,
                effect=scene.visual_effect_name
            )
            await run_ffmpeg_command(command, job.job_id, error_cls=TimelineBuildError, scene_index=scene.index)
        return output, narration

    rendered = await _gather_in_order([render(*plan) for plan in plans])
    clips = [clip for clip, _ in rendered]
    narration = [audio for _, audio in rendered]
    durations = [plan[3] for plan in plans]

    if len(clips) == 1:
        return clips[0], durations, narration, sync_results

    output = registry.new_path("timeline_concat", ".mp4")
    await run_ffmpeg_command(build_concat_command(clips, output), job.job_id, error_cls=TimelineBuildError)
    return output, durations, narration, sync_results


async def build_timeline(
    job: ExportJob,
    files: Sequence[SceneFiles],
    registry: WorkingFileRegistry,
    width: int,
    height: int,
    rng: Optional[random.Random] = None
) -> Timeline:
    """
    Build the silent video track for a job.

    Args:
        job: Export job
        files: Downloaded inputs per scene, in playback order
        registry: Job's working file registry
        width: Output width
        height: Output height
        rng: Random source for automatic transition planning

    Returns:
        Timeline with the video, effective scene durations and per-scene narration

    Raises:
        TimelineBuildError: If a clip or the join fails (animated joins fall back to concat)
        SyncComputationError: If a clip or narration reports an unusable duration
    """
    scenes = job.ordered_scenes
    validate_scene_assets(job)
    start = time.time()

    if job.render_mode == RenderMode.GENERATED_VIDEO:
        video, durations, narration, sync_results = await _build_generated_video(
            job, scenes, files, registry, width, height
        )
    else:
        durations = scene_durations_with_padding(scenes, job.has_narration)
        narration = [f.narration for f in files]
        sync_results = {}
        if job.render_mode == RenderMode.STATIC:
            video = await _build_static(scenes, files, durations, registry, job.job_id, width, height)
        else:
            video = await _build_animated(job, scenes, files, durations, registry, width, height, rng)

    if not video.exists():
        raise TimelineBuildError(f"Timeline video not created: {video}", job_id=job.job_id)

    logger.info(
        f"Timeline built ({job.render_mode.value}, {len(scenes)} scenes, {sum(durations):.2f}s)",
        extra={
            "job_id": str(job.job_id),
            "render_mode": job.render_mode.value,
            "scene_count": len(scenes),
            "duration": sum(durations),
            "elapsed": time.time() - start,
        }
    )
    return Timeline(video=video, scene_durations=durations, narration=narration, sync_results=sync_results)
