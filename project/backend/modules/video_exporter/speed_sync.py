"""
Dual-speed sync for video exporter module.

Reconciles a generated clip with its narration by choosing one target
duration and two bounded speed factors. Video absorbs most of the change
(slow motion reads as intentional); narration only moves inside a narrow
band so speech stays natural.
"""
import math
from pathlib import Path
from typing import Optional
from uuid import UUID

from shared.errors import SyncComputationError, TimelineBuildError
from shared.logging import get_logger
from shared.models.export import SyncMethod, SyncResult

from .config import (
    AUDIO_SPEED_MAX,
    AUDIO_SPEED_MIN,
    FFMPEG_CLIP_PRESET,
    FFMPEG_CRF,
    NARRATION_CHANNELS,
    NARRATION_CODEC,
    NARRATION_SAMPLE_RATE,
    OUTPUT_AUDIO_BITRATE,
    OUTPUT_FPS,
    OUTPUT_PIX_FMT,
    OUTPUT_VIDEO_CODEC,
    SYNC_TOLERANCE,
    VIDEO_SPEED_MAX,
    VIDEO_SPEED_MIN,
)
from .ffmpeg_command import FFmpegCommand, atempo_chain, fmt, scale_crop, setpts
from .utils import run_ffmpeg_command

logger = get_logger("video_exporter.speed_sync")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def calculate_dual_speed_sync(video_duration: float, audio_duration: float) -> SyncResult:
    """
    Compute target duration and speed factors for a clip and its narration.

    Speed factors are playback rates: 0.5 plays at half speed (twice as long).

    Args:
        video_duration: Native clip duration in seconds
        audio_duration: Native narration duration in seconds

    Returns:
        SyncResult with both factors inside their bounds

    Raises:
        SyncComputationError: If either duration is zero, negative or not finite
    """
    for name, value in (("video", video_duration), ("audio", audio_duration)):
        if value is None or not math.isfinite(value) or value <= 0:
            raise SyncComputationError(f"Invalid {name} duration for sync: {value}")

    if abs(video_duration - audio_duration) < SYNC_TOLERANCE:
        return SyncResult(
            target_duration_seconds=max(video_duration, audio_duration),
            video_speed_factor=1.0,
            audio_speed_factor=1.0,
            method=SyncMethod.NONE
        )

    if video_duration < audio_duration:
        video_speed = video_duration / audio_duration
        if VIDEO_SPEED_MIN <= video_speed <= VIDEO_SPEED_MAX:
            method = SyncMethod.VIDEO_SLOWDOWN
            target = audio_duration
            audio_speed = 1.0
        else:
            method = SyncMethod.DUAL_SLOWDOWN
            video_speed = VIDEO_SPEED_MIN
            target = video_duration / video_speed
            audio_speed = audio_duration / target
            if not AUDIO_SPEED_MIN <= audio_speed <= AUDIO_SPEED_MAX:
                audio_speed = _clamp(audio_speed, AUDIO_SPEED_MIN, AUDIO_SPEED_MAX)
                # Ties keep the larger candidate
                target = max(video_duration / video_speed, audio_duration / audio_speed)
    else:
        audio_speed = audio_duration / video_duration
        if AUDIO_SPEED_MIN <= audio_speed <= AUDIO_SPEED_MAX:
            method = SyncMethod.AUDIO_SLOWDOWN
            target = video_duration
            video_speed = 1.0
        else:
            audio_speed = AUDIO_SPEED_MIN
            target = audio_duration / audio_speed
            video_speed = video_duration / target
            if video_speed <= VIDEO_SPEED_MAX:
                method = SyncMethod.BALANCED
            else:
                # Gap too wide to close by speeding video up: slow both to
                # their floors and let the longer track set the duration
                method = SyncMethod.DUAL_SLOWDOWN
                video_speed = VIDEO_SPEED_MIN
                target = max(video_duration / video_speed, audio_duration / audio_speed)

    video_speed = _clamp(video_speed, VIDEO_SPEED_MIN, VIDEO_SPEED_MAX)
    audio_speed = _clamp(audio_speed, AUDIO_SPEED_MIN, AUDIO_SPEED_MAX)

    return SyncResult(
        target_duration_seconds=target,
        video_speed_factor=video_speed,
        audio_speed_factor=audio_speed,
        method=method
    )


def build_video_speed_command(
    source: Path,
    output: Path,
    speed: float,
    width: int,
    height: int,
    target_duration: Optional[float] = None
) -> FFmpegCommand:
    """
    Re-time a clip, normalize it to the output frame and drop its audio.

    With ``target_duration`` the result is exactly that long: a short clip
    holds its last frame, a long one is cut.
    """
    filters = []
    if speed != 1.0:
        filters.append(setpts(speed))
    filters.extend([scale_crop(width, height), f"fps={OUTPUT_FPS}"])
    duration_options = []
    if target_duration is not None:
        filters.append(f"tpad=stop_mode=clone:stop_duration={fmt(target_duration)}")
        duration_options = ["-t", fmt(target_duration)]
    return FFmpegCommand(
        output=output,
        video_filters=filters,
        output_options=duration_options + [
            "-an",
            "-pix_fmt", OUTPUT_PIX_FMT,
            "-c:v", OUTPUT_VIDEO_CODEC,
            "-preset", FFMPEG_CLIP_PRESET,
            "-crf", str(FFMPEG_CRF),
        ]
    ).add_input(source)


def build_audio_speed_command(source: Path, output: Path, speed: float) -> FFmpegCommand:
    """Pitch-preserving narration time-stretch."""
    return FFmpegCommand(
        output=output,
        audio_filters=[atempo_chain(speed)],
        output_options=[
            "-vn",
            "-c:a", NARRATION_CODEC,
            "-b:a", OUTPUT_AUDIO_BITRATE,
            "-ar", str(NARRATION_SAMPLE_RATE),
            "-ac", str(NARRATION_CHANNELS),
        ]
    ).add_input(source)


async def adjust_video_speed(
    source: Path,
    output: Path,
    speed: float,
    width: int,
    height: int,
    job_id: UUID,
    scene_index: int,
    target_duration: Optional[float] = None
) -> Path:
    """
    Render the re-timed, normalized clip.

    Raises:
        TimelineBuildError: If FFmpeg fails
    """
    command = build_video_speed_command(source, output, speed, width, height, target_duration)
    await run_ffmpeg_command(command, job_id, error_cls=TimelineBuildError, scene_index=scene_index)
    if not output.exists():
        raise TimelineBuildError(f"Speed-adjusted clip not created: {output}", scene_index=scene_index)
    return output


async def adjust_audio_speed(
    source: Path,
    output: Path,
    speed: float,
    job_id: UUID,
    scene_index: int
) -> Path:
    """
    Render the time-stretched narration; returns the source untouched at speed 1.0.

    Raises:
        TimelineBuildError: If FFmpeg fails
    """
    if speed == 1.0:
        return source
    command = build_audio_speed_command(source, output, speed)
    await run_ffmpeg_command(command, job_id, error_cls=TimelineBuildError, scene_index=scene_index)
    if not output.exists():
        raise TimelineBuildError(f"Speed-adjusted narration not created: {output}", scene_index=scene_index)
    return output
