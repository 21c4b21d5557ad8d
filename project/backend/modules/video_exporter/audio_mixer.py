"""
Audio pipeline for video exporter module.

Concatenates per-scene narration in scene order, merges it onto the silent
timeline, and mixes in looped background music at the requested volumes.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
from uuid import UUID

from shared.errors import AudioMergeError
from shared.logging import get_logger

from .config import (
    MUSIC_FADE_OUT_SECONDS,
    NARRATION_CHANNELS,
    NARRATION_CODEC,
    NARRATION_SAMPLE_RATE,
    OUTPUT_AUDIO_BITRATE,
    OUTPUT_AUDIO_CODEC,
)
from .ffmpeg_command import (
    FFmpegCommand,
    afade_out,
    aloop_forever,
    amix,
    concat,
    fmt,
    graph,
    volume_from_percent,
)
from .utils import run_ffmpeg_command
from .working_files import WorkingFileRegistry

logger = get_logger("video_exporter.audio_mixer")

_NORMALIZE_AUDIO = f"aresample={NARRATION_SAMPLE_RATE},aformat=sample_fmts=fltp:channel_layouts=stereo"


@dataclass(frozen=True)
class AudioMix:
    """Video with its final audio, plus the narration track used to build it."""

    video: Path
    narration_track: Optional[Path] = None


def _encoded_audio_options() -> List[str]:
    return ["-c:a", OUTPUT_AUDIO_CODEC, "-b:a", OUTPUT_AUDIO_BITRATE]


def build_narration_concat_command(
    narration_clips: Sequence[Optional[Path]],
    scene_durations: Sequence[float],
    output: Path
) -> FFmpegCommand:
    """
    Concatenate narration in scene order, each clip padded with silence to its scene.

    Scenes without narration contribute silence of their full duration so
    later narration stays aligned with its pictures.
    """
    command = FFmpegCommand(
        output=output,
        output_options=[
            "-c:a", NARRATION_CODEC,
            "-b:a", OUTPUT_AUDIO_BITRATE,
            "-ar", str(NARRATION_SAMPLE_RATE),
            "-ac", str(NARRATION_CHANNELS),
        ]
    )
    chains = []
    labels = []
    for i, (clip, duration) in enumerate(zip(narration_clips, scene_durations)):
        if clip is not None:
            command.add_input(clip)
        else:
            command.add_input(
                f"anullsrc=r={NARRATION_SAMPLE_RATE}:cl=stereo",
                "-f", "lavfi", "-t", fmt(duration)
            )
        chains.append(graph([f"{i}:a"], f"{_NORMALIZE_AUDIO},apad=whole_dur={fmt(duration)}", f"a{i}"))
        labels.append(f"a{i}")
    chains.append(graph(labels, concat(len(labels), video=False, audio=True), "outa"))
    command.filter_complex = chains
    command.maps = ["[outa]"]
    return command


def build_merge_command(video: Path, narration: Path, output: Path) -> FFmpegCommand:
    """Narration onto the silent video; video copied, composite not cut to the shorter stream."""
    return (
        FFmpegCommand(
            output=output,
            maps=["0:v:0", "1:a:0"],
            output_options=["-c:v", "copy"] + _encoded_audio_options()
        )
        .add_input(video)
        .add_input(narration)
    )


def build_music_mix_command(
    video: Path,
    music: Path,
    voice_volume: int,
    music_volume: int,
    output: Path
) -> FFmpegCommand:
    """Mix looped music under the video's narration; length follows the narration track."""
    return (
        FFmpegCommand(
            output=output,
            filter_complex=[
                graph(["0:a"], volume_from_percent(voice_volume), "voice"),
                graph(["1:a"], f"{aloop_forever()},{volume_from_percent(music_volume)}", "music"),
                graph(["voice", "music"], amix(2, "first"), "aout"),
            ],
            maps=["0:v", "[aout]"],
            output_options=["-c:v", "copy"] + _encoded_audio_options()
        )
        .add_input(video)
        .add_input(music)
    )


def build_music_only_command(
    video: Path,
    music: Path,
    music_volume: int,
    duration: float,
    output: Path
) -> FFmpegCommand:
    """Looped music as the only audio of a silent video, cut to the video length."""
    return (
        FFmpegCommand(
            output=output,
            filter_complex=[
                graph(["1:a"], f"{aloop_forever()},{volume_from_percent(music_volume)}", "aout"),
            ],
            maps=["0:v", "[aout]"],
            output_options=["-c:v", "copy"] + _encoded_audio_options() + ["-t", fmt(duration)]
        )
        .add_input(video)
        .add_input(music)
    )


def build_music_trim_command(music: Path, total_duration: float, output: Path) -> FFmpegCommand:
    """Cut music to the video length with a fade-out at the end."""
    return FFmpegCommand(
        output=output,
        audio_filters=[afade_out(total_duration - MUSIC_FADE_OUT_SECONDS, MUSIC_FADE_OUT_SECONDS)],
        output_options=[
            "-t", fmt(total_duration),
            "-c:a", NARRATION_CODEC,
            "-b:a", OUTPUT_AUDIO_BITRATE,
        ]
    ).add_input(music)


async def trim_music(
    music: Path,
    total_duration: float,
    registry: WorkingFileRegistry,
    job_id: UUID
) -> Path:
    """
    Trim user-supplied music to the video length.

    A failed trim is not fatal: the untrimmed track is returned.
    """
    output = registry.new_path("music_trimmed", ".mp3")
    try:
        await run_ffmpeg_command(
            build_music_trim_command(music, total_duration, output),
            job_id,
            error_cls=AudioMergeError
        )
    except AudioMergeError as e:
        logger.warning(
            f"Music trim failed, using untrimmed track: {e}",
            extra={"job_id": str(job_id)}
        )
        return music
    logger.info(
        f"Trimmed music to {total_duration:.2f}s",
        extra={"job_id": str(job_id), "duration": total_duration}
    )
    return output


async def concat_narration(
    narration_clips: Sequence[Optional[Path]],
    scene_durations: Sequence[float],
    registry: WorkingFileRegistry,
    job_id: UUID
) -> Optional[Path]:
    """
    One narration track for the whole timeline.

    Returns:
        Track path, or None when no scene has narration

    Raises:
        AudioMergeError: If FFmpeg fails
    """
    present = [clip for clip in narration_clips if clip is not None]
    if not present:
        return None
    if len(narration_clips) == 1:
        return present[0]

    output = registry.new_path("narration", ".mp3")
    command = build_narration_concat_command(narration_clips, scene_durations, output)
    await run_ffmpeg_command(command, job_id, error_cls=AudioMergeError)
    logger.info(
        f"Concatenated narration from {len(present)} scenes",
        extra={"job_id": str(job_id), "clips": len(present)}
    )
    return output


async def merge_audio(
    silent_video: Path,
    narration_clips: Sequence[Optional[Path]],
    scene_durations: Sequence[float],
    registry: WorkingFileRegistry,
    job_id: UUID,
    music: Optional[Path] = None,
    voice_volume: int = 100,
    music_volume: int = 30
) -> AudioMix:
    """
    Give the silent timeline its audio.

    Args:
        silent_video: Timeline video
        narration_clips: Per-scene narration (None where a scene has none)
        scene_durations: Effective scene durations, for alignment
        registry: Job's working file registry
        job_id: Job ID for logging
        music: Optional downloaded background music
        voice_volume: Narration level 0-100
        music_volume: Music level 0-100

    Returns:
        AudioMix with the resulting video (the input itself when there is no audio)

    Raises:
        AudioMergeError: If any FFmpeg step fails
    """
    narration_track = await concat_narration(narration_clips, scene_durations, registry, job_id)

    video = silent_video
    if narration_track is not None:
        merged = registry.new_path("with_narration", ".mp4")
        await run_ffmpeg_command(build_merge_command(video, narration_track, merged), job_id, error_cls=AudioMergeError)
        video = merged
        logger.info("Merged narration onto video", extra={"job_id": str(job_id)})

    if music is not None:
        mixed = registry.new_path("with_music", ".mp4")
        if narration_track is not None:
            command = build_music_mix_command(video, music, voice_volume, music_volume, mixed)
        else:
            command = build_music_only_command(video, music, music_volume, sum(scene_durations), mixed)
        await run_ffmpeg_command(command, job_id, error_cls=AudioMergeError)
        video = mixed
        logger.info(
            "Mixed background music",
            extra={"job_id": str(job_id), "voice_volume": voice_volume, "music_volume": music_volume}
        )

    return AudioMix(video=video, narration_track=narration_track)
