"""
Caption segmentation and burn-in for video exporter module.

Splits narration into short readable captions, times them against the
timeline, writes an SRT file and burns it into the frame.
"""
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Sequence
from uuid import UUID

from shared.errors import CaptionBurnError
from shared.logging import get_logger
from shared.models.export import SceneAsset, WordTimestamp

from .config import (
    CAPTION_FORCE_STYLE,
    CAPTION_IDEAL_SEGMENT_DURATION,
    CAPTION_MAX_WORDS,
    CAPTION_MIN_SEGMENT_DURATION,
    CAPTION_MIN_WORDS,
    CAPTION_SENTENCE_RATIO,
    CAPTION_SINGLE_SEGMENT_MAX_DURATION,
    CAPTION_WORDS_PER_TIMESTAMP_GROUP,
    FFMPEG_CRF,
    FFMPEG_PRESET,
    OUTPUT_VIDEO_CODEC,
)
from .ffmpeg_command import FFmpegCommand, subtitles
from .utils import run_ffmpeg_command
from .working_files import WorkingFileRegistry

logger = get_logger("video_exporter.captions")

# Voice-direction tags such as [whispers] or [laughs softly]
_AUDIO_TAG_RE = re.compile(r"\[[^\]]+\]")
# Arabic tashkeel and related marks
_ARABIC_DIACRITICS_RE = re.compile(r"[\u064B-\u065F\u0670\u0653-\u0655]")
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?؟。])\s+")


@dataclass(frozen=True)
class CaptionSegment:
    """Caption text with start/end seconds (scene-relative or absolute)."""

    text: str
    start: float
    end: float


def clean_caption_text(text: str) -> str:
    """Strip voice-direction tags and Arabic diacritics, collapse whitespace."""
    cleaned = _AUDIO_TAG_RE.sub(" ", text or "")
    cleaned = _ARABIC_DIACRITICS_RE.sub("", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def split_sentences(text: str) -> List[str]:
    """Split after sentence-ending punctuation."""
    return [s.strip() for s in _SENTENCE_END_RE.split(text) if s.strip()]


def _chunk_words(words: List[str], ideal_count: int) -> List[List[str]]:
    """Even word chunks, 4-12 words each when there are at least 4 words."""
    if len(words) <= CAPTION_MIN_WORDS:
        return [words]

    per_segment = math.ceil(len(words) / ideal_count)
    per_segment = max(CAPTION_MIN_WORDS, min(CAPTION_MAX_WORDS, per_segment))
    chunks = [words[i:i + per_segment] for i in range(0, len(words), per_segment)]

    if len(chunks) > 1 and len(chunks[-1]) < CAPTION_MIN_WORDS:
        tail = chunks.pop()
        previous = chunks.pop()
        combined = previous + tail
        if len(combined) <= CAPTION_MAX_WORDS:
            chunks.append(combined)
        else:
            half = math.ceil(len(combined) / 2)
            chunks.extend([combined[:half], combined[half:]])
    return chunks


def segment_scene_text(text: str, duration: float) -> List[CaptionSegment]:
    """
    Split one scene's narration into evenly timed captions.

    Scenes up to 5s get one caption. Longer scenes aim for one caption per
    3.5s: sentence boundaries are used when the sentence count stays within
    1.5x that target and every sentence is 4-12 words, otherwise words are
    chunked 4-12 at a time.

    Args:
        text: Narration text (cleaned here)
        duration: Scene duration in seconds

    Returns:
        Scene-relative caption segments, empty when there is no text
    """
    cleaned = clean_caption_text(text)
    if not cleaned or duration <= 0:
        return []

    if duration <= CAPTION_SINGLE_SEGMENT_MAX_DURATION:
        return [CaptionSegment(text=cleaned, start=0.0, end=duration)]

    ideal_count = math.ceil(duration / CAPTION_IDEAL_SEGMENT_DURATION)
    sentences = split_sentences(cleaned)
    sentences_fit = (
        len(sentences) <= ideal_count * CAPTION_SENTENCE_RATIO
        and all(CAPTION_MIN_WORDS <= len(s.split()) <= CAPTION_MAX_WORDS for s in sentences)
    )
    if sentences_fit:
        pieces = sentences
    else:
        pieces = [" ".join(chunk) for chunk in _chunk_words(cleaned.split(), ideal_count)]

    span = duration / len(pieces)
    return [
        CaptionSegment(text=piece, start=i * span, end=min((i + 1) * span, duration))
        for i, piece in enumerate(pieces)
    ]


def segment_word_timestamps(
    word_timestamps: Sequence[WordTimestamp],
    audio_speed: float = 1.0
) -> List[CaptionSegment]:
    """
    Group timed words four at a time using their real timing.

    Timestamps are divided by ``audio_speed`` when the narration was
    time-stretched to fit its clip. Each caption lasts at least 0.5s; a
    trailing group shorter than four words joins the previous caption.
    """
    words = []
    for wt in word_timestamps:
        word = clean_caption_text(wt.word)
        if word:
            words.append((word, wt.start_time / audio_speed, wt.end_time / audio_speed))
    if not words:
        return []

    size = CAPTION_WORDS_PER_TIMESTAMP_GROUP
    groups = [words[i:i + size] for i in range(0, len(words), size)]
    if len(groups) > 1 and len(groups[-1]) < size:
        tail = groups.pop()
        groups[-1] = groups[-1] + tail

    segments = []
    for group in groups:
        start = group[0][1]
        end = max(group[-1][2], start + CAPTION_MIN_SEGMENT_DURATION)
        segments.append(CaptionSegment(text=" ".join(w for w, _, _ in group), start=start, end=end))
    return segments


def build_caption_segments(
    scenes: Sequence[SceneAsset],
    scene_durations: Sequence[float],
    audio_speeds: Optional[Mapping[int, float]] = None
) -> List[CaptionSegment]:
    """
    Absolute caption timeline for all scenes.

    Args:
        scenes: Scenes in playback order
        scene_durations: Effective duration of each scene on the timeline
        audio_speeds: Narration speed factor per scene index, where synced

    Returns:
        Captions offset by the cumulative duration of preceding scenes
    """
    segments: List[CaptionSegment] = []
    offset = 0.0
    for scene, duration in zip(scenes, scene_durations):
        if scene.word_timestamps:
            speed = (audio_speeds or {}).get(scene.index, 1.0)
            local = segment_word_timestamps(scene.word_timestamps, speed)
        else:
            local = segment_scene_text(scene.narration_text, duration)
        segments.extend(
            CaptionSegment(text=s.text, start=offset + s.start, end=offset + s.end)
            for s in local
        )
        offset += duration
    return segments


def format_srt_time(seconds: float) -> str:
    """Seconds to ``HH:MM:SS,mmm``."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, remainder = divmod(total_ms, 3600 * 1000)
    minutes, remainder = divmod(remainder, 60 * 1000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def render_srt(segments: Sequence[CaptionSegment]) -> str:
    """SRT document for the given captions."""
    blocks = [
        f"{i}\n{format_srt_time(s.start)} --> {format_srt_time(s.end)}\n{s.text}\n"
        for i, s in enumerate(segments, start=1)
    ]
    return "\n".join(blocks)


def write_srt(segments: Sequence[CaptionSegment], path: Path) -> Path:
    """Write SRT as UTF-8 with a BOM so right-to-left scripts render."""
    path.write_text(render_srt(segments), encoding="utf-8-sig")
    return path


def build_caption_burn_command(video: Path, srt: Path, output: Path) -> FFmpegCommand:
    """Burn captions into the frame, audio copied."""
    return FFmpegCommand(
        output=output,
        video_filters=[subtitles(srt, CAPTION_FORCE_STYLE)],
        output_options=[
            "-c:v", OUTPUT_VIDEO_CODEC,
            "-preset", FFMPEG_PRESET,
            "-crf", str(FFMPEG_CRF),
            "-c:a", "copy",
            "-movflags", "+faststart",
        ]
    ).add_input(video)


async def burn_captions(
    video: Path,
    scenes: Sequence[SceneAsset],
    scene_durations: Sequence[float],
    registry: WorkingFileRegistry,
    job_id: UUID,
    audio_speeds: Optional[Mapping[int, float]] = None
) -> Path:
    """
    Burn narration captions into the video.

    Args:
        video: Video with audio
        scenes: Scenes in playback order
        scene_durations: Effective scene durations from the timeline
        registry: Job's working file registry
        job_id: Job ID for logging
        audio_speeds: Narration speed factor per synced scene index

    Returns:
        Captioned video, or the input unchanged when there is no caption text

    Raises:
        CaptionBurnError: If writing the captions or FFmpeg fails
    """
    segments = build_caption_segments(scenes, scene_durations, audio_speeds)
    if not segments:
        logger.warning("No caption text found, skipping burn-in", extra={"job_id": str(job_id)})
        return video

    srt_path = registry.new_path("captions", ".srt")
    try:
        write_srt(segments, srt_path)
    except OSError as e:
        raise CaptionBurnError(f"Failed to write captions file: {e}", job_id=job_id) from e

    output = registry.new_path("with_captions", ".mp4")
    await run_ffmpeg_command(build_caption_burn_command(video, srt_path, output), job_id, error_cls=CaptionBurnError)
    logger.info(
        f"Burned {len(segments)} captions",
        extra={"job_id": str(job_id), "caption_count": len(segments)}
    )
    return output
