"""
Video exporter configuration.

Centralized configuration for FFmpeg settings, output parameters, sync bounds
and caption timing.
"""
import os
from typing import Tuple

from shared.logging import get_logger

logger = get_logger("video_exporter.config")

# FFmpeg settings
FFMPEG_PRESET = os.getenv("FFMPEG_PRESET", "medium")
FFMPEG_CLIP_PRESET = "ultrafast"  # Intermediate per-scene clips
FFMPEG_CRF = 23

# Video output settings
OUTPUT_FPS = 25
OUTPUT_PIX_FMT = "yuv420p"
OUTPUT_VIDEO_CODEC = "libx264"
OUTPUT_AUDIO_CODEC = "aac"
OUTPUT_AUDIO_BITRATE = "192k"

# Narration concatenation output
NARRATION_CODEC = "libmp3lame"
NARRATION_SAMPLE_RATE = 44100
NARRATION_CHANNELS = 2

# Asset fetcher
MIN_DOWNLOAD_BYTES = int(os.getenv("MIN_DOWNLOAD_BYTES", "100"))  # Smaller payloads are corrupt
DOWNLOAD_MAX_ATTEMPTS = 3
DOWNLOAD_BASE_DELAY = float(os.getenv("DOWNLOAD_BASE_DELAY", "1.0"))
DOWNLOAD_CONCURRENCY = int(os.getenv("DOWNLOAD_CONCURRENCY", "4"))
DOWNLOAD_TIMEOUT = 120.0
DOWNLOAD_CONNECT_TIMEOUT = 30.0

# Dual-speed sync bounds
VIDEO_SPEED_MIN = 0.4
VIDEO_SPEED_MAX = 1.5
AUDIO_SPEED_MIN = 0.85
AUDIO_SPEED_MAX = 1.1
SYNC_TOLERANCE = 0.3  # Seconds; smaller mismatches are left alone
ATEMPO_MIN = 0.5  # Single-pass atempo range
ATEMPO_MAX = 2.0

# Timeline
STATIC_TRANSITION = "fade"
STATIC_TRANSITION_DURATION = 0.5
ANIMATION_OVERSCALE = 2  # Internal render scale before the motion crop
END_PADDING_SECONDS = 1.0  # Added to the last scene so the final words are not cut

# Captions
CAPTION_SINGLE_SEGMENT_MAX_DURATION = 5.0
CAPTION_IDEAL_SEGMENT_DURATION = 3.5
CAPTION_SENTENCE_RATIO = 1.5
CAPTION_MIN_WORDS = 4
CAPTION_MAX_WORDS = 12
CAPTION_WORDS_PER_TIMESTAMP_GROUP = 4
CAPTION_MIN_SEGMENT_DURATION = 0.5
CAPTION_FORCE_STYLE = (
    "FontSize=20,PrimaryColour=&HFFFFFF,OutlineColour=&H000000,"
    "Outline=2,Shadow=1,MarginV=25,Alignment=2"
)

# Custom music
MUSIC_FADE_OUT_SECONDS = 1.5

# Resolution tiers (landscape width x height)
RESOLUTION_TIERS = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4k": (3840, 2160),
}
DEFAULT_RESOLUTION_TIER = "1080p"


def get_output_dimensions(quality: str = DEFAULT_RESOLUTION_TIER, aspect_ratio: str = "16:9") -> Tuple[int, int]:
    """
    Get output width and height from resolution tier and aspect ratio.

    - 16:9 -> tier as-is (e.g. 1920x1080)
    - 9:16 -> tier rotated (e.g. 1080x1920)
    - 1:1 -> tier height on both sides (e.g. 1080x1080)

    Unknown tiers fall back to 1080p.

    Args:
        quality: Resolution tier ("720p", "1080p", "4k")
        aspect_ratio: Aspect ratio string ("16:9", "9:16", "1:1")

    Returns:
        Tuple of (width, height) in pixels

    Raises:
        ValueError: If aspect ratio is not supported
    """
    tier = quality.lower() if quality else DEFAULT_RESOLUTION_TIER
    if tier not in RESOLUTION_TIERS:
        logger.warning(
            f"Unknown resolution tier '{quality}', falling back to {DEFAULT_RESOLUTION_TIER}",
            extra={"quality": quality}
        )
        tier = DEFAULT_RESOLUTION_TIER
    width, height = RESOLUTION_TIERS[tier]

    if aspect_ratio == "16:9":
        return width, height
    if aspect_ratio == "9:16":
        return height, width
    if aspect_ratio == "1:1":
        return height, height
    raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")
