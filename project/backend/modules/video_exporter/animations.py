"""
Camera-motion presets and color-grade effects for animated image clips.

Every motion curve eases with pow(on/frames, 1.5) over the whole clip so
there is no frame-to-frame jump. Images are scaled up before zoompan crops
them back down to the output size, which keeps sub-pixel motion smooth.
"""
from pathlib import Path
from types import MappingProxyType
from typing import List, Mapping, Optional

from .config import (
    ANIMATION_OVERSCALE,
    FFMPEG_CLIP_PRESET,
    FFMPEG_CRF,
    OUTPUT_FPS,
    OUTPUT_PIX_FMT,
    OUTPUT_VIDEO_CODEC,
)
from .ffmpeg_command import FFmpegCommand, fmt, scale_crop, zoompan

DEFAULT_ANIMATION = "ken-burns"

# Fixed zoom giving pans and slides room to travel inside the frame
PAN_ZOOM = 1.1
SLIDE_ZOOM = 1.15

X_ROOM = "(iw-iw/zoom)"
Y_ROOM = "(ih-ih/zoom)"
X_CENTER = f"{X_ROOM}/2"
Y_CENTER = f"{Y_ROOM}/2"

EFFECT_FILTERS: Mapping[str, str] = MappingProxyType({
    "vignette": "vignette=a=PI/4",
    "sepia": "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131",
    "black-white": "hue=s=0",
    "warm": "eq=saturation=1.15:gamma_r=1.1:gamma_b=0.9",
    "cool": "eq=saturation=0.9:gamma_r=0.9:gamma_b=1.15",
    "grain": "noise=c0s=12:c0f=t+u",
    "dramatic": "eq=contrast=1.25:saturation=1.2:brightness=-0.02",
    "cinematic": "eq=contrast=1.15:brightness=-0.03:saturation=1.1,colorbalance=rs=0.05:gs=-0.02:bs=0.08",
    "dreamy": "eq=brightness=0.05:contrast=0.95:saturation=0.9",
    "glow": "eq=brightness=0.08:contrast=1.05:saturation=1.1",
})

ANIMATIONS = (
    "zoom-in", "zoom-out", "pan-left", "pan-right", "pan-up", "pan-down",
    "rotate-cw", "rotate-ccw", "slide-left", "slide-right", "ken-burns",
)


def frame_count(duration: float, fps: int = OUTPUT_FPS) -> int:
    """Frames needed to cover ``duration`` seconds (at least one)."""
    return max(1, round(duration * fps))


def motion_filters(
    animation: Optional[str],
    duration: float,
    width: int,
    height: int,
    fps: int = OUTPUT_FPS
) -> List[str]:
    """
    Filter chain for one camera-motion preset.

    Args:
        animation: Preset name; None or unknown falls back to ken-burns
        duration: Clip duration in seconds
        width: Output width
        height: Output height
        fps: Output frame rate

    Returns:
        Filters to append after the overscaled input
    """
    frames = frame_count(duration, fps)
    ease = f"pow(on/{frames},1.5)"

    def zp(zoom: str, x: Optional[str] = None, y: Optional[str] = None) -> str:
        return zoompan(zoom, frames, width, height, fps, x=x, y=y)

    name = animation if animation in ANIMATIONS else DEFAULT_ANIMATION

    if name == "zoom-in":
        return [zp(f"1+0.05*{ease}")]
    if name == "zoom-out":
        return [zp(f"1.05-0.05*{ease}")]
    if name == "pan-right":
        return [zp(fmt(PAN_ZOOM), x=f"{X_CENTER}-{ease}*{X_CENTER}", y=Y_CENTER)]
    if name == "pan-left":
        return [zp(fmt(PAN_ZOOM), x=f"{X_CENTER}+{ease}*{X_CENTER}", y=Y_CENTER)]
    if name == "pan-up":
        return [zp(fmt(PAN_ZOOM), x=X_CENTER, y=f"{Y_CENTER}+{ease}*{Y_CENTER}")]
    if name == "pan-down":
        return [zp(fmt(PAN_ZOOM), x=X_CENTER, y=f"{Y_CENTER}-{ease}*{Y_CENTER}")]
    if name in ("rotate-cw", "rotate-ccw"):
        # Up to PI/12 over the clip; pad first so corners stay covered
        sign = "" if name == "rotate-cw" else "-"
        return [
            zp("1"),
            "pad=iw*1.5:ih*1.5:(ow-iw)/2:(oh-ih)/2",
            f"rotate='{sign}(PI/12)*t/{fmt(duration)}':c=none",
            f"crop={width}:{height}",
        ]
    if name == "slide-left":
        return [zp(fmt(SLIDE_ZOOM), x=f"{X_ROOM}*(1-{ease})", y=Y_CENTER)]
    if name == "slide-right":
        return [zp(fmt(SLIDE_ZOOM), x=f"{X_ROOM}*{ease}", y=Y_CENTER)]
    return [zp(f"1+0.03*{ease}")]


def effect_filter(effect: Optional[str]) -> Optional[str]:
    """Color-grade filter for an effect name; None for no effect."""
    if not effect or effect == "none":
        return None
    return EFFECT_FILTERS.get(effect)


def build_animated_clip_command(
    image: Path,
    output: Path,
    duration: float,
    width: int,
    height: int,
    animation: Optional[str] = None,
    effect: Optional[str] = None
) -> FFmpegCommand:
    """
    Turn one still image into a moving clip of exactly ``duration`` seconds.

    Args:
        image: Source image
        output: Clip path
        duration: Clip duration in seconds
        width: Output width
        height: Output height
        animation: Camera-motion preset
        effect: Optional color-grade preset

    Returns:
        FFmpegCommand ready to run
    """
    filters = [scale_crop(width * ANIMATION_OVERSCALE, height * ANIMATION_OVERSCALE)]
    filters.extend(motion_filters(animation, duration, width, height))
    grade = effect_filter(effect)
    if grade:
        filters.append(grade)
    filters.append(f"format={OUTPUT_PIX_FMT}")

    return FFmpegCommand(
        output=output,
        video_filters=filters,
        output_options=[
            "-t", fmt(duration),
            "-r", str(OUTPUT_FPS),
            "-c:v", OUTPUT_VIDEO_CODEC,
            "-preset", FFMPEG_CLIP_PRESET,
            "-crf", str(FFMPEG_CRF),
            "-pix_fmt", OUTPUT_PIX_FMT,
        ]
    ).add_input(image)
