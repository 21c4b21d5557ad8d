"""
Typed FFmpeg command builder.

Every engine invocation in the exporter is described by an FFmpegCommand and
rendered to an argument list only at the call boundary. Filter expressions are
produced by the helpers below so call sites never concatenate raw strings.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import ATEMPO_MIN, ATEMPO_MAX

PathLike = Union[str, Path]


@dataclass
class InputSpec:
    """One ``-i`` input with the options that precede it."""

    path: PathLike
    options: List[str] = field(default_factory=list)


@dataclass
class FFmpegCommand:
    """Declarative FFmpeg invocation."""

    output: PathLike
    inputs: List[InputSpec] = field(default_factory=list)
    video_filters: List[str] = field(default_factory=list)
    audio_filters: List[str] = field(default_factory=list)
    filter_complex: List[str] = field(default_factory=list)
    maps: List[str] = field(default_factory=list)
    output_options: List[str] = field(default_factory=list)
    overwrite: bool = True
    binary: str = "ffmpeg"

    def add_input(self, path: PathLike, *options: str) -> "FFmpegCommand":
        """Append an input; returns self for chaining."""
        self.inputs.append(InputSpec(path=path, options=list(options)))
        return self

    def render(self) -> List[str]:
        """Render to the argument list passed to the subprocess."""
        if not self.inputs:
            raise ValueError("FFmpegCommand requires at least one input")

        cmd = [self.binary]
        if self.overwrite:
            cmd.append("-y")
        for spec in self.inputs:
            cmd.extend(spec.options)
            cmd.extend(["-i", str(spec.path)])
        if self.filter_complex:
            cmd.extend(["-filter_complex", ";".join(self.filter_complex)])
        if self.video_filters:
            cmd.extend(["-vf", ",".join(self.video_filters)])
        if self.audio_filters:
            cmd.extend(["-af", ",".join(self.audio_filters)])
        for stream in self.maps:
            cmd.extend(["-map", stream])
        cmd.extend(self.output_options)
        cmd.append(str(self.output))
        return cmd


def fmt(value: float, places: int = 3) -> str:
    """Format a number for a filter argument without trailing zeros."""
    text = f"{value:.{places}f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def graph(inputs: Sequence[str], body: str, output: Optional[str] = None) -> str:
    """Build one filtergraph chain: ``[in0][in1]body[out]``."""
    labels = "".join(f"[{label}]" for label in inputs)
    tail = f"[{output}]" if output else ""
    return f"{labels}{body}{tail}"


def scale_crop(width: int, height: int) -> str:
    """Fill the frame then center-crop to the exact output size."""
    return f"scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height}"


def zoompan(
    zoom: str,
    frames: int,
    width: int,
    height: int,
    fps: int,
    x: Optional[str] = None,
    y: Optional[str] = None
) -> str:
    """Zoompan filter; expressions are quoted so commas inside stay literal."""
    parts = [f"zoompan=z='{zoom}'"]
    if x is not None:
        parts.append(f"x='{x}'")
    if y is not None:
        parts.append(f"y='{y}'")
    parts.extend([f"d={frames}", f"s={width}x{height}", f"fps={fps}"])
    return ":".join(parts)


def xfade(transition: str, duration: float, offset: float) -> str:
    """Cross-transition between two video streams starting at ``offset``."""
    return f"xfade=transition={transition}:duration={fmt(duration)}:offset={fmt(offset)}"


def concat(count: int, video: bool = True, audio: bool = False) -> str:
    """Concat filter over ``count`` segments."""
    return f"concat=n={count}:v={int(video)}:a={int(audio)}"


def setpts(speed: float) -> str:
    """Video time-stretch: speed < 1 slows the clip down."""
    return f"setpts={1 / speed:.4f}*PTS"


def atempo_chain(speed: float) -> str:
    """
    Pitch-preserving audio time-stretch.

    atempo only accepts factors inside [0.5, 2.0] per pass, so larger changes
    are chained as repeated bounded passes.
    """
    if speed <= 0:
        raise ValueError(f"atempo speed must be positive, got {speed}")
    steps: List[str] = []
    remaining = speed
    while remaining > ATEMPO_MAX:
        steps.append(f"atempo={ATEMPO_MAX:.1f}")
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        steps.append(f"atempo={ATEMPO_MIN:.1f}")
        remaining /= ATEMPO_MIN
    steps.append(f"atempo={remaining:.4f}")
    return ",".join(steps)


def volume(gain: float) -> str:
    """Linear gain; 1.0 leaves the stream untouched."""
    return f"volume={fmt(gain, 2)}"


def volume_from_percent(percent: int) -> str:
    """Map a 0-100 slider value to a linear gain filter."""
    return volume(max(0, min(100, percent)) / 100)


def aloop_forever() -> str:
    """Loop an audio stream indefinitely."""
    return "aloop=loop=-1:size=2e+09"


def amix(inputs: int, duration: str = "first") -> str:
    """Mix audio streams; the output length follows ``duration``."""
    return f"amix=inputs={inputs}:duration={duration}"


def afade_out(start: float, duration: float) -> str:
    """Fade audio out starting at ``start`` seconds."""
    return f"afade=t=out:st={fmt(max(0.0, start))}:d={fmt(duration)}"


def escape_filter_path(path: PathLike) -> str:
    """Escape a file path for use inside a filter argument."""
    text = str(path).replace("\\", "/")
    return text.replace(":", "\\:").replace("'", "\\'")


def subtitles(path: PathLike, force_style: str) -> str:
    """Burn an SRT file into the frame with a forced ASS style."""
    return f"subtitles='{escape_filter_path(path)}':force_style='{force_style}'"
