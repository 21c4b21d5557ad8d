"""
Export-related data models.

Defines SceneAsset, ExportJob, RemixJob, SyncResult and ExportResult models
for the media composition pipeline. Request models are frozen: the pipeline
reads them and never mutates them.
"""

from enum import Enum
from typing import Literal, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class RenderMode(str, Enum):
    """Timeline construction strategy."""

    STATIC = "static"
    ANIMATED = "animated"
    GENERATED_VIDEO = "generatedVideo"


class SyncMethod(str, Enum):
    """How the dual-speed sync reconciled a clip with its narration."""

    NONE = "none"
    VIDEO_SLOWDOWN = "videoSlowdown"
    AUDIO_SLOWDOWN = "audioSlowdown"
    DUAL_SLOWDOWN = "dualSlowdown"
    BALANCED = "balanced"


AnimationName = Literal[
    "zoom-in", "zoom-out", "pan-left", "pan-right", "pan-up", "pan-down",
    "rotate-cw", "rotate-ccw", "slide-left", "slide-right", "ken-burns"
]

VisualEffectName = Literal[
    "none", "vignette", "sepia", "black-white", "warm", "cool", "grain",
    "dramatic", "cinematic", "dreamy", "glow"
]

Pacing = Literal["slow", "medium", "fast"]


class WordTimestamp(BaseModel):
    """One spoken word with its timing inside the scene's narration."""

    model_config = ConfigDict(frozen=True)

    word: str
    start_time: float = Field(ge=0, description="Start offset in seconds, relative to scene start")
    end_time: float = Field(ge=0, description="End offset in seconds, relative to scene start")

    @model_validator(mode="after")
    def validate_order(self) -> "WordTimestamp":
        """End must not precede start."""
        if self.end_time < self.start_time:
            raise ValueError(
                f"Word '{self.word}' ends ({self.end_time}) before it starts ({self.start_time})"
            )
        return self


class SceneAsset(BaseModel):
    """One scene's contribution to the timeline."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="0-based playback position")
    duration_seconds: float = Field(gt=0, description="Target duration in seconds")
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    narration_audio_url: Optional[str] = None
    narration_text: str = ""
    animation_name: Optional[AnimationName] = None
    visual_effect_name: Optional[VisualEffectName] = None
    transition_to_next: Optional[str] = Field(
        default=None,
        description="Creative transition id; absent or 'none' on the last scene"
    )
    transition_duration_seconds: float = Field(default=0.5, ge=0)
    mood: Optional[str] = Field(default=None, description="Voice mood, used for transition planning")
    word_timestamps: List[WordTimestamp] = Field(default_factory=list)


class ExportJob(BaseModel):
    """Unit of work for the export pipeline."""

    model_config = ConfigDict(frozen=True)

    job_id: UUID = Field(default_factory=uuid4)
    scenes: List[SceneAsset] = Field(min_length=1)
    render_mode: RenderMode
    background_music_url: Optional[str] = None
    voice_volume: int = Field(default=100, ge=0, le=100)
    music_volume: int = Field(default=30, ge=0, le=100)
    output_format: Literal["mp4", "mov", "webm"] = "mp4"
    output_quality: str = Field(default="1080p", description="Resolution tier: 720p, 1080p or 4k")
    aspect_ratio: Literal["16:9", "9:16", "1:1"] = "9:16"
    captions_enabled: bool = False
    trim_music_to_video: bool = False
    save_volume_control_assets: bool = False
    auto_transitions: bool = False
    pacing: Pacing = "medium"

    @field_validator("scenes")
    @classmethod
    def validate_scene_indices(cls, v: List[SceneAsset]) -> List[SceneAsset]:
        """Scene indices must be unique and cover 0..N-1."""
        indices = sorted(scene.index for scene in v)
        if indices != list(range(len(v))):
            raise ValueError(
                f"Scene indices must be unique and contiguous from 0, got {indices}"
            )
        return v

    @property
    def ordered_scenes(self) -> List[SceneAsset]:
        """Scenes in playback order."""
        return sorted(self.scenes, key=lambda s: s.index)

    @property
    def has_narration(self) -> bool:
        """True when at least one scene carries narration audio."""
        return any(scene.narration_audio_url for scene in self.scenes)

    @field_serializer("job_id")
    def serialize_uuid(self, value: UUID) -> str:
        """Serialize UUID to string."""
        return str(value)


class RemixJob(BaseModel):
    """Re-mix an exported video's narration and music at new volumes."""

    model_config = ConfigDict(frozen=True)

    job_id: UUID = Field(default_factory=uuid4)
    video_url: str = Field(description="Muted base video")
    voiceover_url: str
    music_url: str
    voice_volume: int = Field(default=100, ge=0, le=100)
    music_volume: int = Field(default=30, ge=0, le=100)
    output_format: Literal["mp4", "mov", "webm"] = "mp4"

    @field_serializer("job_id")
    def serialize_uuid(self, value: UUID) -> str:
        """Serialize UUID to string."""
        return str(value)


class SyncResult(BaseModel):
    """Output of the dual-speed sync computation."""

    model_config = ConfigDict(frozen=True)

    target_duration_seconds: float
    video_speed_factor: float
    audio_speed_factor: float
    method: SyncMethod


class ExportResult(BaseModel):
    """Summary metadata for an uploaded export."""

    artifact_url: str
    duration_seconds: float
    size_bytes: int
    video_base_url: Optional[str] = Field(default=None, description="Muted copy of the final video")
    voiceover_url: Optional[str] = None
    music_url: Optional[str] = None
