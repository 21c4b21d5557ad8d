"""
Error handling.

Custom exception classes for consistent error handling across the export pipeline.
"""

from typing import Optional
from uuid import UUID


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        job_id: Optional[UUID] = None,
        code: Optional[str] = None
    ):
        """
        Initialize pipeline error.

        Args:
            message: Error message
            job_id: Optional job ID associated with the error
            code: Optional error code for categorization
        """
        self.message = message
        self.job_id = job_id
        self.code = code
        super().__init__(self.message)


class ConfigError(PipelineError):
    """Configuration errors (missing env vars, invalid settings, missing binaries)."""
    pass


class ValidationError(PipelineError):
    """Input validation errors."""
    pass


class RetryableError(PipelineError):
    """Error that can be retried."""
    pass


class ExportError(PipelineError):
    """
    Video export failures.

    Carries the pipeline stage and, where applicable, the scene index that
    failed so the caller gets one message describing where the job broke.
    """

    default_stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        scene_index: Optional[int] = None,
        job_id: Optional[UUID] = None,
        code: Optional[str] = None
    ):
        """
        Initialize export error.

        Args:
            message: Error message
            stage: Pipeline stage that failed (defaults to the class stage)
            scene_index: Optional 0-based index of the offending scene
            job_id: Optional job ID associated with the error
            code: Optional error code for categorization
        """
        self.stage = stage or self.default_stage
        self.scene_index = scene_index
        super().__init__(message, job_id, code)

    def __str__(self) -> str:
        prefix = []
        if self.stage:
            prefix.append(f"stage={self.stage}")
        if self.scene_index is not None:
            prefix.append(f"scene={self.scene_index}")
        if prefix:
            return f"[{' '.join(prefix)}] {self.message}"
        return self.message


class AssetFetchError(ExportError):
    """Asset download failed after retries or payload was too small."""
    default_stage = "fetching"


class TimelineBuildError(ExportError):
    """A motion clip, transition or concatenation failed in the media engine."""
    default_stage = "building_timeline"


class SyncComputationError(ExportError):
    """Invalid input to the dual-speed sync computation."""
    default_stage = "building_timeline"


class AudioMergeError(ExportError):
    """Narration concatenation, merge or music mixing failed."""
    default_stage = "merging_audio"


class CaptionBurnError(ExportError):
    """Caption file generation or burn-in failed."""
    default_stage = "burning_captions"


class UploadError(ExportError):
    """Final format conversion or artifact upload failed."""
    default_stage = "finalizing"


class ExportCancelledError(ExportError):
    """Caller cancelled the export between stages."""
    pass


__all__ = [
    "PipelineError",
    "ConfigError",
    "ValidationError",
    "RetryableError",
    "ExportError",
    "AssetFetchError",
    "TimelineBuildError",
    "SyncComputationError",
    "AudioMergeError",
    "CaptionBurnError",
    "UploadError",
    "ExportCancelledError",
]
