"""
Data models for the export pipeline.

This module exports all Pydantic models used across pipeline modules.
"""

from .export import (
    RenderMode,
    SyncMethod,
    AnimationName,
    VisualEffectName,
    Pacing,
    WordTimestamp,
    SceneAsset,
    ExportJob,
    RemixJob,
    SyncResult,
    ExportResult,
)

__all__ = [
    # Enums and literals
    "RenderMode",
    "SyncMethod",
    "AnimationName",
    "VisualEffectName",
    "Pacing",
    # Request models
    "WordTimestamp",
    "SceneAsset",
    "ExportJob",
    "RemixJob",
    # Result models
    "SyncResult",
    "ExportResult",
]
