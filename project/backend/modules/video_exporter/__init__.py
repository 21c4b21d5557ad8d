"""
Video exporter module.

Final stage of the short-form video pipeline. Fetches per-scene assets,
builds the timeline (static, animated or generated video), merges narration
and music, burns captions, and uploads the finished artifact.
"""

from modules.video_exporter.process import process
from modules.video_exporter.remix import remix

__all__ = ["process", "remix"]
