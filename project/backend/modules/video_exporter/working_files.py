"""
Working file registry for the video exporter.

Every temporary artifact a job creates is registered here at creation time and
removed exactly once when the job ends, whatever the outcome.
"""
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union
from uuid import UUID, uuid4

from shared.config import settings
from shared.logging import get_logger

logger = get_logger("video_exporter.working_files")


class WorkingFileRegistry:
    """Job-owned list of temporary files, safe to use from coroutines and threads."""

    def __init__(self, job_id: UUID, root: Optional[Union[str, Path]] = None):
        self.job_id = job_id
        self.root = Path(root or settings.export_temp_dir)
        self._lock = threading.Lock()
        self._paths: List[Path] = []

    def new_path(self, label: str, suffix: str) -> Path:
        """
        Allocate a globally unique path in the shared temp directory and register it.

        Args:
            label: Short human-readable tag (e.g. "scene3_clip")
            suffix: File extension including the dot

        Returns:
            Registered path; the file itself is not created
        """
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{uuid4().hex}_{label}{suffix}"
        return self.register(path)

    def register(self, path: Union[str, Path]) -> Path:
        """Track an existing or future file for cleanup."""
        path = Path(path)
        with self._lock:
            if path not in self._paths:
                self._paths.append(path)
        return path

    @property
    def paths(self) -> List[Path]:
        """Snapshot of registered paths."""
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def release_all(self) -> int:
        """
        Delete every registered file and empty the registry.

        Returns:
            Number of files removed from disk
        """
        with self._lock:
            paths, self._paths = self._paths, []

        removed = 0
        for path in paths:
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning(
                    f"Failed to remove working file {path}: {e}",
                    extra={"job_id": str(self.job_id), "path": str(path)}
                )

        logger.info(
            f"Released {len(paths)} working files ({removed} on disk)",
            extra={"job_id": str(self.job_id), "registered": len(paths), "removed": removed}
        )
        return removed


@asynccontextmanager
async def working_files(job_id: UUID, root: Optional[Union[str, Path]] = None) -> AsyncIterator[WorkingFileRegistry]:
    """
    Context manager for a job's working files with automatic cleanup.

    Args:
        job_id: Owning job
        root: Temp directory (defaults to settings.export_temp_dir)

    Yields:
        WorkingFileRegistry for the job
    """
    registry = WorkingFileRegistry(job_id, root)
    try:
        yield registry
    finally:
        registry.release_all()
