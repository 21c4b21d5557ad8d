"""
Utility functions for video exporter module.

FFmpeg command execution under a bounded pool, duration probing, and
availability checks.
"""
import asyncio
import functools
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Type, Union
from uuid import UUID

from shared.config import settings
from shared.errors import ConfigError, ExportError
from shared.logging import get_logger

from .ffmpeg_command import FFmpegCommand

logger = get_logger("video_exporter.utils")

_engine_semaphore: Optional[asyncio.Semaphore] = None
_engine_semaphore_loop: Optional[asyncio.AbstractEventLoop] = None


def check_ffmpeg_available() -> bool:
    """
    Check if FFmpeg and FFprobe are installed and available in PATH.

    Returns:
        True if both binaries are available, False otherwise
    """
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def require_ffmpeg() -> None:
    """
    Fail fast when the media engine is missing.

    Raises:
        ConfigError: If ffmpeg or ffprobe is not on PATH
    """
    if not check_ffmpeg_available():
        raise ConfigError(
            "FFmpeg not found. Please install FFmpeg:\n"
            "  macOS: brew install ffmpeg\n"
            "  Linux: apt-get install ffmpeg or yum install ffmpeg\n"
            "  Windows: Download from https://ffmpeg.org/"
        )


def get_engine_semaphore() -> asyncio.Semaphore:
    """Process-wide pool limiting concurrent engine subprocesses (one per event loop)."""
    global _engine_semaphore, _engine_semaphore_loop
    loop = asyncio.get_running_loop()
    if _engine_semaphore is None or _engine_semaphore_loop is not loop:
        _engine_semaphore = asyncio.Semaphore(settings.ffmpeg_max_concurrency)
        _engine_semaphore_loop = loop
    return _engine_semaphore


async def _kill_process(process: asyncio.subprocess.Process) -> None:
    """Kill the child and reap it; no-op if it already exited."""
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


async def run_ffmpeg_command(
    command: Union[FFmpegCommand, List[str]],
    job_id: UUID,
    error_cls: Type[ExportError] = ExportError,
    scene_index: Optional[int] = None,
    timeout: Optional[int] = None
) -> None:
    """
    Run an FFmpeg command inside the bounded engine pool.

    No retry: a failed engine call fails the stage.

    Args:
        command: FFmpegCommand (rendered here) or a ready argument list
        job_id: Job ID for logging
        error_cls: Stage-specific error raised on failure
        scene_index: Scene the command belongs to, if any
        timeout: Timeout in seconds (default: settings.ffmpeg_timeout)

    Raises:
        error_cls: If the command exits non-zero, times out or cannot start
    """
    cmd = command.render() if isinstance(command, FFmpegCommand) else list(command)
    timeout = timeout or settings.ffmpeg_timeout

    async with get_engine_semaphore():
        logger.info(
            f"Running FFmpeg command: {' '.join(cmd)}",
            extra={"job_id": str(job_id), "scene_index": scene_index}
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise error_cls(f"FFmpeg could not be started: {e}", scene_index=scene_index, job_id=job_id) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await _kill_process(process)
            logger.error(
                f"FFmpeg command timeout after {timeout}s",
                extra={"job_id": str(job_id), "scene_index": scene_index}
            )
            raise error_cls(
                f"FFmpeg command timeout after {timeout}s",
                scene_index=scene_index,
                job_id=job_id
            ) from e
        except BaseException:
            # Cancelled while waiting: the child must not outlive the job
            await _kill_process(process)
            logger.warning(
                "FFmpeg command interrupted, process killed",
                extra={"job_id": str(job_id), "scene_index": scene_index}
            )
            raise

    if process.returncode != 0:
        error_msg = stderr.decode(errors="replace").strip() if stderr else "Unknown FFmpeg error"
        # Keep the tail; FFmpeg prints the actual cause last
        error_tail = error_msg[-1000:]
        logger.error(
            f"FFmpeg command failed: {error_tail}",
            extra={"job_id": str(job_id), "scene_index": scene_index, "returncode": process.returncode}
        )
        raise error_cls(f"FFmpeg command failed: {error_tail}", scene_index=scene_index, job_id=job_id)


async def get_media_duration(media_path: Path) -> Optional[float]:
    """
    Get media duration using ffprobe.

    Probes share the engine pool with FFmpeg commands.

    Args:
        media_path: Path to audio or video file

    Returns:
        Duration in seconds, or None if probing fails
    """
    loop = asyncio.get_running_loop()
    try:
        async with get_engine_semaphore():
            result = await loop.run_in_executor(
                None,
                functools.partial(
                    subprocess.run,
                    [
                        "ffprobe",
                        "-v", "error",
                        "-show_entries", "format=duration",
                        "-of", "default=noprint_wrappers=1:nokey=1",
                        str(media_path)
                    ],
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=30
                )
            )
        return float(result.stdout.strip())
    except (FileNotFoundError, subprocess.CalledProcessError, ValueError, subprocess.TimeoutExpired) as e:
        logger.warning(
            f"Failed to get media duration: {e}",
            extra={"media_path": str(media_path)}
        )
        return None
