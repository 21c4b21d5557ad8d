"""
Asset download logic for video exporter module.

Downloads scene images, video clips, narration and music over HTTP in
parallel, verifies payload size and registers every file for cleanup.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Literal, Optional
from urllib.parse import urlparse
from uuid import UUID

import httpx

from shared.errors import AssetFetchError, RetryableError
from shared.logging import get_logger
from shared.models.export import ExportJob, RenderMode, SceneAsset
from shared.retry import retry_with_backoff

from .config import (
    DOWNLOAD_BASE_DELAY,
    DOWNLOAD_CONCURRENCY,
    DOWNLOAD_CONNECT_TIMEOUT,
    DOWNLOAD_MAX_ATTEMPTS,
    DOWNLOAD_TIMEOUT,
    MIN_DOWNLOAD_BYTES,
)
from .working_files import WorkingFileRegistry

logger = get_logger("video_exporter.downloader")

AssetKind = Literal["image", "video", "audio"]

DEFAULT_SUFFIXES: Dict[str, str] = {
    "image": ".png",
    "video": ".mp4",
    "audio": ".mp3",
}

# Client error statuses worth another attempt
RETRYABLE_STATUS_CODES = frozenset({408, 429})


@dataclass(frozen=True)
class SceneFiles:
    """Local copies of one scene's inputs."""

    index: int
    image: Optional[Path] = None
    video: Optional[Path] = None
    narration: Optional[Path] = None


def build_http_client() -> httpx.AsyncClient:
    """HTTP client shared by all downloads of one job."""
    timeout = httpx.Timeout(DOWNLOAD_TIMEOUT, connect=DOWNLOAD_CONNECT_TIMEOUT)
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


def _suffix_for(url: str, kind: AssetKind) -> str:
    """File extension from the URL path, falling back to a per-kind default."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if suffix and len(suffix) <= 5:
        return suffix
    return DEFAULT_SUFFIXES[kind]


@retry_with_backoff(max_attempts=DOWNLOAD_MAX_ATTEMPTS, base_delay=DOWNLOAD_BASE_DELAY)
async def _download_once(client: httpx.AsyncClient, url: str, dest: Path) -> int:
    """
    Single download attempt, streamed to ``dest``.

    Raises:
        RetryableError: On transport failure, server error status or undersized payload
        httpx.HTTPStatusError: On a client error status (not retried)
    """
    size = 0
    try:
        async with client.stream("GET", url) as response:
            if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
                raise RetryableError(f"HTTP error {response.status_code} downloading {url}")
            response.raise_for_status()
            with dest.open("wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
                    size += len(chunk)
    except httpx.HTTPStatusError:
        raise
    except httpx.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise RetryableError(f"Transport error downloading {url}: {e}") from e
    except OSError:
        dest.unlink(missing_ok=True)
        raise

    if size < MIN_DOWNLOAD_BYTES:
        dest.unlink(missing_ok=True)
        raise RetryableError(
            f"Downloaded file too small ({size} bytes, minimum {MIN_DOWNLOAD_BYTES}): {url}"
        )
    return size


async def fetch_asset(
    url: str,
    kind: AssetKind,
    registry: WorkingFileRegistry,
    job_id: UUID,
    client: httpx.AsyncClient,
    scene_index: Optional[int] = None,
    label: Optional[str] = None
) -> Path:
    """
    Download one remote asset into a registered working file.

    Args:
        url: Remote URL
        kind: "image", "video" or "audio"
        registry: Job's working file registry (path is registered before download)
        job_id: Job ID for logging
        client: Shared HTTP client
        scene_index: Scene the asset belongs to, if any
        label: Optional tag for the working file name

    Returns:
        Path to the downloaded file

    Raises:
        AssetFetchError: If every attempt failed, the payload was too small
            or the server refused the request with a client error
    """
    tag = label or (f"scene{scene_index}_{kind}" if scene_index is not None else kind)
    dest = registry.new_path(tag, _suffix_for(url, kind))

    logger.info(
        f"Downloading {kind} from {url}",
        extra={"job_id": str(job_id), "scene_index": scene_index, "kind": kind}
    )
    try:
        size = await _download_once(client, url, dest)
    except (RetryableError, httpx.HTTPStatusError, OSError) as e:
        dest.unlink(missing_ok=True)
        logger.error(
            f"Failed to download {kind}: {e}",
            extra={"job_id": str(job_id), "scene_index": scene_index, "url": url}
        )
        if isinstance(e, RetryableError):
            reason = f"after {DOWNLOAD_MAX_ATTEMPTS} attempts: {e}"
        elif isinstance(e, httpx.HTTPStatusError):
            reason = f"HTTP error {e.response.status_code} from {url}"
        else:
            reason = f"to {dest.name}: {e}"
        raise AssetFetchError(
            f"Failed to download {kind} {reason}",
            scene_index=scene_index,
            job_id=job_id
        ) from e

    logger.info(
        f"Downloaded {kind} ({size} bytes)",
        extra={"job_id": str(job_id), "scene_index": scene_index, "size": size}
    )
    return dest


async def fetch_scene_assets(
    job: ExportJob,
    registry: WorkingFileRegistry,
    client: httpx.AsyncClient
) -> List[SceneFiles]:
    """
    Download the inputs every scene needs for the job's render mode, in parallel.

    Static and animated modes fetch the image; generated-video mode fetches the
    clip, or the image for scenes without a clip. Narration is fetched whenever
    present. Every download finishes (or fails) before this returns so no
    write is still in flight when cleanup runs.

    Args:
        job: Export job
        registry: Job's working file registry
        client: Shared HTTP client

    Returns:
        SceneFiles in playback order

    Raises:
        AssetFetchError: If any download fails (first failure in scene order)
    """
    semaphore = asyncio.Semaphore(DOWNLOAD_CONCURRENCY)

    async def bounded(url: str, kind: AssetKind, scene_index: int) -> Path:
        async with semaphore:
            return await fetch_asset(url, kind, registry, job.job_id, client, scene_index=scene_index)

    async def fetch_scene(scene: SceneAsset) -> SceneFiles:
        tasks = {}
        if job.render_mode == RenderMode.GENERATED_VIDEO and scene.video_url:
            tasks["video"] = bounded(scene.video_url, "video", scene.index)
        elif scene.image_url:
            tasks["image"] = bounded(scene.image_url, "image", scene.index)
        if scene.narration_audio_url:
            tasks["narration"] = bounded(scene.narration_audio_url, "audio", scene.index)

        results = await asyncio.gather(*tasks.values(), return_exceptions=True)
        fetched = dict(zip(tasks.keys(), results))
        for result in fetched.values():
            if isinstance(result, BaseException):
                raise result
        return SceneFiles(
            index=scene.index,
            image=fetched.get("image"),
            video=fetched.get("video"),
            narration=fetched.get("narration")
        )

    scenes = job.ordered_scenes
    results = await asyncio.gather(*(fetch_scene(s) for s in scenes), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result

    logger.info(
        f"Downloaded assets for {len(results)} scenes",
        extra={"job_id": str(job.job_id), "count": len(results)}
    )
    return list(results)
