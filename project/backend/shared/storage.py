"""
Storage utilities.

Supabase Storage operations for uploading export artifacts.
"""

import asyncio
import mimetypes
from pathlib import Path
from typing import Optional, Any, Callable

from supabase import create_client

from shared.config import settings
from shared.errors import ConfigError, ValidationError, UploadError
from shared.logging import get_logger

logger = get_logger("storage")

# Default maximum artifact size (in bytes)
DEFAULT_MAX_UPLOAD_SIZE = 500 * 1024 * 1024  # 500MB

# Signed URL lifetime for uploaded artifacts
SIGNED_URL_EXPIRY = 31536000  # 1 year


class StorageClient:
    """Supabase Storage client for export artifacts."""

    def __init__(self, bucket: Optional[str] = None, max_size: int = DEFAULT_MAX_UPLOAD_SIZE):
        """
        Initialize storage client.

        Args:
            bucket: Bucket for uploads (defaults to settings.export_bucket)
            max_size: Maximum upload size in bytes
        """
        try:
            self.client = create_client(
                settings.supabase_url,
                settings.supabase_service_key
            )
            self.storage = self.client.storage
            self.bucket = bucket or settings.export_bucket
            self.max_size = max_size
        except Exception as e:
            raise ConfigError(f"Failed to initialize storage client: {str(e)}") from e

    async def _execute_sync(self, func: Callable[[], Any]) -> Any:
        """
        Execute a synchronous Supabase storage operation in an async context.

        Args:
            func: Synchronous function to execute

        Returns:
            Function result
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    def _detect_content_type(self, path: str, default: Optional[str] = None) -> str:
        """Detect content type from file path."""
        content_type, _ = mimetypes.guess_type(path)
        if content_type:
            return content_type
        return default or "application/octet-stream"

    async def upload_file(
        self,
        path: str,
        file_data: bytes,
        content_type: Optional[str] = None
    ) -> str:
        """
        Upload a file to the export bucket.

        Args:
            path: File path in bucket
            file_data: File data as bytes
            content_type: Content type (auto-detected if not provided)

        Returns:
            Signed URL of the uploaded file (public URL for public buckets)

        Raises:
            ValidationError: If file is empty or exceeds the size limit
            UploadError: If the storage call fails
        """
        if not file_data:
            raise ValidationError(f"Refusing to upload empty file to {self.bucket}/{path}")
        if len(file_data) > self.max_size:
            max_size_mb = self.max_size / (1024 * 1024)
            file_size_mb = len(file_data) / (1024 * 1024)
            raise ValidationError(
                f"File size ({file_size_mb:.2f} MB) exceeds maximum of {max_size_mb:.2f} MB for bucket {self.bucket}"
            )

        if not content_type:
            content_type = self._detect_content_type(path)

        try:
            def _upload():
                return self.storage.from_(self.bucket).upload(
                    path=path,
                    file=file_data,
                    file_options={"content-type": content_type}
                )

            await self._execute_sync(_upload)

            def _get_url():
                signed_url_response = self.storage.from_(self.bucket).create_signed_url(
                    path=path,
                    expires_in=SIGNED_URL_EXPIRY
                )
                if isinstance(signed_url_response, dict):
                    return signed_url_response.get("signedURL") or signed_url_response.get("signedUrl") or ""
                return str(signed_url_response) if signed_url_response else ""

            file_url = await self._execute_sync(_get_url)

            # Fallback to public URL if signed URL fails (for public buckets)
            if not file_url:
                def _get_public_url():
                    return self.storage.from_(self.bucket).get_public_url(path)
                file_url = await self._execute_sync(_get_public_url)

        except Exception as e:
            logger.error(
                f"Failed to upload file to {self.bucket}/{path}: {str(e)}",
                extra={"bucket": self.bucket, "path": path, "error": str(e)},
                exc_info=True
            )
            raise UploadError(f"Failed to upload {path}: {str(e)}") from e

        logger.info(
            f"Uploaded file to {self.bucket}/{path}",
            extra={"bucket": self.bucket, "path": path, "size": len(file_data)}
        )
        return file_url

    async def upload_path(self, local_path: Path, remote_path: str) -> str:
        """
        Upload a local file to the export bucket.

        Args:
            local_path: File on disk
            remote_path: Destination path in bucket

        Returns:
            URL of the uploaded file
        """
        loop = asyncio.get_running_loop()
        file_data = await loop.run_in_executor(None, Path(local_path).read_bytes)
        return await self.upload_file(
            remote_path,
            file_data,
            content_type=self._detect_content_type(str(local_path))
        )
