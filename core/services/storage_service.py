# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# Streams delivery files to Supabase Storage and reports upload progress.
#
# The supabase-py storage client takes the whole file as bytes, which gives no
# progress and holds large videos in memory. Uploads therefore go straight to
# the Storage REST endpoint with httpx, streaming fixed-size chunks:
#
#   POST {SUPABASE_URL}/storage/v1/object/{bucket}/{path}
#
# Public URLs and bucket checks still use the supabase client.
# =============================================================================

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import BinaryIO

import httpx
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from app.config import Settings
from app.exceptions import StorageUploadError, UploadCancelledError

logger = logging.getLogger(__name__)

# Called with the fraction (0..1) of the file sent so far
ProgressCallback = Callable[[float], None]


@dataclass
class UploadSource:
    """A file to upload: its metadata and a readable binary stream."""

    name: str
    content_type: str
    size: int
    stream: BinaryIO


class CancellationToken:
    """
    Cooperative cancellation for a batch of uploads.

    Uploads check the token between chunks and before they start; once
    cancelled, remaining work stops with UploadCancelledError.
    """

    def __init__(self):
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            logger.info(f"Upload batch cancelled: {reason}")
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self, path: str) -> None:
        if self._cancelled:
            raise UploadCancelledError(path)


class StorageService:
    """
    Service for Supabase Storage operations.

    Example:
        storage = StorageService(settings, supabase_client, httpx.AsyncClient())
        url = await storage.upload(path, source, on_progress=print)
    """

    def __init__(self, settings: Settings, client: Client, http: httpx.AsyncClient):
        self.settings = settings
        self.client = client
        self.http = http
        self.bucket = settings.STORAGE_BUCKET

    def _object_url(self, path: str) -> str:
        base = self.settings.SUPABASE_URL.rstrip("/")
        return f"{base}/storage/v1/object/{self.bucket}/{path}"

    def _headers(self, content_type: str, size: int) -> dict[str, str]:
        key = self.settings.SUPABASE_SERVICE_KEY
        return {
            "Authorization": f"Bearer {key}",
            "apikey": key,
            "Content-Type": content_type or "application/octet-stream",
            "Content-Length": str(size),
            "x-upsert": "true",
        }

    async def upload(
        self,
        path: str,
        source: UploadSource,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        """
        Upload one file and return its public URL.

        Args:
            path: Object key inside the bucket
            source: The file to send
            on_progress: Receives the sent fraction after every chunk, ending at 1.0
            cancel_token: Checked before every chunk

        Raises:
            StorageUploadError: If storage rejects the upload or the request fails
            UploadCancelledError: If the token is cancelled mid-upload
        """
        chunk_size = self.settings.upload_chunk_size_bytes
        total = source.size

        async def chunks() -> AsyncIterator[bytes]:
            sent = 0
            while True:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled(path)
                # Spooled uploads live on disk past 1 MB
                chunk = await run_in_threadpool(source.stream.read, chunk_size)
                if not chunk:
                    break
                sent += len(chunk)
                if on_progress is not None and total:
                    on_progress(min(sent / total, 1.0))
                yield chunk

        if cancel_token is not None:
            cancel_token.raise_if_cancelled(path)

        try:
            response = await self.http.post(
                self._object_url(path),
                content=chunks(),
                headers=self._headers(source.content_type, total),
                timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.error(f"Storage upload failed for {path}: {e}")
            raise StorageUploadError(path, str(e))

        if response.status_code >= 400:
            logger.error(f"Storage rejected {path}: {response.status_code} {response.text[:200]}")
            raise StorageUploadError(path, f"HTTP {response.status_code}")

        if on_progress is not None:
            on_progress(1.0)

        logger.info(f"Uploaded file to storage: {path} ({total} bytes)")
        return self.get_public_url(path)

    def get_public_url(self, storage_path: str) -> str:
        """
        Get a public URL for a storage file.

        Args:
            storage_path: Path in storage bucket

        Returns:
            Public URL string
        """
        return self.client.storage.from_(self.bucket).get_public_url(storage_path)

    def check_bucket(self) -> None:
        """Raises if the delivery bucket can't be reached."""
        self.client.storage.get_bucket(self.bucket)
