"""Media storage for source clips and rendered output.

LocalStorageService keeps files under a directory for development;
GCSStorageService talks to Google Cloud Storage. Both stream in chunks so
large videos never have to fit in memory, and both map backend failures to
SourceMediaNotFoundError / StorageTransportError.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Protocol

from clipcaption.config import get_settings
from clipcaption.exceptions import SourceMediaNotFoundError, StorageTransportError

logger = logging.getLogger(__name__)

BytesCallback = Callable[[int], None]


@dataclass(frozen=True)
class UploadResult:
    """Where an upload landed and how long its download URL stays valid."""

    ref: str
    expires_at: Optional[datetime] = None


class MediaStore(Protocol):
    async def file_exists(self, ref: str) -> bool:
        ...

    async def get_file_size(self, ref: str) -> int:
        ...

    def download_as_stream(self, ref: str) -> AsyncIterator[bytes]:
        ...

    async def upload_from_stream_with_progress(
        self,
        dest: str,
        stream: AsyncIterator[bytes],
        on_bytes: Optional[BytesCallback] = None,
        content_type: str = "video/mp4",
    ) -> UploadResult:
        ...

    async def get_signed_url(self, ref: str) -> str:
        ...


def _expires_at(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, base_path: Optional[str] = None) -> None:
        self.settings = get_settings()
        self.base_path = Path(base_path or self.settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.chunk_size = self.settings.compose_download_chunk_bytes

    def _get_full_path(self, storage_key: str) -> Path:
        return self.base_path / storage_key

    def get_public_url(self, storage_key: str) -> str:
        return f"{self.settings.local_storage_base_url}/{storage_key}"

    async def file_exists(self, ref: str) -> bool:
        return self._get_full_path(ref).is_file()

    async def get_file_size(self, ref: str) -> int:
        path = self._get_full_path(ref)
        if not path.is_file():
            raise SourceMediaNotFoundError(ref)
        return path.stat().st_size

    async def download_as_stream(self, ref: str) -> AsyncIterator[bytes]:
        path = self._get_full_path(ref)
        try:
            f = open(path, "rb")
        except FileNotFoundError as e:
            raise SourceMediaNotFoundError(ref) from e
        except OSError as e:
            raise StorageTransportError(f"Failed to open {ref}: {e}") from e

        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(f.read, self.chunk_size)
                except OSError as e:
                    raise StorageTransportError(f"Failed to read {ref}: {e}") from e
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def upload_from_stream_with_progress(
        self,
        dest: str,
        stream: AsyncIterator[bytes],
        on_bytes: Optional[BytesCallback] = None,
        content_type: str = "video/mp4",
    ) -> UploadResult:
        full_path = self._get_full_path(dest)
        partial_path = full_path.with_name(full_path.name + ".part")
        sent = 0
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with open(partial_path, "wb") as f:
                async for chunk in stream:
                    await asyncio.to_thread(f.write, chunk)
                    sent += len(chunk)
                    if on_bytes is not None:
                        on_bytes(sent)
            os.replace(partial_path, full_path)
        except OSError as e:
            raise StorageTransportError(f"Failed to write {dest}: {e}") from e
        finally:
            # No-op after a successful replace
            partial_path.unlink(missing_ok=True)

        logger.info(f"[STORAGE] Stored {dest} ({sent} bytes)")
        return UploadResult(
            ref=dest,
            expires_at=_expires_at(self.settings.signed_url_expiration_minutes),
        )

    async def get_signed_url(self, ref: str) -> str:
        return self.get_public_url(ref)


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self) -> None:
        from google.cloud import storage

        self.settings = get_settings()
        self._storage = storage
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None
        self.chunk_size = self.settings.compose_download_chunk_bytes

    @property
    def client(self):
        if self._client is None:
            if self.settings.gcs_project_id:
                self._client = self._storage.Client(project=self.settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.settings.gcs_bucket_name)
        return self._bucket

    async def file_exists(self, ref: str) -> bool:
        from google.api_core.exceptions import GoogleAPIError

        blob = self.bucket.blob(ref)
        try:
            return await asyncio.to_thread(blob.exists)
        except GoogleAPIError as e:
            raise StorageTransportError(f"Failed to check {ref}: {e}") from e

    async def get_file_size(self, ref: str) -> int:
        from google.api_core.exceptions import GoogleAPIError

        try:
            blob = await asyncio.to_thread(self.bucket.get_blob, ref)
        except GoogleAPIError as e:
            raise StorageTransportError(f"Failed to stat {ref}: {e}") from e
        if blob is None:
            raise SourceMediaNotFoundError(ref)
        return blob.size

    async def download_as_stream(self, ref: str) -> AsyncIterator[bytes]:
        from google.api_core.exceptions import GoogleAPIError, NotFound

        blob = self.bucket.blob(ref)
        try:
            reader = await asyncio.to_thread(blob.open, "rb", chunk_size=self.chunk_size)
        except NotFound as e:
            raise SourceMediaNotFoundError(ref) from e
        except GoogleAPIError as e:
            raise StorageTransportError(f"Failed to open gs://{blob.bucket.name}/{ref}: {e}") from e

        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(reader.read, self.chunk_size)
                except NotFound as e:
                    raise SourceMediaNotFoundError(ref) from e
                except GoogleAPIError as e:
                    raise StorageTransportError(f"Download of {ref} failed: {e}") from e
                if not chunk:
                    break
                yield chunk
        finally:
            reader.close()

    async def upload_from_stream_with_progress(
        self,
        dest: str,
        stream: AsyncIterator[bytes],
        on_bytes: Optional[BytesCallback] = None,
        content_type: str = "video/mp4",
    ) -> UploadResult:
        from google.api_core.exceptions import GoogleAPIError

        blob = self.bucket.blob(dest)
        sent = 0
        try:
            writer = await asyncio.to_thread(
                blob.open, "wb", chunk_size=self.chunk_size, content_type=content_type
            )
            async for chunk in stream:
                await asyncio.to_thread(writer.write, chunk)
                sent += len(chunk)
                if on_bytes is not None:
                    on_bytes(sent)
            await asyncio.to_thread(writer.close)
        except GoogleAPIError as e:
            raise StorageTransportError(f"Upload of {dest} failed: {e}") from e

        logger.info(f"[STORAGE] Uploaded gs://{self.settings.gcs_bucket_name}/{dest} ({sent} bytes)")
        return UploadResult(
            ref=dest,
            expires_at=_expires_at(self.settings.signed_url_expiration_minutes),
        )

    async def get_signed_url(self, ref: str) -> str:
        blob = self.bucket.blob(ref)
        return await asyncio.to_thread(
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(minutes=self.settings.signed_url_expiration_minutes),
            method="GET",
        )


_storage_service: Optional[MediaStore] = None


def get_storage_service() -> MediaStore:
    """Shared store: LocalStorageService or GCSStorageService based on config."""
    global _storage_service
    if _storage_service is None:
        if get_settings().use_local_storage:
            _storage_service = LocalStorageService()
        else:
            _storage_service = GCSStorageService()
    return _storage_service
