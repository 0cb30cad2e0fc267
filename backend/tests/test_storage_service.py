"""Tests for the local media store."""

import pytest

from clipcaption.exceptions import SourceMediaNotFoundError, StorageTransportError
from clipcaption.services.storage_service import LocalStorageService, get_storage_service


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class TestLocalStorageService:
    """Tests for filesystem-backed storage."""

    @pytest.mark.asyncio
    async def test_exists_and_size(self, local_store, write_source):
        write_source("clips/a.mp4", size=1000)

        assert await local_store.file_exists("clips/a.mp4") is True
        assert await local_store.file_exists("clips/missing.mp4") is False
        assert await local_store.get_file_size("clips/a.mp4") == 1000

    @pytest.mark.asyncio
    async def test_size_of_missing_file(self, local_store):
        with pytest.raises(SourceMediaNotFoundError):
            await local_store.get_file_size("clips/missing.mp4")

    @pytest.mark.asyncio
    async def test_download_streams_in_chunks(self, local_store, write_source):
        write_source("clips/a.mp4", size=2500)
        local_store.chunk_size = 1000

        chunks = [chunk async for chunk in local_store.download_as_stream("clips/a.mp4")]

        assert [len(c) for c in chunks] == [1000, 1000, 500]

    @pytest.mark.asyncio
    async def test_download_missing_file(self, local_store):
        with pytest.raises(SourceMediaNotFoundError) as exc_info:
            async for _ in local_store.download_as_stream("clips/missing.mp4"):
                pass

        assert exc_info.value.ref == "clips/missing.mp4"

    @pytest.mark.asyncio
    async def test_upload_reports_cumulative_bytes(self, local_store):
        progress: list[int] = []

        result = await local_store.upload_from_stream_with_progress(
            "renders/out.mp4",
            _chunks(b"a" * 10, b"b" * 20),
            on_bytes=progress.append,
        )

        assert progress == [10, 30]
        assert result.ref == "renders/out.mp4"
        assert result.expires_at is not None
        assert (local_store.base_path / "renders/out.mp4").read_bytes() == b"a" * 10 + b"b" * 20
        assert not (local_store.base_path / "renders/out.mp4.part").exists()

    @pytest.mark.asyncio
    async def test_failing_stream_leaves_no_partial_file(self, local_store):
        async def broken_stream():
            yield b"a" * 10
            raise StorageTransportError("Failed to read output.mp4")

        with pytest.raises(StorageTransportError):
            await local_store.upload_from_stream_with_progress("renders/out.mp4", broken_stream())

        assert not (local_store.base_path / "renders/out.mp4.part").exists()
        assert not (local_store.base_path / "renders/out.mp4").exists()

    @pytest.mark.asyncio
    async def test_signed_url(self, local_store):
        url = await local_store.get_signed_url("renders/out.mp4")

        assert url == "http://localhost:8000/api/storage/files/renders/out.mp4"


class TestGetStorageService:
    """Tests for backend selection."""

    def test_local_storage_selected(self, monkeypatch):
        monkeypatch.setattr("clipcaption.services.storage_service._storage_service", None)

        assert isinstance(get_storage_service(), LocalStorageService)
