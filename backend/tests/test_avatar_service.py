"""
PersonalPage Backend — Avatar Ingestion Unit Tests
====================================================

What we test:
    ✅ Extension, declared MIME and size validation
    ✅ LocalAvatarStore writes the exact bytes and serves them under /uploads
    ✅ ImageHostAvatarStore posts base64 content and returns data.url
    ✅ Image host failures surface as UpstreamUnavailableError
    ✅ ingest() records the URL on the account
"""

import base64
import re
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import httpx
import pytest

from personalpage.exceptions import (
    FileStorageError,
    UnsupportedMediaError,
    UpstreamUnavailableError,
    ValidationError,
)
from personalpage.models.account import Account
from personalpage.services.avatar_service import AvatarService
from personalpage.services.avatar_store import ImageHostAvatarStore, LocalAvatarStore


@pytest.fixture
def local_store(temp_storage):
    return LocalAvatarStore(temp_storage)


@pytest.fixture
def avatar_service(local_store):
    return AvatarService(store=local_store, max_file_size=1024)


class TestValidation:
    """Cheap checks that run before anything is stored."""

    @pytest.mark.parametrize("filename", ["me.png", "me.jpg", "me.jpeg", "ME.PNG", "Me.JpEg"])
    def test_accepts_allowed_extensions(self, avatar_service, sample_png_bytes, filename):
        ext = avatar_service.validate(filename, sample_png_bytes, None)
        assert ext == Path(filename).suffix.lower()

    @pytest.mark.parametrize("filename", ["me.gif", "me.webp", "me.png.exe", "me", "", None])
    def test_rejects_other_extensions(self, avatar_service, sample_png_bytes, filename):
        with pytest.raises(UnsupportedMediaError):
            avatar_service.validate(filename, sample_png_bytes, None)

    def test_gif_rejected_png_accepted_for_same_bytes(self, avatar_service, sample_png_bytes):
        with pytest.raises(UnsupportedMediaError):
            avatar_service.validate("avatar.gif", sample_png_bytes, "image/png")
        assert avatar_service.validate("avatar.png", sample_png_bytes, "image/png") == ".png"

    def test_rejects_declared_non_image_type(self, avatar_service, sample_png_bytes):
        with pytest.raises(UnsupportedMediaError):
            avatar_service.validate("me.png", sample_png_bytes, "application/pdf")

    def test_accepts_declared_type_with_parameters(self, avatar_service, sample_jpeg_bytes):
        assert avatar_service.validate("me.jpg", sample_jpeg_bytes, "image/jpeg; q=0.9") == ".jpg"

    def test_rejects_empty_file(self, avatar_service):
        with pytest.raises(ValidationError) as exc_info:
            avatar_service.validate("me.png", b"", "image/png")
        assert not isinstance(exc_info.value, UnsupportedMediaError)

    def test_rejects_oversized_file(self, avatar_service):
        with pytest.raises(ValidationError) as exc_info:
            avatar_service.validate("me.png", b"x" * 1025, "image/png")
        assert exc_info.value.context["max_size_bytes"] == 1024

    @pytest.mark.asyncio
    async def test_read_upload_stops_past_the_limit(self, avatar_service):
        upload = MagicMock()
        upload.read = AsyncMock(return_value=b"x" * 1025)
        upload.close = AsyncMock()

        content = await avatar_service.read_upload(upload)

        upload.read.assert_awaited_once_with(1025)
        upload.close.assert_awaited_once()
        with pytest.raises(ValidationError):
            avatar_service.validate_size(content)

    def test_storage_stem_shape(self):
        stem = AvatarService.storage_stem(42)
        assert re.fullmatch(r"\d{13}-42-[0-9a-f]{8}", stem)
        assert AvatarService.storage_stem(42) != stem


class TestLocalAvatarStore:

    @pytest.mark.asyncio
    async def test_save_writes_exact_bytes(self, local_store, temp_storage, sample_png_bytes):
        url = await local_store.save(sample_png_bytes, ".png", "123-1-abcdef01")

        assert url == "/uploads/123-1-abcdef01.png"
        assert (Path(temp_storage) / "123-1-abcdef01.png").read_bytes() == sample_png_bytes

    @pytest.mark.asyncio
    async def test_save_recreates_missing_directory(self, tmp_path, sample_png_bytes):
        root = tmp_path / "gone"
        store = LocalAvatarStore(str(root))
        root.rmdir()

        await store.save(sample_png_bytes, ".png", "stem")
        assert (root / "stem.png").exists()

    @pytest.mark.asyncio
    async def test_unwritable_root_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")

        with pytest.raises(FileStorageError):
            LocalAvatarStore(str(blocker / "uploads"))

    @pytest.mark.asyncio
    async def test_discard_removes_file(self, local_store, temp_storage, sample_png_bytes):
        url = await local_store.save(sample_png_bytes, ".png", "to-remove")
        await local_store.discard(url)
        assert not (Path(temp_storage) / "to-remove.png").exists()

        # Unknown URLs are ignored
        await local_store.discard("https://elsewhere.example/x.png")


class TestImageHostAvatarStore:

    @staticmethod
    def _store(handler) -> ImageHostAvatarStore:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ImageHostAvatarStore(
            upload_url="https://images.example/1/upload",
            api_key="host-key",
            client=client,
        )

    @pytest.mark.asyncio
    async def test_save_returns_canonical_url(self, sample_png_bytes):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.url.params.get("key")
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(
                200, json={"success": True, "data": {"url": "https://i.example/a.png"}}
            )

        store = self._store(handler)
        url = await store.save(sample_png_bytes, ".png", "stem-1")

        assert url == "https://i.example/a.png"
        assert seen["key"] == "host-key"
        assert seen["form"]["name"] == ["stem-1"]
        assert base64.b64decode(seen["form"]["image"][0]) == sample_png_bytes

    @pytest.mark.asyncio
    async def test_error_status_is_upstream_failure(self, sample_png_bytes):
        store = self._store(lambda request: httpx.Response(400, json={"error": "bad key"}))
        with pytest.raises(UpstreamUnavailableError):
            await store.save(sample_png_bytes, ".png", "stem")

    @pytest.mark.asyncio
    async def test_malformed_body_is_upstream_failure(self, sample_png_bytes):
        store = self._store(lambda request: httpx.Response(200, json={"data": {}}))
        with pytest.raises(UpstreamUnavailableError):
            await store.save(sample_png_bytes, ".png", "stem")

    @pytest.mark.asyncio
    async def test_transport_error_is_upstream_failure(self, sample_png_bytes):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = self._store(handler)
        with pytest.raises(UpstreamUnavailableError):
            await store.save(sample_png_bytes, ".png", "stem")


class TestIngest:

    @pytest.mark.asyncio
    async def test_ingest_records_url_on_account(self, avatar_service, db_session, sample_png_bytes):
        account = Account(username="carol", password="x")
        db_session.add(account)
        await db_session.flush()

        url = await avatar_service.ingest(
            db_session, account.id, "me.png", sample_png_bytes, "image/png"
        )

        await db_session.refresh(account)
        assert account.avatar == url
        assert url.startswith("/uploads/")
        assert url.endswith(".png")

    @pytest.mark.asyncio
    async def test_ingest_rejects_before_storing(self, avatar_service, db_session, temp_storage):
        with pytest.raises(UnsupportedMediaError):
            await avatar_service.ingest(db_session, 1, "me.gif", b"GIF89a", "image/gif")
        assert list(Path(temp_storage).iterdir()) == []
