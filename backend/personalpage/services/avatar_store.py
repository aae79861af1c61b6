"""
PersonalPage Backend — Avatar Storage Backends
================================================

What:  Interchangeable places to put avatar bytes.
How:   `AvatarStore` is the capability `save(content, extension, stem) -> url`.
       `LocalAvatarStore` writes under STORAGE_ROOT and serves from /uploads;
       `ImageHostAvatarStore` uploads to an imgbb-compatible image host and
       returns the canonical URL it reports.
Who:   Selected once by `build_avatar_store()` from AVATAR_BACKEND; used only
       by AvatarService.

Implementations:
    - LocalAvatarStore: aiofiles writes, directory created eagerly and again
      before each write (idempotent)
    - ImageHostAvatarStore: httpx multipart form POST with base64 content
"""

import base64
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles
import httpx

from personalpage.config import Settings
from personalpage.exceptions import FileStorageError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"


class AvatarStore(ABC):
    """
    Contract:
        - save() persists the bytes and returns a URL (absolute or site-relative)
          that serves exactly those bytes
        - discard() removes what save() wrote, best effort, never raises
        - aclose() releases network clients, if any
    """

    @abstractmethod
    async def save(self, content: bytes, extension: str, stem: str) -> str:
        ...

    async def discard(self, url: str) -> None:
        return None

    async def aclose(self) -> None:
        return None


class LocalAvatarStore(AvatarStore):
    """
    Stores avatars on the local filesystem.

    Directory Structure:
        uploads/
        ├── 1718035200123-7-9f2c1ab0.png
        └── 1718035299871-3-04be77d1.jpg

    The filename never contains user input, only the generated stem and the
    validated extension.
    """

    def __init__(self, storage_root: str, url_prefix: str = UPLOADS_URL_PREFIX):
        self.storage_root = Path(storage_root).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self._ensure_root()
        logger.info("LocalAvatarStore initialized with storage_root=%s", self.storage_root)

    def _ensure_root(self) -> None:
        try:
            self.storage_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create storage root %s: %s", self.storage_root, str(e))
            raise FileStorageError(
                message="Avatar storage is not available.",
                context={"path": str(self.storage_root), "os_error": str(e)},
            )

    async def save(self, content: bytes, extension: str, stem: str) -> str:
        """
        Write avatar bytes to disk.

        Returns:
            Site-relative URL, e.g. "/uploads/1718035200123-7-9f2c1ab0.png"

        Raises:
            FileStorageError if directory creation or file write fails.
        """
        name = f"{stem}{extension}"
        absolute_path = self.storage_root / name

        # Directory may have been removed since startup
        self._ensure_root()

        try:
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store avatar at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

        logger.info("Avatar stored: %s (%d bytes)", name, len(content))
        return f"{self.url_prefix}/{name}"

    async def discard(self, url: str) -> None:
        """Remove a file written by save(); used when the DB update fails."""
        prefix = f"{self.url_prefix}/"
        if not url.startswith(prefix):
            return
        path = self.storage_root / url[len(prefix):]
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up avatar file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up avatar file %s: %s", path, str(e))


class ImageHostAvatarStore(AvatarStore):
    """
    Uploads avatars to a third-party image host (imgbb API shape).

    Request:
        POST {upload_url}?key={api_key}
        form: image=<base64 content>, name=<stem>

    Response (success):
        {"data": {"url": "https://i.ibb.co/..../name.png", ...}, "success": true}
    """

    def __init__(
        self,
        upload_url: str,
        api_key: str,
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.upload_url = upload_url
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def save(self, content: bytes, extension: str, stem: str) -> str:
        """
        Raises:
            UpstreamUnavailableError on transport errors, non-2xx status,
            or a body without data.url.
        """
        payload = {
            "image": base64.b64encode(content).decode("ascii"),
            "name": stem,
        }

        try:
            resp = await self._client.post(
                self.upload_url,
                params={"key": self.api_key},
                data=payload,
            )
        except httpx.HTTPError as e:
            logger.warning("Image host request failed: %s", str(e))
            raise UpstreamUnavailableError(
                message="The image host could not be reached. Please try again later.",
                context={"error_type": type(e).__name__},
            )

        if resp.status_code >= 400:
            logger.warning(
                "Image host returned %d: %s", resp.status_code, resp.text[:300]
            )
            raise UpstreamUnavailableError(
                message="The image host rejected the upload. Please try again later.",
                context={"status_code": resp.status_code},
            )

        try:
            url = resp.json()["data"]["url"]
        except (ValueError, KeyError, TypeError):
            url = None
        if not isinstance(url, str) or not url:
            logger.warning("Image host response had no data.url: %s", resp.text[:300])
            raise UpstreamUnavailableError(
                message="The image host returned an unexpected response.",
            )

        logger.info("Avatar uploaded to image host: %s", url)
        return url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_avatar_store(settings: Settings) -> AvatarStore:
    """Pick the AvatarStore named by AVATAR_BACKEND."""
    if settings.avatar_backend == "imgbb":
        return ImageHostAvatarStore(
            upload_url=settings.image_host_url,
            api_key=settings.image_host_api_key,
            timeout_seconds=settings.image_host_timeout_seconds,
        )
    return LocalAvatarStore(settings.storage_root)
