"""
PersonalPage Backend — Avatar Ingestion Service
=================================================

What:  Validates an uploaded avatar, hands it to the configured AvatarStore,
       and records the returned URL on the account.
Who:   Called by POST /upload-avatar and by POST /register when an avatar
       is attached.

Validation order (cheapest first):
    1. Extension in {.jpg, .jpeg, .png}      → UnsupportedMediaError (415)
    2. Declared MIME type, when present       → UnsupportedMediaError (415)
    3. Non-empty and within MAX_FILE_SIZE     → ValidationError (400)

Naming:
    <epoch-millis>-<account id>-<8 random hex><ext>
    Time plus identity plus a random suffix keeps names unique even for two
    uploads by the same account in the same millisecond.
"""

import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from personalpage.exceptions import DatabaseError, UnsupportedMediaError, ValidationError
from personalpage.models.account import Account
from personalpage.services.avatar_store import AvatarStore

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg"}

ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
}


class AvatarService:
    """
    Avatar ingestion pipeline.

    Lifecycle of an upload:
        1. validate() checks extension, declared type and size
        2. store.save() persists the bytes and returns a URL
        3. users.avatar is updated with one UPDATE statement
        4. If step 3 fails, store.discard() removes what step 2 wrote
    """

    def __init__(self, store: AvatarStore, max_file_size: int):
        self.store = store
        self.max_file_size = max_file_size

    def validate_extension(self, filename: Optional[str]) -> str:
        """Returns the normalized extension (lowercase with dot)."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise UnsupportedMediaError(
                message=(
                    f"File type '{ext or 'none'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_mime_type(self, content_type: Optional[str]) -> None:
        """Rejects a declared type outside the allow-set. A missing type is accepted."""
        if not content_type:
            return
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime not in ALLOWED_MIME_TYPES:
            raise UnsupportedMediaError(
                message=f"Content type '{mime}' is not supported. Upload a PNG or JPEG image.",
                context={"declared_mime": mime, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )

    def validate_size(self, content: bytes) -> None:
        if not content:
            raise ValidationError(message="The uploaded file is empty.", field="avatar")
        if len(content) > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File is too large. Maximum size is {max_mb:.1f}MB.",
                field="avatar",
                context={"max_size_bytes": self.max_file_size, "actual_size": len(content)},
            )

    def validate(
        self,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Run every check; returns the normalized extension."""
        ext = self.validate_extension(filename)
        self.validate_mime_type(content_type)
        self.validate_size(content)
        return ext

    async def read_upload(self, upload: UploadFile) -> bytes:
        """
        Read at most max_file_size + 1 bytes and close the upload.

        One byte past the limit is enough for validate_size() to reject the
        file without buffering the rest of it.
        """
        try:
            return await upload.read(self.max_file_size + 1)
        finally:
            await upload.close()

    @staticmethod
    def storage_stem(account_id: int) -> str:
        return f"{int(time.time() * 1000)}-{account_id}-{secrets.token_hex(4)}"

    async def ingest(
        self,
        db: AsyncSession,
        account_id: int,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Validate, store, and attach an avatar to an account.

        Returns:
            The URL now recorded in users.avatar.

        Raises:
            UnsupportedMediaError / ValidationError: bad upload
            FileStorageError / UpstreamUnavailableError: storage backend failed
            DatabaseError: the account update failed
        """
        ext = self.validate(filename, content, content_type)
        url = await self.store.save(content, ext, self.storage_stem(account_id))

        try:
            await db.execute(
                update(Account).where(Account.id == account_id).values(avatar=url)
            )
            await db.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to record avatar for account %d: %s", account_id, str(e), exc_info=True
            )
            await self.store.discard(url)
            raise DatabaseError(
                message="Could not update your avatar. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Account %d avatar set to %s", account_id, url)
        return url
