"""
Media relay: hands uploaded files to object storage and removes them again.

Files go to S3 when a bucket is configured, otherwise to a local directory
that the app serves under /uploads.
"""

import logging
import os
import uuid
from typing import Any, Callable, NamedTuple, Optional, TypeVar

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from config import Settings
from errors import PersistenceError, UploadError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RAW = "raw"
IMAGE = "image"

EXTENSIONS = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class StoredFile(NamedTuple):
    url: str
    public_id: str


class MediaRelay:
    def __init__(self, bucket: str = "", prefix: str = "", base_url: str = "", upload_dir: str = "uploads", client: Any = None):
        self.bucket = bucket
        self.prefix = prefix
        self.base_url = base_url.rstrip("/")
        self.upload_dir = upload_dir
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaRelay":
        return cls(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            base_url=settings.s3_base_url,
            upload_dir=settings.upload_dir,
        )

    @property
    def client(self):
        if self._client is None:
            import boto3
            self._client = boto3.client("s3")
        return self._client

    @property
    def is_local(self) -> bool:
        return not self.bucket

    def upload(self, content: bytes, folder: str, resource_kind: str, content_type: str) -> StoredFile:
        ext = EXTENSIONS.get(content_type, "pdf" if resource_kind == RAW else "img")
        public_id = f"{folder}/{uuid.uuid4().hex}.{ext}"
        if self.is_local:
            return self._write_local(content, public_id)

        key = self.prefix + public_id
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
                ServerSideEncryption="AES256",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload of %s (%s) failed: %s", public_id, resource_kind, e)
            raise UploadError(f"Failed to upload file. {e}") from e
        if self.base_url:
            url = f"{self.base_url}/{key}"
        else:
            url = f"https://{self.bucket}.s3.amazonaws.com/{key}"
        return StoredFile(url=url, public_id=public_id)

    def delete(self, public_id: str, resource_kind: str = RAW) -> None:
        if self.is_local:
            path = os.path.join(self.upload_dir, public_id)
            try:
                os.remove(path)
            except OSError as e:
                raise UploadError(f"Failed to delete stored file {public_id}") from e
        else:
            try:
                self.client.delete_object(Bucket=self.bucket, Key=self.prefix + public_id)
            except (BotoCoreError, ClientError) as e:
                raise UploadError(f"Failed to delete stored file {public_id}") from e
        logger.info("Deleted stored %s file %s", resource_kind, public_id)

    def discard(self, public_id: str, resource_kind: str = RAW) -> bool:
        """Best-effort delete; logs and reports failure instead of raising."""
        if not public_id:
            return True
        try:
            self.delete(public_id, resource_kind)
        except UploadError as e:
            logger.warning("Stored file %s may still exist: %s", public_id, e.__cause__ or e)
            return False
        return True

    def _write_local(self, content: bytes, public_id: str) -> StoredFile:
        path = os.path.join(self.upload_dir, public_id)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(content)
        except OSError as e:
            raise UploadError(f"Failed to upload file. {e}") from e
        return StoredFile(url=f"/uploads/{public_id}", public_id=public_id)


# ----------------------
# File gate
# ----------------------
def read_upload(file: Optional[UploadFile], resource_kind: str, settings: Settings, label: str = "file") -> bytes:
    """Check type and size of an incoming file before any bytes are relayed."""
    if file is None:
        if resource_kind == RAW:
            raise ValidationError(f"Please upload a PDF file for the {label}")
        raise ValidationError(f"Please upload an image file for the {label}")

    content_type = file.content_type or ""
    if resource_kind == RAW:
        if content_type != "application/pdf":
            raise ValidationError("Invalid file type, only PDF is allowed!")
        limit = settings.max_document_bytes
    else:
        if not content_type.startswith("image/"):
            raise ValidationError("Invalid file type, only images are allowed!")
        limit = settings.max_image_bytes

    content = file.file.read(limit + 1)
    if len(content) > limit:
        raise ValidationError(f"File too large, the limit is {limit // (1024 * 1024)}MB")
    if not content:
        raise ValidationError("Uploaded file is empty or corrupted")
    return content


# ----------------------
# Upload, then commit or compensate
# ----------------------
def upload_then_commit(
    relay: MediaRelay,
    content: bytes,
    folder: str,
    resource_kind: str,
    content_type: str,
    commit: Callable[[StoredFile], T],
    failure_message: str,
) -> T:
    stored = relay.upload(content, folder, resource_kind, content_type)
    try:
        return commit(stored)
    except Exception as e:
        logger.error("Database save failed after upload of %s: %s", stored.public_id, e)
        try:
            relay.delete(stored.public_id, resource_kind)
        except UploadError:
            logger.critical("Failed to delete orphaned file %s", stored.public_id, exc_info=True)
        raise PersistenceError(failure_message) from e
