import hashlib
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Protocol

import boto3
from botocore.config import Config

from doclib.config import settings
from doclib.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredBlob:
    path: str
    checksum: str
    size: int


class Storage(Protocol):
    def put(self, data: bytes, original_name: str) -> StoredBlob: ...

    def get(self, path: str) -> BinaryIO: ...

    def delete(self, path: str) -> None: ...


def sanitize_filename(name: str) -> str:
    base = os.path.basename(name or "").strip()
    stem, ext = os.path.splitext(base)
    stem = _UNSAFE_CHARS.sub("_", stem).strip("._") or "file"
    ext = _UNSAFE_CHARS.sub("", ext.lower())
    return f"{stem[:100]}{ext}"


def generate_storage_key(original_name: str) -> str:
    today = datetime.now(timezone.utc)
    unique = uuid.uuid4().hex[:12]
    return f"{today:%Y/%m/%d}/{unique}-{sanitize_filename(original_name)}"


def file_extension(name: str) -> str:
    return os.path.splitext(name or "")[1].lstrip(".").lower()


def validate_upload(data: bytes, original_name: str) -> None:
    if not data:
        raise ValidationError("Uploaded file is empty")
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(data) > max_bytes:
        raise ValidationError(
            f"File exceeds the {settings.max_upload_size_mb} MB upload limit"
        )
    ext = file_extension(original_name)
    if ext not in settings.allowed_extensions:
        raise ValidationError(
            f"File type .{ext or '?'} is not allowed. "
            f"Allowed: {', '.join(settings.allowed_extensions)}"
        )


class LocalStorage:
    def __init__(self, root: str | None = None) -> None:
        self.root = os.path.abspath(root or settings.upload_dir)

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([full, self.root]) != self.root:
            raise ValidationError(f"Invalid storage path: {path}")
        return full

    def put(self, data: bytes, original_name: str) -> StoredBlob:
        path = generate_storage_key(original_name)
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as fh:
            fh.write(data)
        return StoredBlob(
            path=path, checksum=hashlib.sha256(data).hexdigest(), size=len(data)
        )

    def get(self, path: str) -> BinaryIO:
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise NotFoundError("Stored file not found")
        return open(full, "rb")

    def delete(self, path: str) -> None:
        full = self._full_path(path)
        if os.path.exists(full):
            os.remove(full)


class S3Storage:
    def __init__(self, bucket: str | None = None, client=None) -> None:
        self.bucket = bucket or settings.s3_bucket_name
        self._client = client

    @staticmethod
    def is_configured() -> bool:
        return bool(
            settings.s3_endpoint_url
            and settings.s3_access_key
            and settings.s3_secret_key
        )

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not S3Storage.is_configured():
            raise RuntimeError(
                "S3 storage is not configured. "
                "Set S3_ENDPOINT_URL, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
        self._client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.storage_timeout_seconds,
                read_timeout=settings.storage_timeout_seconds,
                retries={"max_attempts": 1},
            ),
        )
        return self._client

    def put(self, data: bytes, original_name: str) -> StoredBlob:
        key = f"files/{generate_storage_key(original_name)}"
        checksum = hashlib.sha256(data).hexdigest()
        self._get_client().put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            Metadata={"sha256": checksum},
        )
        return StoredBlob(path=key, checksum=checksum, size=len(data))

    def get(self, path: str) -> BinaryIO:
        response = self._get_client().get_object(Bucket=self.bucket, Key=path)
        return response["Body"]

    def delete(self, path: str) -> None:
        self._get_client().delete_object(Bucket=self.bucket, Key=path)


_backend: Storage | None = None


def get_storage() -> Storage:
    global _backend
    if _backend is None:
        if settings.storage_backend == "s3":
            _backend = S3Storage()
        elif settings.storage_backend == "local":
            _backend = LocalStorage()
        else:
            raise RuntimeError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")
    return _backend


def set_storage(backend: Storage | None) -> None:
    global _backend
    _backend = backend


def delete_blobs(paths) -> int:
    """Delete each blob, logging failures. Returns the number removed."""
    backend = get_storage()
    removed = 0
    for path in paths:
        try:
            backend.delete(path)
            removed += 1
        except Exception as e:
            logger.exception("Failed to delete blob %s: %s", path, e)
    return removed


def release_blobs(paths) -> None:
    """Hand blobs no longer referenced by any row to storage reclamation."""
    paths = sorted({path for path in paths if path})
    if not paths:
        return
    if settings.storage_reclaim_async:
        try:
            from doclib.tasks.storage import reclaim_storage

            reclaim_storage.delay(paths=paths)
            logger.info("Queued reclamation of %d blob(s)", len(paths))
            return
        except Exception as e:
            logger.warning("Falling back to inline reclamation: %s", e)
    delete_blobs(paths)
