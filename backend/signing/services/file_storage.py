"""
File Storage - GridFS-based storage for uploaded documents, behind a small interface.
The signing workflow only keeps the returned handle (content_ref) on its records.
"""
import hashlib
import io
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from database import database

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoredFileNotFound(StorageError):
    """File not found in storage."""
    pass


@dataclass
class StoredFile:
    file_id: str
    filename: str
    content_type: str
    size_bytes: int
    sha256_hash: str
    upload_timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


class FileStorage(ABC):
    @abstractmethod
    async def put(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredFile:
        """Store bytes and return the handle."""
        pass

    @abstractmethod
    async def get(self, file_id: str) -> Tuple[bytes, StoredFile]:
        pass

    @abstractmethod
    async def delete(self, file_id: str) -> bool:
        pass


class GridFSFileStorage(FileStorage):
    """Stores files in MongoDB GridFS with sha256 + content type metadata."""

    def __init__(self, bucket_name: str = "signing_files"):
        self.bucket_name = bucket_name
        self._bucket = None

    def _get_bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            db = database.get_db()
            self._bucket = AsyncIOMotorGridFSBucket(db, bucket_name=self.bucket_name)
        return self._bucket

    async def put(self, content, filename, content_type, metadata=None) -> StoredFile:
        bucket = self._get_bucket()
        sha256_hash = hashlib.sha256(content).hexdigest()
        now = datetime.now(timezone.utc)
        try:
            file_id = await bucket.upload_from_stream(
                filename,
                io.BytesIO(content),
                metadata={
                    "content_type": content_type,
                    "sha256_hash": sha256_hash,
                    "upload_timestamp": now.isoformat(),
                    "custom_metadata": metadata or {},
                },
            )
        except PyMongoError as e:
            raise StorageError(f"GridFS upload failed for {filename}: {e}") from e
        logger.info(f"File uploaded to GridFS: {filename} ({file_id})")
        return StoredFile(
            file_id=str(file_id),
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            sha256_hash=sha256_hash,
            upload_timestamp=now,
            metadata=metadata or {},
        )

    async def get(self, file_id: str) -> Tuple[bytes, StoredFile]:
        bucket = self._get_bucket()
        db = database.get_db()
        try:
            object_id = ObjectId(file_id)
        except (InvalidId, TypeError):
            raise StoredFileNotFound(f"Invalid file ID: {file_id}")

        try:
            file_doc = await db[f"{self.bucket_name}.files"].find_one({"_id": object_id})
            if not file_doc:
                raise StoredFileNotFound(f"File not found: {file_id}")
            stream = io.BytesIO()
            await bucket.download_to_stream(object_id, stream)
        except PyMongoError as e:
            raise StorageError(f"GridFS download failed for {file_id}: {e}") from e
        meta = file_doc.get("metadata", {})
        uploaded = meta.get("upload_timestamp")
        return stream.getvalue(), StoredFile(
            file_id=str(file_doc["_id"]),
            filename=file_doc["filename"],
            content_type=meta.get("content_type", "application/octet-stream"),
            size_bytes=file_doc["length"],
            sha256_hash=meta.get("sha256_hash", ""),
            upload_timestamp=datetime.fromisoformat(uploaded) if uploaded else datetime.now(timezone.utc),
            metadata=meta.get("custom_metadata", {}),
        )

    async def delete(self, file_id: str) -> bool:
        bucket = self._get_bucket()
        try:
            await bucket.delete(ObjectId(file_id))
            logger.info(f"File deleted from GridFS: {file_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete file {file_id}: {e}")
            return False


class InMemoryFileStorage(FileStorage):
    def __init__(self):
        self._files: Dict[str, Tuple[bytes, StoredFile]] = {}

    async def put(self, content, filename, content_type, metadata=None) -> StoredFile:
        stored = StoredFile(
            file_id=uuid.uuid4().hex,
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            sha256_hash=hashlib.sha256(content).hexdigest(),
            upload_timestamp=datetime.now(timezone.utc),
            metadata=dict(metadata or {}),
        )
        self._files[stored.file_id] = (bytes(content), stored)
        return stored

    async def get(self, file_id: str) -> Tuple[bytes, StoredFile]:
        if file_id not in self._files:
            raise StoredFileNotFound(f"File not found: {file_id}")
        return self._files[file_id]

    async def delete(self, file_id: str) -> bool:
        return self._files.pop(file_id, None) is not None
