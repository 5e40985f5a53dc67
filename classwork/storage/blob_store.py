"""
classwork/storage/blob_store.py
Blob Store – opaque-id binary storage for uploaded files

Contract:
- store(stream, metadata, content_type) -> file_id
- retrieve(file_id) -> StoredBlob (stream + size + content type + metadata)
- delete(file_id)

Metadata is attached at store time and never interpreted here.
Every call is bounded by io_timeout; a copy that runs past it is aborted.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class BlobStoreError(Exception):
    """Base class for blob storage failures."""


class BlobNotFoundError(BlobStoreError):
    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__("blob not found")


class BlobStoreUnavailableError(BlobStoreError):
    """Storage backend unreachable or failing; callers may retry."""


class BlobStoreTimeoutError(BlobStoreUnavailableError):
    """An I/O call ran past its deadline and was cancelled."""


@dataclass
class StoredBlob:
    file_id: str
    stream: BinaryIO
    size: int
    content_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    deadline: Optional[float] = None

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """
        Yield the blob in chunks and close the stream when exhausted.
        Raises BlobStoreTimeoutError once the read runs past its deadline
        (a time.monotonic() value set by the store that opened it).
        """
        try:
            while True:
                if self.deadline is not None and time.monotonic() > self.deadline:
                    raise BlobStoreTimeoutError(f"read of {self.file_id} exceeded its deadline")
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.stream.close()

    def read_all(self) -> bytes:
        return b"".join(self.iter_chunks())


class BlobStore(ABC):
    """Abstract blob storage used by the submission and task services."""

    def __init__(self, io_timeout: float = 30.0):
        self.io_timeout = io_timeout

    @abstractmethod
    def store(
        self,
        stream: BinaryIO,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        ...

    @abstractmethod
    def retrieve(self, file_id: str) -> StoredBlob:
        ...

    @abstractmethod
    def delete(self, file_id: str) -> None:
        ...

    @abstractmethod
    def exists(self, file_id: str) -> bool:
        ...


class LocalBlobStore(BlobStore):
    """
    Filesystem blob store.

    Layout: <root>/<first two hex chars>/<file_id> with a JSON sidecar
    <file_id>.meta.json holding size, content type and metadata.
    """

    META_SUFFIX = ".meta.json"

    def __init__(self, root: str | os.PathLike, io_timeout: float = 30.0):
        super().__init__(io_timeout=io_timeout)
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    # ===================================================================
    # PATHS
    # ===================================================================

    def _blob_path(self, file_id: str) -> Path:
        # ids are generated here as uuid hex; anything else cannot exist
        if not file_id or not all(c in "0123456789abcdef" for c in file_id):
            raise BlobNotFoundError(file_id)
        return self.root / file_id[:2] / file_id

    def _meta_path(self, file_id: str) -> Path:
        blob_path = self._blob_path(file_id)
        return blob_path.with_name(blob_path.name + self.META_SUFFIX)

    # ===================================================================
    # CONTRACT
    # ===================================================================

    def store(
        self,
        stream: BinaryIO,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        file_id = uuid.uuid4().hex
        blob_path = self._blob_path(file_id)
        deadline = time.monotonic() + self.io_timeout
        size = 0

        try:
            blob_path.parent.mkdir(parents=True, exist_ok=True)
            with open(blob_path, "wb") as out:
                while True:
                    if time.monotonic() > deadline:
                        raise BlobStoreTimeoutError(f"store exceeded {self.io_timeout}s")
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                    size += len(chunk)

            sidecar = {
                "size": size,
                "content_type": content_type,
                "metadata": metadata or {},
            }
            self._meta_path(file_id).write_text(json.dumps(sidecar, default=str), encoding="utf-8")
        except BlobStoreError:
            self._discard(file_id)
            raise
        except OSError as exc:
            self._discard(file_id)
            raise BlobStoreUnavailableError("blob write failed") from exc

        logger.debug("Stored blob %s (%d bytes)", file_id, size)
        return file_id

    def retrieve(self, file_id: str) -> StoredBlob:
        blob_path = self._blob_path(file_id)
        deadline = time.monotonic() + self.io_timeout
        meta_path = self._meta_path(file_id)
        if not blob_path.exists() or not meta_path.exists():
            raise BlobNotFoundError(file_id)

        try:
            sidecar = json.loads(meta_path.read_text(encoding="utf-8"))
            stream = open(blob_path, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(file_id) from exc
        except (OSError, ValueError) as exc:
            raise BlobStoreUnavailableError("blob read failed") from exc

        return StoredBlob(
            file_id=file_id,
            stream=stream,
            size=int(sidecar.get("size", blob_path.stat().st_size)),
            content_type=sidecar.get("content_type") or "application/octet-stream",
            metadata=sidecar.get("metadata") or {},
            deadline=deadline,
        )

    def delete(self, file_id: str) -> None:
        blob_path = self._blob_path(file_id)
        if not blob_path.exists():
            raise BlobNotFoundError(file_id)
        try:
            blob_path.unlink()
            self._meta_path(file_id).unlink(missing_ok=True)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(file_id) from exc
        except OSError as exc:
            raise BlobStoreUnavailableError("blob delete failed") from exc

    def exists(self, file_id: str) -> bool:
        try:
            return self._blob_path(file_id).exists()
        except BlobNotFoundError:
            return False

    def _discard(self, file_id: str) -> None:
        """Remove a partially written blob."""
        for path in (self._blob_path(file_id), self._meta_path(file_id)):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove partial blob %s", file_id)
