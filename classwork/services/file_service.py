"""
classwork/services/file_service.py
Upload validation and Blob Store access shared by tasks and submissions

Handles:
- Batch validation (count, extension, size) before anything is stored
- Blob writes with bounded retry + backoff
- Best-effort blob cleanup reported as a PartialFailure
- Translation of storage errors into application exceptions
"""

from __future__ import annotations

import logging
import mimetypes
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

from fastapi import UploadFile

from classwork.storage.blob_store import (
    BlobNotFoundError, BlobStore, BlobStoreUnavailableError, StoredBlob
)
from classwork.utils.exceptions import (
    InvalidArgumentException, NotFoundException, PartialFailure,
    UpstreamUnavailableException
)

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    """A file received with a request, not yet stored."""

    filename: str
    content_type: str
    stream: BinaryIO
    size: int

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower().lstrip(".")

    @classmethod
    def from_upload(cls, upload: UploadFile) -> "IncomingFile":
        stream = upload.file
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)

        filename = os.path.basename(upload.filename or "")
        content_type = upload.content_type
        if not content_type or content_type == "application/octet-stream":
            guessed, _ = mimetypes.guess_type(filename)
            content_type = guessed or "application/octet-stream"
        return cls(filename=filename, content_type=content_type, stream=stream, size=size)


# ===================================================================
# VALIDATION
# ===================================================================

def validate_batch(
    files: Sequence[IncomingFile],
    *,
    allowed_types: Iterable[str],
    max_file_size: int,
    max_files: int,
) -> None:
    """Reject the whole batch if any file breaks a rule (no partial accept)."""
    if len(files) > max_files:
        raise InvalidArgumentException(f"Too many files. Maximum {max_files} files per request")

    allowed = {t.lower().lstrip(".") for t in allowed_types}
    for f in files:
        if not f.filename:
            raise InvalidArgumentException("Every uploaded file needs a filename")
        if f.extension not in allowed:
            raise InvalidArgumentException(
                f"File type not allowed: {f.filename}. Allowed: {', '.join(sorted(allowed))}"
            )
        if f.size <= 0:
            raise InvalidArgumentException(f"File is empty: {f.filename}")
        if f.size > max_file_size:
            raise InvalidArgumentException(
                f"File too large: {f.filename}. Max size: {max_file_size / 1024 / 1024:.2f}MB"
            )


# ===================================================================
# STORE / OPEN / DISCARD
# ===================================================================

def store_with_retry(
    blob_store: BlobStore,
    incoming: IncomingFile,
    metadata: Dict[str, Any],
    *,
    attempts: int,
    backoff: float,
    backoff_cap: float,
) -> str:
    attempt = 0
    while True:
        try:
            incoming.stream.seek(0)
            return blob_store.store(incoming.stream, metadata, content_type=incoming.content_type)
        except BlobStoreUnavailableError as exc:
            attempt += 1
            if attempt >= attempts:
                logger.error("Blob write failed after %d attempts: %s", attempt, exc)
                raise UpstreamUnavailableException() from exc
            delay = min(backoff * (2 ** (attempt - 1)), backoff_cap)
            logger.warning("Blob write attempt %d failed (%s); retrying in %.2fs", attempt, exc, delay)
            time.sleep(delay)


def store_batch(
    blob_store: BlobStore,
    files: Sequence[IncomingFile],
    metadata: Dict[str, Any],
    *,
    uploaded_at: datetime,
    attempts: int,
    backoff: float,
    backoff_cap: float,
) -> List[Dict[str, Any]]:
    """
    Store each file and return FileRef column values in upload order.
    Blobs already written stay in place if a later one fails.
    """
    refs = []
    for f in files:
        file_id = store_with_retry(
            blob_store,
            f,
            {**metadata, "originalName": f.filename, "uploadedAt": uploaded_at.isoformat()},
            attempts=attempts,
            backoff=backoff,
            backoff_cap=backoff_cap,
        )
        refs.append({
            "file_id": file_id,
            "original_name": f.filename,
            "size_bytes": f.size,
            "content_type": f.content_type,
            "uploaded_at": uploaded_at,
        })
    return refs


def open_blob(blob_store: BlobStore, file_id: str) -> StoredBlob:
    try:
        return blob_store.retrieve(file_id)
    except BlobNotFoundError as exc:
        raise NotFoundException("File not found") from exc
    except BlobStoreUnavailableError as exc:
        raise UpstreamUnavailableException() from exc


def discard_blobs(blob_store: BlobStore, file_ids: Iterable[str], *, step: str) -> int:
    """
    Delete every blob, continuing past individual failures.
    Returns the number removed; raises PartialFailure listing the rest.
    """
    failures = []
    removed = 0
    for file_id in file_ids:
        try:
            blob_store.delete(file_id)
            removed += 1
        except BlobNotFoundError:
            removed += 1
        except Exception as exc:
            failures.append((file_id, exc))
    if failures:
        raise PartialFailure(step, failures)
    return removed


def content_disposition(filename: Optional[str]) -> str:
    safe = (filename or "download").replace('"', "").replace("\r", "").replace("\n", "")
    ascii_name = safe.encode("ascii", "ignore").decode() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(safe)}"
