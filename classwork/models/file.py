"""
classwork/models/file.py
FileRef – metadata pointing at one blob in the Blob Store

A FileRef row is owned by exactly one record (a submission or a task);
rows are never shared, so deleting the owner means deleting the blobs.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column


class FileRefMixin:
    """Columns shared by every FileRef table."""

    # Surrogate integer key doubles as the append order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_type: Mapped[str] = mapped_column(
        String(150), nullable=False, default="application/octet-stream"
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.original_name} ({self.size_bytes} bytes)>"
