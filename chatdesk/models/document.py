"""
models/document.py
------------------
Document and DocumentChunk ORM models.

Lifecycle (see services/document_service.py):

    PROCESSING ──► PROCESSED
        │
        └──────► FAILED ──(retry, once)──► PROCESSING

The metadata column is an open JSON bag whose key set grows over time
(processingState, retryAttempt, sentToN8nAt, ...). Read it through
DocumentMetadata and write it through Document.update_metadata() so callers
never re-implement "read json field, cast, default", and so every write
replaces the dict (JSON columns only detect reassignment).
"""

from enum import Enum as PyEnum
from typing import Any, Mapping

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatdesk.db.base import Base, TimestampMixin, generate_uuid


class DocumentStatus(str, PyEnum):
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class ProcessingState(str, PyEnum):
    PENDING = "PENDING"
    SENT_TO_N8N = "SENT_TO_N8N"
    HANDOFF_FAILED = "HANDOFF_FAILED"


class DocumentMetadata:
    """Typed read view over Document.meta."""

    def __init__(self, raw: Mapping[str, Any] | None) -> None:
        self._data: dict[str, Any] = dict(raw or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._data)

    @property
    def size(self) -> int | None:
        value = self._data.get("size")
        return int(value) if isinstance(value, (int, float)) else None

    @property
    def mime_type(self) -> str | None:
        return self._data.get("mimeType")

    @property
    def storage_key(self) -> str | None:
        return self._data.get("s3Key")

    @property
    def namespace(self) -> str:
        return self._data.get("namespace") or "General"

    @property
    def description(self) -> str:
        return self._data.get("description") or ""

    @property
    def processing_state(self) -> str | None:
        return self._data.get("processingState")

    @property
    def sent_to_processing(self) -> bool:
        return bool(self._data.get("sentToProcessing"))

    @property
    def sent_at(self) -> str | None:
        return self._data.get("sentToN8nAt")

    @property
    def has_retried(self) -> bool:
        return bool(self._data.get("retryAttempt"))

    @property
    def reupload_attempts(self) -> int:
        return int(self._data.get("reuploadAttempts") or 0)

    @property
    def error(self) -> str | None:
        return self._data.get("error")

    @property
    def cancelled(self) -> bool:
        return bool(self._data.get("cancelled"))


class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="pdf")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentStatus.PROCESSING.value, index=True
    )
    # "metadata" is reserved on declarative classes, so the attribute is meta
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @property
    def metadata_view(self) -> DocumentMetadata:
        return DocumentMetadata(self.meta)

    def update_metadata(self, values: Mapping[str, Any]) -> None:
        self.meta = {**(self.meta or {}), **values}

    def __repr__(self) -> str:
        return f"<Document id={self.id} name={self.name} status={self.status}>"


class DocumentChunk(Base, TimestampMixin):
    __tablename__ = "document_chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    document_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<DocumentChunk document_id={self.document_id} index={self.chunk_index}>"
