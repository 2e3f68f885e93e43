"""
schemas/document.py
-------------------
Pydantic models for the document upload flow and status polling.

Upload is two steps: request an upload URL, PUT the file to storage, then
register it with DocumentCreate.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class UploadUrlRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=512, examples=["hydraulics-manual.pdf"])
    content_type: str = Field(default="application/pdf", max_length=255)


class UploadUrlResponse(BaseModel):
    key: str
    upload_url: str
    file_url: str
    expires_in: int


class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=512)
    key: str = Field(..., min_length=1, description="Storage key returned by upload-url")
    url: str = Field(..., min_length=1)
    size: Optional[int] = Field(default=None, ge=0)
    mime_type: Optional[str] = Field(default=None, max_length=255)
    namespace: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)


class DocumentRead(BaseModel):
    id: str
    name: str
    type: str
    url: str
    status: str
    metadata: dict[str, Any] = Field(validation_alias="meta")
    user_id: str
    tenant_id: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentIngestResponse(BaseModel):
    document: DocumentRead
    created: bool
    processing_scheduled: bool


class DocumentStatusRequest(BaseModel):
    document_ids: list[str] = Field(..., max_length=100)


class DocumentStatusRead(BaseModel):
    id: str
    status: str
    processing_state: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False
    updated_at: datetime


class CitationRead(BaseModel):
    document_id: str
    name: str
    url: str
    expires_in: int


class ProcessingCallback(BaseModel):
    """Body the document processor POSTs when it finishes a document."""
    documentId: str
    status: str = Field(..., description="PROCESSED or FAILED")
    chunks: Optional[list[Any]] = None
    error: Optional[str] = None
