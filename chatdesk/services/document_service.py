"""
services/document_service.py
----------------------------
Document lifecycle: ingest, hand-off to the external processor, completion
callbacks, retry and the read-side queries the dashboard polls.

    PROCESSING ──► PROCESSED
        │
        └──────► FAILED ──(retry, once)──► PROCESSING

Hand-off is fire-and-forget: the route schedules run_handoff() as a
background task after the ingest response, and run_handoff() opens its own
session. Hand-off outcomes are diagnostics (processingState,
handoffStatusCode, handoffError); only the processing webhook, the stale
sweep or a retry change status.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatdesk.core.config import settings
from chatdesk.core.errors import AlreadyRetriedError, InvalidInputError, NotFoundError
from chatdesk.core.logging import get_logger
from chatdesk.core.security import issue_signed_request_token
from chatdesk.db.base import as_utc, utcnow
from chatdesk.models.document import (
    Document,
    DocumentChunk,
    DocumentStatus,
    ProcessingState,
)
from chatdesk.models.notification import NotificationType
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.services.notification_service import NotificationService
from chatdesk.services.processor_client import DocumentProcessorClient
from chatdesk.services.storage_service import S3Storage

logger = get_logger(__name__)

STALE_ERROR = "Processing timed out"
PROCESSOR_NOT_CONFIGURED = "Document processor not configured"


def is_pdf(name: str, mime_type: str | None) -> bool:
    return "pdf" in (mime_type or "").lower() or name.lower().endswith(".pdf")


@dataclass
class IngestResult:
    document: Document
    created: bool
    needs_handoff: bool


@dataclass
class Citation:
    document_id: str
    name: str
    url: str
    expires_in: int


class DocumentService:

    # ── Ingest ───────────────────────────────────────────────────────────────

    @staticmethod
    async def find_by_name(db: AsyncSession, tenant_id: str, name: str) -> Document | None:
        result = await db.execute(
            select(Document)
            .where(Document.tenant_id == tenant_id, Document.name == name)
            .order_by(Document.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def ingest(
        db: AsyncSession,
        tenant: Tenant,
        actor: User,
        *,
        name: str,
        storage_key: str,
        url: str,
        size: int | None = None,
        mime_type: str | None = None,
        namespace: str | None = None,
        description: str | None = None,
    ) -> IngestResult:
        """
        Register an uploaded file.

        A (name, tenant) pair maps to one document. Re-uploading a FAILED
        document resets it to PROCESSING; re-uploading one that is
        PROCESSING or PROCESSED returns it untouched and schedules nothing.
        """
        if not is_pdf(name, mime_type):
            raise InvalidInputError("Only PDF documents are supported")
        if not storage_key.startswith(f"{tenant.id}/"):
            logger.warning(
                "Storage key outside tenant prefix rejected",
                tenant_id=tenant.id,
                storage_key=storage_key,
            )
            raise InvalidInputError("Storage key does not belong to this tenant")

        now = utcnow().isoformat()
        locator = {
            "size": size,
            "mimeType": mime_type or "application/pdf",
            "s3Key": storage_key,
            "namespace": namespace or "General",
            "description": description or "",
            "uploadedAt": now,
            "sentToProcessing": False,
            "processingState": ProcessingState.PENDING.value,
        }

        existing = await DocumentService.find_by_name(db, tenant.id, name)
        if existing is not None and existing.status != DocumentStatus.FAILED.value:
            logger.info(
                "Document already registered",
                document_id=existing.id,
                status=existing.status,
                tenant_id=tenant.id,
            )
            return IngestResult(document=existing, created=False, needs_handoff=False)

        if existing is not None:
            view = existing.metadata_view
            existing.status = DocumentStatus.PROCESSING.value
            existing.url = url
            existing.user_id = actor.id
            existing.update_metadata(
                {
                    **locator,
                    "reuploadAttempts": view.reupload_attempts + 1,
                    "previousStatus": DocumentStatus.FAILED.value,
                    "error": None,
                }
            )
            document = existing
            logger.info(
                "Failed document re-uploaded",
                document_id=document.id,
                reupload_attempts=view.reupload_attempts + 1,
            )
        else:
            document = Document(
                name=name,
                type="pdf",
                url=url,
                status=DocumentStatus.PROCESSING.value,
                meta=locator,
                user_id=actor.id,
                tenant_id=tenant.id,
            )
            db.add(document)
        await db.flush()

        await NotificationService.create(
            db,
            tenant_id=tenant.id,
            user_id=actor.id,
            type=NotificationType.document_uploaded,
            title="Document uploaded",
            message=f'"{name}" was uploaded and is being processed.',
            metadata={"documentId": document.id, "documentName": name},
        )
        logger.info("Document ingested", document_id=document.id, tenant_id=tenant.id)
        return IngestResult(document=document, created=existing is None, needs_handoff=True)

    # ── Hand-off ─────────────────────────────────────────────────────────────

    @staticmethod
    def handoff_payload(
        document: Document, tenant: Tenant, user: User | None, presigned_url: str
    ) -> dict[str, Any]:
        view = document.metadata_view
        return {
            "documentId": document.id,
            "documentUrl": document.url,
            "presignedUrl": presigned_url,
            "documentType": document.type,
            "documentName": document.name,
            "tenantId": tenant.id,
            "fileSize": view.size,
            "fileMimeType": view.mime_type,
            "namespace": view.namespace,
            "description": view.description,
            "metadata": {
                "document": {
                    "id": document.id,
                    "name": document.name,
                    "status": document.status,
                    "uploadedAt": view.get("uploadedAt"),
                },
                "tenant": {"id": tenant.id, "name": tenant.name, "slug": tenant.slug},
                "user": (
                    {"id": user.id, "name": user.name, "email": user.email}
                    if user is not None
                    else None
                ),
            },
        }

    @staticmethod
    async def handoff(
        db: AsyncSession,
        document: Document,
        storage: S3Storage,
        processor: DocumentProcessorClient,
    ) -> Document:
        """Send the document to the processor. Never changes status."""
        if not processor.configured:
            logger.warning("DOCUMENT_PROCESSOR_URL not configured", document_id=document.id)
            document.update_metadata(
                {
                    "processingState": ProcessingState.HANDOFF_FAILED.value,
                    "handoffError": PROCESSOR_NOT_CONFIGURED,
                }
            )
            await db.flush()
            return document

        tenant = await db.get(Tenant, document.tenant_id)
        user = await db.get(User, document.user_id)
        document.update_metadata(
            {
                "processingState": ProcessingState.SENT_TO_N8N.value,
                "sentToProcessing": True,
                "sentToN8nAt": utcnow().isoformat(),
                "handoffError": None,
            }
        )
        await db.flush()

        key = document.metadata_view.storage_key
        presigned_url = (
            storage.issue_download_locator(key, settings.PROCESSOR_URL_EXPIRES_SECONDS)
            if key
            else document.url
        )
        token = issue_signed_request_token(
            user_id=document.user_id,
            tenant_id=document.tenant_id,
            document_id=document.id,
        )
        payload = DocumentService.handoff_payload(document, tenant, user, presigned_url)

        try:
            status_code = await processor.submit(payload, token)
        except httpx.HTTPError as exc:
            logger.error("Document hand-off failed", document_id=document.id, error=str(exc))
            document.update_metadata(
                {
                    "processingState": ProcessingState.HANDOFF_FAILED.value,
                    "handoffError": str(exc) or exc.__class__.__name__,
                }
            )
        else:
            document.update_metadata({"handoffStatusCode": status_code})
            if status_code >= 400:
                logger.warning(
                    "Document processor rejected hand-off",
                    document_id=document.id,
                    status_code=status_code,
                )
        await db.flush()
        return document

    @staticmethod
    async def run_handoff(
        document_id: str,
        session_factory: async_sessionmaker[AsyncSession],
        storage: S3Storage,
        processor: DocumentProcessorClient,
    ) -> None:
        """Background task entry point; owns its session and its errors."""
        async with session_factory() as db:
            try:
                document = await db.get(Document, document_id)
                if document is None:
                    logger.warning("Hand-off skipped, document gone", document_id=document_id)
                    return
                await DocumentService.handoff(db, document, storage, processor)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.exception("Hand-off task crashed", document_id=document_id)
                await DocumentService._record_handoff_error(db, document_id, exc)

    @staticmethod
    async def _record_handoff_error(
        db: AsyncSession, document_id: str, exc: Exception
    ) -> None:
        document = await db.get(Document, document_id)
        if document is None:
            return
        document.update_metadata(
            {
                "processingState": ProcessingState.HANDOFF_FAILED.value,
                "handoffError": str(exc) or exc.__class__.__name__,
            }
        )
        await db.commit()

    # ── Processing outcome ───────────────────────────────────────────────────

    @staticmethod
    async def _require(db: AsyncSession, document_id: str) -> Document:
        document = await db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    def _chunk_text(chunk: Any) -> str:
        if isinstance(chunk, dict):
            return str(chunk.get("content") or chunk.get("text") or "")
        return str(chunk)

    @staticmethod
    def _chunk_index(chunk: Any, position: int) -> int:
        # The processor's chunkIndex wins; bare strings keep their position.
        if isinstance(chunk, dict):
            index = chunk.get("chunkIndex")
            if isinstance(index, int) and not isinstance(index, bool):
                return index
        return position

    @staticmethod
    async def complete(
        db: AsyncSession, document_id: str, chunks: Iterable[Any] | None = None
    ) -> Document:
        """Mark PROCESSED and store chunks with their index, replacing earlier ones."""
        document = await DocumentService._require(db, document_id)
        await db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document.id))
        count = 0
        for position, chunk in enumerate(chunks or []):
            db.add(
                DocumentChunk(
                    document_id=document.id,
                    content=DocumentService._chunk_text(chunk),
                    chunk_index=DocumentService._chunk_index(chunk, position),
                )
            )
            count += 1

        document.status = DocumentStatus.PROCESSED.value
        document.update_metadata({"processedAt": utcnow().isoformat(), "error": None})
        await db.flush()

        await NotificationService.create(
            db,
            tenant_id=document.tenant_id,
            user_id=document.user_id,
            type=NotificationType.document_processed,
            title="Document processed",
            message=f'"{document.name}" is ready to use.',
            metadata={"documentId": document.id, "documentName": document.name, "chunks": count},
        )
        logger.info("Document processed", document_id=document.id, chunks=count)
        return document

    @staticmethod
    async def _mark_failed(db: AsyncSession, document: Document, error: str) -> Document:
        document.status = DocumentStatus.FAILED.value
        document.update_metadata({"error": error, "failedAt": utcnow().isoformat()})
        await db.flush()
        await NotificationService.create(
            db,
            tenant_id=document.tenant_id,
            user_id=document.user_id,
            type=NotificationType.document_processing_failed,
            title="Document processing failed",
            message=f'"{document.name}" could not be processed: {error}',
            metadata={"documentId": document.id, "documentName": document.name, "error": error},
        )
        logger.warning("Document failed", document_id=document.id, error=error)
        return document

    @staticmethod
    async def fail(db: AsyncSession, document_id: str, error: str | None) -> Document:
        """
        Record a processing failure.

        PROCESSED is terminal: a late or duplicate failure callback is logged
        and the document is returned unchanged, so the processor does not
        keep redelivering it.
        """
        document = await DocumentService._require(db, document_id)
        if document.status == DocumentStatus.PROCESSED.value:
            logger.warning(
                "Failure callback ignored for processed document",
                document_id=document.id,
                error=error,
            )
            return document
        return await DocumentService._mark_failed(db, document, error or "Processing failed")

    @staticmethod
    def is_stale(document: Document, now: datetime | None = None) -> bool:
        if document.status != DocumentStatus.PROCESSING.value:
            return False
        started = document.created_at
        sent_at = document.metadata_view.sent_at
        if sent_at:
            try:
                started = datetime.fromisoformat(sent_at)
            except ValueError:
                logger.warning("Unreadable sentToN8nAt", document_id=document.id, value=sent_at)
        threshold = timedelta(minutes=settings.DOCUMENT_STALE_AFTER_MINUTES)
        return (now or utcnow()) - as_utc(started) > threshold

    @staticmethod
    async def fail_stale(db: AsyncSession, documents: Iterable[Document]) -> int:
        """Fail PROCESSING documents the processor never reported back on."""
        now = utcnow()
        failed = 0
        for document in documents:
            if DocumentService.is_stale(document, now):
                await DocumentService._mark_failed(db, document, STALE_ERROR)
                failed += 1
        return failed

    # ── Operator actions ─────────────────────────────────────────────────────

    @staticmethod
    async def retry(db: AsyncSession, tenant_id: str, document_id: str) -> Document:
        """
        Put a document back into PROCESSING, at most once per document.

        The row is locked so two concurrent retries cannot both pass the
        retryAttempt check. Caller re-dispatches the hand-off.
        """
        result = await db.execute(
            select(Document)
            .where(Document.id == document_id, Document.tenant_id == tenant_id)
            .with_for_update()
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Document not found")

        view = document.metadata_view
        if view.has_retried:
            raise AlreadyRetriedError()
        if document.status == DocumentStatus.PROCESSED.value:
            raise InvalidInputError("Document has already been processed")

        previous = document.status
        document.status = DocumentStatus.PROCESSING.value
        document.update_metadata(
            {
                "retryAttempt": 1,
                "retryAt": utcnow().isoformat(),
                "previousStatus": previous,
                "sentToProcessing": False,
                "processingState": ProcessingState.PENDING.value,
                "error": None,
            }
        )
        await db.flush()
        logger.info("Document retry scheduled", document_id=document.id, previous_status=previous)
        return document

    @staticmethod
    async def cancel(db: AsyncSession, tenant_id: str, document_id: str) -> Document:
        document = await DocumentService.get_document(db, tenant_id, document_id)
        if document.status != DocumentStatus.PROCESSING.value:
            raise InvalidInputError("Only documents being processed can be cancelled")
        document.update_metadata({"cancelled": True, "cancelledAt": utcnow().isoformat()})
        await db.flush()
        logger.info("Document processing cancelled", document_id=document.id)
        return document

    # ── Queries ──────────────────────────────────────────────────────────────

    @staticmethod
    async def list_documents(
        db: AsyncSession, tenant_id: str, namespace: str | None = None
    ) -> list[Document]:
        result = await db.execute(
            select(Document)
            .where(Document.tenant_id == tenant_id)
            .order_by(Document.created_at.desc())
        )
        documents = list(result.scalars().all())
        if namespace:
            documents = [d for d in documents if d.metadata_view.namespace == namespace]
        return documents

    @staticmethod
    async def get_document(db: AsyncSession, tenant_id: str, document_id: str) -> Document:
        result = await db.execute(
            select(Document).where(
                Document.id == document_id, Document.tenant_id == tenant_id
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Document not found")
        return document

    @staticmethod
    async def statuses(
        db: AsyncSession, tenant_id: str, document_ids: list[str]
    ) -> list[Document]:
        """Status poll; stale PROCESSING documents are failed on the way out."""
        if not document_ids:
            return []
        result = await db.execute(
            select(Document).where(
                Document.tenant_id == tenant_id, Document.id.in_(document_ids)
            )
        )
        documents = list(result.scalars().all())
        await DocumentService.fail_stale(db, documents)
        return documents

    @staticmethod
    async def delete_document(db: AsyncSession, tenant_id: str, document_id: str) -> None:
        document = await DocumentService.get_document(db, tenant_id, document_id)
        await db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document.id))
        await db.delete(document)
        await db.flush()
        logger.info("Document deleted", document_id=document_id, tenant_id=tenant_id)

    @staticmethod
    async def citation(
        db: AsyncSession, tenant_id: str, document_id: str, storage: S3Storage
    ) -> Citation:
        document = await DocumentService.get_document(db, tenant_id, document_id)
        expires_in = settings.DOWNLOAD_URL_EXPIRES_SECONDS
        key = document.metadata_view.storage_key
        url = storage.issue_download_locator(key, expires_in) if key else document.url
        return Citation(
            document_id=document.id, name=document.name, url=url, expires_in=expires_in
        )
