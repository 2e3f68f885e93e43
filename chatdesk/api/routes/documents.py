"""
api/routes/documents.py
-----------------------
Tenant document library.

POST   /tenants/{tenant_id}/documents/upload-url        — Pre-signed PUT URL.
POST   /tenants/{tenant_id}/documents                   — Register an upload.
GET    /tenants/{tenant_id}/documents                   — List (?namespace=).
POST   /tenants/{tenant_id}/documents/status            — Poll statuses.
GET    /tenants/{tenant_id}/documents/{document_id}     — One document.
DELETE /tenants/{tenant_id}/documents/{document_id}     — Delete.
POST   /tenants/{tenant_id}/documents/{id}/retry        — Retry once.
POST   /tenants/{tenant_id}/documents/{id}/cancel       — Flag as cancelled.
GET    /tenants/{tenant_id}/documents/{id}/citation     — Download URL.

Register and retry commit before scheduling the processor hand-off, which
runs after the response in its own session.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatdesk.core.config import settings
from chatdesk.db.session import get_db, get_session_factory
from chatdesk.dependencies import get_current_user, get_tenant_scope
from chatdesk.models.document import Document
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.schemas.document import (
    CitationRead,
    DocumentCreate,
    DocumentIngestResponse,
    DocumentRead,
    DocumentStatusRead,
    DocumentStatusRequest,
    UploadUrlRequest,
    UploadUrlResponse,
)
from chatdesk.services.document_service import DocumentService
from chatdesk.services.processor_client import DocumentProcessorClient, get_processor_client
from chatdesk.services.storage_service import S3Storage, get_storage

router = APIRouter(prefix="/tenants/{tenant_id}/documents", tags=["Documents"])


def _status_read(document: Document) -> DocumentStatusRead:
    view = document.metadata_view
    return DocumentStatusRead(
        id=document.id,
        status=document.status,
        processing_state=view.processing_state,
        error=view.error,
        cancelled=view.cancelled,
        updated_at=document.updated_at,
    )


@router.post(
    "/upload-url",
    response_model=UploadUrlResponse,
    summary="Get a pre-signed URL to upload a file directly to storage",
)
async def create_upload_url(
    body: UploadUrlRequest,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    storage: Annotated[S3Storage, Depends(get_storage)],
) -> UploadUrlResponse:
    locator = storage.issue_upload_locator(tenant.id, body.filename, body.content_type)
    return UploadUrlResponse(
        key=locator.key,
        upload_url=locator.put_url,
        file_url=locator.public_url,
        expires_in=settings.UPLOAD_URL_EXPIRES_SECONDS,
    )


@router.post(
    "",
    response_model=DocumentIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded document and queue it for processing",
)
async def create_document(
    body: DocumentCreate,
    background_tasks: BackgroundTasks,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    storage: Annotated[S3Storage, Depends(get_storage)],
    processor: Annotated[DocumentProcessorClient, Depends(get_processor_client)],
) -> DocumentIngestResponse:
    """
    Registering the same name twice returns the existing document unless it
    FAILED, in which case it is reset and processed again.
    """
    result = await DocumentService.ingest(
        db,
        tenant,
        current_user,
        name=body.name,
        storage_key=body.key,
        url=body.url,
        size=body.size,
        mime_type=body.mime_type,
        namespace=body.namespace,
        description=body.description,
    )
    if result.needs_handoff:
        await db.commit()
        background_tasks.add_task(
            DocumentService.run_handoff,
            result.document.id,
            session_factory,
            storage,
            processor,
        )
    return DocumentIngestResponse(
        document=DocumentRead.model_validate(result.document),
        created=result.created,
        processing_scheduled=result.needs_handoff,
    )


@router.get(
    "",
    response_model=list[DocumentRead],
    summary="List the tenant's documents",
)
async def list_documents(
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    namespace: str | None = Query(default=None, max_length=100),
) -> list[DocumentRead]:
    documents = await DocumentService.list_documents(db, tenant.id, namespace)
    return [DocumentRead.model_validate(d) for d in documents]


@router.post(
    "/status",
    response_model=list[DocumentStatusRead],
    summary="Poll the processing status of several documents",
)
async def document_statuses(
    body: DocumentStatusRequest,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[DocumentStatusRead]:
    documents = await DocumentService.statuses(db, tenant.id, body.document_ids)
    return [_status_read(d) for d in documents]


@router.get(
    "/{document_id}",
    response_model=DocumentRead,
    summary="Get a document",
)
async def get_document(
    document_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentRead:
    document = await DocumentService.get_document(db, tenant.id, document_id)
    return DocumentRead.model_validate(document)


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document and its chunks",
)
async def delete_document(
    document_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    await DocumentService.delete_document(db, tenant.id, document_id)


@router.post(
    "/{document_id}/retry",
    response_model=DocumentRead,
    summary="Retry processing of a document (allowed once)",
)
async def retry_document(
    document_id: str,
    background_tasks: BackgroundTasks,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    storage: Annotated[S3Storage, Depends(get_storage)],
    processor: Annotated[DocumentProcessorClient, Depends(get_processor_client)],
) -> DocumentRead:
    document = await DocumentService.retry(db, tenant.id, document_id)
    await db.commit()
    background_tasks.add_task(
        DocumentService.run_handoff, document.id, session_factory, storage, processor
    )
    return DocumentRead.model_validate(document)


@router.post(
    "/{document_id}/cancel",
    response_model=DocumentRead,
    summary="Mark a document's processing as cancelled",
)
async def cancel_document(
    document_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentRead:
    document = await DocumentService.cancel(db, tenant.id, document_id)
    return DocumentRead.model_validate(document)


@router.get(
    "/{document_id}/citation",
    response_model=CitationRead,
    summary="Short-lived download URL for a cited document",
)
async def document_citation(
    document_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[S3Storage, Depends(get_storage)],
) -> CitationRead:
    citation = await DocumentService.citation(db, tenant.id, document_id, storage)
    return CitationRead(
        document_id=citation.document_id,
        name=citation.name,
        url=citation.url,
        expires_in=citation.expires_in,
    )
