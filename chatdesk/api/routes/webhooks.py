"""
api/routes/webhooks.py
----------------------
Callbacks from the external document processor.

POST /webhooks/document-processing
    {documentId, status: PROCESSED|FAILED, chunks?, error?}

When DOCUMENT_WEBHOOK_SECRET is set the caller must echo it in the
X-Webhook-Secret header.
"""

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import settings
from chatdesk.core.errors import InvalidInputError
from chatdesk.core.logging import get_logger
from chatdesk.db.session import get_db
from chatdesk.models.document import DocumentStatus
from chatdesk.schemas.document import ProcessingCallback
from chatdesk.services.document_service import DocumentService

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _verify_secret(provided: str | None) -> None:
    expected = settings.DOCUMENT_WEBHOOK_SECRET
    if not expected:
        return
    if provided is None or not hmac.compare_digest(provided, expected):
        logger.warning("Webhook rejected: bad secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


@router.post(
    "/document-processing",
    summary="Document processor completion callback",
)
async def document_processing_callback(
    body: ProcessingCallback,
    db: Annotated[AsyncSession, Depends(get_db)],
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> dict:
    _verify_secret(x_webhook_secret)

    outcome = body.status.upper()
    if outcome == DocumentStatus.PROCESSED.value:
        document = await DocumentService.complete(db, body.documentId, body.chunks)
    elif outcome == DocumentStatus.FAILED.value:
        document = await DocumentService.fail(db, body.documentId, body.error)
    else:
        raise InvalidInputError(f"Unknown processing status '{body.status}'")

    return {"documentId": document.id, "status": document.status}
