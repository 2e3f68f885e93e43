"""
services/workflow_client.py
---------------------------
Client for the external AI chat workflow.

Every chat turn is:
  1. Signed (short-lived token binding user + tenant + session)
  2. POSTed with history, derived context and entity hints
  3. Retried on transport failure, then degraded (fallback_policy)
  4. Normalised into a canonical reply (response_normalizer)
  5. Tracked in MLflow when enabled

Upstream 4xx answers are not transport failures; their bodies go through the
normaliser like any other payload.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from chatdesk.core.config import settings
from chatdesk.core.errors import TransportFailure
from chatdesk.core.logging import get_logger
from chatdesk.core.security import issue_signed_request_token
from chatdesk.models.tenant import Tenant
from chatdesk.models.user import User
from chatdesk.services.context_extractor import ChatContext
from chatdesk.services.fallback_policy import (
    RetryPolicy,
    call_with_fallback,
    default_retry_policy,
)
from chatdesk.services.mlflow_service import track_workflow_call
from chatdesk.services.response_normalizer import NormalizedResponse, normalize_response

logger = get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "I'm sorry, the chat service is not properly configured. Please contact support."
)


@dataclass
class WorkflowRequest:
    message: str
    history: list[dict[str, Any]]
    tenant: Tenant
    user: User
    session_id: str
    chat_mode: str
    context: ChatContext
    technical_domains: list[str] = field(default_factory=list)
    is_retry: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "query": self.message,
            "chatHistory": self.history,
            "tenantId": self.tenant.id,
            "userId": self.user.id,
            "sessionId": self.session_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "chatMode": self.chat_mode,
            "technicalDomains": self.technical_domains,
            "context": self.context.context,
            "entities": self.context.entities.as_dict(),
            "isRetry": self.is_retry,
            "metadata": {
                "tenant": {
                    "id": self.tenant.id,
                    "name": self.tenant.name,
                    "slug": self.tenant.slug,
                    "domain": self.tenant.domain,
                },
                "user": {
                    "id": self.user.id,
                    "name": self.user.name,
                    "email": self.user.email,
                    "role": self.user.role,
                },
            },
        }


def decode_body(response: httpx.Response) -> Any:
    """JSON when the workflow sent JSON, raw text otherwise."""
    if not response.content:
        return ""
    try:
        return response.json()
    except ValueError as exc:
        if "json" in response.headers.get("content-type", ""):
            logger.warning("Workflow declared JSON but sent something else", error=str(exc))
        return response.text


class ChatWorkflowClient:

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = settings.CHAT_WORKFLOW_URL if url is None else url
        self._timeout = timeout or settings.CHAT_WORKFLOW_TIMEOUT_SECONDS
        self._policy = policy
        self._transport = transport
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self._url)

    async def send(self, request: WorkflowRequest) -> NormalizedResponse:
        if not self.configured:
            logger.warning("CHAT_WORKFLOW_URL not configured")
            return NormalizedResponse(content=NOT_CONFIGURED_MESSAGE, is_fallback_mode=True)

        token = issue_signed_request_token(
            user_id=request.user.id,
            tenant_id=request.tenant.id,
            session_id=request.session_id,
        )
        payload = request.to_payload()
        headers = {"Authorization": f"Bearer {token}"}

        async def _call() -> Any:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.post(self._url, json=payload, headers=headers)
            if response.status_code >= 500:
                # Gateway errors are retried like network failures
                raise TransportFailure(
                    f"Workflow answered {response.status_code} {response.reason_phrase}"
                )
            logger.info(
                "Workflow answered",
                status_code=response.status_code,
                session_id=request.session_id,
            )
            return decode_body(response)

        start = time.monotonic()
        outcome = await call_with_fallback(
            _call, policy=self._policy or default_retry_policy(), sleep=self._sleep
        )
        result = outcome.fallback if outcome.degraded else normalize_response(outcome.value)
        latency_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "Workflow turn completed",
            latency_ms=latency_ms,
            attempts=outcome.attempts,
            fallback=result.is_fallback_mode,
            tenant_id=request.tenant.id,
        )
        track_workflow_call(
            tenant_id=request.tenant.id,
            user_id=request.user.id,
            chat_mode=request.chat_mode,
            latency_ms=latency_ms,
            attempts=outcome.attempts,
            response_length=len(result.content),
            fallback=result.is_fallback_mode,
            is_retry=request.is_retry,
            failure_category=outcome.category.value if outcome.category else None,
        )
        return result


# Singleton — shared across all requests
workflow_client = ChatWorkflowClient()


def get_workflow_client() -> ChatWorkflowClient:
    return workflow_client
