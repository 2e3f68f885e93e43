from __future__ import annotations

from typing import Any

import httpx

from chatdesk.core.security import create_access_token
from chatdesk.models import ManagerTenantAccess, Tenant, User

PASSWORD = "correct-horse-battery"
PROCESSOR_URL = "http://processor.test/webhook/documents"
WORKFLOW_URL = "http://workflow.test/webhook/chat"


class FakeS3Client:
    # Mirrors boto3's generate_presigned_url signature.
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], int]] = []

    def generate_presigned_url(self, operation: str, Params: dict[str, Any], ExpiresIn: int) -> str:
        self.calls.append((operation, Params, ExpiresIn))
        return f"https://signed.test/{operation}/{Params['Key']}?expires={ExpiresIn}"


class Upstream:
    """
    Scriptable stand-in for an external HTTP endpoint.

    Queued responses are served in order; the last one keeps being served
    once the queue is down to it. Exceptions are raised, callables are
    called with the request.
    """

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[Any] = list(responses or [])

    def script(self, *responses: Any) -> None:
        self.responses = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(200, json={})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def no_sleep(_: float) -> None:
    return None


async def grant(session_factory, manager: User, tenant: Tenant) -> None:
    async with session_factory() as session:
        session.add(ManagerTenantAccess(manager_id=manager.id, tenant_id=tenant.id))
        await session.commit()


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(subject=user.id, tenant_id=user.tenant_id, role=user.role)
    return {"Authorization": f"Bearer {token}"}
