from __future__ import annotations

import json

import httpx
from jose import jwt

from chatdesk.core.config import settings
from chatdesk.services.chat_service import STILL_WORKING_MESSAGE
from chatdesk.services.fallback_policy import FALLBACK_TEMPLATES, FailureCategory
from support import auth_headers

MESSAGE = "Do you stock the AT123456 hydraulic filter for a Deere 850K dozer?"


def _chat_url(seed, tenant=None) -> str:
    return f"/tenants/{(tenant or seed.tenant).id}/chat"


def _sent(upstream, index: int = -1) -> dict:
    return json.loads(upstream.requests[index].content)


async def _conversation(client, seed, conversation_id: str) -> dict:
    response = await client.get(
        f"/tenants/{seed.tenant.id}/conversations/{conversation_id}",
        headers=auth_headers(seed.agent),
    )
    assert response.status_code == 200
    return response.json()


async def test_chat_turn_round_trip(client, seed, workflow_upstream) -> None:
    response = await client.post(
        _chat_url(seed),
        json={"message": MESSAGE},
        headers=auth_headers(seed.agent),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "assistant"
    assert body["content"] == "Hello from the workflow."
    assert body["isFallbackMode"] is False

    sent = _sent(workflow_upstream)
    assert sent["message"] == sent["query"]
    assert sent["tenantId"] == seed.tenant.id
    assert sent["userId"] == seed.agent.id
    assert sent["chatHistory"] == []
    assert sent["chatMode"] == "aftermarket"
    assert sent["technicalDomains"] == ["construction", "forestry"]
    assert sent["entities"]["partNumbers"] == ["AT123456"]
    assert sent["entities"]["vehicleModels"] == ["Deere 850K"]
    assert sent["sessionId"].startswith(f"session_{body['conversationId']}_")

    token = workflow_upstream.requests[-1].headers["Authorization"].removeprefix("Bearer ")
    claims = jwt.decode(token, settings.workflow_secret, algorithms=["HS512"])
    assert claims["sessionId"] == sent["sessionId"]

    conversation = await _conversation(client, seed, body["conversationId"])
    assert conversation["title"] == MESSAGE[:50] + "..."
    assert [m["role"] for m in conversation["messages"]] == ["USER", "ASSISTANT"]


async def test_follow_up_sends_history(client, seed, workflow_upstream) -> None:
    first = await client.post(
        _chat_url(seed), json={"message": "hydraulic pump leaking"}, headers=auth_headers(seed.agent)
    )
    conversation_id = first.json()["conversationId"]

    await client.post(
        _chat_url(seed),
        json={"message": "and the seals?", "conversationId": conversation_id},
        headers=auth_headers(seed.agent),
    )

    history = _sent(workflow_upstream)["chatHistory"]
    assert [(h["role"], h["content"]) for h in history] == [
        ("user", "hydraulic pump leaking"),
        ("assistant", "Hello from the workflow."),
    ]
    assert "Continuing from previous questions" in _sent(workflow_upstream)["context"]


async def test_component_reply_is_stored_with_json_data(client, seed, workflow_upstream) -> None:
    component = {"component": "SimpleText", "props": {"text": "Structured answer."}}
    workflow_upstream.script(httpx.Response(200, json=[{"output": json.dumps(component)}]))

    response = await client.post(
        _chat_url(seed), json={"message": "specs please"}, headers=auth_headers(seed.agent)
    )

    body = response.json()
    assert body["content"] == "Structured answer."
    assert body["componentData"]["component"] == "SimpleText"
    conversation = await _conversation(client, seed, body["conversationId"])
    assert conversation["messages"][1]["json_data"] == {"componentData": body["componentData"]}


async def test_unreachable_workflow_degrades_after_retries(client, seed, workflow_upstream) -> None:
    workflow_upstream.script(httpx.ConnectError("Connection refused"))

    response = await client.post(
        _chat_url(seed), json={"message": "is anyone there"}, headers=auth_headers(seed.agent)
    )

    body = response.json()
    assert response.status_code == 200
    assert body["isFallbackMode"] is True
    assert body["content"] == FALLBACK_TEMPLATES[FailureCategory.connection_refused]
    assert len(workflow_upstream.requests) == 3


async def test_upstream_5xx_is_retried_then_recovers(client, seed, workflow_upstream) -> None:
    workflow_upstream.script(
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, json={"output": "Recovered."}),
    )

    response = await client.post(
        _chat_url(seed), json={"message": "try again"}, headers=auth_headers(seed.agent)
    )

    assert response.json()["content"] == "Recovered."
    assert len(workflow_upstream.requests) == 2


async def test_empty_reply_is_never_persisted(client, seed, workflow_upstream) -> None:
    workflow_upstream.script(httpx.Response(200, json=[{"output": ""}]))

    pending = await client.post(
        _chat_url(seed),
        json={"message": "anything?", "waitForResponse": True},
        headers=auth_headers(seed.agent),
    )
    still_working = await client.post(
        _chat_url(seed),
        json={"message": "anything at all?"},
        headers=auth_headers(seed.agent),
    )

    assert pending.json()["pending"] is True
    assert pending.json()["content"] == ""
    assert still_working.json()["content"] == STILL_WORKING_MESSAGE
    assert still_working.json()["isFallbackMode"] is True
    for reply in (pending, still_working):
        conversation = await _conversation(client, seed, reply.json()["conversationId"])
        assert [m["role"] for m in conversation["messages"]] == ["USER"]


async def test_retry_prepends_system_note(client, seed, workflow_upstream) -> None:
    first = await client.post(
        _chat_url(seed),
        json={"message": "which bucket teeth fit a Komatsu 210 excavator"},
        headers=auth_headers(seed.agent),
    )

    await client.post(
        _chat_url(seed),
        json={
            "message": "which bucket teeth fit a Komatsu 210 excavator",
            "conversationId": first.json()["conversationId"],
            "isRetry": True,
        },
        headers=auth_headers(seed.agent),
    )

    sent = _sent(workflow_upstream)
    assert sent["isRetry"] is True
    assert sent["chatHistory"][0]["role"] == "system"
    assert "temporary service disruption" in sent["chatHistory"][0]["content"]
    assert "likely topic" in sent["context"]


async def test_catalog_mode_is_limited_to_catalog_tenants(client, seed, workflow_upstream) -> None:
    allowed = await client.post(
        _chat_url(seed),
        json={"message": "catalog lookup", "chatMode": "catalog"},
        headers=auth_headers(seed.agent),
    )
    denied = await client.post(
        _chat_url(seed, seed.other_tenant),
        json={"message": "catalog lookup", "chatMode": "catalog"},
        headers=auth_headers(seed.outsider),
    )

    assert allowed.status_code == 200
    assert _sent(workflow_upstream, 0)["technicalDomains"] == ["Construction", "Forestry"]
    assert denied.status_code == 403


async def test_repeated_first_message_reuses_recent_conversation(client, seed) -> None:
    first = await client.post(
        _chat_url(seed), json={"message": "Hello there"}, headers=auth_headers(seed.agent)
    )
    second = await client.post(
        _chat_url(seed), json={"message": "hello there"}, headers=auth_headers(seed.agent)
    )

    assert second.json()["conversationId"] == first.json()["conversationId"]


async def test_conversations_are_private_and_deletable(client, seed) -> None:
    reply = await client.post(
        _chat_url(seed), json={"message": "private question"}, headers=auth_headers(seed.agent)
    )
    conversation_id = reply.json()["conversationId"]
    base = f"/tenants/{seed.tenant.id}/conversations"

    mine = await client.get(base, headers=auth_headers(seed.agent))
    admins = await client.get(base, headers=auth_headers(seed.admin))
    deleted = await client.delete(f"{base}/{conversation_id}", headers=auth_headers(seed.agent))
    gone = await client.get(f"{base}/{conversation_id}", headers=auth_headers(seed.agent))

    assert [c["id"] for c in mine.json()] == [conversation_id]
    assert admins.json() == []
    assert deleted.status_code == 204
    assert gone.status_code == 404


async def test_chat_in_foreign_tenant_is_forbidden(client, seed, workflow_upstream) -> None:
    response = await client.post(
        _chat_url(seed), json={"message": "hi"}, headers=auth_headers(seed.outsider)
    )

    assert response.status_code == 403
    assert workflow_upstream.requests == []


async def test_gateway_timeout_degrades_to_timeout_fallback(client, seed, workflow_upstream) -> None:
    workflow_upstream.script(httpx.Response(504, text="upstream timed out"))

    response = await client.post(
        _chat_url(seed), json={"message": "still there?"}, headers=auth_headers(seed.agent)
    )

    assert response.json()["isFallbackMode"] is True
    assert response.json()["content"] == FALLBACK_TEMPLATES[FailureCategory.timeout]
    assert len(workflow_upstream.requests) == 3
